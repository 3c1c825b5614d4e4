"""
ConfigStore - User configuration overrides

Defaults live in config.py. A JSON file may override them per section:

{
    "log_level": "debug",
    "bind_ip": "192.168.1.65",
    "renderer": {"filter": "Living Room"},
    "notify": {"enabled": true, "icon": "audio-volume-high", "urgency": "low"},
    "scrobble": {"command": ["scrobbler-submit", "-a", "{artist}", "-t", "{title}", "-o", "{source}"]}
}
"""
import json
import os
from typing import Dict, Any, Optional

from .utils import log_info, log_warning, log_debug

# Default config file path, overridable through the environment
CONFIG_FILE = os.environ.get(
    "TRACKNOTIFY_CONFIG",
    os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "config.json"),
)


class ConfigStore:
    """
    Read-only configuration overrides from a JSON file.

    Nothing is written back: tracknotify keeps no state across restarts.
    """

    def __init__(self, config_file: str = CONFIG_FILE):
        self._config_file = config_file
        self._config: Dict[str, Any] = {}
        self._load()

    @property
    def config_file(self) -> str:
        return self._config_file

    def _load(self):
        """Load configuration from file"""
        if not os.path.exists(self._config_file):
            log_debug("ConfigStore", f"Config file not found, using defaults: {self._config_file}")
            self._config = {}
            return

        try:
            with open(self._config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            log_warning("ConfigStore", f"Failed to load config {self._config_file}: {e}")
            self._config = {}
            return

        if not isinstance(data, dict):
            log_warning("ConfigStore", f"Ignoring config {self._config_file}: top level must be an object")
            self._config = {}
            return

        self._config = data
        log_info("ConfigStore", f"Loaded config from {self._config_file} ({len(data)} section(s))")

    def reload(self):
        """Force re-read from disk"""
        self._load()

    def get(self, section: str, key: Optional[str] = None, default: Any = None) -> Any:
        """
        Read a config value.

        get("bind_ip")                  -> config["bind_ip"]
        get("notify", "icon")           -> config["notify"]["icon"]
        get("scrobble", "command", [])  -> config["scrobble"]["command"] or []
        """
        value = self._config.get(section)
        if key is None:
            return value if value is not None else default
        if isinstance(value, dict):
            found = value.get(key)
            return found if found is not None else default
        return default

    def get_bool(self, section: str, key: Optional[str] = None, default: bool = False) -> bool:
        """Read a boolean, accepting JSON booleans and "yes"/"no" style strings"""
        value = self.get(section, key)
        if value is None:
            return default
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)

    def get_number(self, section: str, key: Optional[str] = None, default: float = 0) -> float:
        """Read a number (always a float), falling back to the default on bad values"""
        value = self.get(section, key)
        if value is None:
            return float(default)
        try:
            return float(value)
        except (TypeError, ValueError):
            log_warning("ConfigStore", f"Invalid number for {section}.{key}: {value!r}")
            return float(default)


# Global instance
config_store = ConfigStore()
