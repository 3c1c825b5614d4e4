"""
Logging utilities module
"""
from datetime import datetime
import threading
import traceback
from typing import Optional

# Log levels
LOG_LEVEL_DEBUG = 0
LOG_LEVEL_INFO = 1
LOG_LEVEL_WARNING = 2
LOG_LEVEL_ERROR = 3

_LEVEL_NAMES = {
    LOG_LEVEL_DEBUG: "DEBUG",
    LOG_LEVEL_INFO: "INFO",
    LOG_LEVEL_WARNING: "WARN",
    LOG_LEVEL_ERROR: "ERROR",
}

# Current log level (set from config.DEBUG or the "log_level" config key)
_current_log_level = LOG_LEVEL_INFO

# Lock for atomic logging (sinks and the event loop may log concurrently)
_log_lock = threading.Lock()


def set_log_level(level: int):
    """Set the log level"""
    global _current_log_level
    _current_log_level = level


def level_from_name(name: Optional[str], default: int = LOG_LEVEL_INFO) -> int:
    """
    Convert a level name from the config file to a log level.

    Accepts "debug", "info", "warn"/"warning" and "error" in any case.
    """
    if not name:
        return default
    name = name.strip().upper()
    if name == "WARNING":
        name = "WARN"
    for level, level_name in _LEVEL_NAMES.items():
        if level_name == name:
            return level
    return default


def log(tag: str, message: str, level: int = LOG_LEVEL_INFO):
    """
    Formatted log output.

    Args:
        tag: Log tag (component name)
        message: Log message
        level: Log level (LOG_LEVEL_DEBUG, LOG_LEVEL_INFO, LOG_LEVEL_WARNING, LOG_LEVEL_ERROR)
    """
    if level < _current_log_level:
        return

    now = datetime.now().strftime("%Y/%m/%d %H:%M:%S")
    level_str = _LEVEL_NAMES.get(level, "INFO")

    with _log_lock:
        print(f"[{now}] [{level_str}] [{tag}] {message}", flush=True)


def log_debug(tag: str, message: str):
    """Output DEBUG level log"""
    log(tag, message, LOG_LEVEL_DEBUG)


def log_info(tag: str, message: str):
    """Output INFO level log"""
    log(tag, message, LOG_LEVEL_INFO)


def log_warning(tag: str, message: str):
    """Output WARNING level log"""
    log(tag, message, LOG_LEVEL_WARNING)


def log_error(tag: str, message: str):
    """Output ERROR level log"""
    log(tag, message, LOG_LEVEL_ERROR)


def log_exception(tag: str, message: str):
    """Output ERROR level log, with the active traceback at DEBUG level"""
    log(tag, message, LOG_LEVEL_ERROR)
    log(tag, traceback.format_exc().rstrip(), LOG_LEVEL_DEBUG)


def shorten(text: Optional[str], limit: int = 200) -> str:
    """Trim long payloads (raw event XML) for log output"""
    if not text:
        return ""
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
