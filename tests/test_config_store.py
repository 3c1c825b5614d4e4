# test_config_store.py
import json

from core.config_store import ConfigStore


def write_config(tmp_path, data):
    path = tmp_path / "config.json"
    path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")
    return str(path)


class TestConfigStore:

    def test_sections_and_keys(self, tmp_path):
        store = ConfigStore(write_config(tmp_path, {
            "log_level": "debug",
            "bind_ip": "192.168.1.65",
            "notify": {"icon": "media-playback-start", "enabled": "no"},
            "scrobble": {"command": ["scrobble", "{artist}"]},
        }))
        assert store.get("bind_ip") == "192.168.1.65"
        assert store.get("notify", "icon") == "media-playback-start"
        assert store.get("notify", "urgency", "low") == "low"
        assert store.get("scrobble", "command") == ["scrobble", "{artist}"]
        assert store.get_bool("notify", "enabled", True) is False
        assert store.get("renderer", "filter") is None

    def test_key_on_scalar_section(self, tmp_path):
        store = ConfigStore(write_config(tmp_path, {"bind_ip": "10.0.0.2"}))
        assert store.get("bind_ip", "port", 5) == 5

    def test_numbers(self, tmp_path):
        store = ConfigStore(write_config(tmp_path, {"sink": {"timeout": "15", "broken": "soon"}}))
        assert store.get_number("sink", "timeout", 10) == 15
        assert store.get_number("sink", "broken", 10) == 10
        assert store.get_number("sink", "missing", 2.5) == 2.5

    def test_fractional_numbers_are_kept(self, tmp_path):
        store = ConfigStore(write_config(tmp_path, {"sink": {"timeout": 2.5, "drain": "2.5"}}))
        assert store.get_number("sink", "timeout", 10) == 2.5
        assert store.get_number("sink", "drain", 10) == 2.5
        assert isinstance(store.get_number("sink", "missing", 10), float)

    def test_missing_file(self, tmp_path):
        store = ConfigStore(str(tmp_path / "absent.json"))
        assert store.get("bind_ip", default="127.0.0.1") == "127.0.0.1"

    def test_invalid_json(self, tmp_path):
        store = ConfigStore(write_config(tmp_path, "{not json"))
        assert store.get("log_level") is None

    def test_top_level_must_be_object(self, tmp_path):
        store = ConfigStore(write_config(tmp_path, "[1, 2, 3]"))
        assert store.get("log_level", default="info") == "info"

    def test_reload(self, tmp_path):
        path = write_config(tmp_path, {"log_level": "info"})
        store = ConfigStore(path)
        write_config(tmp_path, {"log_level": "error"})
        store.reload()
        assert store.get("log_level") == "error"
