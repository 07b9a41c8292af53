"""测试 settings_store.py — 键值读取、缺失默认值、原子写入、凭据。"""

from __future__ import annotations

import json

from glance.settings_store import OPEN_AI_API_KEY, TAILSCALE_HOST_IP, Credentials, SettingsStore


class TestLoad:

    def test_missing_file_returns_empty(self, tmp_path):
        store = SettingsStore(tmp_path / "settings.json")
        assert store.load() == {}
        assert store.get(OPEN_AI_API_KEY) == ""

    def test_corrupt_file_returns_empty(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json", encoding="utf-8")
        store = SettingsStore(path)
        assert store.load() == {}

    def test_non_object_file_returns_empty(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("[1, 2]", encoding="utf-8")
        assert SettingsStore(path).load() == {}

    def test_values_coerced_to_str(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"a": 1, "b": None}), encoding="utf-8")
        assert SettingsStore(path).load() == {"a": "1"}


class TestSet:

    def test_set_and_get(self, tmp_path):
        store = SettingsStore(tmp_path / "nested" / "settings.json")
        store.set(OPEN_AI_API_KEY, "sk-abc")
        assert store.get(OPEN_AI_API_KEY) == "sk-abc"

    def test_set_preserves_other_keys(self, tmp_path):
        store = SettingsStore(tmp_path / "settings.json")
        store.set(OPEN_AI_API_KEY, "sk-abc")
        store.set(TAILSCALE_HOST_IP, "http://100.64.0.7")
        assert store.load() == {
            OPEN_AI_API_KEY: "sk-abc",
            TAILSCALE_HOST_IP: "http://100.64.0.7",
        }

    def test_no_temp_files_left(self, tmp_path):
        store = SettingsStore(tmp_path / "settings.json")
        store.set(OPEN_AI_API_KEY, "sk-abc")
        assert list(tmp_path.glob("*.tmp")) == []


class TestCredentials:

    def test_defaults_to_empty_strings(self, tmp_path):
        creds = SettingsStore(tmp_path / "settings.json").credentials()
        assert creds == Credentials(api_key="", host="")

    def test_reads_both_keys(self, tmp_path):
        store = SettingsStore(tmp_path / "settings.json")
        store.set(OPEN_AI_API_KEY, "sk-abc")
        store.set(TAILSCALE_HOST_IP, "100.64.0.7")
        creds = store.credentials()
        assert creds.api_key == "sk-abc"
        assert creds.host == "100.64.0.7"
