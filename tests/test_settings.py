"""Tests for the JSON-backed settings."""

from __future__ import annotations

import json

from trashbin.settings import DEFAULTS, Settings


class TestSettings:
    def test_default_location(self, home):
        assert Settings().path == home / ".config" / "trash-bin" / "settings.json"

    def test_defaults_without_file(self, tmp_path):
        settings = Settings(tmp_path / "settings.json")
        assert settings.get("list.sort") == "date"
        assert settings.get("trash.directorysizes") is True
        assert settings.get("no.such.key", 42) == 42
        assert not (tmp_path / "settings.json").exists()

    def test_set_persists(self, tmp_path):
        path = tmp_path / "nested" / "settings.json"
        Settings(path).set("list.sort", "size")
        assert json.loads(path.read_text()) == {"list": {"sort": "size"}}
        assert Settings(path).get("list.sort") == "size"

    def test_file_values_override_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text('{"trash": {"directorysizes": false}}')
        settings = Settings(path)
        assert settings.get("trash.directorysizes") is False
        assert settings.get("list.sort") == "date"

    def test_set_replaces_scalar_parent(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text('{"list": "oops"}')
        settings = Settings(path)
        settings.set("list.sort", "name")
        assert settings.get("list.sort") == "name"

    def test_invalid_json_falls_back(self, tmp_path, caplog):
        path = tmp_path / "settings.json"
        path.write_text("{not json")
        settings = Settings(path)
        assert settings.get("list.sort") == "date"
        assert "Could not load settings" in caplog.text

    def test_non_object_ignored(self, tmp_path, caplog):
        path = tmp_path / "settings.json"
        path.write_text("[1, 2]")
        assert Settings(path).get("list.sort") == "date"
        assert "not a JSON object" in caplog.text

    def test_defaults_not_mutated(self, tmp_path):
        Settings(tmp_path / "settings.json").set("list.sort", "size")
        assert DEFAULTS["list"]["sort"] == "date"
