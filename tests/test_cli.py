"""Tests for the trash and trash-bin command line programs."""

from __future__ import annotations

import json
import os
from datetime import datetime
from pathlib import Path

import pytest
from click.testing import CliRunner

import trashbin.core.device as device
from trashbin.cli import main, trash, trash_main
from trashbin.core.device import DeviceIdentity
from trashbin.core.entry import PendingTrashRequest
from trashbin.core.roots import resolve_for_file
from trashbin.core.trashbin import TrashBin
from trashbin.settings import Settings


@pytest.fixture
def runner():
    return CliRunner()


def _trash_at(path, when):
    item = PendingTrashRequest(path, resolve_for_file(path)).name(when)
    item.create_trashinfo()
    item.trash()
    return item


class TestTrashCommand:
    def test_trashes_files(self, runner, home):
        a = home / "a.txt"
        b = home / "b.txt"
        a.write_text("a")
        b.write_text("b")
        result = runner.invoke(trash, [str(a), str(b)])
        assert result.exit_code == 0
        assert not a.exists() and not b.exists()
        assert len(TrashBin().list_items()) == 2

    def test_missing_file(self, runner, home):
        result = runner.invoke(trash, [str(home / "missing")])
        assert result.exit_code == 1
        assert "cannot trash" in result.output
        assert "no such file or directory" in result.output

    def test_stops_at_first_failure(self, runner, home):
        a = home / "a.txt"
        a.write_text("a")
        result = runner.invoke(trash, [str(home / "missing"), str(a)])
        assert result.exit_code == 1
        assert a.exists()

    def test_refuses_trash_directory(self, runner, home, home_trash):
        (home / "a.txt").write_text("a")
        runner.invoke(trash, [str(home / "a.txt")])
        result = runner.invoke(trash, [str(home_trash / "files" / "a.txt")])
        assert result.exit_code == 2
        assert "trashing the trash is not supported" in result.output

    def test_unknown_mount_is_refused(self, runner, home, monkeypatch):
        f = home / "a.txt"
        f.write_text("a")
        real_identity_for = device.identity_for

        def identity_for(path, follow_symlinks=False):
            if Path(os.path.abspath(path)) == f:
                return DeviceIdentity(device_id=os.makedev(259, 98), major=259, minor=98)
            return real_identity_for(path, follow_symlinks)

        monkeypatch.setattr(device, "identity_for", identity_for)
        result = runner.invoke(trash, [str(f)])
        assert result.exit_code == 2
        assert (
            "cannot resolve trash directory: could not find mount point for device 259:98"
            in result.output
        )
        assert f.exists()

    def test_unusable_trash_directory(self, runner, fake_mount):
        (fake_mount / f".Trash-{os.geteuid()}").write_text("not a directory")
        f = fake_mount / "a.txt"
        f.write_text("a")
        result = runner.invoke(trash, [str(f)])
        assert result.exit_code == 2
        assert f"cannot trash '{f}': cannot resolve trash directory:" in result.output
        assert f.exists()

    def test_name_not_valid_utf8(self, runner, home):
        raw = os.fsencode(home) + b"/bad\xffname.txt"
        with open(raw, "wb") as f:
            f.write(b"x")
        result = runner.invoke(trash, [os.fsdecode(raw)])
        assert result.exit_code == 0
        assert not os.path.lexists(raw)
        assert len(TrashBin().list_items()) == 1

    def test_interactive_no(self, runner, home):
        f = home / "a.txt"
        f.write_text("a")
        result = runner.invoke(trash, ["-i", str(f)], input="n\n")
        assert result.exit_code == 0
        assert f"trash file '{f}'? (y/n)" in result.output
        assert f.exists()

    def test_interactive_yes(self, runner, home):
        f = home / "a.txt"
        f.write_text("a")
        result = runner.invoke(trash, ["--interactive", str(f)], input="y\n")
        assert result.exit_code == 0
        assert not f.exists()

    def test_dash_prefixed_name(self, runner, home, monkeypatch):
        monkeypatch.chdir(home)
        (home / "-foo").write_text("x")
        result = runner.invoke(trash, ["--", "-foo"])
        assert result.exit_code == 0
        assert not (home / "-foo").exists()

    def test_no_arguments_is_usage_error(self, capsys):
        with pytest.raises(SystemExit) as exc:
            trash_main([])
        assert exc.value.code == 1
        assert "try '-h'" in capsys.readouterr().err

    def test_unknown_option_is_usage_error(self):
        with pytest.raises(SystemExit) as exc:
            trash_main(["--bogus"])
        assert exc.value.code == 1

    def test_help(self, runner):
        result = runner.invoke(trash, ["-h"])
        assert result.exit_code == 0
        assert "trash -- -foo" in result.output

    def test_main_exit_code_success(self, home):
        f = home / "a.txt"
        f.write_text("a")
        with pytest.raises(SystemExit) as exc:
            trash_main([str(f)])
        assert exc.value.code == 0


class TestListCommand:
    def test_empty(self, runner):
        result = runner.invoke(main, ["list"])
        assert result.exit_code == 0
        assert "Trash is empty." in result.output

    def test_lists_items(self, runner, home):
        (home / "notes.txt").write_text("x")
        (home / "photos").mkdir()
        TrashBin().trash(home / "notes.txt")
        TrashBin().trash(home / "photos")
        result = runner.invoke(main, ["list"])
        assert result.exit_code == 0
        assert "~/notes.txt" in result.output
        assert "~/photos/" in result.output

    def test_name_not_valid_utf8(self, runner, home):
        raw = os.fsencode(home) + b"/bad\xffname.txt"
        with open(raw, "wb") as f:
            f.write(b"x")
        TrashBin().trash(os.fsdecode(raw))
        result = runner.invoke(main, ["list"])
        assert result.exit_code == 0
        assert "~/bad\ufffdname.txt" in result.output

    def test_json(self, runner, home):
        (home / "notes.txt").write_text("hello")
        TrashBin().trash(home / "notes.txt")
        result = runner.invoke(main, ["list", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert len(data) == 1
        assert data[0]["original_path"] == str(home / "notes.txt")
        assert data[0]["kind"] == "file"
        assert data[0]["size_bytes"] == 5
        assert data[0]["root_kind"] == "home"
        assert data[0]["entry"] == "notes.txt"

    def test_sort_from_settings(self, runner, home):
        (home / "small").write_bytes(b"s")
        (home / "big").write_bytes(b"b" * 50_000)
        _trash_at(home / "big", datetime(2024, 1, 1))
        _trash_at(home / "small", datetime(2024, 2, 1))
        Settings().set("list.sort", "size")
        result = runner.invoke(main, ["list", "--json"])
        assert [d["entry"] for d in json.loads(result.output)] == ["big", "small"]

    def test_sort_option_overrides_settings(self, runner, home):
        (home / "small").write_bytes(b"s")
        (home / "big").write_bytes(b"b" * 50_000)
        _trash_at(home / "big", datetime(2024, 1, 1))
        _trash_at(home / "small", datetime(2024, 2, 1))
        Settings().set("list.sort", "size")
        result = runner.invoke(main, ["list", "--json", "--sort", "date"])
        assert [d["entry"] for d in json.loads(result.output)] == ["small", "big"]


class TestRestoreCommand:
    def test_restore_by_path(self, runner, home):
        f = home / "notes.txt"
        f.write_text("x")
        TrashBin().trash(f)
        result = runner.invoke(main, ["restore", str(f)])
        assert result.exit_code == 0
        assert "restored ~/notes.txt" in result.output
        assert f.read_text() == "x"

    def test_not_found(self, runner):
        result = runner.invoke(main, ["restore", "nothing.txt"])
        assert result.exit_code == 2
        assert "not found in trash" in result.output

    def test_occupied_destination(self, runner, home):
        f = home / "notes.txt"
        f.write_text("old")
        TrashBin().trash(f)
        f.write_text("new")
        result = runner.invoke(main, ["restore", str(f)])
        assert result.exit_code == 2
        assert "already exists" in result.output
        assert f.read_text() == "new"

    def test_yes_picks_most_recent(self, runner, home):
        f = home / "notes.txt"
        f.write_text("old")
        _trash_at(f, datetime(2024, 1, 1))
        f.write_text("new")
        _trash_at(f, datetime(2024, 2, 1))
        result = runner.invoke(main, ["restore", "--yes", "notes.txt"])
        assert result.exit_code == 0
        assert f.read_text() == "new"

    def test_select_among_matches(self, runner, home):
        f = home / "notes.txt"
        f.write_text("old")
        _trash_at(f, datetime(2024, 1, 1))
        f.write_text("new")
        _trash_at(f, datetime(2024, 2, 1))
        result = runner.invoke(main, ["restore", "notes.txt"], input="2\n")
        assert result.exit_code == 0
        assert "Several trashed items match" in result.output
        assert f.read_text() == "old"

    def test_empty_selection(self, runner, home):
        f = home / "notes.txt"
        f.write_text("old")
        _trash_at(f, datetime(2024, 1, 1))
        f.write_text("new")
        _trash_at(f, datetime(2024, 2, 1))
        result = runner.invoke(main, ["restore", "notes.txt"], input="\n")
        assert result.exit_code == 0
        assert "Nothing selected." in result.output
        assert not f.exists()


class TestPurgeCommand:
    def test_confirm_declined(self, runner, home):
        (home / "notes.txt").write_text("x")
        item = TrashBin().trash(home / "notes.txt")
        result = runner.invoke(main, ["purge", "notes.txt"], input="n\n")
        assert "Aborted." in result.output
        assert item.files_entry.exists()

    def test_yes(self, runner, home):
        (home / "notes.txt").write_text("x")
        item = TrashBin().trash(home / "notes.txt")
        result = runner.invoke(main, ["purge", "--yes", "notes.txt"])
        assert result.exit_code == 0
        assert "deleted ~/notes.txt" in result.output
        assert not item.files_entry.exists()
        assert not item.trashinfo.backing_path.exists()

    def test_unknown_query(self, runner, home):
        (home / "notes.txt").write_text("x")
        item = TrashBin().trash(home / "notes.txt")
        result = runner.invoke(main, ["purge", "-y", "notes.txt", "other.txt"])
        assert result.exit_code == 2
        assert "cannot purge 'other.txt'" in result.output
        assert not item.files_entry.exists()


class TestEmptyCommand:
    def test_yes(self, runner, home):
        for name in ("a", "b"):
            (home / name).write_text("x")
            TrashBin().trash(home / name)
        result = runner.invoke(main, ["empty", "--yes"])
        assert result.exit_code == 0
        assert "Removed 2 item(s)" in result.output
        assert TrashBin().list_items() == []

    def test_confirm_declined(self, runner, home):
        (home / "a").write_text("x")
        TrashBin().trash(home / "a")
        result = runner.invoke(main, ["empty"], input="n\n")
        assert "Aborted." in result.output
        assert len(TrashBin().list_items()) == 1


class TestRootsCommand:
    def test_none(self, runner):
        result = runner.invoke(main, ["roots"])
        assert "No trash directories found." in result.output

    def test_lists_home_and_mount(self, runner, home, home_trash, fake_mount):
        (home / "a").write_text("x")
        (fake_mount / "b").write_text("x")
        TrashBin().trash(home / "a")
        TrashBin().trash(fake_mount / "b")
        result = runner.invoke(main, ["roots"])
        assert result.exit_code == 0
        assert str(home_trash) in result.output
        assert "[home]" in result.output
        assert f"[topdir-user] on {fake_mount}" in result.output


class TestConfigCommand:
    def test_show_default(self, runner):
        result = runner.invoke(main, ["config", "list.sort"])
        assert result.output.strip() == '"date"'

    def test_set_and_show(self, runner, home):
        runner.invoke(main, ["config", "trash.directorysizes", "false"])
        result = runner.invoke(main, ["config", "trash.directorysizes"])
        assert result.output.strip() == "false"
        settings_file = home / ".config" / "trash-bin" / "settings.json"
        assert json.loads(settings_file.read_text())["trash"]["directorysizes"] is False

    def test_directorysizes_setting_honoured(self, runner, home):
        runner.invoke(main, ["config", "trash.directorysizes", "false"])
        (home / "photos").mkdir()
        runner.invoke(trash, [str(home / "photos")])
        assert not (home / ".local" / "share" / "Trash" / "directorysizes").exists()
