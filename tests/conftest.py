"""Shared test fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

import trashbin.core.device as device
from trashbin.core.device import DeviceIdentity

# Device numbers of the fake external drive; chosen to never match a real one.
FAKE_MAJOR = 259
FAKE_MINOR = 99


@pytest.fixture(autouse=True)
def home(tmp_path, monkeypatch):
    """Point HOME and the XDG directories at a temp directory."""
    home = tmp_path / "home"
    data_home = home / ".local" / "share"
    data_home.mkdir(parents=True)
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_DATA_HOME", str(data_home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    return home


@pytest.fixture(autouse=True)
def mountinfo(tmp_path, monkeypatch):
    """Replace the process mount table with an empty temp file."""
    path = tmp_path / "mountinfo"
    path.write_text("")
    monkeypatch.setattr(device, "MOUNTINFO_PATH", path)
    return path


@pytest.fixture
def home_trash(home):
    return home / ".local" / "share" / "Trash"


@pytest.fixture
def fake_mount(tmp_path, mountinfo, monkeypatch):
    """An external drive mounted at ``tmp_path/media/usb``.

    Paths below the mount point report their own device numbers and the
    mount table lists the drive.
    """
    mount_point = tmp_path / "media" / "usb"
    mount_point.mkdir(parents=True)
    mountinfo.write_text(
        f"100 1 {FAKE_MAJOR}:{FAKE_MINOR} / {mount_point} rw,relatime shared:1 - ext4 /dev/sdz1 rw\n"
    )

    real_identity_for = device.identity_for

    def identity_for(path, follow_symlinks=False):
        if Path(os.path.abspath(path)).is_relative_to(mount_point):
            return DeviceIdentity(
                device_id=os.makedev(FAKE_MAJOR, FAKE_MINOR),
                major=FAKE_MAJOR,
                minor=FAKE_MINOR,
            )
        return real_identity_for(path, follow_symlinks)

    monkeypatch.setattr(device, "identity_for", identity_for)
    return mount_point
