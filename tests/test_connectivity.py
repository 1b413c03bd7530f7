"""Tests for the host device presence check."""

import subprocess
from pathlib import Path

import pytest

from lidar_server_lib import protocol
from lidar_server_lib.connectivity import ConnectivityChecker


@pytest.fixture
def device_dir(tmp_path: Path) -> Path:
    """Fake /dev/serial/by-id/ with a couple of unrelated entries."""
    (tmp_path / "usb-FTDI_FT232R_USB_UART_A50285BI-if00-port0").touch()
    (tmp_path / "usb-Arduino_Uno_7563331313335-if00").touch()
    return tmp_path


def test_connected_when_device_listed(device_dir: Path) -> None:
    (device_dir / protocol.DEFAULT_DEVICE_ID).touch()

    checker = ConnectivityChecker(device_dir=str(device_dir))

    assert checker.is_connected() is True


def test_not_connected_when_device_absent(device_dir: Path) -> None:
    checker = ConnectivityChecker(device_dir=str(device_dir))

    assert checker.is_connected() is False


def test_match_is_exact(device_dir: Path) -> None:
    """A longer entry that merely contains the identifier does not count."""
    (device_dir / (protocol.DEFAULT_DEVICE_ID + "-extra")).touch()

    checker = ConnectivityChecker(device_dir=str(device_dir))

    assert checker.is_connected() is False


def test_custom_device_id(device_dir: Path) -> None:
    checker = ConnectivityChecker(
        device_id="usb-Arduino_Uno_7563331313335-if00",
        device_dir=str(device_dir),
    )

    assert checker.is_connected() is True


def test_missing_directory_is_not_connected(tmp_path: Path) -> None:
    checker = ConnectivityChecker(device_dir=str(tmp_path / "no_such_dir"))

    assert checker.is_connected() is False


def test_listing_failure_is_swallowed(monkeypatch) -> None:
    """An OS error from the listing command degrades to False."""

    def broken_run(*args, **kwargs):
        raise FileNotFoundError("[Errno 2] No such file or directory: '/bin/ls'")

    monkeypatch.setattr(subprocess, "run", broken_run)

    assert ConnectivityChecker().is_connected() is False


def test_listing_timeout_is_swallowed(monkeypatch) -> None:
    def slow_run(cmd, *args, **kwargs):
        raise subprocess.TimeoutExpired(cmd=cmd, timeout=kwargs.get("timeout"))

    monkeypatch.setattr(subprocess, "run", slow_run)

    assert ConnectivityChecker().is_connected() is False


def test_command_targets_device_dir() -> None:
    checker = ConnectivityChecker(device_dir="/dev/serial/by-path/")

    assert checker.command == [protocol.LIST_COMMAND, "/dev/serial/by-path/"]
