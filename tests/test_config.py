"""Tests for LidarConfig validation and environment loading."""

import pytest

from lidar_server_lib import protocol
from lidar_server_lib.models import LidarConfig


def test_defaults() -> None:
    config = LidarConfig()

    assert config.lidar_path == protocol.DEFAULT_LIDAR_PATH
    assert config.device_id == protocol.DEFAULT_DEVICE_ID
    assert config.device_dir == protocol.DEFAULT_DEVICE_DIR
    assert config.stop_timeout_s == protocol.DEFAULT_STOP_TIMEOUT_S


@pytest.mark.parametrize("timeout", [0.0, -1.0])
def test_invalid_stop_timeout(timeout: float) -> None:
    with pytest.raises(ValueError, match="stop_timeout_s"):
        LidarConfig(stop_timeout_s=timeout)


def test_empty_path_rejected() -> None:
    with pytest.raises(ValueError, match="lidar_path"):
        LidarConfig(lidar_path="")


def test_empty_device_id_rejected() -> None:
    with pytest.raises(ValueError, match="device_id"):
        LidarConfig(device_id="")


def test_from_env(monkeypatch) -> None:
    monkeypatch.setenv("LIDAR_PATH", "/usr/local/bin/rplidar_stream")
    monkeypatch.setenv("LIDAR_DEVICE_ID", "usb-Prolific_PL2303-if00-port0")
    monkeypatch.setenv("LIDAR_DEVICE_DIR", "/dev/serial/by-path/")
    monkeypatch.setenv("LIDAR_STOP_TIMEOUT_S", "2.5")

    config = LidarConfig.from_env()

    assert config.lidar_path == "/usr/local/bin/rplidar_stream"
    assert config.device_id == "usb-Prolific_PL2303-if00-port0"
    assert config.device_dir == "/dev/serial/by-path/"
    assert config.stop_timeout_s == 2.5


def test_from_env_defaults(monkeypatch) -> None:
    for name in ("LIDAR_PATH", "LIDAR_DEVICE_ID", "LIDAR_DEVICE_DIR", "LIDAR_STOP_TIMEOUT_S"):
        monkeypatch.delenv(name, raising=False)

    assert LidarConfig.from_env() == LidarConfig()
