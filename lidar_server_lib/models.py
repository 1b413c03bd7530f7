"""Data models for the lidar server library."""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from lidar_server_lib import protocol


class ServerState(Enum):
    """Lidar server lifecycle states."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass(frozen=True)
class LidarPoint:
    """A single lidar measurement.

    Attributes:
        timestamp: Send time expressed in the local monotonic clock, seconds.
        angle: Bearing reported by the sensor.
        distance: Range reported by the sensor. Never zero.
    """

    timestamp: float
    angle: float
    distance: float


@dataclass(frozen=True)
class DecodedLine:
    """A decoded measurement and whether it begins a new scan."""

    point: LidarPoint
    is_new_scan: bool = False


class PointConsumer(Protocol):
    """Downstream receiver of decoded points.

    Called from the reader thread; implementations must be fast and thread-safe.
    """

    def add_point(self, point: LidarPoint, is_new_scan: bool) -> None:
        ...


@dataclass
class LidarConfig:
    """Deployment settings for the lidar process and device check.

    Attributes:
        lidar_path: Executable that drives the sensor. Spawned with no arguments.
        device_id: Serial device identifier expected under device_dir.
        device_dir: Directory listed to find attached serial devices.
        stop_timeout_s: Bound on process exit and reader join in stop().
    """

    lidar_path: str = protocol.DEFAULT_LIDAR_PATH
    device_id: str = protocol.DEFAULT_DEVICE_ID
    device_dir: str = protocol.DEFAULT_DEVICE_DIR
    stop_timeout_s: float = protocol.DEFAULT_STOP_TIMEOUT_S

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.lidar_path:
            raise ValueError("lidar_path must not be empty")

        if not self.device_id:
            raise ValueError("device_id must not be empty")

        if self.stop_timeout_s <= 0:
            raise ValueError(f"stop_timeout_s must be positive, got {self.stop_timeout_s}")

    @classmethod
    def from_env(cls) -> "LidarConfig":
        """Build a config from LIDAR_* environment variables, falling back to defaults."""
        return cls(
            lidar_path=os.getenv("LIDAR_PATH", protocol.DEFAULT_LIDAR_PATH),
            device_id=os.getenv("LIDAR_DEVICE_ID", protocol.DEFAULT_DEVICE_ID),
            device_dir=os.getenv("LIDAR_DEVICE_DIR", protocol.DEFAULT_DEVICE_DIR),
            stop_timeout_s=float(
                os.getenv("LIDAR_STOP_TIMEOUT_S", str(protocol.DEFAULT_STOP_TIMEOUT_S))
            ),
        )
