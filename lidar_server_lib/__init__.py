"""
lidar_server_lib - Supervisor and line decoder for an external lidar driver process.

Spawns the driver, reads its ``timestamp_ms,angle,distance[s]`` output and
delivers timestamp-reconciled points to a consumer.
"""

from lidar_server_lib.connectivity import ConnectivityChecker
from lidar_server_lib.errors import (
    LidarServerError,
    MalformedLine,
    SpawnError,
    StopTimeout,
)
from lidar_server_lib.models import (
    DecodedLine,
    LidarConfig,
    LidarPoint,
    PointConsumer,
    ServerState,
)
from lidar_server_lib.point_buffer import PointBuffer
from lidar_server_lib.server import LidarServer

__version__ = "0.1.0"

__all__ = [
    "LidarServer",
    "LidarConfig",
    "LidarPoint",
    "DecodedLine",
    "PointConsumer",
    "PointBuffer",
    "ServerState",
    "ConnectivityChecker",
    "LidarServerError",
    "MalformedLine",
    "SpawnError",
    "StopTimeout",
]
