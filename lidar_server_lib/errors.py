"""Custom exceptions for the lidar server library."""


class LidarServerError(Exception):
    """Base exception for all lidar server library errors."""

    pass


class MalformedLine(LidarServerError):
    """Raised when a line from the lidar process cannot be decoded."""

    pass


class SpawnError(LidarServerError):
    """Raised when the lidar process or its reader thread cannot be started."""

    pass


class StopTimeout(LidarServerError):
    """Raised when the lidar process or reader thread does not exit in time."""

    pass
