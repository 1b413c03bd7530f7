"""Thread-safe buffer of recent lidar points, grouped into scans."""

import logging
import threading
from collections import deque
from typing import List

from lidar_server_lib.models import LidarPoint

logger = logging.getLogger(__name__)


class PointBuffer:
    """Point consumer holding the most recent points and the last full scan.

    Once the buffer reaches maxlen, oldest points are discarded when new
    points arrive. A point flagged as new-scan closes the scan in progress,
    which becomes the latest complete scan.
    """

    def __init__(self, maxlen: int = 2000) -> None:
        """Initialize point buffer.

        Args:
            maxlen: Maximum number of recent points to keep. Defaults to 2000.
        """
        if maxlen <= 0:
            raise ValueError(f"maxlen must be positive, got {maxlen}")

        self._points: deque[LidarPoint] = deque(maxlen=maxlen)
        self._current_scan: deque[LidarPoint] = deque(maxlen=maxlen)
        self._latest_scan: List[LidarPoint] = []
        self._scan_count = 0
        self._lock = threading.Lock()
        self._maxlen = maxlen

    def add_point(self, point: LidarPoint, is_new_scan: bool = False) -> None:
        """Add a point (thread-safe).

        Args:
            point: Decoded lidar point
            is_new_scan: True if this point is the first of a new rotation
        """
        with self._lock:
            if is_new_scan and self._current_scan:
                self._latest_scan = list(self._current_scan)
                self._current_scan.clear()
                self._scan_count += 1
                logger.debug(
                    f"Completed scan #{self._scan_count} with {len(self._latest_scan)} points"
                )
            self._current_scan.append(point)
            self._points.append(point)

    def snapshot(self) -> List[LidarPoint]:
        """Get a copy of all buffered points, ordered oldest to newest (thread-safe)."""
        with self._lock:
            return list(self._points)

    def latest_scan(self) -> List[LidarPoint]:
        """Get a copy of the most recent complete scan, or [] if none yet."""
        with self._lock:
            return list(self._latest_scan)

    @property
    def scan_count(self) -> int:
        """Number of scans completed since creation or last clear()."""
        with self._lock:
            return self._scan_count

    def clear(self) -> None:
        """Remove all points and scans (thread-safe)."""
        with self._lock:
            count = len(self._points)
            self._points.clear()
            self._current_scan.clear()
            self._latest_scan = []
            self._scan_count = 0
            logger.debug(f"Cleared {count} points from buffer")

    def __len__(self) -> int:
        with self._lock:
            return len(self._points)

    @property
    def maxlen(self) -> int:
        """Maximum capacity of buffer."""
        return self._maxlen
