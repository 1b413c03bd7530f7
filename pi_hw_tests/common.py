"""Shared helpers for the lidar validation scripts (real driver or --fake)."""

import logging
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from lidar_server_lib import LidarConfig, LidarPoint, LidarServer, PointBuffer
from lidar_server_lib.errors import StopTimeout


@dataclass
class TestResult:
    """Outcome of one validation script."""
    passed: bool
    message: str
    metrics: dict = field(default_factory=dict)

    def print_result(self):
        banner = "=" * 60
        print(f"\n{banner}\n{'PASS' if self.passed else 'FAIL'}: {self.message}")
        for key, value in self.metrics.items():
            print(f"  {key}: {value}")
        print(banner)


def setup_logging(script_name: str, logs_dir: Path) -> logging.Logger:
    """Log DEBUG to logs_dir/<script>_<time>.log and INFO to stdout."""
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = logs_dir / f"{script_name}_{datetime.now():%Y%m%d_%H%M%S}.log"

    logger = logging.getLogger(script_name)
    logger.setLevel(logging.DEBUG)

    file_handler = logging.FileHandler(log_file)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    ))
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(file_handler)
    logger.addHandler(console)

    logger.info(f"Logging to {log_file}")
    return logger


def build_server(lidar_path: str, fake: bool, buffer: PointBuffer,
                 stream_hz: float = 200.0) -> LidarServer:
    """Create a LidarServer for real hardware or for a fake driver.

    Args:
        lidar_path: Lidar driver executable (ignored with fake)
        fake: Use FakeSpawner/FakeConnectivity instead of the host
        buffer: Point consumer
        stream_hz: Synthetic point rate for the fake driver

    Returns:
        LidarServer ready to start
    """
    config = LidarConfig(lidar_path=lidar_path)
    if not fake:
        return LidarServer(config=config, consumer=buffer)

    from fakes.fake_process import FakeConnectivity, FakeSpawner

    return LidarServer(
        config=config,
        consumer=buffer,
        checker=FakeConnectivity(connected=True),
        spawner=FakeSpawner(stream_hz=stream_hz),
    )


def point_rate_hz(points: Sequence[LidarPoint]) -> float:
    """Average delivery rate over the reconciled timestamps of points (0 if too few)."""
    if len(points) < 2:
        return 0.0
    duration = points[-1].timestamp - points[0].timestamp
    if duration <= 0:
        return 0.0
    return (len(points) - 1) / duration


def robust_teardown(server: Optional[LidarServer],
                    logger: Optional[logging.Logger] = None):
    """Stop the server if it is still running, logging instead of raising.

    Args:
        server: LidarServer instance (may be None)
        logger: Optional logger for messages
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    if server is None or not server.is_running():
        return

    try:
        logger.info("Stopping lidar...")
        if not server.stop():
            logger.error("Stop refused, retrying once")
            server.stop()
    except StopTimeout as e:
        logger.error(f"Error during teardown: {e}")


def wait_for_points(buffer: PointBuffer,
                    min_points: int,
                    timeout: float = 30.0,
                    logger: Optional[logging.Logger] = None) -> bool:
    """Wait until the buffer holds at least min_points points.

    Args:
        buffer: PointBuffer fed by the server
        min_points: Minimum number of points to wait for
        timeout: Maximum wait time in seconds
        logger: Optional logger

    Returns:
        True if min_points reached, False on timeout
    """
    logger = logger or logging.getLogger(__name__)
    deadline = time.monotonic() + timeout

    while time.monotonic() < deadline:
        if len(buffer) >= min_points:
            logger.info(f"Buffer reached {len(buffer)} points")
            return True
        time.sleep(0.1)

    logger.warning(f"Only {len(buffer)} of {min_points} points after {timeout}s")
    return False
