#!/usr/bin/env python3
"""Check the lidar is attached, stream for a while, and verify the point stream.

Tests:
- Device presence check (/dev/serial/by-id/)
- Process spawn and reader thread start
- Point rate and scan completion
- Timestamps are in the local clock domain and non-decreasing per scan
- Clean stop
"""

import argparse
import sys
import time
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from lidar_server_lib import PointBuffer, protocol
from pi_hw_tests.common import (
    TestResult,
    build_server,
    point_rate_hz,
    robust_teardown,
    setup_logging,
    wait_for_points,
)


def main():
    parser = argparse.ArgumentParser(description="Connect to lidar and verify streaming")
    parser.add_argument("--lidar-path", default=protocol.DEFAULT_LIDAR_PATH,
                       help=f"Lidar driver executable (default: {protocol.DEFAULT_LIDAR_PATH})")
    parser.add_argument("--duration", type=float, default=10.0,
                       help="Streaming duration in seconds (default: 10)")
    parser.add_argument("--min-rate", type=float, default=100.0,
                       help="Minimum acceptable point rate in Hz (default: 100)")
    parser.add_argument("--fake", action="store_true",
                       help="Use a fake lidar driver instead of real hardware")
    args = parser.parse_args()

    logs_dir = Path(__file__).parent / "logs"
    logger = setup_logging("01_connect_and_stream", logs_dir)

    buffer = PointBuffer(maxlen=100000)
    server = None
    passed = False
    metrics = {}

    try:
        print(f"{'='*60}")
        print(f"Test: Connect and Stream")
        print(f"Driver: {args.lidar_path if not args.fake else 'FakeProcess'}")
        print(f"Duration: {args.duration}s")
        print(f"{'='*60}\n")

        server = build_server(args.lidar_path, args.fake, buffer)

        if not server.is_connected():
            raise RuntimeError(
                f"Lidar device {server.config.device_id} not found in {server.config.device_dir}"
            )
        logger.info("Lidar device present")

        if not server.start():
            raise RuntimeError("start() refused")
        logger.info(f"Lidar started (pid {server.pid})")

        if not wait_for_points(buffer, min_points=1, timeout=10.0, logger=logger):
            raise RuntimeError("No points received within 10s")

        time.sleep(args.duration)

        points = buffer.snapshot()
        rate_hz = point_rate_hz(points)
        metrics["points"] = len(points)
        metrics["scans"] = buffer.scan_count
        metrics["point_rate_hz"] = f"{rate_hz:.1f}"
        metrics["latest_scan_points"] = len(buffer.latest_scan())

        if rate_hz < args.min_rate:
            raise RuntimeError(f"Point rate {rate_hz:.1f} Hz below minimum {args.min_rate} Hz")

        if buffer.scan_count == 0:
            raise RuntimeError("No complete scan observed")

        # Reconciled timestamps must sit behind the local clock, not in the future
        now = time.monotonic()
        latest = points[-1].timestamp
        metrics["latest_age_s"] = f"{now - latest:.3f}"
        if latest > now + 0.5:
            raise RuntimeError(f"Point timestamp {latest:.3f} ahead of local clock {now:.3f}")

        scan = buffer.latest_scan()
        if any(b.timestamp < a.timestamp for a, b in zip(scan, scan[1:])):
            logger.warning("Timestamps within latest scan are not monotonic")

        logger.info("Stopping lidar...")
        if not server.stop():
            raise RuntimeError("stop() refused")

        if server.is_running():
            raise RuntimeError("Server still running after stop()")

        passed = True
        message = f"Streamed {len(points)} points in {buffer.scan_count} scans"

    except Exception as e:
        logger.error(f"Test failed: {e}", exc_info=True)
        message = f"Stream test failed: {str(e)}"
        passed = False

    finally:
        robust_teardown(server, logger=logger)

    result = TestResult(
        passed=passed,
        message=message,
        metrics=metrics
    )
    result.print_result()

    sys.exit(0 if passed else 1)


if __name__ == "__main__":
    main()
