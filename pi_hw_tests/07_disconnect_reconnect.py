#!/usr/bin/env python3
"""Disconnect/reconnect test - verify the lidar session lifecycle.

Tests full lifecycle:
- Repeated start/stop cycles return the server to idle each time
- Points arrive in every session
- Unplugging the sensor mid-stream stops the server on its own
- start() is refused while unplugged and succeeds after replugging

Expected behavior:
- stop() kills the driver and joins the reader within stop_timeout_s
- A disconnect is detected on the next failed read and shuts the session down
- No automatic restart: the caller starts again once the device is back
"""

import argparse
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from lidar_server_lib import PointBuffer, ServerState, protocol
from pi_hw_tests.common import (
    TestResult,
    build_server,
    robust_teardown,
    setup_logging,
    wait_for_points,
)


def wait_for_state(server, state: ServerState, timeout: float) -> bool:
    """Poll until server reaches state or timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if server.state == state:
            return True
        time.sleep(0.1)
    return server.state == state


def main():
    parser = argparse.ArgumentParser(description="Disconnect/reconnect test")
    parser.add_argument("--lidar-path", default=protocol.DEFAULT_LIDAR_PATH)
    parser.add_argument("--cycles", type=int, default=3,
                       help="Number of start/stop cycles (default: 3)")
    parser.add_argument("--skip-unplug", action="store_true",
                       help="Skip the manual unplug phase")
    parser.add_argument("--fake", action="store_true")
    args = parser.parse_args()

    logs_dir = Path(__file__).parent / "logs"
    logger = setup_logging("07_disconnect_reconnect", logs_dir)

    buffer = PointBuffer(maxlen=100000)
    server = None
    passed = False
    metrics = {}

    try:
        print(f"{'='*60}")
        print(f"Test: Disconnect/Reconnect Lifecycle")
        print(f"Driver: {args.lidar_path if not args.fake else 'FakeProcess'}")
        print(f"{'='*60}\n")

        server = build_server(args.lidar_path, args.fake, buffer)

        # =====================================================================
        # Start/Stop Cycles
        # =====================================================================
        for cycle in range(1, args.cycles + 1):
            logger.info(f"\n=== Cycle {cycle}/{args.cycles} ===")
            buffer.clear()

            if not server.start():
                raise RuntimeError(f"start() refused in cycle {cycle}")

            if not wait_for_points(buffer, min_points=10, timeout=10.0, logger=logger):
                raise TimeoutError(f"No points received in cycle {cycle}")

            metrics[f"points_cycle_{cycle}"] = len(buffer)

            started = time.monotonic()
            if not server.stop():
                raise RuntimeError(f"stop() refused in cycle {cycle}")
            metrics[f"stop_time_cycle_{cycle}_s"] = f"{time.monotonic() - started:.3f}"

            if server.state != ServerState.IDLE:
                raise RuntimeError(f"State {server.state.value} after stop in cycle {cycle}")

            logger.info(f"✓ Cycle {cycle} complete")

        # =====================================================================
        # Unplug
        # =====================================================================
        if not args.skip_unplug:
            logger.info("\n=== Unplug ===")
            buffer.clear()
            if not server.start():
                raise RuntimeError("start() refused before unplug")
            if not wait_for_points(buffer, min_points=10, timeout=10.0, logger=logger):
                raise TimeoutError("No points received before unplug")

            if args.fake:
                server._checker.connected = False
                server._spawner.last.exit(code=1)
            else:
                print("\n>>> Unplug the lidar USB cable now <<<\n")

            if not wait_for_state(server, ServerState.IDLE, timeout=60.0):
                raise TimeoutError("Server did not stop after unplug")
            logger.info("✓ Server stopped itself after disconnect")

            if server.start():
                raise RuntimeError("start() succeeded while unplugged")
            logger.info("✓ start() refused while unplugged")

            if args.fake:
                server._checker.connected = True
            else:
                print("\n>>> Plug the lidar back in <<<\n")

            deadline = time.monotonic() + 60.0
            while not server.is_connected():
                if time.monotonic() > deadline:
                    raise TimeoutError("Device did not reappear")
                time.sleep(0.5)

            buffer.clear()
            if not server.start():
                raise RuntimeError("start() refused after replug")
            if not wait_for_points(buffer, min_points=10, timeout=10.0, logger=logger):
                raise TimeoutError("No points received after replug")
            logger.info("✓ Streaming again after replug")
            server.stop()

        passed = True
        message = f"Completed {args.cycles} start/stop cycles"
        if not args.skip_unplug:
            message += " and unplug/replug recovery"

    except Exception as e:
        logger.error(f"Test failed: {e}", exc_info=True)
        message = f"Disconnect/reconnect test failed: {str(e)}"
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
