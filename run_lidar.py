#!/usr/bin/env python3
"""
Lidar Runbook: start the driver, watch points and scans arrive, stop.
Expected: a steady point rate and one completed scan per rotation
"""

import argparse
import logging
import os
import time

from lidar_server_lib import LidarConfig, LidarServer, PointBuffer, protocol

parser = argparse.ArgumentParser(description="Run the lidar server for a fixed duration")
parser.add_argument("--lidar-path", default=os.getenv("LIDAR_PATH", protocol.DEFAULT_LIDAR_PATH))
parser.add_argument("--duration", type=float, default=10.0, help="Run time in seconds")
parser.add_argument("--fake", action="store_true", help="Use a simulated driver")
args = parser.parse_args()

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

print("=" * 70)
print("Lidar Runbook")
print("=" * 70)
print(f"Driver: {args.lidar_path if not args.fake else 'FakeProcess'}")
print(f"Duration: {args.duration}s")
print()

buffer = PointBuffer(maxlen=100000)
config = LidarConfig(lidar_path=args.lidar_path)

if args.fake:
    from fakes.fake_process import FakeConnectivity, FakeSpawner

    server = LidarServer(
        config=config,
        consumer=buffer,
        checker=FakeConnectivity(connected=True),
        spawner=FakeSpawner(stream_hz=360.0, points_per_scan=360),
    )
else:
    server = LidarServer(config=config, consumer=buffer)

with server:
    # Step 1: Device check
    print("[1/3] Checking for lidar device...")
    if not server.is_connected():
        print(f"      Not found: {config.device_dir}{config.device_id}")
        raise SystemExit(1)
    print("      Found.")
    print()

    # Step 2: Start and watch
    print("[2/3] Starting lidar...")
    if not server.start():
        print("      start() refused")
        raise SystemExit(1)
    print(f"      Running, pid {server.pid}")
    print()

    start_time = time.time()
    while time.time() - start_time < args.duration and server.is_running():
        time.sleep(0.5)
        elapsed = time.time() - start_time
        scan = buffer.latest_scan()
        print(f"      [{elapsed:5.1f}s] points={len(buffer)} scans={buffer.scan_count} "
              f"last_scan_points={len(scan)}")

    if not server.is_running():
        print("      Lidar stopped on its own (disconnect or driver exit)")

    # Step 3: Results
    print()
    print("[3/3] Results")
    points = buffer.snapshot()
    print(f"      Total points: {len(points)}")
    print(f"      Completed scans: {buffer.scan_count}")
    if len(points) >= 2:
        span = points[-1].timestamp - points[0].timestamp
        if span > 0:
            print(f"      Point rate: {(len(points) - 1) / span:.1f} Hz")
    if points:
        last = points[-1]
        print(f"      Last point: t={last.timestamp:.3f} angle={last.angle:.2f} "
              f"distance={last.distance:.1f}")

print()
print("Stopped.")
print("=" * 70)
