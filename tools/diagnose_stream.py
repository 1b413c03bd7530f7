"""Run the lidar driver directly and show how each output line decodes."""

import subprocess
import sys
import time

from lidar_server_lib import parsing, protocol
from lidar_server_lib.clock import SystemClock
from lidar_server_lib.connectivity import ConnectivityChecker
from lidar_server_lib.errors import MalformedLine


def diagnose_stream(path=protocol.DEFAULT_LIDAR_PATH, max_lines=50):
    """Show raw driver output next to its decode result."""

    print("\n=== Device check ===")
    checker = ConnectivityChecker()
    print(f"Listing: {' '.join(checker.command)}")
    print(f"Looking for: {checker.device_id}")
    print(f"Connected: {checker.is_connected()}")

    print(f"\n=== Starting {path} ===")
    proc = subprocess.Popen(
        [path],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        errors="replace",
        bufsize=1,
    )
    print(f"pid {proc.pid}")

    clock = SystemClock()
    good = 0
    bad = 0
    scans = 0
    start = time.time()

    print(f"\n=== First {max_lines} lines ===")
    try:
        for _ in range(max_lines):
            line = proc.stdout.readline()
            if not line:
                print("*** EOF - driver exited ***")
                break

            try:
                decoded = parsing.parse_line(line, clock.system_time_ms(), clock.local_time_s())
            except MalformedLine as e:
                bad += 1
                print(f"RX: {line.rstrip()!r:40}  SKIP ({e})")
                continue

            good += 1
            if decoded.is_new_scan:
                scans += 1
            age_ms = (clock.local_time_s() - decoded.point.timestamp) * 1000
            print(f"RX: {line.rstrip()!r:40}  angle={decoded.point.angle:8.2f} "
                  f"dist={decoded.point.distance:9.1f} age={age_ms:7.1f}ms"
                  f"{' NEW SCAN' if decoded.is_new_scan else ''}")
    finally:
        proc.kill()
        proc.wait()

    elapsed = time.time() - start
    print(f"\nDecoded {good}, skipped {bad}, scan markers {scans} in {elapsed:.2f}s")

    if proc.stderr is not None:
        err = proc.stderr.read().strip()
        if err:
            print("\n=== Driver stderr ===")
            print(err)

    if good == 0:
        print("\n*** NO VALID POINTS ***")
        print("\nPossible reasons:")
        print("1. Driver cannot open the serial device (check stderr above)")
        print("2. Driver output format differs from timestamp_ms,angle,distance[s]")
        print("3. Sensor is not spinning yet; try more lines")


if __name__ == "__main__":
    path = sys.argv[1] if len(sys.argv) > 1 else protocol.DEFAULT_LIDAR_PATH
    diagnose_stream(path)
