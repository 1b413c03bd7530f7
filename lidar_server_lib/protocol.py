"""Line protocol constants and host defaults for the lidar process.

The external scanner writes one measurement per line on stdout:

    <timestamp_ms>,<angle>,<distance>[s]

The timestamp is epoch milliseconds in the sender's wall clock. A trailing
``s`` marks the first point of a new scan (one full rotation).
"""

import re
from typing import Final

# ============================================================================
# Line Format
# ============================================================================

FIELD_DELIMITER: Final[str] = ","
FIELD_COUNT: Final[int] = 3

# Suffix on the first line of each rotation
SCAN_MARKER: Final[str] = "s"

LINE_TERMINATORS: Final[str] = "\r\n"

# Plain decimal fields only: no whitespace, underscores, nan or inf
RE_INT_FIELD: Final[re.Pattern[str]] = re.compile(r"[+-]?[0-9]+")
RE_FLOAT_FIELD: Final[re.Pattern[str]] = re.compile(
    r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?"
)

# ============================================================================
# Host Defaults
# ============================================================================

DEFAULT_LIDAR_PATH: Final[str] = "/home/pi/chezy_lidar"

# Directory whose entries name attached serial devices
DEFAULT_DEVICE_DIR: Final[str] = "/dev/serial/by-id/"

# CP2102 bridge on the RPLidar A-series adapter board
DEFAULT_DEVICE_ID: Final[str] = (
    "usb-Silicon_Labs_CP2102_USB_to_UART_Bridge_Controller_0001-if00-port0"
)

LIST_COMMAND: Final[str] = "/bin/ls"

# ============================================================================
# Timing
# ============================================================================

# Bound on process exit and reader join during stop()
DEFAULT_STOP_TIMEOUT_S: Final[float] = 5.0

# Upper bound on the device listing command
TIMEOUT_DEVICE_LIST_S: Final[float] = 2.0

# Back-off after a transient read error while the device is still present
DELAY_READ_RETRY_S: Final[float] = 0.1
