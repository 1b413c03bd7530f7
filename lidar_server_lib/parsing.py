"""Pure functions for decoding lidar output lines."""

import logging
from typing import Optional

from lidar_server_lib import protocol
from lidar_server_lib.clock import Clock
from lidar_server_lib.errors import MalformedLine
from lidar_server_lib.models import DecodedLine, LidarPoint

logger = logging.getLogger(__name__)


def split_scan_marker(line: str) -> tuple[str, bool]:
    """Strip the trailing new-scan marker if present.

    Args:
        line: Raw line with terminators already removed

    Returns:
        Tuple of (remaining text, is_new_scan)
    """
    if line.endswith(protocol.SCAN_MARKER):
        return line[: -len(protocol.SCAN_MARKER)], True
    return line, False


def reconcile_timestamp(remote_ts_ms: int, system_time_ms: int, local_time_s: float) -> float:
    """Translate a remote wall-clock send time into the local clock domain.

    Assumes the sender's wall clock is in sync with ours, so the difference
    is transport and processing latency.

    Args:
        remote_ts_ms: Send time from the lidar process, epoch milliseconds
        system_time_ms: Our wall clock at receive time, epoch milliseconds
        local_time_s: Our local clock at receive time, seconds

    Returns:
        Send time in the local clock's domain, seconds
    """
    age_ms = system_time_ms - remote_ts_ms
    return local_time_s - age_ms / 1000.0


def parse_line(line: str, system_time_ms: int, local_time_s: float) -> DecodedLine:
    """Parse one line of lidar output into a point.

    Expected format: <timestamp_ms>,<angle>,<distance>[s]
    Example: "1546300800000,45.0,200.0s"

    Args:
        line: Raw line from the lidar process
        system_time_ms: Wall clock sampled when the line was read
        local_time_s: Local clock sampled when the line was read

    Returns:
        DecodedLine with the reconciled point and new-scan flag

    Raises:
        MalformedLine: If the field count is wrong, a field is not numeric,
                       or the distance is zero
    """
    line = line.rstrip(protocol.LINE_TERMINATORS)
    if not line:
        raise MalformedLine("Empty data line")

    body, is_new_scan = split_scan_marker(line)

    parts = body.split(protocol.FIELD_DELIMITER)
    if len(parts) != protocol.FIELD_COUNT:
        raise MalformedLine(
            f"Expected {protocol.FIELD_COUNT} fields, got {len(parts)} in line: {line!r}"
        )

    ts_field, angle_field, distance_field = parts
    if not (
        protocol.RE_INT_FIELD.fullmatch(ts_field)
        and protocol.RE_FLOAT_FIELD.fullmatch(angle_field)
        and protocol.RE_FLOAT_FIELD.fullmatch(distance_field)
    ):
        raise MalformedLine(f"Non-numeric field in line: {line!r}")

    try:
        remote_ts_ms = int(parts[0])
        angle = float(parts[1])
        distance = float(parts[2])
    except ValueError as e:
        raise MalformedLine(f"Failed to parse numeric values in line: {line!r}") from e

    # Zero range means no return (out of range or masked)
    if distance == 0:
        raise MalformedLine(f"Zero distance in line: {line!r}")

    timestamp = reconcile_timestamp(remote_ts_ms, system_time_ms, local_time_s)
    return DecodedLine(LidarPoint(timestamp, angle, distance), is_new_scan)


def decode_line(line: str, clock: Clock) -> Optional[DecodedLine]:
    """Best-effort decode used by the reader loop.

    Samples both clocks once, then parses. Malformed lines are logged at
    debug level and dropped.

    Args:
        line: Raw line from the lidar process
        clock: Clock pair used for timestamp reconciliation

    Returns:
        DecodedLine, or None if the line was discarded
    """
    system_time_ms = clock.system_time_ms()
    local_time_s = clock.local_time_s()

    try:
        return parse_line(line, system_time_ms, local_time_s)
    except MalformedLine as e:
        logger.debug(f"Skipping line: {e}")
        return None
