"""Clock sources used to reconcile lidar timestamps with the local clock."""

import time
from typing import Protocol


class Clock(Protocol):
    """Protocol for a wall-clock/monotonic-clock pair (allows test doubles)."""

    def system_time_ms(self) -> int:
        """Current wall-clock time in epoch milliseconds."""
        ...

    def local_time_s(self) -> float:
        """Current local high-resolution clock in seconds."""
        ...


class SystemClock:
    """Host clocks: ``time.time()`` for wall time, ``time.monotonic()`` locally."""

    def system_time_ms(self) -> int:
        return int(time.time() * 1000)

    def local_time_s(self) -> float:
        return time.monotonic()
