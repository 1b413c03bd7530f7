"""Fake lidar driver process and host collaborators for tests and --fake runs.

Simulates the driver's stdout line protocol (``timestamp_ms,angle,distance[s]``),
process kill/exit semantics, the device presence check and the clock pair.
"""

import logging
import queue
import subprocess
import threading
import time
from typing import List, Optional

logger = logging.getLogger(__name__)

_EOF = None


class FakeStream:
    """Queue-backed text stream with blocking readline() like a process pipe.

    readline() blocks until a line is available and returns "" once the
    writer side is closed and the queue drained.
    """

    def __init__(self) -> None:
        self._queue: queue.Queue[Optional[str]] = queue.Queue()
        self._eof = False
        self.closed = False

    def feed(self, line: str) -> None:
        """Queue one line (newline appended if missing)."""
        if not line.endswith("\n"):
            line += "\n"
        self._queue.put(line)

    def end(self) -> None:
        """Close the writer side; pending lines are still readable."""
        if not self._eof:
            self._eof = True
            self._queue.put(_EOF)

    def readline(self) -> str:
        if self.closed:
            raise ValueError("I/O operation on closed file.")
        if self._eof and self._queue.empty():
            return ""
        item = self._queue.get()
        if item is _EOF:
            # Keep later readers seeing EOF too
            self._queue.put(_EOF)
            return ""
        return item

    def close(self) -> None:
        self.end()
        self.closed = True


class FakeProcess:
    """Simulated lidar driver process.

    Lines are pushed with feed()/feed_scan(), or generated continuously by a
    streaming thread when stream_hz is set.
    """

    _next_pid = 4000

    def __init__(
        self,
        stream_hz: Optional[float] = None,
        points_per_scan: int = 36,
        distance: float = 1500.0,
        hang_on_wait: bool = False,
    ) -> None:
        """Initialize fake process.

        Args:
            stream_hz: If set, emit synthetic points at this rate until killed
            points_per_scan: Points per simulated rotation
            distance: Range reported for every synthetic point
            hang_on_wait: If True, wait() times out as if kill had no effect
        """
        FakeProcess._next_pid += 1
        self.pid = FakeProcess._next_pid
        self.stdout = FakeStream()
        self.returncode: Optional[int] = None
        self.killed = False
        self.hang_on_wait = hang_on_wait

        self.points_per_scan = points_per_scan
        self.distance = distance
        self._stop_streaming = threading.Event()
        self._stream_thread: Optional[threading.Thread] = None

        if stream_hz is not None:
            self._stream_thread = threading.Thread(
                target=self._stream_loop,
                args=(stream_hz,),
                name="FakeLidarStream",
                daemon=True,
            )
            self._stream_thread.start()

    # ========================================================================
    # Popen-like interface
    # ========================================================================

    def poll(self) -> Optional[int]:
        return self.returncode

    def kill(self) -> None:
        self.killed = True
        if self.hang_on_wait:
            return
        self._terminate(-9)

    def wait(self, timeout: Optional[float] = None) -> int:
        if self.returncode is None:
            if self.hang_on_wait:
                raise subprocess.TimeoutExpired(cmd="fake_lidar", timeout=timeout or 0)
            # Only kill() or exit() set a return code
            deadline = None if timeout is None else time.monotonic() + timeout
            while self.returncode is None:
                if deadline is not None and time.monotonic() > deadline:
                    raise subprocess.TimeoutExpired(cmd="fake_lidar", timeout=timeout)
                time.sleep(0.01)
        return self.returncode

    # ========================================================================
    # Test controls
    # ========================================================================

    def feed(self, line: str) -> None:
        """Emit one raw line on stdout."""
        self.stdout.feed(line)

    def feed_scan(self, start_ms: int, angles: List[float], distance: float = 1000.0) -> None:
        """Emit one rotation: the first line carries the scan marker."""
        for i, angle in enumerate(angles):
            marker = "s" if i == 0 else ""
            self.feed(f"{start_ms + i},{angle},{distance}{marker}")

    def exit(self, code: int = 1) -> None:
        """Simulate the driver exiting on its own (stdout hits EOF)."""
        self._terminate(code)

    def _terminate(self, code: int) -> None:
        self._stop_streaming.set()
        if self.returncode is None:
            self.returncode = code
        if self.stdout is not None:
            self.stdout.end()

    def _stream_loop(self, stream_hz: float) -> None:
        period = 1.0 / stream_hz
        step = 360.0 / self.points_per_scan
        index = 0
        while not self._stop_streaming.is_set():
            slot = index % self.points_per_scan
            marker = "s" if slot == 0 else ""
            ts_ms = int(time.time() * 1000)
            self.stdout.feed(f"{ts_ms},{slot * step:.2f},{self.distance}{marker}")
            index += 1
            if self._stop_streaming.wait(timeout=period):
                break
        logger.debug("Fake lidar stream stopped")


class FakeSpawner:
    """Callable spawner that records launches and hands out FakeProcess instances."""

    def __init__(self, fail: bool = False, **process_kwargs) -> None:
        """Initialize spawner.

        Args:
            fail: If True, raise OSError as if the executable were missing
            **process_kwargs: Passed to every FakeProcess created
        """
        self.fail = fail
        self.process_kwargs = process_kwargs
        self.spawned: List[FakeProcess] = []
        self.paths: List[str] = []

    def __call__(self, path: str) -> FakeProcess:
        self.paths.append(path)
        if self.fail:
            raise OSError(f"[Errno 2] No such file or directory: '{path}'")
        proc = FakeProcess(**self.process_kwargs)
        self.spawned.append(proc)
        return proc

    @property
    def last(self) -> FakeProcess:
        return self.spawned[-1]


class FakeConnectivity:
    """Device presence check whose answer is set by the test."""

    def __init__(self, connected: bool = True) -> None:
        self.connected = connected
        self.checks = 0

    def is_connected(self) -> bool:
        self.checks += 1
        return self.connected


class FixedClock:
    """Clock pair frozen at given values."""

    def __init__(self, system_time_ms: int = 0, local_time_s: float = 0.0) -> None:
        self.system_ms = system_time_ms
        self.local_s = local_time_s

    def system_time_ms(self) -> int:
        return self.system_ms

    def local_time_s(self) -> float:
        return self.local_s
