"""Process layer for spawning the external lidar driver."""

import logging
import subprocess
from typing import IO, Callable, Optional, Protocol

from lidar_server_lib.errors import SpawnError

logger = logging.getLogger(__name__)


class ProcessLike(Protocol):
    """Protocol for a supervised child process (allows test doubles).

    Matches the subset of ``subprocess.Popen`` the server relies on.
    """

    stdout: Optional[IO[str]]

    @property
    def pid(self) -> int:
        ...

    def poll(self) -> Optional[int]:
        """Return the exit code, or None if still running."""
        ...

    def kill(self) -> None:
        """Terminate immediately (SIGKILL on POSIX)."""
        ...

    def wait(self, timeout: Optional[float] = None) -> int:
        """Wait for exit; raise subprocess.TimeoutExpired on timeout."""
        ...


Spawner = Callable[[str], ProcessLike]


def spawn_process(path: str) -> ProcessLike:
    """Start the lidar executable with its stdout as a line-buffered text pipe.

    The process is started with no arguments. Its stderr is discarded so an
    unread pipe can never stall it. Undecodable bytes become U+FFFD, so a
    garbled line fails to parse instead of breaking the stream.

    Args:
        path: Executable path

    Returns:
        Running subprocess.Popen handle

    Raises:
        SpawnError: If the executable cannot be started
    """
    try:
        proc = subprocess.Popen(
            [path],
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            stdin=subprocess.DEVNULL,
            text=True,
            errors="replace",
            bufsize=1,
        )
    except (OSError, ValueError) as e:
        raise SpawnError(f"Failed to start lidar process {path}: {e}") from e

    logger.info(f"Started lidar process {path} (pid {proc.pid})")
    return proc
