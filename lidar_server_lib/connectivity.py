"""Host-side check for the lidar's serial device."""

import logging
import subprocess
from typing import Protocol

from lidar_server_lib import protocol

logger = logging.getLogger(__name__)


class ConnectivityLike(Protocol):
    """Protocol for device presence checks (allows test doubles)."""

    def is_connected(self) -> bool:
        ...


class ConnectivityChecker:
    """Looks for the lidar's serial adapter in the host device listing.

    Runs ``/bin/ls <device_dir>`` and matches each entry exactly against the
    expected device identifier. No long-lived process is started.
    """

    def __init__(
        self,
        device_id: str = protocol.DEFAULT_DEVICE_ID,
        device_dir: str = protocol.DEFAULT_DEVICE_DIR,
        timeout_s: float = protocol.TIMEOUT_DEVICE_LIST_S,
    ) -> None:
        """Initialize checker.

        Args:
            device_id: Entry name expected in the listing
            device_dir: Directory to list
            timeout_s: Upper bound on the listing command
        """
        self.device_id = device_id
        self.device_dir = device_dir
        self._timeout_s = timeout_s

    @property
    def command(self) -> list[str]:
        """Listing command run by is_connected()."""
        return [protocol.LIST_COMMAND, self.device_dir]

    def is_connected(self) -> bool:
        """Check whether the expected device is attached.

        Never raises: a listing failure is logged and reported as not connected.

        Returns:
            True on the first exact match, False otherwise
        """
        try:
            result = subprocess.run(
                self.command,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                text=True,
                timeout=self._timeout_s,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning(f"Device listing {self.command} failed: {e}")
            return False

        if result.returncode != 0:
            logger.debug(
                f"Device listing {self.command} exited with {result.returncode}"
            )
            return False

        for line in result.stdout.splitlines():
            if line == self.device_id:
                return True

        return False
