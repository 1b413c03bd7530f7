"""Supervisor for the external lidar process and its output reader thread."""

import logging
import subprocess
import threading
import time
from typing import IO, Optional

from lidar_server_lib import parsing, protocol
from lidar_server_lib.clock import Clock, SystemClock
from lidar_server_lib.connectivity import ConnectivityChecker, ConnectivityLike
from lidar_server_lib.errors import SpawnError, StopTimeout
from lidar_server_lib.models import LidarConfig, PointConsumer, ServerState
from lidar_server_lib.point_buffer import PointBuffer
from lidar_server_lib.process import ProcessLike, Spawner, spawn_process

logger = logging.getLogger(__name__)


class LidarServer:
    """Starts the lidar driver process, parses its output, and feeds points onward.

    Once started, a background thread reads the process's stdout line by
    line, decodes each (timestamp, angle, distance) line and passes the
    resulting LidarPoint to the consumer's add_point().

    start() and stop() are safe to call from several threads; the state
    lock is held only around state checks and transitions.
    """

    def __init__(
        self,
        config: Optional[LidarConfig] = None,
        consumer: Optional[PointConsumer] = None,
        checker: Optional[ConnectivityLike] = None,
        spawner: Optional[Spawner] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        """Initialize server.

        Args:
            config: Deployment settings. Defaults to LidarConfig().
            consumer: Receiver of decoded points. Defaults to a new PointBuffer.
            checker: Device presence check. Defaults to a ConnectivityChecker
                     built from config.
            spawner: Callable that starts the lidar process. Defaults to
                     spawn_process (subprocess.Popen).
            clock: Clock pair for timestamp reconciliation. Defaults to SystemClock.
        """
        self._config = config or LidarConfig()
        self._consumer = consumer if consumer is not None else PointBuffer()
        self._checker = checker or ConnectivityChecker(
            device_id=self._config.device_id,
            device_dir=self._config.device_dir,
        )
        self._spawner = spawner or spawn_process
        self._clock = clock or SystemClock()

        self._state = ServerState.IDLE
        self._state_lock = threading.Lock()

        # Owned for the lifetime of one RUNNING session
        self._process: Optional[ProcessLike] = None
        self._reader_thread: Optional[threading.Thread] = None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def start(self) -> bool:
        """Spawn the lidar process and start the reader thread.

        Returns:
            True once the reader thread is launched. False if the sensor is
            not connected, or the server is already running, starting or
            stopping.

        Raises:
            SpawnError: If the process or reader thread could not be started.
                        State is rolled back to IDLE.
        """
        if not self.is_connected():
            logger.error("Cannot start lidar server: not connected")
            return False

        with self._state_lock:
            if self._state == ServerState.RUNNING:
                logger.error("Cannot start lidar server: already running")
                return False
            if self._state == ServerState.STARTING:
                logger.error("Cannot start lidar server: start in progress")
                return False
            if self._state == ServerState.STOPPING:
                logger.error("Cannot start lidar server: stop in progress")
                return False
            self._state = ServerState.STARTING

        logger.info(f"Starting lidar from {self._config.lidar_path}...")

        proc: Optional[ProcessLike] = None
        launched = threading.Event()
        try:
            proc = self._spawner(self._config.lidar_path)
            if proc.stdout is None:
                raise SpawnError("Lidar process has no stdout pipe")

            reader = threading.Thread(
                target=self._reader_loop,
                args=(proc.stdout, launched),
                name="LidarReader",
                daemon=True,
            )
            reader.start()
        except Exception as e:
            if proc is not None:
                self._kill_quietly(proc)
            self._set_state(ServerState.IDLE)
            logger.error(f"Failed to start lidar: {e}")
            if isinstance(e, SpawnError):
                raise
            raise SpawnError(f"Failed to start lidar: {e}") from e

        self._process = proc
        self._reader_thread = reader
        self._set_state(ServerState.RUNNING)
        # Reader waits for the RUNNING commit before its first read
        launched.set()

        logger.info("Lidar started")
        return True

    def stop(self) -> bool:
        """Kill the lidar process and wait for the reader thread to finish.

        Termination is immediate (no grace period). Both the process exit and
        the reader join are bounded by config.stop_timeout_s.

        Returns:
            True once the server is back to IDLE. False if not running, or if
            killing the process failed (state reverts to RUNNING; retry stop()).

        Raises:
            StopTimeout: If the process or reader thread did not exit in time.
                         State reverts to RUNNING so stop() can be retried.
        """
        with self._state_lock:
            if self._state != ServerState.RUNNING:
                logger.error(
                    f"Cannot stop lidar server: not running (state: {self._state.value})"
                )
                return False
            self._state = ServerState.STOPPING

        logger.info("Stopping lidar...")

        proc = self._process
        reader = self._reader_thread
        timeout = self._config.stop_timeout_s
        assert proc is not None

        try:
            if proc.poll() is None:
                proc.kill()
            proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            self._set_state(ServerState.RUNNING)
            raise StopTimeout(
                f"Lidar process {proc.pid} did not exit within {timeout}s"
            ) from e
        except OSError as e:
            logger.error(f"Error while stopping lidar: {e}")
            self._set_state(ServerState.RUNNING)
            return False

        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=timeout)
            if reader.is_alive():
                self._set_state(ServerState.RUNNING)
                raise StopTimeout(f"Lidar reader thread did not exit within {timeout}s")

        if proc.stdout is not None:
            proc.stdout.close()

        self._process = None
        self._reader_thread = None
        self._set_state(ServerState.IDLE)
        logger.info("Lidar stopped")
        return True

    def close(self) -> None:
        """Stop the server if it is running."""
        if self.is_running():
            self.stop()

    def __enter__(self) -> "LidarServer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ========================================================================
    # Status
    # ========================================================================

    def is_connected(self) -> bool:
        """Check whether the lidar's serial device is attached to the host."""
        return self._checker.is_connected()

    def is_running(self) -> bool:
        with self._state_lock:
            return self._state == ServerState.RUNNING

    def is_ending(self) -> bool:
        """True while a stop() is in progress."""
        with self._state_lock:
            return self._state == ServerState.STOPPING

    @property
    def state(self) -> ServerState:
        """Current server state."""
        with self._state_lock:
            return self._state

    @property
    def config(self) -> LidarConfig:
        return self._config

    @property
    def consumer(self) -> PointConsumer:
        """Receiver of decoded points."""
        return self._consumer

    @property
    def pid(self) -> Optional[int]:
        proc = self._process
        return proc.pid if proc is not None and proc.poll() is None else None

    # ========================================================================
    # Internal Helpers
    # ========================================================================

    def _set_state(self, state: ServerState) -> None:
        with self._state_lock:
            self._state = state

    def _kill_quietly(self, proc: ProcessLike) -> None:
        """Kill a half-started process during start() rollback."""
        try:
            proc.kill()
            proc.wait(timeout=self._config.stop_timeout_s)
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning(f"Could not reap lidar process after failed start: {e}")

    def _reader_loop(self, stream: IO[str], launched: threading.Event) -> None:
        """Background thread loop: read, decode and deliver points until stopped.

        readline() blocks until a line arrives or the process exits; stop()
        unblocks it by killing the process. Lines read after a stop began are
        dropped.
        """
        launched.wait()
        logger.info(f"Lidar reader loop started (thread {threading.get_ident()})")

        while self.is_running():
            try:
                line = stream.readline()
            except (OSError, ValueError) as e:
                if not self.is_running():
                    break
                logger.error(f"Error reading lidar output: {e}")
                # ValueError means the stream was closed under us
                if self._handle_read_failure(eof=isinstance(e, ValueError)):
                    break
                continue

            if not line:
                if not self.is_running():
                    break
                self._handle_read_failure(eof=True)
                break

            if not self.is_running():
                break

            decoded = parsing.decode_line(line, self._clock)
            if decoded is None:
                continue

            try:
                self._consumer.add_point(decoded.point, decoded.is_new_scan)
            except Exception as e:
                logger.error(f"Point consumer failed: {e}", exc_info=True)

        logger.info("Lidar reader loop stopped")

    def _handle_read_failure(self, eof: bool) -> bool:
        """Decide what to do after a failed read while running.

        Args:
            eof: True if the stream ended (process exited or pipe closed)

        Returns:
            True if a stop was requested and the reader should exit
        """
        if not self.is_connected():
            logger.error("Lidar sensor disconnected")
        elif eof:
            logger.error("Lidar process output ended unexpectedly")
        else:
            # Device still present; treat as transient
            time.sleep(protocol.DELAY_READ_RETRY_S)
            return False

        self._request_stop()
        return True

    def _request_stop(self) -> None:
        """Ask a separate thread to stop the server.

        The reader must never run stop() itself, since stop() joins the reader.
        """
        stopper = threading.Thread(
            target=self._stop_from_reader,
            name="LidarStopper",
            daemon=True,
        )
        stopper.start()

    def _stop_from_reader(self) -> None:
        if not self.is_running():
            return
        try:
            self.stop()
        except StopTimeout as e:
            logger.error(f"Reader-requested stop did not complete: {e}")
