import time
import logging
import threading
import subprocess
from pathlib import Path
from collections import deque
from enum import Enum
from typing import Deque, List, Optional

from syncvisor.local import effective_settings as config
from syncvisor.local.pubsub import EventHub
from syncvisor.local.supervisor import process_utils
from syncvisor.local.supervisor.config_utils import SupervisorConfig
from syncvisor.local.supervisor.exit_status import ExitStatus, SupervisorState
from syncvisor.local.supervisor.output import filter_line, join_readers, log_process_output

log = logging.getLogger(__name__)
proc_log = logging.getLogger("proc.syncthing")


class SupervisorStartError(RuntimeError):
    """Raised when Syncthing cannot be launched."""


class SupervisorEvent(str, Enum):
    STARTING = "starting"                    # no payload
    PROCESS_RESTARTED = "process_restarted"  # no payload
    MESSAGE_LOGGED = "message_logged"        # payload: str
    PROCESS_STOPPED = "process_stopped"      # payload: ExitStatus


class ProcessSupervisor:
    """
    Owns a single Syncthing process: starts it, relays its output, and
    restarts it when it exits asking for a restart.

    All access to the process handle goes through `self._lock`. Output lines
    and exit handling run on background threads, so every event is published
    from one of those threads rather than the caller's.
    """

    def __init__(
        self,
        supervisor_config: SupervisorConfig,
        max_restart_attempts: Optional[int] = None,
        restart_window: Optional[float] = None,
        reader_join_timeout: Optional[float] = None,
    ) -> None:
        """
        :param supervisor_config: Configuration for the next start attempt.
        :param max_restart_attempts: Implicit restarts allowed within `restart_window`. 0 or None means unbounded.
        :param restart_window: Length of the restart-counting window, in seconds.
        :param reader_join_timeout: How long the exit watcher waits for output to drain.
        """
        self.config = supervisor_config
        self.events = EventHub(name="supervisor")

        if max_restart_attempts is None:
            max_restart_attempts = config.MAX_RESTART_ATTEMPTS
        self.max_restart_attempts = max_restart_attempts or None
        self.restart_window = restart_window if restart_window is not None else config.RESTART_WINDOW_SECONDS
        self.reader_join_timeout = (
            reader_join_timeout if reader_join_timeout is not None else config.READER_JOIN_TIMEOUT_SECONDS
        )

        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._generation = 0
        self._state = SupervisorState.IDLE
        self._restart_times: Deque[float] = deque()
        self.last_exit_code: Optional[int] = None
        self.last_exit_status: Optional[ExitStatus] = None

    #* --- Properties ---
    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def pid(self) -> Optional[int]:
        with self._lock:
            return self._process.pid if self._process is not None else None

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._process is not None

    #* --- Lifecycle ---
    def start(self) -> None:
        """
        Starts Syncthing, killing any process this supervisor was already tracking.

        :raises SupervisorStartError: If the executable is missing or the OS refuses to spawn it.
        """
        log.debug("ProcessSupervisor.start called")
        # Subscribers may replace self.config here.
        self.events.publish(SupervisorEvent.STARTING)
        run_config = self.config

        log.info(f"Starting Syncthing: {run_config.executable_path}")
        if not Path(run_config.executable_path).is_file():
            with self._lock:
                # A process from an earlier start keeps running untouched.
                if self._process is None:
                    self._state = SupervisorState.STOPPED
            raise SupervisorStartError(f"Unable to find Syncthing at path {run_config.executable_path}")

        command = process_utils.get_command_line(run_config.executable_path, run_config)
        env = process_utils.build_environment(run_config.environment, run_config.deny_upgrade)

        with self._lock:
            self._state = SupervisorState.STARTING
            self._generation += 1
            generation = self._generation
            self._kill_internal()

            try:
                process = subprocess.Popen(
                    command,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    env=env,
                    **process_utils.get_popen_creation_flags()
                )
            except OSError as e:
                self._state = SupervisorState.STOPPED
                log.critical(f"Failed to start Syncthing: {e}", exc_info=True)
                raise SupervisorStartError(f"Failed to start Syncthing: {e}") from e

            self._process = process
            if run_config.run_low_priority:
                process_utils.set_below_normal_priority(process.pid)

            hide_device_ids = run_config.hide_device_ids
            readers = log_process_output(
                process, "syncthing", lambda line: self._on_line(line, hide_device_ids)
            )
            self._start_exit_watcher(process, generation, readers)
            self._state = SupervisorState.RUNNING

        log.info(f"Syncthing started successfully with PID: {process.pid}")

    def kill(self) -> None:
        """Kills the tracked Syncthing process, if there is one."""
        log.info("Killing Syncthing process")
        with self._lock:
            if self._kill_internal():
                self._state = SupervisorState.STOPPED

    def _kill_internal(self) -> bool:
        """
        Kills the tracked process and forgets it. MUST be called with `self._lock` held.

        :return: True if a process was being tracked.
        """
        process = self._process
        if process is None:
            return False

        self._process = None
        try:
            process.kill()
        except OSError as e:
            # Expected when the process exited or is exiting concurrently.
            log.warning(f"Killing Syncthing (PID {process.pid}) failed: {e}")
        return True

    def kill_all_supervised_processes(self) -> process_utils.ProcessSweepResult:
        """
        Kills every running process named like the Syncthing executable.

        Used to clean up after an unclean shutdown, when processes may be
        running that this supervisor does not track.
        """
        log.debug("Kill all Syncthing processes")
        return process_utils.kill_processes_by_name(Path(self.config.executable_path).name)

    def close(self) -> None:
        with self._lock:
            self._kill_internal()

    def __enter__(self) -> "ProcessSupervisor":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    #* --- Output & Exit Handling ---
    def _on_line(self, line: str, hide_device_ids: bool) -> None:
        message = filter_line(line, hide_device_ids)
        proc_log.debug(message)
        self.events.publish(SupervisorEvent.MESSAGE_LOGGED, message)

    def _start_exit_watcher(self, process: subprocess.Popen, generation: int, readers: List[threading.Thread]) -> None:
        watcher = threading.Thread(
            target=self._wait_for_exit,
            args=(process, generation, readers),
            daemon=True,
            name=f"syncthing-exit-watcher-{process.pid}"
        )
        watcher.start()

    def _wait_for_exit(self, process: subprocess.Popen, generation: int, readers: List[threading.Thread]) -> None:
        """Target for the exit watcher thread."""
        process.wait()
        join_readers(readers, self.reader_join_timeout)
        try:
            self._on_process_exited(process, generation)
        except SupervisorStartError as e:
            log.critical(f"Syncthing could not be restarted: {e}", exc_info=True)

    def _restart_allowed(self) -> bool:
        """Records a restart request and checks it against the restart-storm limit. Lock must be held."""
        if self.max_restart_attempts is None:
            return True
        now = time.monotonic()
        while self._restart_times and now - self._restart_times[0] > self.restart_window:
            self._restart_times.popleft()
        if len(self._restart_times) >= self.max_restart_attempts:
            return False
        self._restart_times.append(now)
        return True

    def _on_process_exited(self, process: subprocess.Popen, generation: int) -> None:
        """
        Interprets the exit of a process started by this supervisor.

        Restarts Syncthing when it asked for it, otherwise publishes PROCESS_STOPPED.
        The lock is released before restarting, since `start` takes it again.

        :raises SupervisorStartError: If an implicit restart fails to launch.
        """
        with self._lock:
            if generation != self._generation:
                log.debug(f"Ignoring exit of superseded Syncthing process (PID {process.pid}).")
                return

            if self._process is process:
                exit_code = process.returncode
                self._process = None
            else:
                exit_code = None  # killed via kill()

            status = ExitStatus.from_exit_code(exit_code)
            self.last_exit_code = exit_code
            self.last_exit_status = status

            restart = status.requests_restart and self._restart_allowed()
            if status.requests_restart and not restart:
                log.critical(
                    f"Syncthing requested {self.max_restart_attempts} restarts within "
                    f"{self.restart_window}s. Halting restart attempts."
                )
            self._state = SupervisorState.RESTARTING if restart else SupervisorState.STOPPED

        log.info(f"Syncthing process stopped with exit status {status.name} (code {exit_code})")
        if not restart:
            self.events.publish(SupervisorEvent.PROCESS_STOPPED, status)
            return

        log.info("Syncthing process requested restart, so restarting")
        self.events.publish(SupervisorEvent.PROCESS_RESTARTED)
        try:
            self.start()
        except SupervisorStartError:
            with self._lock:
                self._state = SupervisorState.STOPPED
                self.last_exit_status = ExitStatus.ERROR
            self.events.publish(SupervisorEvent.PROCESS_STOPPED, ExitStatus.ERROR)
            raise
