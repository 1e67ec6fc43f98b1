"""End-to-end supervisor tests against small shell scripts standing in for Syncthing."""

import sys
import threading
from pathlib import Path

import pytest

from syncvisor.local.supervisor import ExitStatus, ProcessSupervisor, SupervisorConfig, SupervisorEvent

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="uses POSIX shell scripts")

TIMEOUT = 10


def _script(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "syncthing"
    path.write_text("#!/bin/sh\n" + body)
    path.chmod(0o755)
    return path


class Run:
    """Starts a supervisor and records what it publishes until Syncthing stops for good."""

    def __init__(self, supervisor: ProcessSupervisor) -> None:
        self.supervisor = supervisor
        self.lines = []
        self.statuses = []
        self.restarts = 0
        self.stopped = threading.Event()
        supervisor.events.subscribe(SupervisorEvent.MESSAGE_LOGGED, self.lines.append)
        supervisor.events.subscribe(SupervisorEvent.PROCESS_RESTARTED, self._on_restarted)
        supervisor.events.subscribe(SupervisorEvent.PROCESS_STOPPED, self._on_stopped)

    def _on_restarted(self) -> None:
        self.restarts += 1

    def _on_stopped(self, status: ExitStatus) -> None:
        self.statuses.append(status)
        self.stopped.set()

    def wait(self) -> None:
        assert self.stopped.wait(TIMEOUT), "Syncthing did not stop in time"


def test_output_is_filtered_and_error_reported(tmp_path: Path) -> None:
    executable = _script(tmp_path, (
        "echo 'device ABCDEFG-HIJKLMN-OPQRSTU-VWXYZ23-4567ABC-DEFGHIJ-KLMNOPQ connected'\n"
        "echo ''\n"
        "echo 'failed to bind' >&2\n"
        "exit 1\n"
    ))
    config = SupervisorConfig(executable_path=executable, api_key="k", address="127.0.0.1:8384", hide_device_ids=True)
    with ProcessSupervisor(config, max_restart_attempts=0, reader_join_timeout=TIMEOUT) as supervisor:
        run = Run(supervisor)
        supervisor.start()
        run.wait()

    assert sorted(run.lines) == ["device  connected", "failed to bind"]
    assert run.statuses == [ExitStatus.ERROR]
    assert supervisor.last_exit_code == 1


def test_restart_request_is_honoured(tmp_path: Path) -> None:
    marker = tmp_path / "restarted"
    executable = _script(tmp_path, (
        'if [ -f "$RESTART_MARKER" ]; then echo second; exit 0; fi\n'
        'touch "$RESTART_MARKER"\n'
        "echo first\n"
        "exit 3\n"
    ))
    config = SupervisorConfig(
        executable_path=executable, api_key="k", address="127.0.0.1:8384",
        environment={"RESTART_MARKER": str(marker)},
    )
    with ProcessSupervisor(config, max_restart_attempts=0, reader_join_timeout=TIMEOUT) as supervisor:
        run = Run(supervisor)
        supervisor.start()
        run.wait()

    assert run.restarts == 1
    assert run.lines == ["first", "second"]
    assert run.statuses == [ExitStatus.SUCCESS]


def test_kill_reports_success(tmp_path: Path) -> None:
    executable = _script(tmp_path, "exec sleep 30\n")
    config = SupervisorConfig(executable_path=executable, api_key="k", address="127.0.0.1:8384")
    with ProcessSupervisor(config, max_restart_attempts=0, reader_join_timeout=1) as supervisor:
        run = Run(supervisor)
        supervisor.start()
        assert supervisor.is_running
        supervisor.kill()
        run.wait()

    assert run.statuses == [ExitStatus.SUCCESS]
    assert not supervisor.is_running
