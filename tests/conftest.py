"""Pytest configuration and shared fixtures."""

import io
import itertools
from pathlib import Path
from typing import List, Optional
from unittest.mock import MagicMock, patch

import pytest
import requests

from syncvisor.local.supervisor import ProcessSupervisor, SupervisorConfig

_pids = itertools.count(40000)


class FakeProcess:
    """Stands in for subprocess.Popen in supervisor tests."""

    def __init__(self, returncode: Optional[int] = None) -> None:
        self.pid = next(_pids)
        self.returncode = returncode
        self.stdout = io.BytesIO(b"")
        self.stderr = io.BytesIO(b"")
        self.kill_calls = 0
        self.kill_error: Optional[BaseException] = None

    def kill(self) -> None:
        self.kill_calls += 1
        if self.kill_error is not None:
            raise self.kill_error
        if self.returncode is None:
            self.returncode = -9

    def wait(self, timeout=None) -> Optional[int]:
        return self.returncode

    def poll(self) -> Optional[int]:
        return self.returncode


@pytest.fixture
def executable(tmp_path: Path) -> Path:
    """An existing file standing in for the Syncthing binary."""
    path = tmp_path / "syncthing"
    path.write_text("")
    return path


@pytest.fixture
def supervisor_config(executable: Path) -> SupervisorConfig:
    return SupervisorConfig(executable_path=executable, api_key="k", address="127.0.0.1:8384")


@pytest.fixture
def popen():
    """Patches Popen in the supervisor; every call returns a new FakeProcess."""
    with patch("syncvisor.local.supervisor.supervisor.subprocess.Popen") as mock_popen:
        mock_popen.side_effect = lambda *args, **kwargs: FakeProcess()
        yield mock_popen


@pytest.fixture
def supervisor(supervisor_config: SupervisorConfig, popen):
    """A supervisor whose exit watcher is disabled, so tests drive exits by hand."""
    with patch.object(ProcessSupervisor, "_start_exit_watcher"):
        yield ProcessSupervisor(supervisor_config, max_restart_attempts=0, reader_join_timeout=1)


@pytest.fixture
def recorder():
    """Collects (kind, payload) pairs published on an EventHub."""

    class Recorder:
        def __init__(self) -> None:
            self.calls: List[tuple] = []

        def listen(self, hub, kind) -> None:
            hub.subscribe(kind, lambda *payload: self.calls.append((kind, payload)))

        def kinds(self) -> list:
            return [kind for kind, _ in self.calls]

        def payloads(self, kind) -> list:
            return [payload[0] if payload else None for k, payload in self.calls if k == kind]

    return Recorder()


def make_response(status_code: int = 200, json_data=None, text: str = "", invalid_json: bool = False) -> MagicMock:
    """Builds a requests.Response lookalike."""
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.ok = status_code < 400
    response.text = text
    if invalid_json:
        response.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def session() -> MagicMock:
    mock_session = MagicMock(spec=requests.Session)
    mock_session.headers = {}
    return mock_session
