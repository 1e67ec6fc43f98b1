import os
import sys
import psutil
import logging
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, NamedTuple, Union

from syncvisor.local.supervisor.arguments import build_argv, build_arguments

if TYPE_CHECKING:
    from syncvisor.local.supervisor.config_utils import SupervisorConfig

log = logging.getLogger(__name__)

NO_UPGRADE_ENV_KEY = "STNOUPGRADE"


class ProcessSweepResult(NamedTuple):
    found: int
    killed: int


#* --- Process Creation ---
def get_popen_creation_flags() -> Dict[str, Any]:
    """Returns platform-specific keyword arguments for subprocess.Popen."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NO_WINDOW}
    return {}


def get_command_line(executable: Path, config: "SupervisorConfig") -> Union[str, List[str]]:
    """
    Builds the Popen command for one start attempt.

    On Windows the quoted tokens from `build_arguments` are joined into one
    command line. Elsewhere the argv list carries the raw values, so quotes
    or spaces in a value reach Syncthing unchanged.

    :param executable: Path to the Syncthing executable.
    :param config: The supervisor configuration for this attempt.
    :return: A command line string on Windows, otherwise an argv list.
    """
    if sys.platform == "win32":
        return " ".join([f'"{executable}"'] + build_arguments(config))
    return [str(executable)] + build_argv(config)


def build_environment(overrides: Mapping[str, str], deny_upgrade: bool) -> Dict[str, str]:
    """
    Builds the child environment: the current environment, then the explicit
    overrides, then the forced no-upgrade switch.
    """
    env = os.environ.copy()
    env.update(overrides)
    if deny_upgrade:
        env[NO_UPGRADE_ENV_KEY] = "1"
    return env


def set_below_normal_priority(pid: int) -> bool:
    """
    Lowers the scheduling priority of a process.

    :return: True if the priority was changed.
    """
    priority = psutil.BELOW_NORMAL_PRIORITY_CLASS if sys.platform == "win32" else 10
    try:
        psutil.Process(pid).nice(priority)
        log.debug(f"Lowered priority of PID {pid}.")
        return True
    except psutil.Error as e:
        log.warning(f"Could not lower priority of PID {pid}: {e}")
        return False


#* --- Process Cleanup ---
def _matches_executable(proc_name: str, executable_name: str) -> bool:
    return Path(proc_name).stem.lower() == Path(executable_name).stem.lower()


def kill_processes_by_name(executable_name: str) -> ProcessSweepResult:
    """
    Kills every process whose name matches the given executable, whoever started it.

    Failure to kill one process is logged and does not stop the sweep.

    :param executable_name: The executable file name, e.g. 'syncthing' or 'syncthing.exe'.
    :return: How many matching processes were found and how many were killed.
    """
    found = killed = 0
    own_pid = os.getpid()
    for proc in psutil.process_iter(["name"]):
        try:
            name = proc.info.get("name") or ""
            if proc.pid == own_pid or not _matches_executable(name, executable_name):
                continue
            found += 1
            log.debug(f"Killing {name} (PID {proc.pid})")
            proc.kill()
            killed += 1
        except psutil.NoSuchProcess:
            log.warning(f"Process {proc.pid} no longer exists, skipping.")
        except psutil.Error as e:
            log.warning(f"Failed to kill process {proc.pid}: {e}")

    log.info(f"Process sweep for '{executable_name}': found {found}, killed {killed}.")
    return ProcessSweepResult(found=found, killed=killed)
