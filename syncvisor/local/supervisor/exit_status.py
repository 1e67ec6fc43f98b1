import logging
from enum import Enum, IntEnum
from typing import Optional

log = logging.getLogger(__name__)


class ExitStatus(IntEnum):
    """Syncthing's process exit codes (cmd/syncthing/main.go)."""
    SUCCESS = 0
    ERROR = 1
    NO_UPGRADE_AVAILABLE = 2
    RESTARTING = 3
    UPGRADING = 4

    @property
    def requests_restart(self) -> bool:
        """True for the codes Syncthing uses to ask its supervisor for a relaunch."""
        return self in (ExitStatus.RESTARTING, ExitStatus.UPGRADING)

    @classmethod
    def from_exit_code(cls, exit_code: Optional[int]) -> "ExitStatus":
        """
        Maps an OS exit code to an ExitStatus.

        :param exit_code: The raw exit code, or None when the process was killed by us.
        :return: The matching status. Unknown codes (including negative signal codes) are ERROR.
        """
        if exit_code is None:
            return cls.SUCCESS
        try:
            return cls(exit_code)
        except ValueError:
            log.warning(f"Unrecognized Syncthing exit code {exit_code}; treating it as an error.")
            return cls.ERROR


class SupervisorState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    RESTARTING = "restarting"
    STOPPED = "stopped"
