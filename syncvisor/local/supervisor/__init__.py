"""
The Supervisor package.
Manages the lifecycle of the supervised Syncthing process.

This package contains the ProcessSupervisor class and its helper modules,
which together build the command line, launch and kill the process, relay
and redact its output, and interpret its exit codes.
"""
from .config_utils import SupervisorConfig
from .exit_status import ExitStatus, SupervisorState
from .supervisor import ProcessSupervisor, SupervisorEvent, SupervisorStartError

__all__ = [
    'ExitStatus',
    'ProcessSupervisor',
    'SupervisorConfig',
    'SupervisorEvent',
    'SupervisorStartError',
    'SupervisorState',
]
