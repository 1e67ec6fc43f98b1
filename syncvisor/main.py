import sys
import logging
import threading
from typing import List, Optional

from syncvisor.log.setup import setup_logging
from syncvisor.local import effective_settings as config
from syncvisor.local.api import ApiError, EventWatcher, create_api_client, wait_for_api
from syncvisor.local.api.models import ANY_EVENT, Event
from syncvisor.local.supervisor import (
    ExitStatus, ProcessSupervisor, SupervisorEvent, SupervisorStartError
)
from syncvisor.local.supervisor.config_utils import check_configuration, load_supervisor_config

log = logging.getLogger("console")

SECRET_SETTINGS = {"SYNCTHING_API_KEY"}


def _log_event(event: Event) -> None:
    log.info(f"Event {event.id}: {event.type}")


def _log_settings() -> None:
    for key, value in sorted(config.get_all_settings().items()):
        if key in SECRET_SETTINGS and value:
            value = "********"
        log.debug(f"Setting {key} = {value!r}")


def run(supervisor: ProcessSupervisor, stop_requested: threading.Event) -> int:
    """
    Runs Syncthing under supervision until it stops for good or `stop_requested` is set.

    :return: The process exit code for the console.
    """
    stopped = threading.Event()
    watcher: Optional[EventWatcher] = None

    def on_stopped(status: ExitStatus) -> None:
        log.info(f"Syncthing stopped: {status.name}")
        stopped.set()

    def on_restarted() -> None:
        if watcher is not None:
            watcher.reset()

    supervisor.events.subscribe(SupervisorEvent.PROCESS_STOPPED, on_stopped)
    supervisor.events.subscribe(SupervisorEvent.PROCESS_RESTARTED, on_restarted)

    try:
        supervisor.start()
    except SupervisorStartError as e:
        log.critical(f"{e}")
        return 1

    try:
        run_config = supervisor.config
        version = wait_for_api(run_config.address, run_config.api_key)
        client = create_api_client(version, run_config.address, run_config.api_key)
        watcher = EventWatcher(client, limit=config.EVENT_POLL_LIMIT, skip_backlog=True)
        watcher.subscribe(ANY_EVENT, _log_event)
        watcher.start()
    except ApiError as e:
        log.error(f"Syncthing API unavailable, continuing without events: {e}")

    while not stopped.is_set() and not stop_requested.is_set():
        stopped.wait(0.5)

    if watcher is not None:
        watcher.stop(timeout=1)
    supervisor.kill()

    status = supervisor.last_exit_status
    return 0 if status in (None, ExitStatus.SUCCESS) else 1


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the console application."""
    args = list(sys.argv[1:] if argv is None else argv)

    if "--verbose" in args:
        config.override("VERBOSE_LOGGING", True)
        args.remove("--verbose")
    setup_logging(logging.DEBUG if config.get("VERBOSE_LOGGING", False) else logging.INFO)
    _log_settings()

    supervisor_config = load_supervisor_config(config)
    supervisor = ProcessSupervisor(supervisor_config)

    if "--kill-all" in args:
        result = supervisor.kill_all_supervised_processes()
        print(f"Found {result.found} Syncthing processes, killed {result.killed}.")
        return 0 if result.found == result.killed else 1

    if not check_configuration(supervisor_config):
        return 1

    stop_requested = threading.Event()
    try:
        return run(supervisor, stop_requested)
    except KeyboardInterrupt:
        log.warning("Interrupted, stopping Syncthing.")
        stop_requested.set()
        supervisor.kill()
        return 0
    finally:
        supervisor.close()


if __name__ == "__main__":
    sys.exit(main())
