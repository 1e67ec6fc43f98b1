import re
import logging
import threading
import subprocess
from typing import Callable, List, Optional

log = logging.getLogger(__name__)

# Seven groups of seven base32 characters, e.g. ABCDEFG-HIJKLMN-...
DEVICE_ID_PATTERN = re.compile(r"[0-9A-Z]{7}(?:-[0-9A-Z]{7}){6}")


def filter_line(line: str, hide_device_ids: bool) -> str:
    """
    Removes device IDs from a line of Syncthing output when requested.

    :param line: A non-blank line of process output.
    :param hide_device_ids: If True, every device ID is replaced with an empty string.
    :return: The line to publish.
    """
    if hide_device_ids:
        return DEVICE_ID_PATTERN.sub("", line)
    return line


def _handle_line(process_name: str, line: str, line_handler: Callable[[str], None]) -> None:
    """Hands a line to the custom handler, keeping the reader alive if it fails."""
    try:
        line_handler(line)
    except Exception as e:
        log.error(f"Error in line handler for {process_name}: {e}", exc_info=True)


def _read_pipe(pipe, process_name: str, line_handler: Callable[[str], None]) -> None:
    """Target function for reader threads. Reads lines from a subprocess pipe until EOF."""
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").rstrip("\r\n")
            if not line.strip():
                continue
            _handle_line(process_name, line, line_handler)
    except (OSError, ValueError) as e:
        log.debug(f"Pipe reader for {process_name} stream exited: {e}")
    finally:
        pipe.close()


def log_process_output(
    process: subprocess.Popen,
    process_name: str,
    line_handler: Callable[[str], None]
) -> List[threading.Thread]:
    """
    Starts background threads that consume a process's stdout and stderr.

    Both streams are drained continuously so the child never blocks on a full
    pipe. Blank lines are dropped; every other line reaches `line_handler`
    exactly once.

    :param process: The `subprocess.Popen` object to read from.
    :param process_name: The logical name of the process, used for thread names and logs.
    :param line_handler: Called with each non-blank line, on the reader thread.
    :return: The started reader threads.
    """
    readers: List[threading.Thread] = []
    for stream_name, pipe in (("stdout", process.stdout), ("stderr", process.stderr)):
        if pipe is None:
            continue
        reader = threading.Thread(
            target=_read_pipe,
            args=(pipe, process_name, line_handler),
            daemon=True,
            name=f"{process_name}-{stream_name}-reader"
        )
        reader.start()
        readers.append(reader)
    return readers


def join_readers(readers: List[threading.Thread], timeout: Optional[float]) -> None:
    """Waits up to `timeout` seconds for each reader thread to drain its pipe."""
    for reader in readers:
        reader.join(timeout)
        if reader.is_alive():
            log.debug(f"Reader thread {reader.name} is still draining after {timeout}s.")
