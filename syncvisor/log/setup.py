import sys
import logging

RAW_LOGGER_PREFIX = "proc."
LOG_FORMAT = "%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s"

# Libraries that log every request at DEBUG, including each events long-poll.
QUIET_LOGGERS = ("urllib3",)


class ConsoleFormatter(logging.Formatter):
    """Formats application records normally and relayed Syncthing output as-is."""

    def __init__(self) -> None:
        super().__init__(LOG_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        # Syncthing already timestamps its own lines.
        if record.name.startswith(RAW_LOGGER_PREFIX):
            return record.getMessage()
        return super().format(record)


def _build_console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(ConsoleFormatter())
    return handler


def setup_logging(console_level: int = logging.INFO) -> None:
    """
    Sends all logging to stdout, replacing any handlers set up earlier.

    Syncthing's output is logged at DEBUG on the 'proc.syncthing' logger,
    so it only shows up when `console_level` is DEBUG.

    :param console_level: The lowest level written to the console.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.addHandler(_build_console_handler(console_level))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
