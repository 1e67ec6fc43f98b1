"""
This module contains the configuration settings for syncvisor.
It defines the supervised executable, its API endpoint, restart policy and
API client timeouts. Values can be overridden through environment variables
or a `.env` file in the working directory.
"""

import os
import sys
import shutil
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)


def _env_flag(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).lower() in ('true', '1', 't', 'yes', 'y')


def _env_pairs(name: str) -> dict:
    """Parses 'KEY=VALUE;KEY2=VALUE2' into a dict. Later keys win."""
    pairs = {}
    for item in os.getenv(name, "").split(";"):
        if "=" not in item:
            continue
        key, value = item.split("=", 1)
        if key.strip():
            pairs[key.strip()] = value
    return pairs


#* --- Core Paths ---
BASE_DIR = pathlib.Path(__file__).resolve().parent.parent  # Project Root
BIN_DIR = BASE_DIR / "bin"

#* --- Supervised Executable ---
SYNCTHING_EXECUTABLE_NAME = "syncthing.exe" if sys.platform == "win32" else "syncthing"
SYNCTHING_PATH = pathlib.Path(
    os.getenv("SYNCTHING_PATH")
    or shutil.which(SYNCTHING_EXECUTABLE_NAME)
    or BIN_DIR / SYNCTHING_EXECUTABLE_NAME
)
# Empty means "generate one for this session"
SYNCTHING_API_KEY = os.getenv("SYNCTHING_API_KEY", "")
SYNCTHING_ADDRESS = os.getenv("SYNCTHING_ADDRESS", "127.0.0.1:8384")
SYNCTHING_HOME = os.getenv("SYNCTHING_HOME", "")
SYNCTHING_ENV = _env_pairs("SYNCTHING_ENV")

#* --- Process Flags ---
DENY_UPGRADE = _env_flag("DENY_UPGRADE")
RUN_LOW_PRIORITY = _env_flag("RUN_LOW_PRIORITY")
HIDE_DEVICE_IDS = _env_flag("HIDE_DEVICE_IDS", "True")

#* --- Supervisor Settings ---
MAX_RESTART_ATTEMPTS = int(os.getenv("MAX_RESTART_ATTEMPTS", "5"))  # 0 disables the limit
RESTART_WINDOW_SECONDS = float(os.getenv("RESTART_WINDOW_SECONDS", "60"))
READER_JOIN_TIMEOUT_SECONDS = 5

#* --- API Client Settings ---
API_TIMEOUT_SECONDS = 70            # must outlast the events long-poll
API_READY_TIMEOUT_SECONDS = float(os.getenv("API_READY_TIMEOUT_SECONDS", "30"))
API_READY_POLL_INTERVAL = 0.5
EVENT_POLL_LIMIT = int(os.getenv("EVENT_POLL_LIMIT", "0"))  # 0 means no limit
EVENT_RETRY_INTERVAL_SECONDS = 5

#* --- Application variables ---
VERBOSE_LOGGING = _env_flag("VERBOSE_LOGGING")
