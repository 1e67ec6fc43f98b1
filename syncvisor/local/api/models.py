"""
Stable, version-independent shapes returned by the Syncthing API clients.

Each version adapter converts its own wire format into these types.
"""
from enum import Enum
from typing import Any, Dict, List, NamedTuple


class FolderConfig(NamedTuple):
    id: str
    path: str


class DeviceConfig(NamedTuple):
    device_id: str
    name: str


class GuiConfig(NamedTuple):
    address: str
    api_key: str
    enabled: bool
    use_tls: bool


class Config(NamedTuple):
    folders: List[FolderConfig]
    devices: List[DeviceConfig]
    gui: GuiConfig
    options: Dict[str, Any]  # snake_case keys, e.g. "listen_address"


class SystemInfo(NamedTuple):
    my_id: str
    alloc: int
    sys: int
    goroutines: int
    cpu_percent: float


class ConnectionStats(NamedTuple):
    address: str
    client_version: str
    in_bytes_total: int
    out_bytes_total: int


class Connections(NamedTuple):
    total: ConnectionStats
    device_connections: Dict[str, ConnectionStats]


class SyncthingVersion(NamedTuple):
    version: str
    long_version: str
    os: str
    arch: str


class Ignores(NamedTuple):
    ignore_patterns: List[str]  # as written in .stignore
    regex_patterns: List[str]   # expanded by Syncthing


class Event(NamedTuple):
    id: int
    type: str
    time: str
    data: Any


class EventType(str, Enum):
    """Event types emitted by Syncthing's /rest/events endpoint."""
    PING = "Ping"
    STARTING = "Starting"
    STARTUP_COMPLETE = "StartupComplete"
    DEVICE_DISCOVERED = "DeviceDiscovered"
    DEVICE_CONNECTED = "DeviceConnected"
    DEVICE_DISCONNECTED = "DeviceDisconnected"
    DEVICE_REJECTED = "DeviceRejected"
    LOCAL_INDEX_UPDATED = "LocalIndexUpdated"
    REMOTE_INDEX_UPDATED = "RemoteIndexUpdated"
    ITEM_STARTED = "ItemStarted"
    ITEM_FINISHED = "ItemFinished"
    STATE_CHANGED = "StateChanged"
    FOLDER_REJECTED = "FolderRejected"
    FOLDER_SUMMARY = "FolderSummary"
    FOLDER_COMPLETION = "FolderCompletion"
    DOWNLOAD_PROGRESS = "DownloadProgress"
    CONFIG_SAVED = "ConfigSaved"


# Subscribe to this kind to receive every event regardless of type.
ANY_EVENT = "*"
