"""
Per-version Syncthing REST adapters.

v0.10 serves everything under flat /rest/* paths and uses Go-style
PascalCase field names. v0.11 reorganized the paths into /rest/system/*
and /rest/db/* (supplied by its version binding), switched to camelCase
and nested the per-device connection stats under "connections".
"""
import re
from typing import Any, Dict, Optional

from syncvisor.local.api.client import SyncthingApiClient
from syncvisor.local.api.models import (
    Config, ConnectionStats, Connections, DeviceConfig, FolderConfig, GuiConfig
)

# Word boundaries in both "ListenAddress" and "listenAddress", keeping acronyms like "UR" together.
_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def snake_case_keys(options: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Renames PascalCase or camelCase option keys to snake_case, so both versions agree."""
    return {_WORD_BOUNDARY.sub("_", key).lower(): value for key, value in (options or {}).items()}


class SyncthingApiClientV0p10(SyncthingApiClient):
    API_VERSION = "0.10"

    @staticmethod
    def _parse_gui(gui: Dict[str, Any]) -> GuiConfig:
        return GuiConfig(
            address=gui.get("Address", ""),
            api_key=gui.get("APIKey", ""),
            enabled=bool(gui.get("Enabled", True)),
            use_tls=bool(gui.get("UseTLS", False)),
        )

    def _parse_config(self, payload: Any) -> Config:
        return Config(
            folders=[FolderConfig(id=f["ID"], path=f["Path"]) for f in payload["Folders"]],
            devices=[DeviceConfig(device_id=d["DeviceID"], name=d.get("Name", "")) for d in payload["Devices"]],
            gui=self._parse_gui(payload.get("GUI") or {}),
            options=snake_case_keys(payload.get("Options")),
        )

    @staticmethod
    def _parse_stats(entry: Dict[str, Any]) -> ConnectionStats:
        return ConnectionStats(
            address=entry.get("Address", ""),
            client_version=entry.get("ClientVersion", ""),
            in_bytes_total=int(entry["InBytesTotal"]),
            out_bytes_total=int(entry["OutBytesTotal"]),
        )

    def _parse_connections(self, payload: Any) -> Connections:
        # Device entries sit next to "total" at the top level.
        return Connections(
            total=self._parse_stats(payload["total"]),
            device_connections={
                device_id: self._parse_stats(entry)
                for device_id, entry in payload.items()
                if device_id != "total"
            },
        )


class SyncthingApiClientV0p11(SyncthingApiClient):
    API_VERSION = "0.11"

    @staticmethod
    def _parse_gui(gui: Dict[str, Any]) -> GuiConfig:
        return GuiConfig(
            address=gui.get("address", ""),
            api_key=gui.get("apiKey", ""),
            enabled=bool(gui.get("enabled", True)),
            use_tls=bool(gui.get("useTLS", False)),
        )

    def _parse_config(self, payload: Any) -> Config:
        return Config(
            folders=[FolderConfig(id=f["id"], path=f["path"]) for f in payload["folders"]],
            devices=[DeviceConfig(device_id=d["deviceID"], name=d.get("name", "")) for d in payload["devices"]],
            gui=self._parse_gui(payload.get("gui") or {}),
            options=snake_case_keys(payload.get("options")),
        )

    @staticmethod
    def _parse_stats(entry: Dict[str, Any]) -> ConnectionStats:
        return ConnectionStats(
            address=entry.get("address", ""),
            client_version=entry.get("clientVersion", ""),
            in_bytes_total=int(entry["inBytesTotal"]),
            out_bytes_total=int(entry["outBytesTotal"]),
        )

    def _parse_connections(self, payload: Any) -> Connections:
        return Connections(
            total=self._parse_stats(payload["total"]),
            device_connections={
                device_id: self._parse_stats(entry)
                for device_id, entry in (payload.get("connections") or {}).items()
            },
        )
