"""
The API package.
Talks to the supervised Syncthing process over its local REST API.

One stable client surface is implemented by an adapter per REST protocol
version; `versions` picks the adapter for the version Syncthing reports,
and `watcher` turns the events endpoint into subscribable notifications.
"""
from .client import SyncthingApiClient
from .errors import (
    ApiConnectionError,
    ApiError,
    ApiResponseError,
    ProtocolMismatchError,
    UnsupportedApiVersionError,
)
from .versions import create_api_client, detect_api_version, get_binding, wait_for_api
from .watcher import EventWatcher

__all__ = [
    'ApiConnectionError',
    'ApiError',
    'ApiResponseError',
    'EventWatcher',
    'ProtocolMismatchError',
    'SyncthingApiClient',
    'UnsupportedApiVersionError',
    'create_api_client',
    'detect_api_version',
    'get_binding',
    'wait_for_api',
]
