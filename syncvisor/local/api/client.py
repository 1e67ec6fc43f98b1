import logging
import requests
from urllib.parse import urlsplit, urlunsplit
from typing import Any, Callable, Dict, List, Mapping, Optional, TypeVar

from syncvisor.local import effective_settings as config
from syncvisor.local.api.errors import ApiConnectionError, ApiResponseError, ProtocolMismatchError
from syncvisor.local.api.models import (
    Config, Connections, Event, Ignores, SyncthingVersion, SystemInfo
)

log = logging.getLogger(__name__)

T = TypeVar("T")

API_KEY_HEADER = "X-API-Key"
_ZERO_HOSTS = {"0.0.0.0": "127.0.0.1", "::": "::1"}


def normalize_base_url(address: str) -> str:
    """
    Turns a Syncthing GUI address into a base URL the client can connect to.

    Accepts 'host:port' or a full URL. A wildcard bind address is replaced by
    the matching loopback address, since nothing can connect to 0.0.0.0.

    :param address: The address Syncthing was told to listen on.
    :return: A URL like 'http://127.0.0.1:8384', without a trailing slash.
    """
    if "://" not in address:
        address = f"http://{address}"
    parts = urlsplit(address)
    host = parts.hostname or ""
    if host in _ZERO_HOSTS:
        loopback = _ZERO_HOSTS[host]
        netloc = f"[{loopback}]" if ":" in loopback else loopback
        if parts.port:
            netloc = f"{netloc}:{parts.port}"
        parts = parts._replace(netloc=netloc)
    return urlunsplit(parts).rstrip("/")


class SyncthingApiClient:
    """
    The stable Syncthing API surface used by the rest of the application.

    Subclasses adapt it to one REST protocol version: `ENDPOINTS` names the
    wire paths and the `_parse_*` hooks turn that version's JSON into the
    shapes in `models`. Every call is a single HTTP request; retrying is up
    to the caller.
    """

    API_VERSION = ""
    ENDPOINTS: Dict[str, str] = {
        "config": "/rest/config",
        "system": "/rest/system",
        "connections": "/rest/connections",
        "version": "/rest/version",
        "ignores": "/rest/ignores",
        "events": "/rest/events",
        "scan": "/rest/scan",
        "restart": "/rest/restart",
        "shutdown": "/rest/shutdown",
    }

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: Optional[float] = None,
        endpoint_overrides: Optional[Mapping[str, str]] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        :param base_url: Syncthing GUI address, as 'host:port' or a URL.
        :param api_key: API key attached to every request.
        :param timeout: Per-request timeout in seconds. Long enough for the events long-poll by default.
        :param endpoint_overrides: Wire paths replacing entries of `ENDPOINTS`.
        :param session: A requests session to use instead of a new one.
        """
        self.base_url = normalize_base_url(base_url)
        self.timeout = timeout if timeout is not None else config.API_TIMEOUT_SECONDS
        self.endpoints = dict(self.ENDPOINTS)
        self.endpoints.update(endpoint_overrides or {})
        self.session = session or requests.Session()
        self.session.headers[API_KEY_HEADER] = api_key

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(base_url={self.base_url!r})"

    def close(self) -> None:
        self.session.close()

    #* --- Transport ---
    def _request(self, method: str, endpoint: str, params: Optional[Dict[str, Any]] = None, expect_json: bool = True) -> Any:
        """
        Performs one request and decodes the JSON body.

        :param method: HTTP method.
        :param endpoint: Logical endpoint name, looked up in `self.endpoints`.
        :param params: Query string parameters. None values are dropped.
        :param expect_json: Whether the response body must be JSON.
        :return: The decoded body, or None if `expect_json` is False.
        """
        url = f"{self.base_url}{self.endpoints[endpoint]}"
        if params:
            params = {key: value for key, value in params.items() if value is not None}

        try:
            response = self.session.request(method, url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise ApiConnectionError(f"Could not reach Syncthing at {url}: {e}") from e

        if not response.ok:
            raise ApiResponseError(response.status_code, url, response.text.strip())

        if not expect_json:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ProtocolMismatchError(f"Syncthing returned invalid JSON from {url}: {e}") from e

    def _fetch(self, endpoint: str, parser: Callable[[Any], T], params: Optional[Dict[str, Any]] = None) -> T:
        payload = self._request("GET", endpoint, params)
        try:
            return parser(payload)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ProtocolMismatchError(
                f"Unexpected response shape from '{endpoint}' for API v{self.API_VERSION}: {e!r}"
            ) from e

    def _post(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> None:
        self._request("POST", endpoint, params, expect_json=False)

    #* --- Stable API Surface ---
    def fetch_config(self) -> Config:
        result = self._fetch("config", self._parse_config)
        log.debug(f"Fetched configuration: {len(result.folders)} folders, {len(result.devices)} devices")
        return result

    def fetch_system_info(self) -> SystemInfo:
        result = self._fetch("system", self._parse_system_info)
        log.debug(f"Fetched system info: {result}")
        return result

    def fetch_connections(self) -> Connections:
        return self._fetch("connections", self._parse_connections)

    def fetch_version(self) -> SyncthingVersion:
        result = self._fetch("version", self._parse_version)
        log.debug(f"Fetched version: {result}")
        return result

    def fetch_ignores(self, folder_id: str) -> Ignores:
        result = self._fetch("ignores", self._parse_ignores, {"folder": folder_id})
        log.debug(f"Fetched ignores for folder {folder_id}: {result}")
        return result

    def fetch_events(self, since: int, limit: Optional[int] = None) -> List[Event]:
        """
        Long-polls for events with an id greater than `since`.

        :param since: The id of the last event already seen (0 for none).
        :param limit: If given, only the most recent `limit` events are returned.
        """
        return self._fetch("events", self._parse_events, {"since": since, "limit": limit})

    def scan(self, folder_id: str, sub_path: Optional[str] = None) -> None:
        log.debug(f"Scanning folder: {folder_id} subPath: {sub_path}")
        self._post("scan", {"folder": folder_id, "sub": sub_path})

    def restart(self) -> None:
        log.debug("Restarting Syncthing")
        self._post("restart")

    def shutdown(self) -> None:
        log.info("Requesting API shutdown")
        self._post("shutdown")

    #* --- Parsing Hooks ---
    def _parse_config(self, payload: Any) -> Config:
        raise NotImplementedError

    def _parse_connections(self, payload: Any) -> Connections:
        raise NotImplementedError

    def _parse_system_info(self, payload: Any) -> SystemInfo:
        return SystemInfo(
            my_id=payload["myID"],
            alloc=int(payload.get("alloc", 0)),
            sys=int(payload.get("sys", 0)),
            goroutines=int(payload.get("goroutines", 0)),
            cpu_percent=float(payload.get("cpuPercent", 0.0)),
        )

    def _parse_version(self, payload: Any) -> SyncthingVersion:
        return SyncthingVersion(
            version=payload["version"],
            long_version=payload.get("longVersion", payload["version"]),
            os=payload.get("os", ""),
            arch=payload.get("arch", ""),
        )

    def _parse_ignores(self, payload: Any) -> Ignores:
        return Ignores(
            ignore_patterns=list(payload.get("ignore") or []),
            regex_patterns=list(payload.get("patterns") or []),
        )

    def _parse_events(self, payload: Any) -> List[Event]:
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise TypeError(f"expected a list of events, got {type(payload).__name__}")
        return [
            Event(id=int(item["id"]), type=item["type"], time=item.get("time", ""), data=item.get("data"))
            for item in payload
        ]
