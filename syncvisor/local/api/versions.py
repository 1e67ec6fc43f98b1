import re
import time
import logging
import requests
from types import MappingProxyType
from typing import Any, Mapping, NamedTuple, Optional, Tuple, Type

from syncvisor.local import effective_settings as config
from syncvisor.local.api.adapters import SyncthingApiClientV0p10, SyncthingApiClientV0p11
from syncvisor.local.api.client import API_KEY_HEADER, SyncthingApiClient, normalize_base_url
from syncvisor.local.api.errors import (
    ApiConnectionError, ApiResponseError, ProtocolMismatchError, UnsupportedApiVersionError
)

log = logging.getLogger(__name__)

_VERSION_PATTERN = re.compile(r"^v?(\d+)\.(\d+)")
_VERSION_ENDPOINTS = ("/rest/system/version", "/rest/version")


class ApiVersionBinding(NamedTuple):
    """Ties a REST protocol version to the adapter class and the wire paths it uses."""
    version: str
    client_class: Type[SyncthingApiClient]
    endpoint_overrides: Mapping[str, str]

    def create_client(self, base_url: str, api_key: str, **kwargs: Any) -> SyncthingApiClient:
        return self.client_class(base_url, api_key, endpoint_overrides=self.endpoint_overrides, **kwargs)


def _register(*bindings: ApiVersionBinding) -> Mapping[Tuple[int, int], ApiVersionBinding]:
    return MappingProxyType({parse_api_version(b.version): b for b in bindings})


def parse_api_version(version: str) -> Tuple[int, int]:
    """
    Extracts (major, minor) from a Syncthing version string like 'v0.11.2' or '0.10.30-rc1'.

    :raises UnsupportedApiVersionError: If the string does not start with a version number.
    """
    match = _VERSION_PATTERN.match(version.strip())
    if not match:
        raise UnsupportedApiVersionError(f"Cannot parse Syncthing version '{version}'")
    return int(match.group(1)), int(match.group(2))


BINDINGS = _register(
    ApiVersionBinding("0.10", SyncthingApiClientV0p10, MappingProxyType({})),
    ApiVersionBinding("0.11", SyncthingApiClientV0p11, MappingProxyType({
        "config": "/rest/system/config",
        "system": "/rest/system/status",
        "connections": "/rest/system/connections",
        "version": "/rest/system/version",
        "ignores": "/rest/db/ignores",
        "scan": "/rest/db/scan",
        "restart": "/rest/system/restart",
        "shutdown": "/rest/system/shutdown",
    })),
)


def get_binding(version: str) -> ApiVersionBinding:
    """
    Picks the version binding for a negotiated Syncthing version.

    An exact major.minor match wins. Versions newer than every registered
    binding use the newest one, since later releases kept the v0.11 layout.

    :raises UnsupportedApiVersionError: For unparseable versions or versions older than every binding.
    """
    key = parse_api_version(version)
    if key in BINDINGS:
        return BINDINGS[key]

    newest = max(BINDINGS)
    if key > newest:
        binding = BINDINGS[newest]
        log.warning(f"No API client for Syncthing {version}; using the v{binding.version} client.")
        return binding
    raise UnsupportedApiVersionError(f"Syncthing {version} is older than every supported API version.")


def create_api_client(version: str, base_url: str, api_key: str, **kwargs: Any) -> SyncthingApiClient:
    """
    Creates the API client for a negotiated Syncthing version.

    :param version: The version string reported by Syncthing.
    :param base_url: Syncthing GUI address, as 'host:port' or a URL.
    :param api_key: API key attached to every request.
    :return: A client implementing the stable API surface for that version.
    """
    binding = get_binding(version)
    client = binding.create_client(base_url, api_key, **kwargs)
    log.info(f"Using Syncthing API v{binding.version} client for Syncthing {version}.")
    return client


def detect_api_version(base_url: str, api_key: str, timeout: float = 5) -> str:
    """
    Asks a running Syncthing which version it is.

    Newer releases serve /rest/system/version; v0.10 only knows /rest/version.

    :return: The reported version string, e.g. 'v0.11.2'.
    :raises ApiConnectionError: If Syncthing is not reachable.
    :raises ApiResponseError: If neither endpoint exists or the API key is rejected.
    :raises ProtocolMismatchError: If the response does not carry a version.
    """
    base_url = normalize_base_url(base_url)
    headers = {API_KEY_HEADER: api_key}
    last_error: Optional[ApiResponseError] = None

    for path in _VERSION_ENDPOINTS:
        url = f"{base_url}{path}"
        try:
            response = requests.get(url, headers=headers, timeout=timeout)
        except requests.RequestException as e:
            raise ApiConnectionError(f"Could not reach Syncthing at {url}: {e}") from e

        if response.status_code == 404:
            last_error = ApiResponseError(404, url, response.text.strip())
            continue
        if not response.ok:
            raise ApiResponseError(response.status_code, url, response.text.strip())

        try:
            version = response.json()["version"]
        except (ValueError, KeyError, TypeError) as e:
            raise ProtocolMismatchError(f"Unexpected version response from {url}: {e!r}") from e
        log.debug(f"Syncthing at {base_url} reports version {version}")
        return version

    raise last_error


def wait_for_api(
    base_url: str,
    api_key: str,
    timeout: Optional[float] = None,
    interval: Optional[float] = None
) -> str:
    """
    Waits until Syncthing answers on its API and returns its version.

    Only connectivity failures are retried; anything else means Syncthing is
    up but unhappy, which waiting will not fix.

    :param timeout: Seconds to keep trying.
    :param interval: Delay between attempts.
    :raises ApiConnectionError: If Syncthing did not come up in time.
    """
    timeout = timeout if timeout is not None else config.API_READY_TIMEOUT_SECONDS
    interval = interval if interval is not None else config.API_READY_POLL_INTERVAL
    deadline = time.monotonic() + timeout
    attempt = 0

    while True:
        attempt += 1
        try:
            return detect_api_version(base_url, api_key)
        except ApiConnectionError as e:
            if time.monotonic() >= deadline:
                log.critical(f"Syncthing API did not come up after {attempt} attempts.")
                raise
            log.debug(f"Syncthing API not ready yet (attempt {attempt}): {e}. Retrying in {interval}s...")
            time.sleep(interval)
