"""
Errors raised by the Syncthing API clients.

Callers usually care about which kind of failure happened:
- ApiConnectionError: transport failure or timeout. Safe to retry later.
- ApiResponseError: Syncthing answered with an error status.
- ProtocolMismatchError: the response did not have the shape expected for
  the negotiated API version, so the version binding is probably wrong.
"""
from typing import Optional


class ApiError(Exception):
    """Base class for all Syncthing API errors."""


class ApiConnectionError(ApiError):
    """Syncthing could not be reached, or the request timed out."""


class ApiResponseError(ApiError):
    """Syncthing returned a well-formed error response."""

    def __init__(self, status_code: int, url: str, message: Optional[str] = None) -> None:
        self.status_code = status_code
        self.url = url
        self.message = message or ""
        detail = f": {self.message}" if self.message else ""
        super().__init__(f"Syncthing API returned HTTP {status_code} for {url}{detail}")


class ProtocolMismatchError(ApiError):
    """A response could not be decoded into the shape expected for this API version."""


class UnsupportedApiVersionError(ProtocolMismatchError):
    """No client is registered for the requested API version."""
