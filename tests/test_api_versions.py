"""Tests for API version negotiation and client selection."""

from unittest.mock import call, patch

import pytest
import requests

from syncvisor.local.api import (
    ApiConnectionError, ApiResponseError, ProtocolMismatchError, UnsupportedApiVersionError,
    detect_api_version, get_binding, wait_for_api
)
from syncvisor.local.api.adapters import SyncthingApiClientV0p10, SyncthingApiClientV0p11
from syncvisor.local.api.versions import BINDINGS, parse_api_version
from tests.conftest import make_response


class TestParseVersion:

    @pytest.mark.parametrize("version,expected", [
        ("v0.11.2", (0, 11)),
        ("0.10.30-rc1", (0, 10)),
        (" v1.27.0 ", (1, 27)),
    ])
    def test_parse(self, version: str, expected) -> None:
        assert parse_api_version(version) == expected

    @pytest.mark.parametrize("version", ["", "unknown", "v.11"])
    def test_unparseable(self, version: str) -> None:
        with pytest.raises(UnsupportedApiVersionError):
            parse_api_version(version)


class TestBindings:

    def test_exact_match(self) -> None:
        assert get_binding("v0.10.30").client_class is SyncthingApiClientV0p10
        assert get_binding("v0.11.0").client_class is SyncthingApiClientV0p11

    def test_newer_version_uses_newest_binding(self) -> None:
        assert get_binding("v1.27.0").client_class is SyncthingApiClientV0p11

    def test_older_version_is_rejected(self) -> None:
        with pytest.raises(UnsupportedApiVersionError, match="older"):
            get_binding("v0.9.19")

    def test_unsupported_version_is_a_protocol_mismatch(self) -> None:
        with pytest.raises(ProtocolMismatchError):
            get_binding("garbage")

    def test_registry_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            BINDINGS[(0, 12)] = BINDINGS[(0, 11)]
        with pytest.raises(TypeError):
            BINDINGS[(0, 11)].endpoint_overrides["config"] = "/elsewhere"

    def test_created_client_uses_binding_paths(self) -> None:
        client = get_binding("v0.11.2").create_client("127.0.0.1:8384", "secret")
        try:
            assert client.endpoints["version"] == "/rest/system/version"
            assert client.endpoints["events"] == "/rest/events"
        finally:
            client.close()


class TestDetectVersion:

    def test_current_endpoint(self) -> None:
        with patch("syncvisor.local.api.versions.requests.get") as mock_get:
            mock_get.return_value = make_response(json_data={"version": "v0.11.2"})
            assert detect_api_version("0.0.0.0:8384", "secret") == "v0.11.2"

        url = mock_get.call_args[0][0]
        assert url == "http://127.0.0.1:8384/rest/system/version"
        assert mock_get.call_args[1]["headers"] == {"X-API-Key": "secret"}

    def test_falls_back_to_legacy_endpoint(self) -> None:
        with patch("syncvisor.local.api.versions.requests.get") as mock_get:
            mock_get.side_effect = [
                make_response(404, text="404 page not found"),
                make_response(json_data={"version": "v0.10.30"}),
            ]
            assert detect_api_version("127.0.0.1:8384", "secret") == "v0.10.30"

        assert [c[0][0] for c in mock_get.call_args_list] == [
            "http://127.0.0.1:8384/rest/system/version",
            "http://127.0.0.1:8384/rest/version",
        ]

    def test_neither_endpoint_exists(self) -> None:
        with patch("syncvisor.local.api.versions.requests.get", return_value=make_response(404)):
            with pytest.raises(ApiResponseError) as exc_info:
                detect_api_version("127.0.0.1:8384", "secret")
        assert exc_info.value.status_code == 404

    def test_rejected_api_key(self) -> None:
        with patch("syncvisor.local.api.versions.requests.get", return_value=make_response(403)) as mock_get:
            with pytest.raises(ApiResponseError):
                detect_api_version("127.0.0.1:8384", "wrong")
        assert mock_get.call_count == 1

    def test_unreachable(self) -> None:
        with patch("syncvisor.local.api.versions.requests.get", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(ApiConnectionError):
                detect_api_version("127.0.0.1:8384", "secret")

    def test_missing_version_field(self) -> None:
        with patch("syncvisor.local.api.versions.requests.get", return_value=make_response(json_data={})):
            with pytest.raises(ProtocolMismatchError):
                detect_api_version("127.0.0.1:8384", "secret")


class TestWaitForApi:

    def test_retries_until_reachable(self) -> None:
        with patch("syncvisor.local.api.versions.detect_api_version") as mock_detect, \
                patch("syncvisor.local.api.versions.time.sleep") as mock_sleep:
            mock_detect.side_effect = [ApiConnectionError("refused"), ApiConnectionError("refused"), "v0.11.2"]
            assert wait_for_api("127.0.0.1:8384", "secret", timeout=60, interval=0.25) == "v0.11.2"

        assert mock_detect.call_count == 3
        assert mock_sleep.call_args_list == [call(0.25), call(0.25)]

    def test_gives_up_after_timeout(self) -> None:
        with patch("syncvisor.local.api.versions.detect_api_version", side_effect=ApiConnectionError("refused")), \
                patch("syncvisor.local.api.versions.time.sleep") as mock_sleep:
            with pytest.raises(ApiConnectionError):
                wait_for_api("127.0.0.1:8384", "secret", timeout=0)
        mock_sleep.assert_not_called()

    def test_other_errors_are_not_retried(self) -> None:
        error = ApiResponseError(403, "http://127.0.0.1:8384/rest/system/version")
        with patch("syncvisor.local.api.versions.detect_api_version", side_effect=error) as mock_detect, \
                patch("syncvisor.local.api.versions.time.sleep"):
            with pytest.raises(ApiResponseError):
                wait_for_api("127.0.0.1:8384", "secret", timeout=60)
        assert mock_detect.call_count == 1
