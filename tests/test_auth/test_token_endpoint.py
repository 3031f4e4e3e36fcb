"""Tests for the token endpoint client."""

from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from graphauth.auth.token_endpoint import TokenEndpointClient
from graphauth.exceptions import TokenRequestError
from graphauth.models import PollStatus

ENDPOINT = "https://login.microsoftonline.com/contoso/oauth2/v2.0/token"


def _client(handler) -> TokenEndpointClient:
    return TokenEndpointClient(transport=httpx.MockTransport(handler))


def _form(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


class TestRequestToken:
    def test_success(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "access_token": "at-1",
                    "expires_in": 3599,
                    "token_type": "Bearer",
                    "refresh_token": "rt-1",
                    "ext_expires_in": 3599,
                },
            )

        token = _client(handler).request_token(
            ENDPOINT, {"grant_type": "client_credentials", "client_id": "app"}
        )

        assert token.access_token == "at-1"
        assert token.expires_in == 3599
        assert token.refresh_token == "rt-1"
        assert token.model_extra == {"ext_expires_in": 3599}
        assert seen[0].method == "POST"
        assert seen[0].headers["content-type"] == "application/x-www-form-urlencoded"
        assert _form(seen[0]) == {"grant_type": "client_credentials", "client_id": "app"}

    def test_error_envelope(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                400,
                json={"error": "invalid_client", "error_description": "AADSTS7000215: Invalid client secret."},
            )

        with pytest.raises(TokenRequestError) as exc_info:
            _client(handler).request_token(ENDPOINT, {"grant_type": "client_credentials"})

        assert exc_info.value.code == "invalid_client"
        assert "AADSTS7000215" in exc_info.value.description
        assert "invalid_client" in str(exc_info.value)

    def test_non_json_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        with pytest.raises(TokenRequestError, match="HTTP 502: Bad Gateway") as exc_info:
            _client(handler).request_token(ENDPOINT, {"grant_type": "client_credentials"})
        assert exc_info.value.code is None

    def test_missing_access_token(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"token_type": "Bearer"})

        with pytest.raises(TokenRequestError, match="access_token"):
            _client(handler).request_token(ENDPOINT, {"grant_type": "client_credentials"})

    def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TokenRequestError, match="ConnectError"):
            _client(handler).request_token(ENDPOINT, {"grant_type": "client_credentials"})

    def test_error_never_contains_form_values(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": "invalid_client"})

        with pytest.raises(TokenRequestError) as exc_info:
            _client(handler).request_token(
                ENDPOINT,
                {"grant_type": "client_credentials", "client_secret": "super-secret-value"},
            )
        assert "super-secret-value" not in str(exc_info.value)


class TestPollToken:
    @pytest.mark.parametrize(
        ("error", "status"),
        [
            ("authorization_pending", PollStatus.PENDING),
            ("slow_down", PollStatus.SLOW_DOWN),
            ("expired_token", PollStatus.FATAL),
            ("access_denied", PollStatus.FATAL),
        ],
    )
    def test_error_codes(self, error: str, status: PollStatus) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"error": error, "error_description": "details"})

        result = _client(handler).poll_token(ENDPOINT, {"grant_type": "device_code"})
        assert result.status == status
        assert result.error_code == error
        assert result.token is None

    def test_success(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"access_token": "at", "expires_in": 60})

        result = _client(handler).poll_token(ENDPOINT, {"grant_type": "device_code"})
        assert result.status == PollStatus.SUCCESS
        assert result.token is not None
        assert result.token.access_token == "at"

    def test_transport_error_is_fatal(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        result = _client(handler).poll_token(ENDPOINT, {"grant_type": "device_code"})
        assert result.status == PollStatus.FATAL
        assert result.error_code is None


class TestRequestDeviceCode:
    def test_success(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "device_code": "dc",
                    "user_code": "ABCD-EFGH",
                    "verification_uri": "https://microsoft.com/devicelogin",
                    "interval": 5,
                    "expires_in": 900,
                    "message": "To sign in, use a web browser...",
                },
            )

        device = _client(handler).request_device_code(
            "https://login.microsoftonline.com/common/oauth2/v2.0/devicecode", "app", "User.Read"
        )
        assert device.user_code == "ABCD-EFGH"
        assert device.interval == 5
        assert _form(seen[0]) == {"client_id": "app", "scope": "User.Read"}

    def test_incomplete_response(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"user_code": "X"})

        with pytest.raises(TokenRequestError, match="incomplete"):
            _client(handler).request_device_code("https://idp/devicecode", "app", "s")
