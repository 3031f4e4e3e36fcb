"""Tests for the request executor: paging, throttling and error handling."""

from __future__ import annotations

import json
from email.utils import format_datetime
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import patch

import httpx
import pytest
from pydantic import SecretStr

from graphauth.auth.connection import ConnectionManager
from graphauth.auth.manager import FlowManager
from graphauth.client.executor import RequestExecutor
from graphauth.exceptions import ConnectionError_, InvalidUsageError, NotConnectedError, RequestError
from graphauth.flows import BearerTokenFlow
from graphauth.models import GlobalConfig, RefreshOutcome, TokenParams
from graphauth.output import OutputManager, set_output

BASE = "https://graph.microsoft.com/v1.0"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _clean_output():
    set_output(OutputManager(no_color=True, quiet=True))
    yield


@pytest.fixture
def connection(make_token) -> ConnectionManager:
    flows = FlowManager()
    flows.register(BearerTokenFlow())
    manager = ConnectionManager(flows)
    manager.connect(TokenParams(token=SecretStr(make_token())))
    return manager


def _run(connection: ConnectionManager, handler, method: str = "GET", resource: str = "me",
         **kwargs: Any) -> list[Any]:
    with RequestExecutor(connection, transport=httpx.MockTransport(handler)) as executor:
        return executor.execute(method, resource, **kwargs)


# ---------------------------------------------------------------------------
# URL building
# ---------------------------------------------------------------------------


class TestBuildUrl:
    def test_relative_resource(self, connection) -> None:
        executor = RequestExecutor(connection)
        assert executor.build_url("users") == f"{BASE}/users"
        assert executor.build_url("/users") == f"{BASE}/users"

    def test_api_version_override(self, connection) -> None:
        executor = RequestExecutor(connection)
        assert executor.build_url("users", "beta") == "https://graph.microsoft.com/beta/users"

    def test_absolute_url_passthrough(self, connection) -> None:
        url = "https://graph.microsoft.com/beta/users?$top=5"
        assert RequestExecutor(connection).build_url(url) == url

    def test_configured_base(self, connection) -> None:
        config = GlobalConfig(api_base_url="https://graph.microsoft.us/", api_version="beta")
        assert RequestExecutor(connection, config).build_url("me") == (
            "https://graph.microsoft.us/beta/me"
        )


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class TestExecute:
    def test_single_object(self, connection) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"id": "1", "displayName": "Adele"})

        assert _run(connection, handler) == [{"id": "1", "displayName": "Adele"}]
        assert str(seen[0].url) == f"{BASE}/me"
        assert seen[0].headers["Authorization"].startswith("Bearer ")
        assert seen[0].headers["Accept"] == "application/json"

    def test_follows_next_link(self, connection) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            if "skiptoken" not in str(request.url):
                return httpx.Response(
                    200,
                    json={"value": [1, 2], "@odata.nextLink": f"{BASE}/users?$skiptoken=abc"},
                )
            return httpx.Response(200, json={"value": [3]})

        assert _run(connection, handler, resource="users") == [1, 2, 3]
        assert len(seen) == 2

    def test_empty_collection(self, connection) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"value": []})

        assert _run(connection, handler, resource="users") == []

    def test_no_content(self, connection) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(204)

        assert _run(connection, handler, method="DELETE", resource="users/1") == []

    def test_write_body_is_json(self, connection) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"id": "new"})

        body = {"displayName": "Team", "mailEnabled": False}
        result = _run(connection, handler, method="post", resource="groups", body=body)

        assert result == [{"id": "new"}]
        assert seen[0].method == "POST"
        assert json.loads(seen[0].content) == body
        assert seen[0].headers["Content-Type"] == "application/json"

    def test_string_body_sent_verbatim(self, connection) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        _run(connection, handler, method="PATCH", resource="me", body='{"jobTitle":"Eng"}')
        assert seen[0].content == b'{"jobTitle":"Eng"}'

    def test_get_ignores_body(self, connection) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        _run(connection, handler, body={"ignored": True})
        assert seen[0].content == b""

    def test_custom_and_per_call_headers(self, connection) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"value": []})

        connection.set_header("ConsistencyLevel", "eventual")
        _run(connection, handler, resource="users/$count", headers={"Prefer": "return=minimal"})

        assert seen[0].headers["ConsistencyLevel"] == "eventual"
        assert seen[0].headers["Prefer"] == "return=minimal"

    def test_single_authorization_header(self, connection) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={})

        with pytest.raises(InvalidUsageError):
            connection.set_header("authorization", "Bearer stale")
        connection.set_header("consistencylevel", "eventual")
        _run(connection, handler, headers={"content-type": "text/plain"})

        assert len(seen[0].headers.get_list("authorization")) == 1
        assert seen[0].headers["authorization"] == connection.headers["Authorization"]
        assert seen[0].headers.get_list("content-type") == ["text/plain"]

    def test_api_version_override(self, connection) -> None:
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json={})

        _run(connection, handler, api_version="beta")
        assert seen == ["https://graph.microsoft.com/beta/me"]

    def test_verb_helpers(self, connection) -> None:
        methods: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            methods.append(request.method)
            return httpx.Response(204)

        with RequestExecutor(connection, transport=httpx.MockTransport(handler)) as executor:
            executor.get("me")
            executor.post("groups", {"a": 1})
            executor.put("x", {"a": 1})
            executor.patch("me", {"a": 1})
            executor.delete("groups/1")

        assert methods == ["GET", "POST", "PUT", "PATCH", "DELETE"]

    def test_refreshes_before_sending(self, connection) -> None:
        with patch.object(
            connection, "refresh_if_needed", return_value=RefreshOutcome.SKIPPED
        ) as refresh:
            _run(connection, lambda r: httpx.Response(200, json={}))
        refresh.assert_called_once_with()


# ---------------------------------------------------------------------------
# Throttling
# ---------------------------------------------------------------------------


class TestThrottling:
    def test_retry_after_seconds(self, connection) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) == 1:
                return httpx.Response(429, headers={"Retry-After": "2"})
            return httpx.Response(200, json={"id": "1"})

        with patch("graphauth.client.executor.time.sleep") as mock_sleep:
            result = _run(connection, handler)

        assert result == [{"id": "1"}]
        mock_sleep.assert_called_once_with(2)
        assert len(calls) == 2

    def test_default_retry_after(self, connection) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) == 1:
                return httpx.Response(429)
            return httpx.Response(200, json={})

        with patch("graphauth.client.executor.time.sleep") as mock_sleep:
            _run(connection, handler)
        mock_sleep.assert_called_once_with(300)

    def test_retry_after_http_date(self, connection) -> None:
        when = datetime.now(timezone.utc) + timedelta(seconds=30)
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) == 1:
                return httpx.Response(429, headers={"Retry-After": format_datetime(when, usegmt=True)})
            return httpx.Response(200, json={})

        with patch("graphauth.client.executor.time.sleep") as mock_sleep:
            _run(connection, handler)
        delay = mock_sleep.call_args.args[0]
        assert 25 <= delay <= 30

    def test_retries_without_limit(self, connection) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) <= 5:
                return httpx.Response(429, headers={"Retry-After": "1"})
            return httpx.Response(200, json={"value": ["ok"]})

        with patch("graphauth.client.executor.time.sleep") as mock_sleep:
            assert _run(connection, handler) == ["ok"]
        assert mock_sleep.call_count == 5

    def test_throttled_page_keeps_earlier_items(self, connection) -> None:
        calls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            if len(calls) == 1:
                return httpx.Response(200, json={"value": [1], "@odata.nextLink": f"{BASE}/users?p=2"})
            if len(calls) == 2:
                return httpx.Response(429, headers={"Retry-After": "1"})
            return httpx.Response(200, json={"value": [2]})

        with patch("graphauth.client.executor.time.sleep"):
            assert _run(connection, handler, resource="users") == [1, 2]
        assert calls[1] == calls[2]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrors:
    def test_write_error_raises(self, connection) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                400,
                json={"error": {"code": "Request_BadRequest", "message": "Invalid property"}},
            )

        with pytest.raises(RequestError) as exc_info:
            _run(connection, handler, method="POST", resource="users", body={})

        assert exc_info.value.status_code == 400
        assert exc_info.value.code == "Request_BadRequest"
        assert exc_info.value.error_message == "Invalid property"

    def test_read_error_returns_partial_results(self, connection) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            if len(calls) == 1:
                return httpx.Response(
                    200, json={"value": [1, 2], "@odata.nextLink": f"{BASE}/users?p=2"}
                )
            return httpx.Response(
                400, json={"error": {"code": "BadRequest", "message": "Bad page"}}
            )

        with patch("graphauth.client.executor.warning") as mock_warning:
            result = _run(connection, handler, resource="users")

        assert result == [1, 2]
        mock_warning.assert_called_once()
        message = mock_warning.call_args.args[0]
        assert "BadRequest" in message
        assert "HTTP 400" in message

    def test_read_error_on_first_page(self, connection) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"error": {"code": "Request_ResourceNotFound", "message": "x"}})

        with patch("graphauth.client.executor.warning") as mock_warning:
            assert _run(connection, handler, resource="users/missing") == []
        assert "Request_ResourceNotFound" in mock_warning.call_args.args[0]

    def test_read_transport_error_warns(self, connection) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with patch("graphauth.client.executor.warning") as mock_warning:
            assert _run(connection, handler) == []
        mock_warning.assert_called_once()

    def test_read_dropped_connection_keeps_earlier_pages(self, connection) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if "p=2" in str(request.url):
                raise httpx.RemoteProtocolError("Server disconnected", request=request)
            return httpx.Response(
                200, json={"value": [1, 2], "@odata.nextLink": f"{BASE}/users?p=2"}
            )

        with patch("graphauth.client.executor.warning") as mock_warning:
            assert _run(connection, handler, resource="users") == [1, 2]
        assert "RemoteProtocolError" in mock_warning.call_args[0][0]

    def test_write_protocol_error_raises(self, connection) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.UnsupportedProtocol("bad scheme", request=request)

        with pytest.raises(ConnectionError_, match="UnsupportedProtocol"):
            _run(connection, handler, method="POST", resource="users", body={})

    def test_write_transport_error_raises(self, connection) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ConnectionError_, match="ReadTimeout"):
            _run(connection, handler, method="DELETE", resource="users/1")

    def test_not_connected_makes_no_request(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(200, json={})

        manager = ConnectionManager(FlowManager())
        with pytest.raises(NotConnectedError):
            _run(manager, handler)
        assert calls == []

    def test_requires_context_manager(self, connection) -> None:
        with pytest.raises(RuntimeError, match="context manager"):
            RequestExecutor(connection).execute("GET", "me")

    def test_error_does_not_leak_token(self, connection) -> None:
        token = connection.state.token

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": {"code": "InvalidAuthenticationToken", "message": "expired"}})

        with pytest.raises(RequestError) as exc_info:
            _run(connection, handler, method="POST", resource="users", body={})
        assert token not in str(exc_info.value)
