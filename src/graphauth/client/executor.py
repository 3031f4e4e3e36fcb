"""Request executor with transparent refresh, paging and throttling.

:class:`RequestExecutor` sends API requests with the headers of a
:class:`~graphauth.auth.connection.ConnectionManager`. Each
:meth:`~RequestExecutor.execute` call:

- **Refreshes** the token first when it is close to expiry.
- **Follows paging** -- while a response carries ``@odata.nextLink`` its
  ``value`` items are accumulated and the link is fetched next.
- **Waits out throttling** -- HTTP 429 sleeps for ``Retry-After`` seconds
  (300 when absent) and retries the same URL, without a retry limit.
- **Splits failures by verb** -- reads warn and return what was gathered;
  writes (POST, PUT, PATCH, DELETE) raise
  :class:`~graphauth.exceptions.RequestError`.
"""

from __future__ import annotations

import json
import time
from email.utils import parsedate_to_datetime
from typing import Any, Optional

import httpx

from graphauth.auth.connection import ConnectionManager
from graphauth.client.response import extract_response_data, parse_error_envelope
from graphauth.exceptions import ConnectionError_, NotConnectedError, RequestError
from graphauth.models import GlobalConfig
from graphauth.output import debug, warning

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
NEXT_LINK = "@odata.nextLink"


class RequestExecutor:
    """Executes API calls on behalf of a connection.

    Must be used as a context manager so that the underlying
    :class:`httpx.Client` is opened and closed.

    Args:
        connection: The connection whose headers authenticate each request.
        config: Global configuration (API base URL and version, timeouts,
            default ``Retry-After``).
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`.

    Example::

        with RequestExecutor(connection, config) as executor:
            users = executor.get("users")
    """

    def __init__(
        self,
        connection: ConnectionManager,
        config: Optional[GlobalConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._connection = connection
        self._config = config or GlobalConfig()
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> RequestExecutor:
        self._client = httpx.Client(
            timeout=self._config.request.timeout,
            verify=self._config.request.verify_ssl,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    def execute(
        self,
        method: str,
        resource: str,
        body: Any = None,
        api_version: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> list[Any]:
        """Execute *method* on *resource* and return every result item.

        Args:
            method: HTTP method.
            resource: Path relative to ``<api_base_url>/<api_version>/``, or
                an absolute ``https://`` URL.
            body: JSON body for write methods; a ``str`` is sent verbatim.
            api_version: Overrides ``GlobalConfig.api_version``.
            headers: Extra headers for this call only.

        Returns:
            The accumulated ``value`` items of every page, or the single
            response object when the API returns no collection.

        Raises:
            NotConnectedError: If there is no active connection.
            RequestError: If a write request is rejected.
            ConnectionError_: If a write request fails at the network level.
        """
        method = method.upper()
        if not self._connection.is_connected:
            raise NotConnectedError("Not connected; connect before executing requests")
        if self._client is None:
            raise RuntimeError("RequestExecutor must be used as a context manager")

        self._connection.refresh_if_needed()

        results: list[Any] = []
        next_url: Optional[str] = self.build_url(resource, api_version)
        while next_url:
            try:
                response = self._send(method, next_url, body, headers)
            except ConnectionError_ as exc:
                if method in WRITE_METHODS:
                    raise
                warning(f"{exc}; returning {len(results)} item(s) retrieved so far")
                break

            if not response.is_success:
                code, message = parse_error_envelope(response)
                if method in WRITE_METHODS:
                    raise RequestError(response.status_code, code, message)
                warning(
                    f"{method} {next_url} failed with HTTP {response.status_code} "
                    f"{code}: {message}; returning {len(results)} item(s) retrieved so far"
                )
                break

            data = extract_response_data(response)
            if isinstance(data, dict) and data.get(NEXT_LINK):
                results.extend(data.get("value") or [])
                next_url = data[NEXT_LINK]
                debug(f"Following next link ({len(results)} item(s) so far)")
                continue

            if isinstance(data, dict) and isinstance(data.get("value"), list):
                results.extend(data["value"])
            elif data is not None:
                results.append(data)
            next_url = None

        return results

    def get(self, resource: str, **kwargs: Any) -> list[Any]:
        return self.execute("GET", resource, **kwargs)

    def post(self, resource: str, body: Any = None, **kwargs: Any) -> list[Any]:
        return self.execute("POST", resource, body=body, **kwargs)

    def put(self, resource: str, body: Any = None, **kwargs: Any) -> list[Any]:
        return self.execute("PUT", resource, body=body, **kwargs)

    def patch(self, resource: str, body: Any = None, **kwargs: Any) -> list[Any]:
        return self.execute("PATCH", resource, body=body, **kwargs)

    def delete(self, resource: str, **kwargs: Any) -> list[Any]:
        return self.execute("DELETE", resource, **kwargs)

    def build_url(self, resource: str, api_version: Optional[str] = None) -> str:
        """Resolve *resource* against the configured API base URL and version."""
        if resource.startswith("https://"):
            return resource
        base = self._config.api_base_url.rstrip("/")
        version = (api_version or self._config.api_version).strip("/")
        return f"{base}/{version}/{resource.lstrip('/')}"

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _send(
        self,
        method: str,
        url: str,
        body: Any,
        extra_headers: Optional[dict[str, str]],
    ) -> httpx.Response:
        """Send one request, sleeping and retrying for as long as it is throttled."""
        if self._client is None:
            raise RuntimeError("RequestExecutor must be used as a context manager")

        while True:
            auth_headers = self._connection.headers
            if auth_headers is None:
                raise NotConnectedError("Connection was closed while a request was in progress")
            request_headers = httpx.Headers(
                {"Accept": "application/json", **auth_headers.as_dict()}
            )
            request_headers.update(extra_headers or {})

            kwargs: dict[str, Any] = {"headers": request_headers}
            if method in WRITE_METHODS and body is not None:
                kwargs["content"] = body if isinstance(body, str) else json.dumps(body)

            debug(f"{method} {url}")
            try:
                response = self._client.request(method, url, **kwargs)
            except httpx.RequestError as exc:
                raise ConnectionError_(
                    f"{method} {url} failed: {type(exc).__name__}"
                ) from exc

            if response.status_code != 429:
                return response

            delay = self._retry_after(response)
            warning(f"Throttled (HTTP 429) on {method} {url}; retrying in {delay}s")
            time.sleep(delay)

    def _retry_after(self, response: httpx.Response) -> int:
        value = response.headers.get("Retry-After")
        if value:
            value = value.strip()
            if value.isdigit():
                return int(value)
            try:
                when = parsedate_to_datetime(value)
            except (TypeError, ValueError):
                when = None
            if when is not None:
                return max(int(when.timestamp() - time.time()), 0)
        return self._config.throttle_default_retry_after
