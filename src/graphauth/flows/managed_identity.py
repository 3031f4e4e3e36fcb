"""Managed identity of the compute resource the process runs on.

Two endpoints are auto-detected from the environment:

* **App Service / Functions / Container Apps** -- when both
  ``IDENTITY_ENDPOINT`` and ``IDENTITY_HEADER`` are set. Requests carry the
  ``X-IDENTITY-HEADER`` validation secret.
* **Instance metadata service (IMDS)** -- the fixed link-local address
  available on virtual machines. Requests carry ``Metadata: true``.

Both responses are normalized to :class:`~graphauth.models.TokenResponse`.
When only an absolute ``expires_on`` is returned, ``expires_in`` is
computed from it.
"""

from __future__ import annotations

import os
import re
import time
from datetime import datetime, timedelta
from typing import Any, Optional

import httpx

from graphauth.auth.token_endpoint import TokenEndpointClient
from graphauth.exceptions import EnvironmentMismatchError, ManagedIdentityError
from graphauth.flows.base import TokenEndpointFlow
from graphauth.models import (
    ConnectionState,
    FlowType,
    GlobalConfig,
    ManagedIdentityParams,
    TokenResponse,
)
from graphauth.output import debug

IMDS_ENDPOINT = "http://169.254.169.254/metadata/identity/oauth2/token"
IMDS_API_VERSION = "2018-02-01"
APP_SERVICE_API_VERSION = "2019-08-01"

_MISMATCH_PATTERN = re.compile(r"not found|unreachable|timed out", re.IGNORECASE)
_EXPIRES_ON_FORMAT = "%m/%d/%Y %H:%M:%S %z"
_MERIDIEM_PATTERN = re.compile(r" (AM|PM)(?= )", re.IGNORECASE)


class ManagedIdentityFlow(TokenEndpointFlow):
    """Fetch a token for the host's system- or user-assigned identity.

    Args:
        config: Global configuration; ``request.managed_identity_timeout``
            bounds each endpoint call.
        token_client: Unused by this flow; accepted for a uniform constructor.
        transport: Optional httpx transport for the identity endpoint.
    """

    def __init__(
        self,
        config: Optional[GlobalConfig] = None,
        token_client: Optional[TokenEndpointClient] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__(config, token_client)
        self._transport = transport

    @property
    def flow_type(self) -> FlowType:
        return FlowType.MANAGED_IDENTITY

    def acquire(self, params: ManagedIdentityParams) -> TokenResponse:
        """Request a token for *params.resource* (the API base URL by default).

        Raises:
            EnvironmentMismatchError: If no identity endpoint is reachable.
            ManagedIdentityError: If the endpoint answers with a failure.
        """
        return self._request(self._resource(params.resource), params.client_id)

    def refresh(self, state: ConnectionState) -> TokenResponse:
        return self._request(self._resource(state.scopes), state.client_id)

    def build_state(
        self, params: ManagedIdentityParams, response: TokenResponse
    ) -> ConnectionState:
        return ConnectionState(
            scopes=self._resource(params.resource),
            client_id=params.client_id,
        )

    def _resource(self, resource: Optional[str]) -> str:
        return resource or self._config.api_base_url

    def _request(self, resource: str, client_id: Optional[str]) -> TokenResponse:
        url, headers, query = self._endpoint(resource, client_id)
        debug(f"Managed identity request: endpoint={url} resource={resource}")
        try:
            with httpx.Client(
                timeout=self._config.request.managed_identity_timeout,
                transport=self._transport,
            ) as client:
                response = client.get(url, params=query, headers=headers)
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise EnvironmentMismatchError(
                "Managed identity endpoint is unreachable; this host does not appear "
                f"to provide a managed identity ({type(exc).__name__})"
            ) from exc
        except httpx.HTTPError as exc:
            raise self._classify(f"{type(exc).__name__}: {exc}") from exc

        if response.status_code == 404:
            raise EnvironmentMismatchError(
                f"Managed identity endpoint {url} returned 404; this host does not "
                "appear to provide a managed identity"
            )
        if not response.is_success:
            raise self._classify(f"HTTP {response.status_code}: {response.text[:200]}")

        try:
            data: Any = response.json()
        except ValueError as exc:
            raise ManagedIdentityError("Managed identity response is not valid JSON") from exc
        if not isinstance(data, dict) or not data.get("access_token"):
            raise ManagedIdentityError("Managed identity response missing 'access_token' field")
        return self._normalize(data, resource)

    @staticmethod
    def _endpoint(
        resource: str, client_id: Optional[str]
    ) -> tuple[str, dict[str, str], dict[str, str]]:
        """Pick the identity endpoint from the environment."""
        query = {"resource": resource}
        if client_id:
            query["client_id"] = client_id

        identity_endpoint = os.environ.get("IDENTITY_ENDPOINT")
        identity_header = os.environ.get("IDENTITY_HEADER")
        if identity_endpoint and identity_header:
            query["api-version"] = APP_SERVICE_API_VERSION
            return identity_endpoint, {"X-IDENTITY-HEADER": identity_header}, query

        query["api-version"] = IMDS_API_VERSION
        return IMDS_ENDPOINT, {"Metadata": "true"}, query

    @staticmethod
    def _classify(detail: str) -> ManagedIdentityError:
        if _MISMATCH_PATTERN.search(detail):
            return EnvironmentMismatchError(
                f"Managed identity is not available on this host: {detail}"
            )
        return ManagedIdentityError(f"Managed identity token request failed: {detail}")

    @staticmethod
    def _normalize(data: dict[str, Any], resource: str) -> TokenResponse:
        expires_in = _as_int(data.get("expires_in"))
        if expires_in is None:
            expires_on = _parse_expires_on(data.get("expires_on"))
            if expires_on is not None:
                expires_in = max(int(expires_on - time.time()), 0)
        return TokenResponse(
            access_token=data["access_token"],
            expires_in=expires_in,
            token_type=data.get("token_type") or "Bearer",
            resource=data.get("resource") or resource,
        )


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _parse_expires_on(value: Any) -> Optional[float]:
    """Parse ``expires_on`` as epoch seconds or an ``MM/DD/YYYY HH:MM:SS [AM|PM] +00:00`` date."""
    if value is None:
        return None
    epoch = _as_int(value)
    if epoch is not None:
        return float(epoch)
    text = str(value)
    meridiem = _MERIDIEM_PATTERN.search(text)
    if meridiem:
        text = text[: meridiem.start()] + text[meridiem.end():]
    try:
        parsed = datetime.strptime(text, _EXPIRES_ON_FORMAT)
    except ValueError:
        return None
    if meridiem:
        # Older App Service dates pair a 00-11 hour with AM/PM.
        marker = meridiem.group(1).upper()
        if marker == "PM" and parsed.hour < 12:
            parsed += timedelta(hours=12)
        elif marker == "AM" and parsed.hour == 12:
            parsed -= timedelta(hours=12)
    return parsed.timestamp()
