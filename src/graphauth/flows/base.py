"""Shared plumbing for flows that talk to the provider's token endpoint.

:class:`TokenEndpointFlow` wires a flow to the global configuration and a
:class:`~graphauth.auth.token_endpoint.TokenEndpointClient`.
:class:`DelegatedFlow` adds the ``refresh_token`` grant used by the two
user-facing flows (interactive and device code).
"""

from __future__ import annotations

from typing import Optional

from graphauth.auth.base import FlowStrategy
from graphauth.auth.token_endpoint import TokenEndpointClient
from graphauth.exceptions import RefreshUnavailableError
from graphauth.models import ConnectionState, GlobalConfig, TokenResponse

OFFLINE_ACCESS = "offline_access"


class TokenEndpointFlow(FlowStrategy):
    """Base for flows backed by the identity provider's token endpoint.

    Args:
        config: Global configuration (authority host, API base URL, timeouts).
        token_client: Client used for every token exchange. Defaults to one
            built from ``config.request``.
    """

    def __init__(
        self,
        config: Optional[GlobalConfig] = None,
        token_client: Optional[TokenEndpointClient] = None,
    ) -> None:
        self._config = config or GlobalConfig()
        self._token_client = token_client or TokenEndpointClient(
            timeout=self._config.request.timeout,
            verify_ssl=self._config.request.verify_ssl,
        )

    def app_scopes(self, scopes: Optional[str]) -> str:
        """Scopes for application flows: the caller's, or ``<api>/.default``."""
        return scopes or self._config.default_scope()


class DelegatedFlow(TokenEndpointFlow):
    """Base for flows that sign a user in and receive a refresh token."""

    def delegated_scopes(self, scopes: Optional[str]) -> str:
        """Scopes for user flows, always including ``offline_access``."""
        requested = (scopes or self._config.default_scope()).split()
        if OFFLINE_ACCESS not in requested:
            requested.append(OFFLINE_ACCESS)
        return " ".join(requested)

    def build_state(self, params, response: TokenResponse) -> ConnectionState:
        return ConnectionState(
            token_endpoint=self._config.token_endpoint(params.tenant_id),
            client_id=params.client_id,
            tenant_id=params.tenant_id,
            scopes=self.delegated_scopes(params.scopes),
        )

    def refresh(self, state: ConnectionState) -> TokenResponse:
        """Redeem the stored refresh token (``grant_type=refresh_token``)."""
        if not state.refresh_token:
            raise RefreshUnavailableError(
                f"No refresh token stored for this {self.flow_type.value} connection"
            )
        form = {
            "grant_type": "refresh_token",
            "client_id": state.client_id or "",
            "scope": state.scopes or self.delegated_scopes(None),
            "refresh_token": state.refresh_token,
        }
        endpoint = state.token_endpoint or self._config.token_endpoint(state.tenant_id or "common")
        return self._token_client.request_token(endpoint, form)

    def validate_params(self, params) -> list[str]:
        errors: list[str] = []
        if not params.client_id:
            errors.append(f"{self.flow_type.value} flow requires 'client_id'")
        if not params.tenant_id:
            errors.append(f"{self.flow_type.value} flow requires 'tenant_id'")
        return errors
