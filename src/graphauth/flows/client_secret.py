"""Client credentials grant with a shared secret (:rfc:`6749` section 4.4).

Server-to-server authentication with no user present. There is no refresh
token: a refresh simply repeats the grant with the stored secret.
"""

from __future__ import annotations

from graphauth.flows.base import TokenEndpointFlow
from graphauth.models import (
    ClientSecretParams,
    ConnectionState,
    FlowType,
    TokenResponse,
)


class ClientSecretFlow(TokenEndpointFlow):
    """Exchange ``client_id`` + ``client_secret`` for an application token."""

    @property
    def flow_type(self) -> FlowType:
        return FlowType.CLIENT_SECRET

    def acquire(self, params: ClientSecretParams) -> TokenResponse:
        return self._request(
            self._config.token_endpoint(params.tenant_id),
            params.client_id,
            params.client_secret.get_secret_value(),
            self.app_scopes(params.scopes),
        )

    def refresh(self, state: ConnectionState) -> TokenResponse:
        """Repeat the grant with the secret stored on the connection."""
        secret = state.client_secret.get_secret_value() if state.client_secret else ""
        return self._request(
            state.token_endpoint or self._config.token_endpoint(state.tenant_id or ""),
            state.client_id or "",
            secret,
            state.scopes or self.app_scopes(None),
        )

    def build_state(self, params: ClientSecretParams, response: TokenResponse) -> ConnectionState:
        return ConnectionState(
            token_endpoint=self._config.token_endpoint(params.tenant_id),
            client_id=params.client_id,
            tenant_id=params.tenant_id,
            scopes=self.app_scopes(params.scopes),
            client_secret=params.client_secret,
        )

    def validate_params(self, params: ClientSecretParams) -> list[str]:
        errors: list[str] = []
        if not params.client_id:
            errors.append("client_secret flow requires 'client_id'")
        if not params.tenant_id:
            errors.append("client_secret flow requires 'tenant_id'")
        if not params.client_secret.get_secret_value():
            errors.append("client_secret flow requires a non-empty 'client_secret'")
        return errors

    def _request(
        self, endpoint: str, client_id: str, client_secret: str, scope: str
    ) -> TokenResponse:
        form = {
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_secret": client_secret,
            "scope": scope,
        }
        return self._token_client.request_token(endpoint, form)
