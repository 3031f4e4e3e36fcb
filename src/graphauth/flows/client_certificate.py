"""Client credentials grant authenticated by a certificate (:rfc:`7523`).

Instead of a shared secret, each exchange presents a freshly signed client
assertion (see :mod:`graphauth.auth.assertion`). Refresh signs a new
assertion every time; assertions are never reused.
"""

from __future__ import annotations

from graphauth.auth.assertion import CLIENT_ASSERTION_TYPE, build_client_assertion
from graphauth.certificate import ClientCertificate
from graphauth.exceptions import MissingPrivateKeyError
from graphauth.flows.base import TokenEndpointFlow
from graphauth.models import (
    ClientCertificateParams,
    ConnectionState,
    FlowType,
    TokenResponse,
)
from graphauth.output import debug


class ClientCertificateFlow(TokenEndpointFlow):
    """Exchange a signed client assertion for an application token."""

    @property
    def flow_type(self) -> FlowType:
        return FlowType.CLIENT_CERTIFICATE

    def acquire(self, params: ClientCertificateParams) -> TokenResponse:
        """Sign an assertion with *params.certificate* and redeem it.

        Raises:
            MissingPrivateKeyError: If the certificate has no private key.
            TokenRequestError: If the provider rejects the assertion.
        """
        return self._request(
            params.client_id,
            params.tenant_id,
            params.certificate,
            self.app_scopes(params.scopes),
        )

    def refresh(self, state: ConnectionState) -> TokenResponse:
        if state.client_certificate is None:
            raise MissingPrivateKeyError("No client certificate stored for this connection")
        return self._request(
            state.client_id or "",
            state.tenant_id or "",
            state.client_certificate,
            state.scopes or self.app_scopes(None),
        )

    def build_state(
        self, params: ClientCertificateParams, response: TokenResponse
    ) -> ConnectionState:
        return ConnectionState(
            token_endpoint=self._config.token_endpoint(params.tenant_id),
            client_id=params.client_id,
            tenant_id=params.tenant_id,
            scopes=self.app_scopes(params.scopes),
            client_certificate=params.certificate,
        )

    def validate_params(self, params: ClientCertificateParams) -> list[str]:
        errors: list[str] = []
        if not params.client_id:
            errors.append("client_certificate flow requires 'client_id'")
        if not params.tenant_id:
            errors.append("client_certificate flow requires 'tenant_id'")
        if not params.certificate.has_private_key:
            errors.append("client_certificate flow requires a certificate with a private key")
        return errors

    def _request(
        self,
        client_id: str,
        tenant_id: str,
        certificate: ClientCertificate,
        scope: str,
    ) -> TokenResponse:
        endpoint = self._config.token_endpoint(tenant_id)
        assertion = build_client_assertion(
            client_id, tenant_id, certificate, audience=endpoint
        )
        debug(f"Signed client assertion with certificate thumbprint {certificate.thumbprint().hex()}")
        form = {
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_assertion_type": CLIENT_ASSERTION_TYPE,
            "client_assertion": assertion,
            "scope": scope,
        }
        return self._token_client.request_token(endpoint, form)
