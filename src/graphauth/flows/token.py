"""Bring-your-own bearer token.

No acquisition takes place: the caller's token is used as-is. Its expiry is
read from the ``exp`` claim when the token can be decoded, and assumed to
be one hour otherwise. A static token cannot be refreshed.
"""

from __future__ import annotations

from graphauth.auth.base import FlowStrategy
from graphauth.exceptions import RefreshUnavailableError
from graphauth.models import ConnectionState, FlowType, TokenParams, TokenResponse


class BearerTokenFlow(FlowStrategy):
    """Wrap a caller-supplied token in a :class:`~graphauth.models.TokenResponse`."""

    @property
    def flow_type(self) -> FlowType:
        return FlowType.TOKEN

    def acquire(self, params: TokenParams) -> TokenResponse:
        return TokenResponse(access_token=params.token.get_secret_value().strip())

    def refresh(self, state: ConnectionState) -> TokenResponse:
        raise RefreshUnavailableError(
            "A supplied token cannot be refreshed; continuing with the current token. "
            "Connect again with a new token before it expires."
        )

    def validate_params(self, params: TokenParams) -> list[str]:
        if not params.token.get_secret_value().strip():
            return ["token flow requires a non-empty 'token'"]
        return []
