"""Token endpoint client -- the single chokepoint for identity provider exchanges.

Every grant that ends at the provider's ``/token`` endpoint goes through
:class:`TokenEndpointClient`: authorization-code redemption, refresh,
client credentials (secret or assertion) and device-code polling. Responses
are normalized into :class:`~graphauth.models.TokenResponse`, and failures
into :class:`~graphauth.exceptions.TokenRequestError` carrying the
provider's ``error`` / ``error_description`` envelope when one is present.

Only the grant type and the endpoint are ever logged. Form values carry
secrets, codes and refresh tokens.

See Also:
    :mod:`graphauth.flows` -- the strategies that build the form parameters.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from pydantic import ValidationError

from graphauth.exceptions import TokenRequestError
from graphauth.models import (
    DeviceCodeResponse,
    PollResult,
    PollStatus,
    TokenResponse,
)
from graphauth.output import debug

_PENDING_CODES = {"authorization_pending": PollStatus.PENDING, "slow_down": PollStatus.SLOW_DOWN}


class TokenEndpointClient:
    """Posts form-encoded grants to a token endpoint.

    Args:
        timeout: Per-request timeout in seconds.
        verify_ssl: Verify the provider's TLS certificate.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`
            in tests.

    Example::

        client = TokenEndpointClient()
        token = client.request_token(
            "https://login.microsoftonline.com/contoso/oauth2/v2.0/token",
            {"grant_type": "client_credentials", "client_id": "...", ...},
        )
    """

    def __init__(
        self,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._transport = transport

    def request_token(self, endpoint: str, form: dict[str, str]) -> TokenResponse:
        """Exchange *form* at *endpoint* for a token.

        Args:
            endpoint: The token endpoint URL.
            form: Form parameters including ``grant_type``.

        Returns:
            The normalized token response.

        Raises:
            TokenRequestError: On transport failure, a non-2xx response, or
                a success body without ``access_token``.
        """
        response = self._post(endpoint, form)
        if not response.is_success:
            raise self._error_from_response(response)
        return self._parse_token(response)

    def poll_token(self, endpoint: str, form: dict[str, str]) -> PollResult:
        """Run one device-code polling attempt without raising for provider errors.

        ``authorization_pending`` and ``slow_down`` map to their own
        statuses; every other failure (including transport errors) is
        reported as :attr:`~graphauth.models.PollStatus.FATAL`.
        """
        try:
            response = self._post(endpoint, form)
        except TokenRequestError as exc:
            return PollResult(status=PollStatus.FATAL, error_description=str(exc))

        if response.is_success:
            try:
                return PollResult(status=PollStatus.SUCCESS, token=self._parse_token(response))
            except TokenRequestError as exc:
                return PollResult(status=PollStatus.FATAL, error_description=str(exc))

        error = self._error_from_response(response)
        status = _PENDING_CODES.get(error.code or "", PollStatus.FATAL)
        return PollResult(
            status=status,
            error_code=error.code,
            error_description=error.description or str(error),
        )

    def request_device_code(
        self, endpoint: str, client_id: str, scope: str
    ) -> DeviceCodeResponse:
        """Start a device authorization (:rfc:`8628` section 3.1).

        Raises:
            TokenRequestError: On failure or an incomplete response.
        """
        response = self._post(endpoint, {"client_id": client_id, "scope": scope})
        if not response.is_success:
            raise self._error_from_response(response)
        try:
            return DeviceCodeResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise TokenRequestError(
                f"Device authorization response from {endpoint} is incomplete"
            ) from exc

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _post(self, endpoint: str, form: dict[str, str]) -> httpx.Response:
        grant = form.get("grant_type", "device_authorization")
        debug(f"Token request: grant_type={grant} endpoint={endpoint}")
        try:
            with httpx.Client(
                timeout=self._timeout,
                verify=self._verify_ssl,
                transport=self._transport,
            ) as client:
                response = client.post(
                    endpoint, data=form, headers={"Accept": "application/json"}
                )
                response.read()
                return response
        except httpx.HTTPError as exc:
            raise TokenRequestError(
                f"Token request to {endpoint} failed: {type(exc).__name__}: {exc}"
            ) from exc

    @staticmethod
    def _parse_token(response: httpx.Response) -> TokenResponse:
        try:
            data: Any = response.json()
        except ValueError as exc:
            raise TokenRequestError("Token response is not valid JSON") from exc
        if not isinstance(data, dict) or "access_token" not in data:
            raise TokenRequestError("Token response missing 'access_token' field")
        try:
            return TokenResponse.model_validate(data)
        except ValidationError as exc:
            raise TokenRequestError(f"Token response is malformed: {exc.error_count()} error(s)") from exc

    @staticmethod
    def _error_from_response(response: httpx.Response) -> TokenRequestError:
        """Build a :class:`TokenRequestError` from a failed response.

        Prefers the provider's ``{error, error_description}`` envelope and
        falls back to the status line and a truncated body.
        """
        try:
            body: Any = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and isinstance(body.get("error"), str):
            return TokenRequestError.from_envelope(body["error"], body.get("error_description"))

        text = response.text[:200] if response.text else ""
        message = f"HTTP {response.status_code}"
        if text:
            message += f": {text}"
        return TokenRequestError(message)
