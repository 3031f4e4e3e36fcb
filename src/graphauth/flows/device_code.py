"""Device authorization grant (:rfc:`8628`) for browser-less terminals.

For SSH sessions, containers and CI runners where no browser can be opened
locally.

Flow:
    1. POST to the ``devicecode`` endpoint for a ``device_code`` and
       ``user_code``.
    2. Print "go to {verification_uri} and enter {user_code}" on stderr.
    3. Poll the token endpoint until the user finishes, declines, or the
       polling window closes.

Each poll returns a :class:`~graphauth.models.PollResult`; the loop below
is a plain state machine over its status.
"""

from __future__ import annotations

import time

from graphauth.exceptions import (
    AccessDeniedError,
    DeviceCodeTimeoutError,
    TokenRequestError,
)
from graphauth.flows.base import DelegatedFlow
from graphauth.models import (
    DeviceCodeParams,
    DeviceCodeResponse,
    FlowType,
    PollResult,
    PollStatus,
    TokenResponse,
)
from graphauth.output import debug, info, prompt

DEVICE_CODE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"

SLOW_DOWN_INCREMENT = 5


class DeviceCodeFlow(DelegatedFlow):
    """Sign a user in on a second device while this process polls."""

    @property
    def flow_type(self) -> FlowType:
        return FlowType.DEVICE_CODE

    def acquire(self, params: DeviceCodeParams) -> TokenResponse:
        """Request a device code, show it to the user, and poll for the token.

        Raises:
            DeviceCodeTimeoutError: If the code expires or the polling
                window elapses.
            AccessDeniedError: If the user declines.
            TokenRequestError: For any other provider error.
        """
        scope = self.delegated_scopes(params.scopes)
        device = self._token_client.request_device_code(
            self._config.device_code_endpoint(params.tenant_id),
            params.client_id,
            scope,
        )
        self._display_user_code(device)

        timeout = params.timeout or self._config.device_code_timeout
        form = {
            "grant_type": DEVICE_CODE_GRANT,
            "client_id": params.client_id,
            "device_code": device.device_code,
        }
        return self._poll_for_token(
            self._config.token_endpoint(params.tenant_id), form, device.interval, timeout
        )

    @staticmethod
    def _display_user_code(device: DeviceCodeResponse) -> None:
        prompt("")
        prompt(f"Go to: {device.verification_uri}")
        prompt(f"Enter code: {device.user_code}")
        info("Waiting for authorization...")

    def _poll_for_token(
        self,
        endpoint: str,
        form: dict[str, str],
        interval: int,
        timeout: float,
    ) -> TokenResponse:
        """Poll *endpoint* every *interval* seconds until *timeout* elapses.

        ``authorization_pending`` keeps the interval, ``slow_down`` grows it
        by five seconds, and any other error ends the flow.
        """
        deadline = time.monotonic() + timeout
        poll_interval = max(interval, 1)

        while time.monotonic() < deadline:
            time.sleep(poll_interval)
            result = self._token_client.poll_token(endpoint, form)

            if result.status == PollStatus.SUCCESS and result.token is not None:
                return result.token
            if result.status == PollStatus.PENDING:
                continue
            if result.status == PollStatus.SLOW_DOWN:
                poll_interval += SLOW_DOWN_INCREMENT
                debug(f"Provider asked to slow down; polling every {poll_interval}s")
                continue
            raise self._fatal(result)

        raise DeviceCodeTimeoutError(
            f"Device code sign-in was not completed within {timeout:.0f} seconds"
        )

    @staticmethod
    def _fatal(result: PollResult) -> Exception:
        if result.error_code == "expired_token":
            return DeviceCodeTimeoutError("Device code expired before sign-in completed")
        if result.error_code == "access_denied":
            return AccessDeniedError("Authorization was declined by the user")
        if result.error_code:
            return TokenRequestError.from_envelope(result.error_code, result.error_description)
        return TokenRequestError(result.error_description or "Device code polling failed")

    def validate_params(self, params: DeviceCodeParams) -> list[str]:
        errors = super().validate_params(params)
        if params.timeout is not None and params.timeout <= 0:
            errors.append("device_code flow 'timeout' must be positive")
        return errors
