"""Authorization code flow with PKCE in the user's default browser.

This module provides :class:`InteractiveFlow`, which implements the
``interactive`` flow type (:rfc:`7636`):

1. Generates a PKCE verifier/challenge pair and an opaque ``state`` value.
2. Starts a one-shot HTTP responder on an ephemeral loopback port.
3. Opens the authorize endpoint in the browser with ``prompt=select_account``.
4. Waits for the single redirect, validates ``state`` and exchanges the code.

The responder is closed on every exit path. Waiting is bounded by
``redirect_timeout`` (``GlobalConfig.interactive_timeout`` by default).

Also exports :func:`generate_pkce_pair`.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import threading
import webbrowser
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Optional
from urllib.parse import parse_qs, urlencode, urlparse

from graphauth.auth.codec import b64url_encode
from graphauth.exceptions import AuthError, AuthorizationError, CsrfValidationError
from graphauth.flows.base import DelegatedFlow
from graphauth.models import FlowType, InteractiveParams, TokenResponse
from graphauth.output import debug, info

_CONFIRMATION_PAGE = (
    "<html><body><h2>Sign-in complete. You can close this window "
    "and return to the terminal.</h2></body></html>"
)


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge (S256).

    Returns:
        A tuple of ``(code_verifier, code_challenge)``.
    """
    code_verifier = b64url_encode(secrets.token_bytes(32))
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    code_challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return code_verifier, code_challenge


class InteractiveFlow(DelegatedFlow):
    """Sign a user in through the browser and redeem the authorization code."""

    @property
    def flow_type(self) -> FlowType:
        return FlowType.INTERACTIVE

    def acquire(self, params: InteractiveParams) -> TokenResponse:
        """Run the browser round-trip and return the redeemed tokens.

        Raises:
            CsrfValidationError: If the redirect's ``state`` does not match.
            AuthorizationError: If the provider redirects back with ``error``.
            AuthError: If no redirect arrives before the timeout.
            TokenRequestError: If the code exchange fails.
        """
        code_verifier, code_challenge = generate_pkce_pair()
        state = secrets.token_urlsafe(32)
        scope = self.delegated_scopes(params.scopes)
        timeout = params.redirect_timeout or self._config.interactive_timeout

        server = self._start_responder()
        try:
            redirect_uri = f"http://localhost:{server.server_address[1]}/"
            query = {
                "client_id": params.client_id,
                "response_type": "code",
                "redirect_uri": redirect_uri,
                "response_mode": "query",
                "scope": scope,
                "state": state,
                "code_challenge": code_challenge,
                "code_challenge_method": "S256",
                "prompt": "select_account",
            }
            auth_url = f"{self._config.authorize_endpoint(params.tenant_id)}?{urlencode(query)}"
            result = self._wait_for_redirect(server, auth_url, timeout)
        finally:
            server.server_close()

        if result.get("state") != state:
            raise CsrfValidationError(
                "Redirect state does not match the authorization request; "
                "the sign-in was not completed"
            )
        if result.get("error"):
            raise AuthorizationError(result["error"], result.get("error_description"))
        if not result.get("code"):
            raise AuthError("No authorization code received from the redirect")

        form = {
            "grant_type": "authorization_code",
            "client_id": params.client_id,
            "code": result["code"],
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
            "scope": scope,
        }
        return self._token_client.request_token(
            self._config.token_endpoint(params.tenant_id), form
        )

    @staticmethod
    def _start_responder() -> HTTPServer:
        """Bind the redirect responder to a free loopback port."""
        received: dict[str, Optional[str]] = {}

        class RedirectHandler(BaseHTTPRequestHandler):
            def do_GET(self) -> None:
                self.server.redirected = True  # type: ignore[attr-defined]
                params = parse_qs(urlparse(self.path).query)
                for key in ("code", "state", "error", "error_description"):
                    if key in params:
                        received[key] = params[key][0]

                body = _CONFIRMATION_PAGE.encode("utf-8")
                self.send_response(200)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def log_message(self, format: str, *args: Any) -> None:
                pass

        server = HTTPServer(("127.0.0.1", 0), RedirectHandler)
        server.received = received  # type: ignore[attr-defined]
        server.redirected = False  # type: ignore[attr-defined]
        return server

    @staticmethod
    def _wait_for_redirect(
        server: HTTPServer, auth_url: str, timeout: float
    ) -> dict[str, Optional[str]]:
        """Open the browser and block until one redirect request is handled.

        Raises:
            AuthError: If nothing arrives within *timeout* seconds.
        """
        server.timeout = timeout
        port = server.server_address[1]
        debug(f"Waiting for redirect on 127.0.0.1:{port} (timeout {timeout:.0f}s)")
        info("Opening the sign-in page in your browser...")

        browser_thread = threading.Thread(
            target=webbrowser.open, args=(auth_url,), daemon=True
        )
        browser_thread.start()

        server.handle_request()

        if not server.redirected:  # type: ignore[attr-defined]
            raise AuthError(f"No browser redirect received within {timeout:.0f} seconds")
        return server.received  # type: ignore[attr-defined]

    def validate_params(self, params: InteractiveParams) -> list[str]:
        errors = super().validate_params(params)
        if params.redirect_timeout is not None and params.redirect_timeout <= 0:
            errors.append("interactive flow 'redirect_timeout' must be positive")
        return errors
