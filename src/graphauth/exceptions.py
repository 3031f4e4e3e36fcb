"""Exception hierarchy for graphauth.

All exceptions inherit from :class:`GraphAuthError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`graphauth.exit_codes`.
The top-level error handler in :func:`graphauth.app.main` catches
``GraphAuthError`` and exits with the appropriate code.

Messages never include token values, client secrets, or key material -- only
diagnostic metadata such as the grant type, endpoint, or status code.

Subclass hierarchy::

    GraphAuthError (exit 1)
    +-- InvalidUsageError        (exit 2)
    +-- ConfigError              (exit 1)
    +-- AuthError                (exit 3)
    |   +-- MalformedTokenError
    |   +-- MissingPrivateKeyError
    |   +-- TokenRequestError
    |   +-- CsrfValidationError
    |   +-- AuthorizationError
    |   +-- DeviceCodeTimeoutError
    |   +-- AccessDeniedError
    |   +-- RefreshUnavailableError
    |   +-- ManagedIdentityError
    |       +-- EnvironmentMismatchError
    +-- NotConnectedError        (exit 3)
    +-- RequestError             (exit 5)
    +-- ConnectionError_         (exit 6)
"""

from __future__ import annotations

from typing import Optional

from graphauth.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_REQUEST_FAILURE,
)


class GraphAuthError(Exception):
    """Base exception for all graphauth errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`graphauth.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(GraphAuthError):
    """Raised for invalid CLI arguments or missing required flow parameters."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(GraphAuthError):
    """Raised for configuration problems (missing profiles, invalid JSON, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE


class AuthError(GraphAuthError):
    """Raised when a token cannot be acquired or refreshed."""

    exit_code = EXIT_AUTH_FAILURE


class MalformedTokenError(AuthError):
    """Raised when a bearer token cannot be decoded for introspection.

    Recoverable: callers fall back to default expiry assumptions.
    """


class MissingPrivateKeyError(AuthError):
    """Raised when a client certificate carries no usable private key."""


class TokenRequestError(AuthError):
    """Raised when the identity provider's token endpoint rejects a request.

    Args:
        message: Raw diagnostic message used when no error envelope was found.
        code: The provider's ``error`` value, if one could be parsed.
        description: The provider's ``error_description`` value.
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        description: Optional[str] = None,
    ):
        super().__init__(message)
        self.code = code
        self.description = description

    @classmethod
    def from_envelope(cls, code: str, description: Optional[str]) -> TokenRequestError:
        """Build an error from a parsed ``{error, error_description}`` envelope."""
        message = f"{code}: {description}" if description else code
        return cls(message, code=code, description=description)


class CsrfValidationError(AuthError):
    """Raised when the redirect ``state`` does not match the value sent to the provider."""


class AuthorizationError(AuthError):
    """Raised when the authorize endpoint redirects back with an ``error``."""

    def __init__(self, code: str, description: Optional[str] = None):
        message = f"Authorization failed: {code}"
        if description:
            message += f" - {description}"
        super().__init__(message)
        self.code = code
        self.description = description


class DeviceCodeTimeoutError(AuthError):
    """Raised when a device code expires before the user completes sign-in."""


class AccessDeniedError(AuthError):
    """Raised when the user declines a device-code authorization request."""


class RefreshUnavailableError(AuthError):
    """Raised by a flow that has nothing to refresh with (no refresh token, static token)."""


class ManagedIdentityError(AuthError):
    """Raised when the managed-identity endpoint fails to issue a token."""


class EnvironmentMismatchError(ManagedIdentityError):
    """Raised when no managed-identity endpoint is reachable from this host.

    Usually means the process is not running on a managed-identity-capable
    compute resource.
    """


class NotConnectedError(GraphAuthError):
    """Raised when a request is attempted without an active connection."""

    exit_code = EXIT_AUTH_FAILURE


class RequestError(GraphAuthError):
    """Raised when the target API rejects a write request.

    Args:
        status_code: HTTP status of the failing response.
        code: The API's error code from the response envelope.
        message: The API's error message.
    """

    exit_code = EXIT_REQUEST_FAILURE

    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(f"HTTP {status_code} {code}: {message}")
        self.status_code = status_code
        self.code = code
        self.error_message = message


class ConnectionError_(GraphAuthError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR
