"""Connection manager -- owner of the live connection and its headers.

:class:`ConnectionManager` holds the single :class:`~graphauth.models.ConnectionState`
and the :class:`~graphauth.auth.base.AuthHeaderSet` derived from it. All
mutation goes through :meth:`~ConnectionManager.connect`,
:meth:`~ConnectionManager.refresh_if_needed` and
:meth:`~ConnectionManager.disconnect`, each performed under one re-entrant
lock so that two refreshes can never race on the refresh token.

State is only published after a flow has fully succeeded: callers never
observe a half-populated connection.

Typical usage::

    manager = ConnectionManager(create_default_manager(config), config)
    manager.connect(ClientSecretParams(client_id=..., tenant_id=..., client_secret=...))
    manager.refresh_if_needed()
    headers = manager.headers.as_dict()
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

from pydantic import TypeAdapter, ValidationError

from graphauth.auth import codec
from graphauth.auth.base import AuthHeaderSet
from graphauth.auth.manager import FlowManager, create_default_manager
from graphauth.exceptions import (
    GraphAuthError,
    InvalidUsageError,
    MalformedTokenError,
    NotConnectedError,
    RefreshUnavailableError,
)
from graphauth.models import (
    ConnectParams,
    ConnectionState,
    GlobalConfig,
    RefreshOutcome,
    TokenContext,
    TokenResponse,
)
from graphauth.output import debug, info, warning

EXPIRY_SKEW = timedelta(seconds=60)
FALLBACK_LIFETIME = 3600

_PARAMS_ADAPTER: TypeAdapter[Any] = TypeAdapter(ConnectParams)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConnectionManager:
    """Owns the connection state and request headers.

    Args:
        flows: Registry used to dispatch connects and refreshes. Defaults
            to :func:`~graphauth.auth.manager.create_default_manager`.
        config: Global configuration (refresh threshold).
    """

    def __init__(
        self,
        flows: Optional[FlowManager] = None,
        config: Optional[GlobalConfig] = None,
    ) -> None:
        self._config = config or GlobalConfig()
        self._flows = flows or create_default_manager(self._config)
        self._lock = threading.RLock()
        self._state: Optional[ConnectionState] = None
        self._headers: Optional[AuthHeaderSet] = None

    # ------------------------------------------------------------------ #
    # Read access
    # ------------------------------------------------------------------ #

    @property
    def is_connected(self) -> bool:
        with self._lock:
            return self._state is not None and self._headers is not None

    @property
    def state(self) -> Optional[ConnectionState]:
        """A copy of the live connection state, or ``None``."""
        with self._lock:
            return self._state.model_copy() if self._state is not None else None

    @property
    def headers(self) -> Optional[AuthHeaderSet]:
        with self._lock:
            return self._headers

    @property
    def context(self) -> Optional[TokenContext]:
        with self._lock:
            return self._state.context if self._state is not None else None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def connect(self, params: Union[ConnectParams, dict[str, Any]]) -> ConnectionState:
        """Run the flow selected by *params* and publish the resulting connection.

        Args:
            params: One of the ``*Params`` models, or a dict with a ``flow``
                key that validates into one.

        Returns:
            A copy of the new connection state.

        Raises:
            InvalidUsageError: If *params* are invalid for the selected flow.
            AuthError: If the flow fails. Any previous connection is kept.
        """
        if isinstance(params, dict):
            try:
                params = _PARAMS_ADAPTER.validate_python(params)
            except ValidationError as exc:
                raise InvalidUsageError(
                    f"Invalid connection parameters: {exc.error_count()} error(s)"
                ) from exc

        flow = self._flows.get_flow(params.flow)
        problems = flow.validate_params(params)
        if problems:
            raise InvalidUsageError("; ".join(problems))

        with self._lock:
            debug(f"Connecting with flow {flow.flow_type.value}")
            response = flow.acquire(params)
            context = _try_context(response.access_token)
            now = _utcnow()

            state = flow.build_state(params, response)
            state.token = response.access_token
            state.token_expiry = _expiry(now, response, context)
            state.refresh_token = response.refresh_token
            state.flow_type = flow.flow_type
            state.context = context

            self._state = state
            self._headers = AuthHeaderSet(response.access_token)

        if context is not None:
            info(f"Connected as {context.identity} ({context.token_type.value})")
        else:
            info(f"Connected with flow {flow.flow_type.value}")
        return state.model_copy()

    def refresh_if_needed(self, threshold_minutes: Optional[int] = None) -> RefreshOutcome:
        """Refresh the token when it expires within *threshold_minutes*.

        Refresh is best effort: a flow that cannot refresh produces a
        warning, and a failed refresh keeps the current token.

        Args:
            threshold_minutes: Remaining lifetime that triggers a refresh.
                Defaults to ``GlobalConfig.refresh_threshold_minutes``.

        Raises:
            NotConnectedError: If there is no active connection.
        """
        if threshold_minutes is None:
            threshold_minutes = self._config.refresh_threshold_minutes

        with self._lock:
            state = self._state
            if state is None or self._headers is None or state.flow_type is None:
                raise NotConnectedError("Not connected; call connect() first")

            now = _utcnow()
            expiry = state.token_expiry or now
            remaining = (expiry - now).total_seconds() / 60
            if remaining > threshold_minutes:
                return RefreshOutcome.SKIPPED

            debug(f"Token expires in {remaining:.1f} min; refreshing ({state.flow_type.value})")
            try:
                response = self._flows.get_flow(state.flow_type).refresh(state)
            except RefreshUnavailableError as exc:
                warning(str(exc))
                return RefreshOutcome.WARNED
            except GraphAuthError as exc:
                warning(
                    f"Token refresh failed ({type(exc).__name__}: {exc}); "
                    "continuing with the current token"
                )
                return RefreshOutcome.FAILED_KEPT_OLD

            context = _try_context(response.access_token) or state.context
            self._state = state.model_copy(
                update={
                    "token": response.access_token,
                    "token_expiry": _expiry(_utcnow(), response, context),
                    "refresh_token": response.refresh_token or state.refresh_token,
                    "context": context,
                }
            )
            self._headers.set_token(response.access_token)

        debug("Token refreshed")
        return RefreshOutcome.REFRESHED

    def disconnect(self) -> None:
        """Drop the connection and its headers. Safe to call when not connected."""
        with self._lock:
            if self._state is not None:
                for name in ConnectionState.model_fields:
                    setattr(self._state, name, None)
            self._state = None
            self._headers = None

    # ------------------------------------------------------------------ #
    # Custom headers
    # ------------------------------------------------------------------ #

    def set_header(self, name: str, value: str) -> None:
        with self._lock:
            self._require_headers().set(name, value)

    def remove_header(self, name: str) -> None:
        with self._lock:
            self._require_headers().remove(name)

    def _require_headers(self) -> AuthHeaderSet:
        if self._headers is None:
            raise NotConnectedError("Not connected; call connect() first")
        return self._headers


def _try_context(token: str) -> Optional[TokenContext]:
    try:
        return codec.extract_context(token)
    except MalformedTokenError as exc:
        debug(f"Token is not decodable ({exc}); using default expiry")
        return None


def _expiry(
    now: datetime, response: TokenResponse, context: Optional[TokenContext]
) -> datetime:
    """``now + lifetime - 60s``; lifetime from the response, the ``exp`` claim, or one hour."""
    if response.expires_in is not None:
        lifetime = timedelta(seconds=response.expires_in)
    elif context is not None and context.expires_at is not None:
        lifetime = context.expires_at - now
    else:
        lifetime = timedelta(seconds=FALLBACK_LIFETIME)
    return now + lifetime - EXPIRY_SKEW
