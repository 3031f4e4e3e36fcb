"""Flow strategy base class and the request header set.

This module defines the two foundational types of the auth subsystem:

- :class:`AuthHeaderSet` -- the ordered header mapping injected into every
  API request. It always holds ``Authorization`` and ``Content-Type`` and
  may carry caller-added custom entries that survive token refresh.
- :class:`FlowStrategy` -- the abstract base class every credential
  acquisition flow extends.

To implement a new flow, subclass :class:`FlowStrategy`, set
:attr:`~FlowStrategy.flow_type`, and implement :meth:`~FlowStrategy.acquire`
and :meth:`~FlowStrategy.refresh`. Override :meth:`~FlowStrategy.build_state`
to record the parameters a later refresh will need.

See Also:
    :mod:`graphauth.auth.manager` for flow registration and dispatch.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterator, Optional

from graphauth.exceptions import InvalidUsageError
from graphauth.models import ConnectionState, FlowType, TokenResponse

AUTHORIZATION = "Authorization"
CONTENT_TYPE = "Content-Type"
_RESERVED = (AUTHORIZATION, CONTENT_TYPE)


class AuthHeaderSet:
    """Ordered header name -> value mapping for authenticated requests.

    Only :meth:`set_token` touches the ``Authorization`` entry, so custom
    headers added through :meth:`set` survive a refresh.

    Args:
        token: The current bearer token.
        content_type: Default request content type.

    Example::

        headers = AuthHeaderSet("eyJ...")
        headers.set("ConsistencyLevel", "eventual")
        headers.as_dict()
        # {"Authorization": "Bearer eyJ...", "Content-Type": "application/json",
        #  "ConsistencyLevel": "eventual"}
    """

    def __init__(self, token: str, content_type: str = "application/json") -> None:
        self._headers: dict[str, str] = {
            AUTHORIZATION: f"Bearer {token}",
            CONTENT_TYPE: content_type,
        }

    def _key(self, name: str) -> str:
        # Header names compare case-insensitively; the first spelling is kept.
        folded = name.casefold()
        return next((k for k in self._headers if k.casefold() == folded), name)

    def set_token(self, token: str) -> None:
        self._headers[AUTHORIZATION] = f"Bearer {token}"

    def set(self, name: str, value: str) -> None:
        """Add or replace a custom header. ``Authorization`` is managed by the connection."""
        key = self._key(name)
        if key == AUTHORIZATION:
            raise InvalidUsageError("The Authorization header is managed by the connection")
        self._headers[key] = value

    def remove(self, name: str) -> None:
        """Remove a custom header; removing an absent name is a no-op."""
        key = self._key(name)
        if key in _RESERVED:
            raise InvalidUsageError(f"The {key} header cannot be removed")
        self._headers.pop(key, None)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._headers.get(self._key(name), default)

    def as_dict(self) -> dict[str, str]:
        return dict(self._headers)

    def __getitem__(self, name: str) -> str:
        return self._headers[self._key(name)]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._key(name) in self._headers

    def __iter__(self) -> Iterator[str]:
        return iter(self._headers)

    def __len__(self) -> int:
        return len(self._headers)

    def __repr__(self) -> str:
        # Values are omitted: Authorization carries the token.
        return f"AuthHeaderSet({list(self._headers)!r})"


class FlowStrategy(ABC):
    """Abstract base class for credential acquisition flows.

    Every concrete flow must provide:

    1. :attr:`flow_type` -- the :class:`~graphauth.models.FlowType` it handles.
    2. :meth:`acquire` -- run the flow for a set of connect parameters and
       return a normalized :class:`~graphauth.models.TokenResponse`.
    3. :meth:`refresh` -- obtain a new token from a live
       :class:`~graphauth.models.ConnectionState`.

    Flows are registered with :class:`~graphauth.auth.manager.FlowManager`
    and looked up by flow type when connecting and refreshing.
    """

    @property
    @abstractmethod
    def flow_type(self) -> FlowType:
        ...

    @abstractmethod
    def acquire(self, params) -> TokenResponse:
        """Run the flow and return the token response.

        Args:
            params: The :data:`~graphauth.models.ConnectParams` variant
                matching :attr:`flow_type`.

        Raises:
            AuthError: If the flow fails.
        """
        ...

    @abstractmethod
    def refresh(self, state: ConnectionState) -> TokenResponse:
        """Obtain a fresh token for an existing connection.

        Raises:
            RefreshUnavailableError: If this flow has nothing to refresh with.
            AuthError: If the refresh exchange fails.
        """
        ...

    def build_state(self, params, response: TokenResponse) -> ConnectionState:
        """Return the refresh parameters to store alongside the token.

        The connection manager fills in ``token``, ``token_expiry``,
        ``refresh_token``, ``flow_type`` and ``context`` itself.
        """
        return ConnectionState()

    def validate_params(self, params) -> list[str]:
        """Return human-readable problems with *params*; empty when valid."""
        return []
