"""Token acquisition and lifecycle for graphauth.

The main entry points are:

- :class:`FlowStrategy` -- abstract base class for credential flows.
- :class:`FlowManager` -- registry mapping flow types to strategies.
- :func:`create_default_manager` -- a :class:`FlowManager` with every
  built-in flow registered.
- :class:`ConnectionManager` -- owns the live connection, refreshes it, and
  exposes the :class:`AuthHeaderSet` the request executor sends.

Typical usage::

    from graphauth.auth import ConnectionManager, create_default_manager

    connection = ConnectionManager(create_default_manager(config), config)
    connection.connect(params)
"""

from graphauth.auth.base import AuthHeaderSet, FlowStrategy
from graphauth.auth.connection import ConnectionManager
from graphauth.auth.manager import FlowManager, create_default_manager
from graphauth.auth.token_endpoint import TokenEndpointClient

__all__ = [
    "AuthHeaderSet",
    "ConnectionManager",
    "FlowManager",
    "FlowStrategy",
    "TokenEndpointClient",
    "create_default_manager",
]
