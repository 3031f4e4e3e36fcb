"""Flow manager -- registry and dispatcher for credential flows.

The :class:`FlowManager` maps each :class:`~graphauth.models.FlowType` to a
concrete :class:`~graphauth.auth.base.FlowStrategy`. The connection manager
asks it for the strategy matching a connect selector or, on refresh, the
flow type stored on the live connection.

For most use cases, call :func:`create_default_manager` to get a manager
pre-loaded with every built-in flow.

See Also:
    :class:`~graphauth.auth.connection.ConnectionManager` -- the consumer.
"""

from __future__ import annotations

from typing import Optional

import httpx

from graphauth.auth.base import FlowStrategy
from graphauth.auth.token_endpoint import TokenEndpointClient
from graphauth.exceptions import AuthError
from graphauth.models import FlowType, GlobalConfig


class FlowManager:
    """Registry of flow strategies keyed by :class:`~graphauth.models.FlowType`.

    Example::

        from graphauth.auth import FlowManager
        from graphauth.flows import BearerTokenFlow

        manager = FlowManager()
        manager.register(BearerTokenFlow())
        flow = manager.get_flow(FlowType.TOKEN)
    """

    def __init__(self) -> None:
        self._flows: dict[FlowType, FlowStrategy] = {}

    def register(self, flow: FlowStrategy) -> None:
        """Register *flow*, replacing any flow already registered for its type."""
        self._flows[flow.flow_type] = flow

    def get_flow(self, flow_type: FlowType) -> FlowStrategy:
        """Return the strategy registered for *flow_type*.

        Raises:
            AuthError: If no strategy is registered for *flow_type*.
        """
        flow = self._flows.get(flow_type)
        if flow is None:
            available = ", ".join(sorted(t.value for t in self._flows)) or "(none)"
            raise AuthError(
                f"No flow registered for type '{FlowType(flow_type).value}'. "
                f"Available types: {available}"
            )
        return flow

    def list_types(self) -> list[str]:
        """Return the identifiers of all registered flow types, sorted."""
        return sorted(t.value for t in self._flows)


def create_default_manager(
    config: Optional[GlobalConfig] = None,
    token_client: Optional[TokenEndpointClient] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> FlowManager:
    """Create a :class:`FlowManager` with all built-in flows registered.

    Args:
        config: Global configuration shared by every flow.
        token_client: Token endpoint client shared by every flow. Built
            from *config* (and *transport*) when omitted.
        transport: Optional httpx transport for all outbound identity
            traffic, e.g. :class:`httpx.MockTransport` in tests.

    Returns:
        A fully initialised :class:`FlowManager`.
    """
    from graphauth.flows import (
        BearerTokenFlow,
        ClientCertificateFlow,
        ClientSecretFlow,
        DeviceCodeFlow,
        InteractiveFlow,
        ManagedIdentityFlow,
    )

    config = config or GlobalConfig()
    if token_client is None:
        token_client = TokenEndpointClient(
            timeout=config.request.timeout,
            verify_ssl=config.request.verify_ssl,
            transport=transport,
        )

    manager = FlowManager()
    manager.register(InteractiveFlow(config, token_client))
    manager.register(DeviceCodeFlow(config, token_client))
    manager.register(ClientSecretFlow(config, token_client))
    manager.register(ClientCertificateFlow(config, token_client))
    manager.register(ManagedIdentityFlow(config, token_client, transport=transport))
    manager.register(BearerTokenFlow())
    return manager
