"""Credential acquisition flows.

One :class:`~graphauth.auth.base.FlowStrategy` per
:class:`~graphauth.models.FlowType`. They are registered with a
:class:`~graphauth.auth.manager.FlowManager` by
:func:`~graphauth.auth.manager.create_default_manager`.
"""

from graphauth.flows.client_certificate import ClientCertificateFlow
from graphauth.flows.client_secret import ClientSecretFlow
from graphauth.flows.device_code import DeviceCodeFlow
from graphauth.flows.interactive import InteractiveFlow, generate_pkce_pair
from graphauth.flows.managed_identity import ManagedIdentityFlow
from graphauth.flows.token import BearerTokenFlow

__all__ = [
    "BearerTokenFlow",
    "ClientCertificateFlow",
    "ClientSecretFlow",
    "DeviceCodeFlow",
    "InteractiveFlow",
    "ManagedIdentityFlow",
    "generate_pkce_pair",
]
