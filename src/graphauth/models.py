"""Canonical Pydantic models shared across all graphauth modules.

The models fall into three groups:

**Token models** -- what the identity provider returns and what is derived
from it:
    :class:`TokenResponse`, :class:`DeviceCodeResponse`, :class:`TokenContext`,
    :class:`DecodedToken`.

**Connection models** -- the flow selector union and the live connection:
    :class:`FlowType`, the ``*Params`` variants combined in
    :data:`ConnectParams`, :class:`ConnectionState`, :class:`RefreshOutcome`.

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`RequestConfig`, :class:`OutputConfig`, :class:`GlobalConfig`,
    :class:`Profile`.

All models use Pydantic v2. Secret-bearing fields are either
:class:`~pydantic.SecretStr` or declared with ``repr=False`` so that they
never appear in diagnostics.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from graphauth.certificate import ClientCertificate


# --- Enumerations ---


class FlowType(str, enum.Enum):
    """The credential-acquisition strategy a connection was created with."""

    INTERACTIVE = "interactive"
    DEVICE_CODE = "device_code"
    CLIENT_SECRET = "client_secret"
    CLIENT_CERTIFICATE = "client_certificate"
    MANAGED_IDENTITY = "managed_identity"
    TOKEN = "token"


class TokenType(str, enum.Enum):
    """Whether a token acts on behalf of a user or as the application itself."""

    DELEGATED = "Delegated"
    APPLICATION = "Application"


class RefreshOutcome(str, enum.Enum):
    """Result of :meth:`~graphauth.auth.connection.ConnectionManager.refresh_if_needed`."""

    REFRESHED = "refreshed"
    SKIPPED = "skipped"
    WARNED = "warned"
    FAILED_KEPT_OLD = "failed_kept_old"


class PollStatus(str, enum.Enum):
    """Outcome of a single device-code polling attempt."""

    PENDING = "pending"
    SLOW_DOWN = "slow_down"
    SUCCESS = "success"
    FATAL = "fatal"


# --- Token models ---


class TokenResponse(BaseModel):
    """Normalized token endpoint response.

    Every flow, including managed identity, produces this shape. Provider
    specific extras (``ext_expires_in``, ``id_token``, ...) are preserved in
    ``model_extra``.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str = Field(repr=False)
    expires_in: Optional[int] = None
    token_type: str = "Bearer"
    refresh_token: Optional[str] = Field(default=None, repr=False)
    resource: Optional[str] = None
    scope: Optional[str] = None


class DeviceCodeResponse(BaseModel):
    """Device authorization endpoint response (:rfc:`8628` section 3.2)."""

    model_config = ConfigDict(extra="allow")

    device_code: str = Field(repr=False)
    user_code: str
    verification_uri: str
    interval: int = 5
    expires_in: int = 900
    message: Optional[str] = None


class DecodedToken(BaseModel):
    """Header and claims of a bearer token, decoded without verification."""

    header: dict[str, Any]
    payload: dict[str, Any]


class TokenContext(BaseModel):
    """Display-only projection of a token's claims.

    Recomputed on every decode and never used for authorization decisions.
    """

    identity: str = "Unknown"
    token_type: TokenType = TokenType.APPLICATION
    tenant_id: Optional[str] = None
    audience: Optional[str] = None
    scopes: str = "N/A"
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    app_id: Optional[str] = None


class PollResult(BaseModel):
    """One device-code poll, expressed as data instead of exceptions."""

    status: PollStatus
    token: Optional[TokenResponse] = None
    error_code: Optional[str] = None
    error_description: Optional[str] = None


# --- Flow parameters (tagged union) ---


class _FlowParams(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


class InteractiveParams(_FlowParams):
    """Authorization code + PKCE in the user's default browser."""

    flow: Literal[FlowType.INTERACTIVE] = FlowType.INTERACTIVE
    client_id: str
    tenant_id: str = "common"
    scopes: Optional[str] = None
    redirect_timeout: Optional[float] = Field(
        default=None, description="Seconds to wait for the browser redirect"
    )


class DeviceCodeParams(_FlowParams):
    """Device authorization grant for browser-less terminals."""

    flow: Literal[FlowType.DEVICE_CODE] = FlowType.DEVICE_CODE
    client_id: str
    tenant_id: str = "common"
    scopes: Optional[str] = None
    timeout: Optional[float] = Field(
        default=None, description="Total seconds to poll before giving up"
    )


class ClientSecretParams(_FlowParams):
    """Client credentials grant with a shared secret."""

    flow: Literal[FlowType.CLIENT_SECRET] = FlowType.CLIENT_SECRET
    client_id: str
    tenant_id: str
    client_secret: SecretStr
    scopes: Optional[str] = None


class ClientCertificateParams(_FlowParams):
    """Client credentials grant with a certificate-signed assertion."""

    flow: Literal[FlowType.CLIENT_CERTIFICATE] = FlowType.CLIENT_CERTIFICATE
    client_id: str
    tenant_id: str
    certificate: ClientCertificate
    scopes: Optional[str] = None


class ManagedIdentityParams(_FlowParams):
    """Platform-issued identity of the current compute resource."""

    flow: Literal[FlowType.MANAGED_IDENTITY] = FlowType.MANAGED_IDENTITY
    resource: Optional[str] = None
    client_id: Optional[str] = Field(
        default=None, description="Selects a user-assigned identity"
    )


class TokenParams(_FlowParams):
    """A caller-supplied bearer token; no acquisition takes place."""

    flow: Literal[FlowType.TOKEN] = FlowType.TOKEN
    token: SecretStr


ConnectParams = Annotated[
    Union[
        InteractiveParams,
        DeviceCodeParams,
        ClientSecretParams,
        ClientCertificateParams,
        ManagedIdentityParams,
        TokenParams,
    ],
    Field(discriminator="flow"),
]


# --- Connection state ---


class ConnectionState(BaseModel):
    """The single live connection record.

    Owned exclusively by :class:`~graphauth.auth.connection.ConnectionManager`.
    Refresh replaces ``token``, ``token_expiry`` and ``refresh_token`` in place
    and leaves every other field untouched.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, validate_assignment=False)

    token: Optional[str] = Field(default=None, repr=False)
    token_expiry: Optional[datetime] = None
    refresh_token: Optional[str] = Field(default=None, repr=False)
    flow_type: Optional[FlowType] = None
    token_endpoint: Optional[str] = None
    client_id: Optional[str] = None
    tenant_id: Optional[str] = None
    scopes: Optional[str] = None
    client_secret: Optional[SecretStr] = Field(default=None, repr=False)
    client_certificate: Optional[ClientCertificate] = Field(default=None, repr=False)
    context: Optional[TokenContext] = None


# --- Configuration models ---


class RequestConfig(BaseModel):
    """HTTP settings shared by the token endpoint client and the request executor."""

    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    managed_identity_timeout: float = Field(
        default=5.0, description="Timeout for managed-identity endpoint probes"
    )


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/graphauth/config.json``.

    Loaded and saved by :func:`~graphauth.config.load_global_config` and
    :func:`~graphauth.config.save_global_config`.
    """

    default_profile: Optional[str] = None
    auto_select_single_profile: bool = True
    authority_host: str = "https://login.microsoftonline.com"
    api_base_url: str = "https://graph.microsoft.com"
    api_version: str = "v1.0"
    refresh_threshold_minutes: int = 10
    throttle_default_retry_after: int = 300
    interactive_timeout: float = 300.0
    device_code_timeout: float = 900.0
    request: RequestConfig = Field(default_factory=RequestConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    def token_endpoint(self, tenant_id: str) -> str:
        return f"{self.authority_host.rstrip('/')}/{tenant_id}/oauth2/v2.0/token"

    def authorize_endpoint(self, tenant_id: str) -> str:
        return f"{self.authority_host.rstrip('/')}/{tenant_id}/oauth2/v2.0/authorize"

    def device_code_endpoint(self, tenant_id: str) -> str:
        return f"{self.authority_host.rstrip('/')}/{tenant_id}/oauth2/v2.0/devicecode"

    def default_scope(self) -> str:
        return f"{self.api_base_url.rstrip('/')}/.default"


class Profile(BaseModel):
    """Named connection profile stored under the ``profiles/`` config directory.

    Holds the flow selector and non-secret parameters. Secrets are referenced
    through source descriptors (``env:VAR``, ``file:/path``, ``prompt``) and
    resolved at connect time, so nothing sensitive is written to disk.

    Example::

        Profile(
            name="daemon",
            flow=FlowType.CLIENT_SECRET,
            client_id="00000000-0000-0000-0000-000000000000",
            tenant_id="contoso.onmicrosoft.com",
            client_secret_source="env:GRAPH_CLIENT_SECRET",
        )
    """

    model_config = ConfigDict(extra="allow")

    name: str
    flow: FlowType
    client_id: Optional[str] = None
    tenant_id: Optional[str] = None
    scopes: Optional[str] = None
    client_secret_source: Optional[str] = None
    certificate_path: Optional[str] = None
    certificate_key_path: Optional[str] = None
    certificate_password_source: Optional[str] = None
    resource: Optional[str] = None
    token_source: Optional[str] = None
    headers: dict[str, str] = Field(
        default_factory=dict, description="Custom headers added to every request"
    )
