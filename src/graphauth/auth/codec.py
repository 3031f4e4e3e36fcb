"""Read-only decoding of bearer tokens.

Tokens issued by the identity provider are compact JWS strings:
``base64url(header) . base64url(claims) . base64url(signature)``. This module
decodes the first two segments so that the connection can show *who* it is
connected as and when the token expires.

Nothing here verifies a signature. Decoded claims are advisory and must
never be used for trust or authorization decisions.
"""

from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime, timezone
from typing import Any, Optional

from graphauth.exceptions import MalformedTokenError
from graphauth.models import DecodedToken, TokenContext, TokenType

# Every JSON object header starts with '{"', which base64-encodes to "eyJ".
_HEADER_PREFIX = "eyJ"

_IDENTITY_CLAIMS = ("upn", "unique_name", "app_displayname", "azp")


def b64url_encode(data: bytes) -> str:
    """Base64url-encode *data* without padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(segment: str) -> bytes:
    """Decode a base64url segment, restoring the padding it was stripped of."""
    standard = segment.replace("-", "+").replace("_", "/")
    standard += "=" * (-len(standard) % 4)
    return base64.b64decode(standard, validate=True)


def encode(header: dict[str, Any], payload: dict[str, Any], signature: bytes = b"") -> str:
    """Serialise *header* and *payload* into compact three-segment form.

    JSON is written without whitespace. An empty *signature* yields a
    trailing ``.`` (an unsigned token).
    """
    parts = [
        b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8")),
        b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8")),
        b64url_encode(signature),
    ]
    return ".".join(parts)


def _decode_segment(segment: str, name: str) -> dict[str, Any]:
    try:
        value = json.loads(b64url_decode(segment))
    except (binascii.Error, ValueError) as exc:
        raise MalformedTokenError(f"Token {name} is not valid base64url JSON") from exc
    if not isinstance(value, dict):
        raise MalformedTokenError(f"Token {name} is not a JSON object")
    return value


def decode(token: str) -> DecodedToken:
    """Decode the header and claims of *token* without verifying it.

    Args:
        token: A compact encoded bearer token.

    Returns:
        The decoded header and payload objects.

    Raises:
        MalformedTokenError: If the token has fewer than two segments, does
            not start with a JSON header, or a segment is not base64url JSON.
    """
    segments = token.split(".")
    if len(segments) < 2:
        raise MalformedTokenError("Token does not contain a header and payload segment")
    if not segments[0].startswith(_HEADER_PREFIX):
        raise MalformedTokenError("Token header is not an encoded JSON object")
    return DecodedToken(
        header=_decode_segment(segments[0], "header"),
        payload=_decode_segment(segments[1], "payload"),
    )


def _epoch_to_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def extract_context(token: str) -> TokenContext:
    """Derive the display-only :class:`~graphauth.models.TokenContext` of *token*.

    Raises:
        MalformedTokenError: If the token cannot be decoded. Callers treat
            this as non-fatal.
    """
    claims = decode(token).payload

    identity = next(
        (str(claims[name]) for name in _IDENTITY_CLAIMS if claims.get(name)),
        "Unknown",
    )

    if "scp" in claims:
        token_type = TokenType.DELEGATED
        scopes = str(claims["scp"])
    else:
        token_type = TokenType.APPLICATION
        roles = claims.get("roles")
        scopes = " ".join(str(r) for r in roles) if roles else "N/A"

    audience = claims.get("aud")
    if isinstance(audience, list):
        audience = " ".join(str(a) for a in audience)

    return TokenContext(
        identity=identity,
        token_type=token_type,
        tenant_id=claims.get("tid"),
        audience=audience,
        scopes=scopes,
        issued_at=_epoch_to_datetime(claims.get("iat")),
        expires_at=_epoch_to_datetime(claims.get("exp")),
        app_id=claims.get("appid") or claims.get("azp"),
    )
