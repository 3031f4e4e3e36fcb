"""Signed client assertions for the certificate credentials flow.

A client assertion is a short-lived JWT signed with the application's
certificate key. It replaces the shared secret in a ``client_credentials``
exchange (:rfc:`7523`). The identity provider matches the ``x5t`` header
(SHA-1 thumbprint of the certificate) against the certificates registered on
the application and verifies the RS256 signature.

The default lifetime is five minutes. Keep it short: an intercepted
assertion can be replayed until it expires.
"""

from __future__ import annotations

import json
import time
import uuid
from typing import Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from graphauth.auth.codec import b64url_encode
from graphauth.certificate import ClientCertificate
from graphauth.exceptions import MissingPrivateKeyError

CLIENT_ASSERTION_TYPE = "urn:ietf:params:oauth:client-assertion-type:jwt-bearer"

DEFAULT_AUTHORITY = "https://login.microsoftonline.com"


def _compact_json(value: dict) -> bytes:
    return json.dumps(value, separators=(",", ":")).encode("utf-8")


def build_client_assertion(
    client_id: str,
    tenant_id: str,
    certificate: ClientCertificate,
    lifetime_minutes: int = 5,
    audience: Optional[str] = None,
) -> str:
    """Build and sign a client assertion JWT.

    Args:
        client_id: Application (client) ID; used as ``iss`` and ``sub``.
        tenant_id: Directory the token endpoint belongs to.
        certificate: Certificate whose private key signs the assertion.
        lifetime_minutes: Validity window starting now.
        audience: Token endpoint URL the assertion is presented to. Defaults
            to the public cloud v2.0 endpoint of *tenant_id*.

    Returns:
        The compact ``header.claims.signature`` string.

    Raises:
        MissingPrivateKeyError: If *certificate* carries no private key.
    """
    if certificate.private_key is None:
        raise MissingPrivateKeyError(
            "Client certificate has no accessible private key; cannot sign assertion"
        )

    if audience is None:
        audience = f"{DEFAULT_AUTHORITY}/{tenant_id}/oauth2/v2.0/token"

    now = int(time.time())
    header = {
        "alg": "RS256",
        "typ": "JWT",
        "x5t": b64url_encode(certificate.thumbprint()),
    }
    claims = {
        "aud": audience,
        "iss": client_id,
        "sub": client_id,
        "jti": str(uuid.uuid4()),
        "nbf": now,
        "exp": now + lifetime_minutes * 60,
    }

    signing_input = (
        f"{b64url_encode(_compact_json(header))}.{b64url_encode(_compact_json(claims))}"
    ).encode("ascii")
    signature = certificate.private_key.sign(
        signing_input, padding.PKCS1v15(), hashes.SHA256()
    )
    return f"{signing_input.decode('ascii')}.{b64url_encode(signature)}"
