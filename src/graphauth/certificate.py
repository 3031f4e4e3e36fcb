"""Client certificate handle for the certificate credentials flow.

A :class:`ClientCertificate` pairs an X.509 certificate with its RSA private
key. It is treated as an opaque credential by the rest of the package: only
:mod:`graphauth.auth.assertion` reaches into it to sign client assertions.

Certificates are loaded from PEM files (certificate and key in one file, or
the key supplied separately) or from PKCS#12 bundles (``.pfx`` / ``.p12``).
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12

from graphauth.exceptions import ConfigError

_PKCS12_SUFFIXES = (".pfx", ".p12")


class ClientCertificate:
    """An X.509 certificate with an optional private key.

    The key is kept out of ``repr`` so that the handle can travel inside
    models and error messages without leaking material.

    Args:
        certificate: The public certificate registered with the application.
        private_key: The matching private key. ``None`` when only the public
            part is available, in which case signing fails with
            :class:`~graphauth.exceptions.MissingPrivateKeyError`.
    """

    def __init__(
        self,
        certificate: x509.Certificate,
        private_key: Optional[rsa.RSAPrivateKey] = None,
    ) -> None:
        self.certificate = certificate
        self.private_key = private_key

    @property
    def has_private_key(self) -> bool:
        return self.private_key is not None

    def der_bytes(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.DER)

    def thumbprint(self) -> bytes:
        """SHA-1 digest of the DER-encoded certificate (the ``x5t`` value)."""
        return hashlib.sha1(self.der_bytes()).digest()

    def __repr__(self) -> str:
        return (
            f"ClientCertificate(subject={self.certificate.subject.rfc4514_string()!r}, "
            f"has_private_key={self.has_private_key})"
        )


def load_certificate(
    path: Union[str, Path],
    password: Optional[str] = None,
    key_path: Union[str, Path, None] = None,
) -> ClientCertificate:
    """Load a :class:`ClientCertificate` from disk.

    Args:
        path: PEM or PKCS#12 file holding the certificate (and usually the key).
        password: Password protecting the key or bundle, if any.
        key_path: Separate PEM private key file, for split PEM deployments.

    Returns:
        The loaded certificate handle.

    Raises:
        ConfigError: If the file is missing or cannot be parsed.
    """
    cert_path = Path(path).expanduser()
    if not cert_path.is_file():
        raise ConfigError(f"Certificate file not found: {cert_path}")

    secret = password.encode("utf-8") if password else None
    data = cert_path.read_bytes()

    try:
        if cert_path.suffix.lower() in _PKCS12_SUFFIXES:
            key, cert, _ = pkcs12.load_key_and_certificates(data, secret)
            if cert is None:
                raise ConfigError(f"No certificate found in bundle {cert_path}")
            return ClientCertificate(cert, _as_rsa_key(key))

        cert = x509.load_pem_x509_certificate(data)
        key_data = Path(key_path).expanduser().read_bytes() if key_path else data
        key = None
        if b"PRIVATE KEY-----" in key_data:
            key = serialization.load_pem_private_key(key_data, password=secret)
        return ClientCertificate(cert, _as_rsa_key(key))
    except (ValueError, OSError) as exc:
        raise ConfigError(f"Cannot load certificate {cert_path}: {exc}") from exc


def _as_rsa_key(key: object) -> Optional[rsa.RSAPrivateKey]:
    if key is None:
        return None
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ConfigError("Only RSA private keys are supported for client assertions")
    return key
