"""Tests for loading client certificates from PEM and PKCS#12 files."""

from __future__ import annotations

from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import pkcs12

from graphauth.certificate import load_certificate
from graphauth.exceptions import ConfigError


def _key_pem(key, password: bytes | None = None) -> bytes:
    encryption = (
        serialization.BestAvailableEncryption(password)
        if password
        else serialization.NoEncryption()
    )
    return key.private_bytes(
        serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, encryption
    )


class TestLoadCertificate:
    def test_combined_pem(self, tmp_path: Path, x509_certificate, rsa_key) -> None:
        path = tmp_path / "app.pem"
        path.write_bytes(x509_certificate.public_bytes(serialization.Encoding.PEM) + _key_pem(rsa_key))

        cert = load_certificate(path)

        assert cert.has_private_key
        assert cert.certificate == x509_certificate

    def test_separate_encrypted_key(self, tmp_path: Path, x509_certificate, rsa_key) -> None:
        cert_path = tmp_path / "app.crt"
        key_path = tmp_path / "app.key"
        cert_path.write_bytes(x509_certificate.public_bytes(serialization.Encoding.PEM))
        key_path.write_bytes(_key_pem(rsa_key, b"pw"))

        cert = load_certificate(cert_path, password="pw", key_path=key_path)
        assert cert.has_private_key

    def test_public_only(self, tmp_path: Path, x509_certificate) -> None:
        path = tmp_path / "public.pem"
        path.write_bytes(x509_certificate.public_bytes(serialization.Encoding.PEM))
        assert not load_certificate(path).has_private_key

    def test_pkcs12(self, tmp_path: Path, x509_certificate, rsa_key) -> None:
        path = tmp_path / "app.pfx"
        path.write_bytes(
            pkcs12.serialize_key_and_certificates(
                b"app", rsa_key, x509_certificate, None,
                serialization.BestAvailableEncryption(b"pw"),
            )
        )
        cert = load_certificate(path, password="pw")
        assert cert.has_private_key
        assert cert.certificate == x509_certificate

    def test_wrong_password(self, tmp_path: Path, x509_certificate, rsa_key) -> None:
        path = tmp_path / "app.pfx"
        path.write_bytes(
            pkcs12.serialize_key_and_certificates(
                b"app", rsa_key, x509_certificate, None,
                serialization.BestAvailableEncryption(b"pw"),
            )
        )
        with pytest.raises(ConfigError) as exc_info:
            load_certificate(path, password="wrong")
        assert "wrong" not in str(exc_info.value).replace(str(path), "")

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_certificate(tmp_path / "missing.pem")

    def test_non_rsa_key_rejected(self, tmp_path: Path, x509_certificate) -> None:
        path = tmp_path / "ec.pem"
        ec_key = ec.generate_private_key(ec.SECP256R1())
        path.write_bytes(x509_certificate.public_bytes(serialization.Encoding.PEM) + _key_pem(ec_key))
        with pytest.raises(ConfigError, match="RSA"):
            load_certificate(path)

    def test_repr_hides_key(self, client_certificate) -> None:
        text = repr(client_certificate)
        assert "graphauth-test" in text
        assert "PRIVATE" not in text
