"""Shared test fixtures for graphauth.

Provides isolated config directories, output state management, token and
certificate factories, and the CLI runner. These fixtures are discovered
by pytest and available to all test modules without explicit imports.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from graphauth.auth import codec
from graphauth.certificate import ClientCertificate
from graphauth.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams and the
    test finishes, the cached references become stale. Resetting forces a
    fresh manager on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_CONFIG_HOME and XDG_DATA_HOME at subdirectories of tmp_path,
    clears GRAPHAUTH_* and managed identity variables, and changes the
    working directory to tmp_path.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("graphauth.config._is_xdg_platform", lambda: True)

    for var in ["GRAPHAUTH_PROFILE", "IDENTITY_ENDPOINT", "IDENTITY_HEADER"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet, colourless OutputManager."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True, no_color=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Token and certificate factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Return a factory for unsigned tokens with the given claims.

    Defaults to a delegated token for ``adele@contoso.com`` expiring in one
    hour. Pass ``claims`` to replace the payload entirely, or keyword
    overrides to adjust individual claims.
    """

    def _make(claims: Optional[dict[str, Any]] = None, **overrides: Any) -> str:
        now = int(time.time())
        payload = claims if claims is not None else {
            "aud": "https://graph.microsoft.com",
            "iss": "https://sts.windows.net/t1/",
            "iat": now,
            "exp": now + 3600,
            "tid": "t1",
            "upn": "adele@contoso.com",
            "scp": "User.Read Mail.Read",
            "appid": "11111111-1111-1111-1111-111111111111",
        }
        payload = {**payload, **overrides}
        return codec.encode({"alg": "RS256", "typ": "JWT"}, payload, b"sig")

    return _make


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def x509_certificate(rsa_key: rsa.RSAPrivateKey) -> x509.Certificate:
    """A self-signed certificate for ``CN=graphauth-test``."""
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "graphauth-test")])
    now = datetime.now(timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(rsa_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=30))
        .sign(rsa_key, hashes.SHA256())
    )


@pytest.fixture
def client_certificate(
    x509_certificate: x509.Certificate, rsa_key: rsa.RSAPrivateKey
) -> ClientCertificate:
    return ClientCertificate(x509_certificate, rsa_key)


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
