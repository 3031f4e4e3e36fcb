"""graphauth -- token acquisition and resilient request execution for OAuth2-protected APIs.

This package acquires bearer tokens from a Microsoft identity platform style
provider through one of six flows, keeps a single live connection with
automatic flow-aware refresh, and executes paged, throttle-aware requests
against the protected REST API.

Typical usage::

    from graphauth.auth import ConnectionManager
    from graphauth.client import RequestExecutor
    from graphauth.models import ClientSecretParams

    connection = ConnectionManager()
    connection.connect(
        ClientSecretParams(client_id="...", tenant_id="...", client_secret="...")
    )
    with RequestExecutor(connection) as executor:
        users = executor.execute("GET", "users")

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and connection profiles.
    certificate: Client certificate handle used for signed assertions.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.3.0"
