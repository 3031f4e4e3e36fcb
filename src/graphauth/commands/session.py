"""Session commands -- connect with a profile and use the connection.

``whoami`` connects and prints the decoded token context; ``request``
connects and runs one API call through the
:class:`~graphauth.client.RequestExecutor`, printing the accumulated results.

Each invocation is its own process and therefore its own connection:
nothing is cached between runs.
"""

from __future__ import annotations

import json
from typing import Any, List, Optional

import typer

from graphauth.auth import ConnectionManager
from graphauth.exceptions import GraphAuthError
from graphauth.output import error, format_response, info


def open_connection(profile_name: Optional[str]) -> tuple[ConnectionManager, Any]:
    """Resolve the active profile, connect, and apply its custom headers.

    Returns:
        The connected manager and the global config it was built from.
    """
    from graphauth.auth import create_default_manager
    from graphauth.config import build_connect_params, load_global_config, resolve_profile

    config = load_global_config()
    profile = resolve_profile(config, profile_name)
    info(f"Using profile: {profile.name} ({profile.flow.value})")

    connection = ConnectionManager(create_default_manager(config), config)
    connection.connect(build_connect_params(profile, config))
    for name, value in profile.headers.items():
        connection.set_header(name, value)
    return connection, config


def _profile_option(ctx: typer.Context, profile: Optional[str]) -> Optional[str]:
    if profile is not None:
        return profile
    return ctx.obj.get("profile") if ctx.obj else None


def whoami(
    ctx: typer.Context,
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Profile name to use."),
) -> None:
    """Connect and show who the token belongs to.

    The token claims are decoded without verification and are for display
    only.

    Example::

        graphauth whoami
        graphauth --json whoami --profile daemon
    """
    try:
        connection, _ = open_connection(_profile_option(ctx, profile))
        state = connection.state
        context = connection.context
        data: dict[str, Any] = {
            "flow": state.flow_type.value if state and state.flow_type else None,
            "token_expiry": state.token_expiry.isoformat() if state and state.token_expiry else None,
        }
        if context is not None:
            data.update(context.model_dump(mode="json"))
        else:
            info("Token is opaque; no claims could be decoded.")
        format_response(data)
        connection.disconnect()
    except GraphAuthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


def _parse_body(body: Optional[str]) -> Any:
    """Parse *body* as JSON if possible, returning the raw string on failure."""
    if body is None:
        return None
    try:
        return json.loads(body)
    except json.JSONDecodeError:
        return body


def request(
    ctx: typer.Context,
    method: str = typer.Argument(help="HTTP method: GET, POST, PUT, PATCH, DELETE."),
    resource: str = typer.Argument(help="Resource path (e.g. 'users') or absolute https URL."),
    body: Optional[str] = typer.Option(None, "--body", "-d", help="JSON request body."),
    api_version: Optional[str] = typer.Option(None, "--api-version", help="API version, e.g. 'beta'."),
    header: Optional[List[str]] = typer.Option(
        None, "--header", "-H", help="Extra header NAME=VALUE (repeatable)."
    ),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Profile name to use."),
) -> None:
    """Connect and execute one API request, following every page.

    Example::

        graphauth request GET users
        graphauth request GET users --header ConsistencyLevel=eventual
        graphauth request PATCH me -d '{"jobTitle": "Engineer"}'
    """
    from graphauth.client import RequestExecutor

    method = method.upper()
    if method not in ("GET", "POST", "PUT", "PATCH", "DELETE"):
        error(f"Unsupported method: {method}")
        raise typer.Exit(code=2)

    try:
        connection, config = open_connection(_profile_option(ctx, profile))
        for item in header or []:
            name, sep, value = item.partition("=")
            if not sep:
                error(f"Invalid header '{item}'; expected NAME=VALUE")
                raise typer.Exit(code=2)
            connection.set_header(name.strip(), value.strip())

        with RequestExecutor(connection, config) as executor:
            results = executor.execute(
                method, resource, body=_parse_body(body), api_version=api_version
            )
        connection.disconnect()
    except GraphAuthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    info(f"{len(results)} item(s)")
    if len(results) == 1:
        format_response(results[0])
    elif results:
        format_response(results)
