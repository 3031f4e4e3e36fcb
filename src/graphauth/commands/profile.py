"""Profile commands -- manage stored connection profiles.

Provides the ``graphauth profile`` sub-command group. A profile records the
flow type and the non-secret connection parameters; secrets are stored as
source descriptors (``env:VAR``, ``file:/path``, ``prompt``) and resolved
only when connecting.

Typical workflow::

    graphauth profile add daemon --flow client_secret \\
        --client-id 0000... --tenant-id contoso.onmicrosoft.com \\
        --secret-source env:GRAPH_CLIENT_SECRET
    graphauth profile list
    graphauth whoami --profile daemon
"""

from __future__ import annotations

from typing import List, Optional

import typer

from graphauth.exceptions import GraphAuthError
from graphauth.models import FlowType
from graphauth.output import error, format_response, get_output, info, success


profile_app = typer.Typer(no_args_is_help=True)


def _parse_headers(values: Optional[List[str]]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for item in values or []:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            error(f"Invalid header '{item}'; expected NAME=VALUE")
            raise typer.Exit(code=2)
        headers[name.strip()] = value.strip()
    return headers


@profile_app.command("add")
def profile_add(
    name: str = typer.Argument(help="Profile name."),
    flow: FlowType = typer.Option(..., "--flow", help="Credential flow."),
    client_id: Optional[str] = typer.Option(None, "--client-id", help="Application (client) ID."),
    tenant_id: Optional[str] = typer.Option(None, "--tenant-id", help="Directory (tenant) ID or domain."),
    scopes: Optional[str] = typer.Option(None, "--scopes", help="Space-separated scopes."),
    secret_source: Optional[str] = typer.Option(
        None, "--secret-source", help="Client secret source: env:VAR, file:/path, prompt."
    ),
    certificate_path: Optional[str] = typer.Option(
        None, "--certificate", help="PEM or PKCS#12 certificate file."
    ),
    certificate_key_path: Optional[str] = typer.Option(
        None, "--certificate-key", help="Separate PEM private key file."
    ),
    certificate_password_source: Optional[str] = typer.Option(
        None, "--certificate-password-source", help="Key password source."
    ),
    resource: Optional[str] = typer.Option(
        None, "--resource", help="Managed identity resource URI."
    ),
    token_source: Optional[str] = typer.Option(
        None, "--token-source", help="Bearer token source for the token flow."
    ),
    header: Optional[List[str]] = typer.Option(
        None, "--header", "-H", help="Custom request header NAME=VALUE (repeatable)."
    ),
    set_default: bool = typer.Option(False, "--default", help="Make this the default profile."),
) -> None:
    """Create or replace a connection profile.

    Example::

        graphauth profile add me --flow device_code --client-id 0000...
        graphauth profile add vm --flow managed_identity --default
    """
    from graphauth.config import load_global_config, save_global_config, save_profile
    from graphauth.models import Profile

    profile = Profile(
        name=name,
        flow=flow,
        client_id=client_id,
        tenant_id=tenant_id,
        scopes=scopes,
        client_secret_source=secret_source,
        certificate_path=certificate_path,
        certificate_key_path=certificate_key_path,
        certificate_password_source=certificate_password_source,
        resource=resource,
        token_source=token_source,
        headers=_parse_headers(header),
    )
    save_profile(profile)
    success(f'Profile "{name}" saved ({flow.value}).')

    if set_default:
        config = load_global_config()
        config.default_profile = name
        save_global_config(config)
        info(f'"{name}" is now the default profile.')


@profile_app.command("list")
def profile_list() -> None:
    """List all profiles with their flow type.

    Example::

        graphauth profile list
    """
    from graphauth.config import list_profiles, load_global_config, load_profile

    names = list_profiles()
    if not names:
        info("No profiles configured.")
        info("Create one: graphauth profile add <name> --flow <flow>")
        return

    default = load_global_config().default_profile
    rows: list[list[str]] = []
    for name in names:
        try:
            profile = load_profile(name)
        except GraphAuthError:
            rows.append([name, "error", "-", ""])
            continue
        rows.append([
            name,
            profile.flow.value,
            profile.client_id or "-",
            "*" if name == default else "",
        ])

    get_output().print_table(
        ["Profile", "Flow", "Client ID", "Default"], rows, title="Profiles"
    )


@profile_app.command("show")
def profile_show(name: str = typer.Argument(help="Profile name.")) -> None:
    """Show a stored profile. Secret values are never stored, only their sources."""
    from graphauth.config import load_profile

    try:
        profile = load_profile(name)
    except GraphAuthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    format_response(profile.model_dump(mode="json", exclude_none=True))


@profile_app.command("remove")
def profile_remove(
    ctx: typer.Context,
    name: str = typer.Argument(help="Profile name."),
) -> None:
    """Delete a profile, clearing it as default if it was one.

    Asks for confirmation unless ``--force`` is active.
    """
    from graphauth.config import delete_profile, load_global_config, save_global_config

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force and not typer.confirm(f'Remove profile "{name}"?'):
        info("Cancelled.")
        raise typer.Exit()

    try:
        delete_profile(name)
    except GraphAuthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    config = load_global_config()
    if config.default_profile == name:
        config.default_profile = None
        save_global_config(config)
    success(f'Profile "{name}" removed.')
