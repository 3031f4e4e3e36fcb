"""Configuration management with XDG paths, atomic writes, and profile resolution.

This module handles all persistent configuration for graphauth:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.graphauth/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_data_dir`, :func:`get_profiles_dir`.
* **Global config** -- a single :class:`~graphauth.models.GlobalConfig`
  JSON file holding authority host, API base URL, refresh threshold and
  timeouts.
* **Profiles** -- one JSON file per connection, each deserialised into a
  :class:`~graphauth.models.Profile`. Profiles never hold secret values,
  only source descriptors resolved by :func:`resolve_credential`.
* **Connect parameters** -- :func:`build_connect_params` turns a profile
  into the flow-specific :data:`~graphauth.models.ConnectParams` variant.

All file writes use an atomic temp-file-then-rename strategy.
"""

from __future__ import annotations

import getpass
import json
import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import SecretStr

from graphauth.certificate import load_certificate
from graphauth.exceptions import ConfigError
from graphauth.models import (
    ClientCertificateParams,
    ClientSecretParams,
    ConnectParams,
    DeviceCodeParams,
    FlowType,
    GlobalConfig,
    InteractiveParams,
    ManagedIdentityParams,
    Profile,
    TokenParams,
)

_APP_NAME = "graphauth"
_CONFIG_FILENAME = "config.json"
_PROFILE_ENV_VAR = "GRAPHAUTH_PROFILE"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/graphauth/`` (default ``~/.config/graphauth/``).
    On macOS/Windows: ``~/.graphauth/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory used for crash logs, creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/graphauth/`` (default ``~/.local/share/graphauth/``).
    On macOS/Windows: ``~/.graphauth/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}" / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_profiles_dir() -> Path:
    path = get_config_dir() / "profiles"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file lives in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration, returning defaults if no file exists.

    Raises:
        ConfigError: If the file exists but is invalid JSON or fails validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    data = config.model_dump(mode="json")
    _atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Profiles ---


def _profile_path(name: str) -> Path:
    return get_profiles_dir() / f"{name}.json"


def list_profiles() -> list[str]:
    """Return all profile names, sorted alphabetically."""
    return sorted(p.stem for p in get_profiles_dir().glob("*.json") if p.is_file())


def load_profile(name: str) -> Profile:
    """Load and validate a profile from disk.

    Raises:
        ConfigError: If the profile does not exist or is invalid.
    """
    path = _profile_path(name)
    if not path.is_file():
        raise ConfigError(f"Profile '{name}' not found at {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Profile.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid profile '{name}' at {path}: {exc}") from exc


def save_profile(profile: Profile) -> None:
    data = profile.model_dump(mode="json")
    _atomic_write(_profile_path(profile.name), json.dumps(data, indent=2) + "\n")


def delete_profile(name: str) -> None:
    path = _profile_path(name)
    if not path.is_file():
        raise ConfigError(f"Profile '{name}' not found at {path}")
    path.unlink()


def resolve_profile(
    config: GlobalConfig,
    cli_profile: Optional[str] = None,
) -> Profile:
    """Pick the active profile.

    Precedence (high to low):
        1. ``--profile`` CLI flag
        2. ``GRAPHAUTH_PROFILE`` environment variable
        3. ``default_profile`` in the global config
        4. The only profile on disk, if ``auto_select_single_profile`` is set

    Raises:
        ConfigError: If no profile can be determined or it cannot be loaded.
    """
    name: Optional[str] = config.default_profile
    env_profile = os.environ.get(_PROFILE_ENV_VAR)
    if env_profile:
        name = env_profile
    if cli_profile is not None:
        name = cli_profile

    if name is None and config.auto_select_single_profile:
        profiles = list_profiles()
        if len(profiles) == 1:
            name = profiles[0]

    if name is None:
        raise ConfigError(
            "No profile selected. Pass --profile, set GRAPHAUTH_PROFILE, "
            "or run 'graphauth profile add'."
        )
    return load_profile(name)


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a secret from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - ``"prompt"`` -- prompts with hidden input (requires a TTY)

    Raises:
        ConfigError: If the source can't be resolved.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {source})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigError(
                "Cannot prompt for credentials: stdin is not a TTY (source: prompt)"
            )
        return getpass.getpass("Enter credential: ")

    raise ConfigError(f"Unknown credential source format: {source}")


# --- Profile -> connect parameters ---


def _require(profile: Profile, field: str) -> str:
    value = getattr(profile, field)
    if not value:
        raise ConfigError(
            f"Profile '{profile.name}' ({profile.flow.value}) requires '{field}'"
        )
    return value


def build_connect_params(profile: Profile, config: GlobalConfig) -> ConnectParams:
    """Translate a stored profile into the flow-specific connect parameters.

    Secret sources are resolved here, at connect time, and only held in
    memory for the life of the connection.

    Raises:
        ConfigError: If a field required by the profile's flow is missing or
            a credential source cannot be resolved.
    """
    flow = profile.flow

    if flow == FlowType.INTERACTIVE:
        return InteractiveParams(
            client_id=_require(profile, "client_id"),
            tenant_id=profile.tenant_id or "common",
            scopes=profile.scopes,
            redirect_timeout=config.interactive_timeout,
        )

    if flow == FlowType.DEVICE_CODE:
        return DeviceCodeParams(
            client_id=_require(profile, "client_id"),
            tenant_id=profile.tenant_id or "common",
            scopes=profile.scopes,
            timeout=config.device_code_timeout,
        )

    if flow == FlowType.CLIENT_SECRET:
        secret = resolve_credential(_require(profile, "client_secret_source"))
        return ClientSecretParams(
            client_id=_require(profile, "client_id"),
            tenant_id=_require(profile, "tenant_id"),
            client_secret=SecretStr(secret),
            scopes=profile.scopes,
        )

    if flow == FlowType.CLIENT_CERTIFICATE:
        password = None
        if profile.certificate_password_source:
            password = resolve_credential(profile.certificate_password_source)
        certificate = load_certificate(
            _require(profile, "certificate_path"),
            password=password,
            key_path=profile.certificate_key_path,
        )
        return ClientCertificateParams(
            client_id=_require(profile, "client_id"),
            tenant_id=_require(profile, "tenant_id"),
            certificate=certificate,
            scopes=profile.scopes,
        )

    if flow == FlowType.MANAGED_IDENTITY:
        return ManagedIdentityParams(resource=profile.resource, client_id=profile.client_id)

    token = resolve_credential(_require(profile, "token_source"))
    return TokenParams(token=SecretStr(token))
