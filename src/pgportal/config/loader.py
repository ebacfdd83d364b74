"""Config loader for pgportal.

Precedence, lowest first: defaults, TOML file, environment variables (applied
by ``Settings`` itself), CLI flags. The TOML file is the explicit ``--config``
path, else ``./pgportal.toml``, else ``config.toml`` in the platform config
directory.
"""

from __future__ import annotations

import os
import platform
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pgportal.config.settings import Settings

APP_DIR = "pgportal"
LOCAL_CONFIG = Path("./pgportal.toml")


def get_platform_config_path() -> Path:
    """Return the platform-specific config.toml path."""
    system = platform.system().lower()
    home = Path.home()
    if system == "darwin":
        base = home / "Library" / "Application Support"
    elif system == "windows":
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else home / "AppData" / "Roaming"
    else:
        xdg_config = os.environ.get("XDG_CONFIG_HOME")
        base = Path(xdg_config) if xdg_config else home / ".config"
    return base / APP_DIR / "config.toml"


def get_config_search_paths() -> list[Path]:
    return [LOCAL_CONFIG, get_platform_config_path()]


def resolve_config_path(config_path: Path | None = None) -> Path | None:
    """Config file that ``load_settings`` would read; None when running on defaults."""
    if config_path:
        return config_path
    return next((path for path in get_config_search_paths() if path.exists()), None)


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise RuntimeError(f"Failed to parse configuration file at {path}: {e}") from e


def apply_cli_overrides(settings: Settings, overrides: Mapping[str, Any]) -> Settings:
    """Apply CLI overrides to loaded settings. ``None`` values are ignored."""
    if overrides.get("http_mode"):
        settings.http_mode = True
    if overrides.get("host") is not None:
        settings.http.host = str(overrides["host"])
    if overrides.get("port") is not None:
        settings.http.port = int(overrides["port"])
    if overrides.get("database_url") is not None:
        settings.cli_database_url = str(overrides["database_url"])
    return settings


def load_settings(
    config_path: Path | None = None, *, cli_overrides: Mapping[str, Any] | None = None
) -> Settings:
    """Load gateway settings.

    Raises:
        FileNotFoundError: If an explicit ``config_path`` does not exist.
        RuntimeError: If the config file cannot be read or parsed.
        pydantic.ValidationError: If the file holds unknown or invalid fields.
    """
    if config_path and not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path}. "
            "Omit --config to use ./pgportal.toml or the platform config directory."
        )

    path = resolve_config_path(config_path)
    data = _read_toml(path) if path is not None else {}

    settings = Settings(**data)
    return apply_cli_overrides(settings, cli_overrides or {})
