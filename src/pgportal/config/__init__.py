from pgportal.config.loader import (
    get_platform_config_path,
    load_settings,
    resolve_config_path,
)
from pgportal.config.settings import HttpConfig, PoolConfig, Settings, resolve_database_url

__all__ = [
    "HttpConfig",
    "PoolConfig",
    "Settings",
    "get_platform_config_path",
    "load_settings",
    "resolve_config_path",
    "resolve_database_url",
]
