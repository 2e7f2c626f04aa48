"""Configuration helpers."""

from .loader import (
    CONFIG_PATH_ENV,
    ConfigError,
    get_default_config_path,
    load_config,
    load_config_with_overrides,
    load_default_config,
)
from .models import ConsulSettings, DriverConfig, EtcdSettings, LoggingSettings, NacosSettings

__all__ = [
    "CONFIG_PATH_ENV",
    "ConfigError",
    "ConsulSettings",
    "DriverConfig",
    "EtcdSettings",
    "LoggingSettings",
    "NacosSettings",
    "get_default_config_path",
    "load_config",
    "load_config_with_overrides",
    "load_default_config",
]
