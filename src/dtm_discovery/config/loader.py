"""YAML configuration files for the driver.

A file may hold the settings at top level or under a ``dtm_discovery:`` key.
String values may reference the environment as ``${VAR}`` or ``${VAR:-default}``;
that is how registry tokens are usually kept out of the file itself.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from .models import DriverConfig

__all__ = [
    "CONFIG_PATH_ENV",
    "ConfigError",
    "get_default_config_path",
    "load_config",
    "load_config_with_overrides",
    "load_default_config",
]


class ConfigError(RuntimeError):
    """Raised when configuration loading fails."""


CONFIG_PATH_ENV = "DTM_DISCOVERY_CONFIG"

_ROOT_KEY = "dtm_discovery"
_YAML_SUFFIXES = frozenset({".yaml", ".yml"})
_ENV_REF = re.compile(r"\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<default>.*?))?\}")


def get_default_config_path() -> Path | None:
    """Locate the config file used when no path is given.

    ``$DTM_DISCOVERY_CONFIG`` wins when set; otherwise the first existing file
    among ``./dtm_discovery.yaml``, ``./dtm_discovery.yml``,
    ``~/.dtm_discovery.yaml`` and ``/etc/dtm_discovery/config.yaml``.
    """
    explicit = os.getenv(CONFIG_PATH_ENV)
    if explicit:
        return Path(explicit).expanduser()
    for candidate in (
        Path.cwd() / f"{_ROOT_KEY}.yaml",
        Path.cwd() / f"{_ROOT_KEY}.yml",
        Path.home() / f".{_ROOT_KEY}.yaml",
        Path("/etc") / _ROOT_KEY / "config.yaml",
    ):
        if candidate.is_file():
            return candidate
    return None


def load_default_config() -> DriverConfig:
    """Load the default config file; built-in defaults when there is none."""
    path = get_default_config_path()
    return DriverConfig() if path is None else load_config(path)


def load_config(path: str | Path | None) -> DriverConfig:
    """Load one YAML file into a :class:`DriverConfig`."""
    if not path:
        return load_default_config()
    return _build(_read(path), source=str(path))


def load_config_with_overrides(base_path: str | Path, *override_paths: str | Path) -> DriverConfig:
    """Load ``base_path`` and deep-merge each override file over it, in order."""
    data = _read(base_path)
    for override in override_paths:
        data = _deep_merge(data, _read(override))
    return _build(data, source=", ".join(str(p) for p in (base_path, *override_paths)))


def _build(data: Mapping[str, Any], *, source: str) -> DriverConfig:
    try:
        return DriverConfig.from_dict(data)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config in {source}: {exc}") from exc


def _read(path: str | Path) -> dict[str, Any]:
    config_path = Path(path).expanduser()
    if config_path.suffix.lower() not in _YAML_SUFFIXES:
        raise ConfigError(f"Unsupported config file type: {config_path.suffix}")
    if not config_path.is_file():
        raise ConfigError(f"Config file not found: {config_path}")
    try:
        parsed = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Failed to load config file: {config_path}") from exc
    if parsed is None:
        return {}
    if not isinstance(parsed, Mapping):
        raise ConfigError(f"Config file must parse to a mapping: {config_path}")
    return _unwrap_root(_substitute_env(parsed))


def _env_value(match: re.Match[str]) -> str:
    name, default = match.group("name"), match.group("default")
    value = os.getenv(name)
    if value:
        return value
    if default is None:
        raise ConfigError(f"Environment variable '{name}' is not set and no default provided")
    return default


def _substitute_env(node: Any) -> Any:
    if isinstance(node, str):
        return _ENV_REF.sub(_env_value, node)
    if isinstance(node, Mapping):
        return {key: _substitute_env(value) for key, value in node.items()}
    if isinstance(node, list):
        return [_substitute_env(item) for item in node]
    return node


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            value = _deep_merge(current, value)
        merged[key] = value
    return merged


def _unwrap_root(data: Mapping[str, Any]) -> dict[str, Any]:
    if _ROOT_KEY not in data:
        return dict(data)
    section = data[_ROOT_KEY]
    if not isinstance(section, Mapping):
        raise ConfigError(f"{_ROOT_KEY} section must be a mapping")
    # Top-level keys next to the section take precedence over it.
    return {**section, **{key: value for key, value in data.items() if key != _ROOT_KEY}}
