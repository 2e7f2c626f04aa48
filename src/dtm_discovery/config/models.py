from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, cast

from dtm_discovery.utils.constant import (
    DEFAULT_CONSUL_META,
    DEFAULT_CONSUL_TAGS,
    DEFAULT_CONSUL_TTL,
    DEFAULT_ETCD_LEASE_TTL,
    DEFAULT_NACOS_CLUSTER,
    DEFAULT_NACOS_GROUP,
    DEFAULT_NACOS_PORT,
)

LOG_FORMAT_JSON = "json"
LOG_FORMAT_CONSOLE = "console"


def _ensure_mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise TypeError(f"{field_name} must be a mapping")
    return cast(Mapping[str, Any], value)


def _coerce_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    raise TypeError(f"{field_name} must be a bool")


def _coerce_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise TypeError(f"{field_name} must be an int")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return int(value.strip())
    raise TypeError(f"{field_name} must be an int")


def _coerce_float(value: Any, field_name: str) -> float:
    if isinstance(value, bool):
        raise TypeError(f"{field_name} must be a float")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return float(value.strip())
    raise TypeError(f"{field_name} must be a float")


def _coerce_str(value: Any, field_name: str) -> str:
    if isinstance(value, str):
        return value
    return str(value)


def _coerce_str_list(value: Any, field_name: str) -> list[str]:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, Sequence):
        return [_coerce_str(item, field_name) for item in value]
    raise TypeError(f"{field_name} must be a list of strings")


def _coerce_str_dict(value: Any, field_name: str) -> dict[str, str]:
    data = _ensure_mapping(value, field_name)
    return {str(key): _coerce_str(item, field_name) for key, item in data.items()}


def _coerce_log_format(value: Any, field_name: str) -> str:
    normalized = _coerce_str(value, field_name).strip().lower()
    if normalized not in {LOG_FORMAT_JSON, LOG_FORMAT_CONSOLE}:
        raise ValueError(f"{field_name} must be '{LOG_FORMAT_JSON}' or '{LOG_FORMAT_CONSOLE}'")
    return normalized


FieldSpec = tuple[str, Callable[[Any, str], Any], str]


def _optional(coerce: Callable[[Any, str], Any]) -> Callable[[Any, str], Any]:
    def _wrapped(value: Any, field_name: str) -> Any:
        if value is None:
            return None
        return coerce(value, field_name)

    return _wrapped


def _extract_fields(payload: Mapping[str, Any], specs: Sequence[FieldSpec]) -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    for name, coerce, label in specs:
        if name in payload:
            kwargs[name] = coerce(payload[name], label)
    return kwargs


def _apply_field_specs(target: Any, specs: Sequence[FieldSpec]) -> None:
    for name, coerce, label in specs:
        setattr(target, name, coerce(getattr(target, name), label))


_ETCD_FIELD_SPECS: tuple[FieldSpec, ...] = (
    ("lease_ttl", _coerce_int, "etcd.lease_ttl"),
)


@dataclass
class EtcdSettings:
    lease_ttl: int = DEFAULT_ETCD_LEASE_TTL

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "EtcdSettings":
        if data is None:
            return cls()
        if isinstance(data, cls):
            return data
        payload = _ensure_mapping(data, "etcd")
        return cls(**_extract_fields(payload, _ETCD_FIELD_SPECS))

    def __post_init__(self) -> None:
        _apply_field_specs(self, _ETCD_FIELD_SPECS)
        if self.lease_ttl < 2:
            raise ValueError("etcd.lease_ttl must be >= 2")


_CONSUL_FIELD_SPECS: tuple[FieldSpec, ...] = (
    ("ttl", _coerce_int, "consul.ttl"),
    ("token", _optional(_coerce_str), "consul.token"),
    ("tags", _coerce_str_list, "consul.tags"),
    ("meta", _coerce_str_dict, "consul.meta"),
)


@dataclass
class ConsulSettings:
    ttl: int = DEFAULT_CONSUL_TTL
    token: str | None = None
    tags: list[str] = field(default_factory=lambda: list(DEFAULT_CONSUL_TAGS))
    meta: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_CONSUL_META))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "ConsulSettings":
        if data is None:
            return cls()
        if isinstance(data, cls):
            return data
        payload = _ensure_mapping(data, "consul")
        return cls(**_extract_fields(payload, _CONSUL_FIELD_SPECS))

    def __post_init__(self) -> None:
        _apply_field_specs(self, _CONSUL_FIELD_SPECS)
        if self.ttl < 2:
            raise ValueError("consul.ttl must be >= 2")


_NACOS_FIELD_SPECS: tuple[FieldSpec, ...] = (
    ("group", _coerce_str, "nacos.group"),
    ("cluster", _coerce_str, "nacos.cluster"),
    ("weight", _coerce_float, "nacos.weight"),
    ("default_port", _coerce_int, "nacos.default_port"),
    ("lenient_numbers", _coerce_bool, "nacos.lenient_numbers"),
)


@dataclass
class NacosSettings:
    group: str = DEFAULT_NACOS_GROUP
    cluster: str = DEFAULT_NACOS_CLUSTER
    weight: float = 100.0
    default_port: int = DEFAULT_NACOS_PORT
    # When set, malformed ports and timeouts degrade to 0 instead of raising.
    lenient_numbers: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "NacosSettings":
        if data is None:
            return cls()
        if isinstance(data, cls):
            return data
        payload = _ensure_mapping(data, "nacos")
        return cls(**_extract_fields(payload, _NACOS_FIELD_SPECS))

    def __post_init__(self) -> None:
        _apply_field_specs(self, _NACOS_FIELD_SPECS)
        if self.weight <= 0:
            raise ValueError("nacos.weight must be > 0")


_LOGGING_FIELD_SPECS: tuple[FieldSpec, ...] = (
    ("level", _coerce_str, "logging.level"),
    ("format", _coerce_log_format, "logging.format"),
)


@dataclass
class LoggingSettings:
    level: str = "INFO"
    format: str = LOG_FORMAT_CONSOLE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "LoggingSettings":
        if data is None:
            return cls()
        if isinstance(data, cls):
            return data
        payload = _ensure_mapping(data, "logging")
        return cls(**_extract_fields(payload, _LOGGING_FIELD_SPECS))

    def __post_init__(self) -> None:
        _apply_field_specs(self, _LOGGING_FIELD_SPECS)
        self.level = self.level.upper()


@dataclass
class DriverConfig:
    etcd: EtcdSettings = field(default_factory=EtcdSettings)
    consul: ConsulSettings = field(default_factory=ConsulSettings)
    nacos: NacosSettings = field(default_factory=NacosSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    http_timeout: float = 5.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "DriverConfig":
        if data is None:
            return cls()
        if isinstance(data, cls):
            return data
        payload = _ensure_mapping(data, "config")
        kwargs: dict[str, Any] = {}
        if "etcd" in payload:
            kwargs["etcd"] = EtcdSettings.from_dict(payload["etcd"])
        if "consul" in payload:
            kwargs["consul"] = ConsulSettings.from_dict(payload["consul"])
        if "nacos" in payload:
            kwargs["nacos"] = NacosSettings.from_dict(payload["nacos"])
        if "logging" in payload:
            kwargs["logging"] = LoggingSettings.from_dict(payload["logging"])
        if "http_timeout" in payload:
            kwargs["http_timeout"] = _coerce_float(payload["http_timeout"], "http_timeout")
        return cls(**kwargs)

    def __post_init__(self) -> None:
        if not isinstance(self.etcd, EtcdSettings):
            self.etcd = EtcdSettings.from_dict(self.etcd)  # type: ignore[arg-type]
        if not isinstance(self.consul, ConsulSettings):
            self.consul = ConsulSettings.from_dict(self.consul)  # type: ignore[arg-type]
        if not isinstance(self.nacos, NacosSettings):
            self.nacos = NacosSettings.from_dict(self.nacos)  # type: ignore[arg-type]
        if not isinstance(self.logging, LoggingSettings):
            self.logging = LoggingSettings.from_dict(self.logging)  # type: ignore[arg-type]
        if self.http_timeout < 0:
            raise ValueError("http_timeout must be >= 0")
