from enum import StrEnum

DRIVER_NAME = "dtm-driver-discovery"

DEFAULT_NACOS_PORT = 8848
DEFAULT_NACOS_NAMESPACE = "public"
DEFAULT_NACOS_TIMEOUT_MS = 5000
DEFAULT_NACOS_LOG_LEVEL = "debug"
DEFAULT_NACOS_GROUP = "DEFAULT_GROUP"
DEFAULT_NACOS_CLUSTER = "DEFAULT"

DEFAULT_CONSUL_TAGS = ("tag", "rpc")
DEFAULT_CONSUL_META = {"Protocol": "grpc"}
DEFAULT_CONSUL_TTL = 20

DEFAULT_ETCD_LEASE_TTL = 10

WILDCARD_HOSTS = frozenset({"", "0.0.0.0", "::", "[::]"})


class RegistryKind(StrEnum):
    """Registry backends selected by the locator scheme
    ETCD and DISCOV are aliases for the same key-value registry
    """
    ETCD = "etcd"
    DISCOV = "discov"
    CONSUL = "consul"
    NACOS = "nacos"
    DIRECT = "direct"

    @classmethod
    def from_scheme(cls, scheme: str) -> "RegistryKind | None":
        try:
            return cls(scheme)
        except ValueError:
            return None

    @property
    def is_key_value(self) -> bool:
        return self in (RegistryKind.ETCD, RegistryKind.DISCOV)


class QueryParams(StrEnum):
    """Locator query parameters understood by the registration path"""
    USER = "user"
    PASSWORD = "password"
    NAMESPACE_ID = "namespaceId"
    TIMEOUT_MS = "timeoutMs"
    NOT_LOAD_CACHE_AT_START = "notLoadCacheAtStart"
    LOG_LEVEL = "logLevel"
    TAG = "tag"
