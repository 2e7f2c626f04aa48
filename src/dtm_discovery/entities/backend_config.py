from pydantic import BaseModel, Field

from dtm_discovery.utils.constant import (
    DEFAULT_CONSUL_META,
    DEFAULT_CONSUL_TAGS,
    DEFAULT_CONSUL_TTL,
    DEFAULT_NACOS_CLUSTER,
    DEFAULT_NACOS_GROUP,
    DEFAULT_NACOS_LOG_LEVEL,
    DEFAULT_NACOS_NAMESPACE,
    DEFAULT_NACOS_TIMEOUT_MS,
)


class EtcdPubConf(BaseModel):
    """What a key-value publisher writes and where."""
    hosts: list[str]
    key: str
    value: str
    user: str | None = None
    password: str | None = None

    @property
    def authenticated(self) -> bool:
        return bool(self.user)


class ConsulConf(BaseModel):
    """Consul agent registration settings."""
    host: str
    key: str
    tag: list[str] = Field(default_factory=lambda: list(DEFAULT_CONSUL_TAGS))
    meta: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_CONSUL_META))
    ttl: int = DEFAULT_CONSUL_TTL
    token: str | None = None


class NacosServerConfig(BaseModel):
    ip_addr: str
    port: int

    @property
    def address(self) -> str:
        if ":" in self.ip_addr:
            return f"[{self.ip_addr}]:{self.port}"
        return f"{self.ip_addr}:{self.port}"


class NacosClientConfig(BaseModel):
    namespace_id: str = DEFAULT_NACOS_NAMESPACE
    timeout_ms: int = DEFAULT_NACOS_TIMEOUT_MS
    not_load_cache_at_start: bool = True
    log_level: str = DEFAULT_NACOS_LOG_LEVEL
    username: str | None = None
    password: str | None = None


class NacosConf(BaseModel):
    """Everything a nacos registrar needs for one instance."""
    service_name: str
    endpoint: str
    servers: list[NacosServerConfig]
    client: NacosClientConfig = Field(default_factory=NacosClientConfig)
    group: str = DEFAULT_NACOS_GROUP
    cluster: str = DEFAULT_NACOS_CLUSTER
    weight: float = 100.0
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def server_addresses(self) -> str:
        return ",".join(server.address for server in self.servers)
