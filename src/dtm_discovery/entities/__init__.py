from .backend_config import (
    ConsulConf,
    EtcdPubConf,
    NacosClientConfig,
    NacosConf,
    NacosServerConfig,
)

__all__ = [
    "ConsulConf",
    "EtcdPubConf",
    "NacosClientConfig",
    "NacosConf",
    "NacosServerConfig",
]
