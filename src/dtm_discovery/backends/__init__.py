from .base import ConsulRegistry, NacosRegistry, Publisher, PublisherFactory
from .consul import ConsulRegistrar
from .etcd import EtcdGateway, EtcdPublisher
from .nacos import NacosRegistrar

__all__ = [
    "ConsulRegistrar",
    "ConsulRegistry",
    "EtcdGateway",
    "EtcdPublisher",
    "NacosRegistrar",
    "NacosRegistry",
    "Publisher",
    "PublisherFactory",
]
