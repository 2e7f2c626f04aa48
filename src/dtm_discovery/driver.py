from __future__ import annotations

import logging

from dtm_discovery.backends.base import ConsulRegistry, NacosRegistry, PublisherFactory
from dtm_discovery.config.models import DriverConfig
from dtm_discovery.driver_registry import DriverRegistry, driver
from dtm_discovery.exceptions import DriverNotFoundError
from dtm_discovery.method_parser import parse_server_method
from dtm_discovery.observability.logging import configure_logging
from dtm_discovery.registration import RegistrationDispatcher
from dtm_discovery.resolver import register_addr_resolver
from dtm_discovery.utils.constant import DRIVER_NAME, RegistryKind

__all__ = ["DiscoveryDriver", "install"]

logger = logging.getLogger(__name__)


@driver(name=DRIVER_NAME)
class DiscoveryDriver:
    """Registry driver for a transaction coordinator.

    Construct it (optionally with your own backends) and hand it to the
    coordinator, or let :func:`install` put a default one in the
    :class:`DriverRegistry`.
    """

    def __init__(
        self,
        config: DriverConfig | None = None,
        *,
        publisher_factory: PublisherFactory | None = None,
        consul: ConsulRegistry | None = None,
        nacos: NacosRegistry | None = None,
    ) -> None:
        self.config = config or DriverConfig()
        self.dispatcher = RegistrationDispatcher(
            self.config,
            publisher_factory=publisher_factory,
            consul=consul,
            nacos=nacos,
        )

    def get_name(self) -> str:
        return DRIVER_NAME

    def register_addr_resolver(self) -> None:
        register_addr_resolver(self.config)

    async def register_service(self, target: str, endpoint: str) -> None:
        await self.dispatcher.register_service(target, endpoint)

    def parse_server_method(self, uri: str, kind: RegistryKind | str | None = None) -> tuple[str, str]:
        return parse_server_method(uri, kind)

    async def close(self) -> None:
        await self.dispatcher.close()


def install(config: DriverConfig | None = None, *, setup_logging: bool = False) -> DiscoveryDriver:
    """Register a default :class:`DiscoveryDriver` once and return it.

    With ``setup_logging`` the package loggers are routed through the structured
    handler described by ``config.logging``.
    """
    try:
        existing = DriverRegistry.get(DRIVER_NAME)
    except DriverNotFoundError:
        existing = None
    if isinstance(existing, DiscoveryDriver):
        return existing
    instance = DiscoveryDriver(config)
    if setup_logging:
        configure_logging(instance.config.logging.level, instance.config.logging.format)
    DriverRegistry.register_instance(instance)
    logger.info("Installed driver %s", DRIVER_NAME)
    return instance
