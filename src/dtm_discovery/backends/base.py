from abc import ABC, abstractmethod
from typing import Callable

from dtm_discovery.entities import ConsulConf, EtcdPubConf, NacosConf


class Publisher(ABC):
    """Publishes one value under a key and keeps it alive."""

    @abstractmethod
    def keep_alive(self) -> None:
        """Start publishing in the background and return immediately.

        The renewal loop lives as long as the event loop does. Failures inside
        the loop are logged, never raised to the caller.
        """

    @abstractmethod
    async def stop(self) -> None:
        """Stop renewing and withdraw the published value."""


PublisherFactory = Callable[[EtcdPubConf], Publisher]


class ConsulRegistry(ABC):
    """Synchronous-looking catalog registration against a consul agent."""

    @abstractmethod
    async def register_service(self, endpoint: str, conf: ConsulConf) -> str:
        """Register ``endpoint`` under ``conf.key``.

        Returns:
            The service id the agent knows the registration by.
        """

    @abstractmethod
    async def deregister_service(self, conf: ConsulConf, service_id: str) -> None:
        """Remove a registration made by :meth:`register_service`."""

    async def close(self) -> None:
        """Stop background heartbeats and release connections."""


class NacosRegistry(ABC):
    """Instance registration against a nacos naming service."""

    @abstractmethod
    async def register_service(self, conf: NacosConf) -> None:
        """Register ``conf.endpoint`` as an instance of ``conf.service_name``."""

    @abstractmethod
    async def deregister_service(self, conf: NacosConf) -> None:
        """Remove the instance registered for ``conf``."""

    async def close(self) -> None:
        """Shut down naming clients."""
