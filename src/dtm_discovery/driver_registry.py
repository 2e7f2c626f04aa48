import inspect
import logging
from typing import Any, Protocol

from dtm_discovery.exceptions import DriverNotFoundError
from dtm_discovery.utils.constant import RegistryKind

logger = logging.getLogger(__name__)


class Driver(Protocol):
    """What a transaction coordinator needs from a discovery driver."""

    def get_name(self) -> str: ...

    def register_addr_resolver(self) -> None: ...

    async def register_service(self, target: str, endpoint: str) -> None: ...

    def parse_server_method(self, uri: str, kind: RegistryKind | str | None = None) -> tuple[str, str]: ...


def driver(name: str):
    """Decorator to make a driver class constructible by name."""

    def decorator(cls: Any):
        if name:
            DriverRegistry.register_driver(name, cls)
            logger.debug(f"registered driver class: {name}")
        else:
            logger.warning("No driver name specified. Skipping registration.")
        return cls

    return decorator


class DriverRegistry:
    """Catalog of driver classes and the driver instances handed out by name."""

    driver_classes: dict[str, Any] = {}
    driver_instances: dict[str, Driver] = {}

    @classmethod
    def from_driver(cls, name: str, **kwargs: Any) -> Driver:
        """Creates (or returns a cached) driver instance.

        Keyword arguments the driver constructor does not accept are dropped.

        Args:
            name: The name the driver class was registered under.
        Returns:
            An instance of the driver.
        """
        if name in cls.driver_instances:
            return cls.driver_instances[name]

        driver_class = cls.driver_classes.get(name)
        if not driver_class:
            raise DriverNotFoundError(message=f"Driver '{name}' not found.", data={"name": name})

        accepted = inspect.signature(driver_class).parameters
        instance: Driver = driver_class(**{k: v for k, v in kwargs.items() if k in accepted})
        cls.driver_instances[name] = instance
        return instance

    @classmethod
    def register_driver(cls, name: str, driver_class) -> None:
        cls.driver_classes[name] = driver_class

    @classmethod
    def register_instance(cls, instance: Driver) -> None:
        """Hand an already constructed driver to the registry."""
        name = instance.get_name()
        if name in cls.driver_instances and cls.driver_instances[name] is not instance:
            logger.warning("Replacing driver instance %s", name)
        cls.driver_instances[name] = instance

    @classmethod
    def get(cls, name: str) -> Driver:
        instance = cls.driver_instances.get(name)
        if instance is None:
            raise DriverNotFoundError(message=f"Driver '{name}' not found.", data={"name": name})
        return instance

    @classmethod
    def list_drivers(cls) -> list[Driver]:
        return list(cls.driver_instances.values())

    @classmethod
    def clear(cls) -> None:
        cls.driver_instances.clear()
