"""Public API for dtm_discovery.

Registry driver for a distributed-transaction coordinator: registers this
process with etcd, consul or nacos, and splits combined ``locator + method``
targets back into a dialable server locator and a method path.
"""

from dtm_discovery.driver import DiscoveryDriver, install
from dtm_discovery.driver_registry import DriverRegistry, driver
from dtm_discovery.exceptions import (
    BackendError,
    DiscoveryError,
    DriverNotFoundError,
    InvalidLocatorError,
    LocatorParseError,
    MissingMethodError,
    ResolveError,
    UnknownSchemeError,
)
from dtm_discovery.method_parser import parse_server_method
from dtm_discovery.registration import RegistrationDispatcher
from dtm_discovery.resolver import dial, register_addr_resolver, resolve_target
from dtm_discovery.utils.constant import DRIVER_NAME, RegistryKind
from dtm_discovery.utils.locator import Locator, parse_locator

__all__ = [
    "DRIVER_NAME",
    "DiscoveryDriver",
    "DriverRegistry",
    "Locator",
    "RegistrationDispatcher",
    "RegistryKind",
    "dial",
    "driver",
    "install",
    "parse_locator",
    "parse_server_method",
    "register_addr_resolver",
    "resolve_target",
    # errors
    "BackendError",
    "DiscoveryError",
    "DriverNotFoundError",
    "InvalidLocatorError",
    "LocatorParseError",
    "MissingMethodError",
    "ResolveError",
    "UnknownSchemeError",
]
