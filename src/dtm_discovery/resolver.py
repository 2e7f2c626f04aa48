"""Address resolution for registry-backed targets.

gRPC in Python cannot be taught new name-resolution schemes, so targets such as
``consul://127.0.0.1:8500/order-svc`` are resolved here and handed to gRPC in its
native ``ipv4:``/``ipv6:``/``dns:`` form.
"""

from __future__ import annotations

import ipaddress
import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import grpc

from dtm_discovery.backends.consul import ConsulRegistrar
from dtm_discovery.backends.etcd import EtcdGateway
from dtm_discovery.backends.nacos import NacosRegistrar
from dtm_discovery.config.models import DriverConfig
from dtm_discovery.exceptions import ResolveError
from dtm_discovery.registration import build_consul_conf, build_etcd_conf, build_nacos_conf
from dtm_discovery.utils.constant import QueryParams, RegistryKind
from dtm_discovery.utils.locator import Locator, parse_locator, split_host_port

__all__ = [
    "AddressResolver",
    "ConsulResolver",
    "DirectResolver",
    "DiscovResolver",
    "EtcdResolver",
    "NacosResolver",
    "ResolverRegistry",
    "dial",
    "register_addr_resolver",
    "resolve_target",
    "to_grpc_target",
]

logger = logging.getLogger(__name__)


class AddressResolver(ABC):
    """Turns a locator into the ``host:port`` addresses currently serving it."""

    scheme: ClassVar[str]

    @abstractmethod
    async def resolve(self, locator: Locator) -> list[str]:
        raise NotImplementedError


class DirectResolver(AddressResolver):
    """``direct://host1:port,host2:port/``: the authority already is the address list."""

    scheme = RegistryKind.DIRECT.value

    async def resolve(self, locator: Locator) -> list[str]:
        return [host for host in locator.hosts if host]


class EtcdResolver(AddressResolver):
    """Reads every value published under ``<key>/``."""

    scheme = RegistryKind.ETCD.value

    def __init__(self, config: DriverConfig | None = None) -> None:
        self.config = config or DriverConfig()

    async def resolve(self, locator: Locator) -> list[str]:
        conf = build_etcd_conf(locator, "")
        gateway = EtcdGateway(
            conf.hosts,
            user=conf.user,
            password=conf.password,
            timeout=self.config.http_timeout,
        )
        try:
            values = await gateway.get_prefix(f"{conf.key}/")
        finally:
            await gateway.aclose()
        return sorted(set(values.values()))


class DiscovResolver(EtcdResolver):
    scheme = RegistryKind.DISCOV.value


class ConsulResolver(AddressResolver):
    """Passing instances from the consul health endpoint, filtered by the ``tag`` query."""

    scheme = RegistryKind.CONSUL.value

    def __init__(self, config: DriverConfig | None = None, registrar: ConsulRegistrar | None = None) -> None:
        self.config = config or DriverConfig()
        self._registrar = registrar

    @property
    def registrar(self) -> ConsulRegistrar:
        if self._registrar is None:
            self._registrar = ConsulRegistrar(timeout=self.config.http_timeout)
        return self._registrar

    async def resolve(self, locator: Locator) -> list[str]:
        conf = build_consul_conf(locator, self.config.consul)
        return await self.registrar.healthy_addresses(conf, tag=locator.query(QueryParams.TAG) or None)


class NacosResolver(AddressResolver):
    scheme = RegistryKind.NACOS.value

    def __init__(self, config: DriverConfig | None = None, registrar: NacosRegistrar | None = None) -> None:
        self.config = config or DriverConfig()
        self._registrar = registrar

    @property
    def registrar(self) -> NacosRegistrar:
        if self._registrar is None:
            self._registrar = NacosRegistrar()
        return self._registrar

    async def resolve(self, locator: Locator) -> list[str]:
        conf = build_nacos_conf(locator, "", self.config.nacos)
        return await self.registrar.healthy_addresses(conf)


class ResolverRegistry:
    """Process-wide table of address resolvers keyed by scheme."""

    resolvers: ClassVar[dict[str, AddressResolver]] = {}

    @classmethod
    def register(cls, resolver: AddressResolver, *, replace: bool = False) -> None:
        if resolver.scheme in cls.resolvers and not replace:
            return
        cls.resolvers[resolver.scheme] = resolver
        logger.debug("Registered address resolver for %s://", resolver.scheme)

    @classmethod
    def get(cls, scheme: str) -> AddressResolver | None:
        return cls.resolvers.get(scheme)

    @classmethod
    def schemes(cls) -> list[str]:
        return sorted(cls.resolvers)

    @classmethod
    def clear(cls) -> None:
        cls.resolvers.clear()


def register_addr_resolver(config: DriverConfig | None = None) -> None:
    """Install the built-in resolvers; schemes that already have one are left alone."""
    for resolver in (
        DirectResolver(),
        EtcdResolver(config),
        DiscovResolver(config),
        ConsulResolver(config),
        NacosResolver(config),
    ):
        ResolverRegistry.register(resolver)


def _is_ip(host: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        return None


def to_grpc_target(addresses: list[str]) -> str:
    """Render resolved addresses as a target gRPC can dial without custom resolvers.

    All-IPv4 lists become ``ipv4:a:p,b:q``, all-IPv6 lists ``ipv6:[a]:p,...``.
    Anything involving host names is dialled through ``dns:`` on the first address.
    """
    if not addresses:
        raise ResolveError(message="no addresses to dial")
    versions: set[int | None] = set()
    for address in addresses:
        host, _ = split_host_port(address)
        ip = _is_ip(host)
        versions.add(ip.version if ip is not None else None)
    if versions == {4}:
        return "ipv4:" + ",".join(addresses)
    if versions == {6}:
        return "ipv6:" + ",".join(addresses)
    if len(addresses) > 1:
        logger.warning("Mixed or named addresses %s; dialling %s only", addresses, addresses[0])
    return f"dns:{addresses[0]}"


async def resolve_target(target: str) -> str:
    """Resolve ``target`` to a gRPC-native target string.

    Schemeless targets (``host:port``) are returned unchanged.

    Raises:
        ResolveError: no resolver for the scheme, or no instances found.
    """
    if "//" not in target:
        return target
    locator = parse_locator(target)
    resolver = ResolverRegistry.get(locator.scheme)
    if resolver is None:
        raise ResolveError(
            message=f"no address resolver for scheme: {locator.scheme}",
            data={"target": target},
        )
    addresses = await resolver.resolve(locator)
    if not addresses:
        raise ResolveError(message=f"no instances available for {target}", data={"target": target})
    logger.debug("Resolved %s to %s", target, addresses)
    return to_grpc_target(addresses)


async def dial(target: str, **channel_kwargs: Any) -> grpc.aio.Channel:
    """Open an insecure gRPC channel to whatever ``target`` currently resolves to."""
    return grpc.aio.insecure_channel(await resolve_target(target), **channel_kwargs)
