from __future__ import annotations

import logging

from dtm_discovery.backends.base import ConsulRegistry, NacosRegistry, Publisher, PublisherFactory
from dtm_discovery.config.models import ConsulSettings, DriverConfig, NacosSettings
from dtm_discovery.entities import (
    ConsulConf,
    EtcdPubConf,
    NacosClientConfig,
    NacosConf,
    NacosServerConfig,
)
from dtm_discovery.exceptions import InvalidLocatorError, LocatorParseError, UnknownSchemeError
from dtm_discovery.utils.constant import (
    DEFAULT_NACOS_LOG_LEVEL,
    DEFAULT_NACOS_NAMESPACE,
    DEFAULT_NACOS_TIMEOUT_MS,
    QueryParams,
    RegistryKind,
)
from dtm_discovery.utils.locator import Locator, parse_locator

__all__ = [
    "RegistrationDispatcher",
    "build_consul_conf",
    "build_etcd_conf",
    "build_nacos_conf",
]

logger = logging.getLogger(__name__)


def _parse_uint(text: str, field_name: str, *, lenient: bool) -> int:
    if text.isascii() and text.isdigit():
        return int(text)
    if lenient:
        logger.warning("Malformed %s %r, using 0", field_name, text)
        return 0
    raise InvalidLocatorError(message=f"invalid {field_name}: {text!r}", data={field_name: text})


def build_etcd_conf(locator: Locator, endpoint: str) -> EtcdPubConf:
    user = locator.query(QueryParams.USER)
    return EtcdPubConf(
        hosts=locator.hosts,
        key=locator.key,
        value=endpoint,
        user=user or None,
        password=locator.query(QueryParams.PASSWORD) if user else None,
    )


def build_consul_conf(locator: Locator, settings: ConsulSettings | None = None) -> ConsulConf:
    settings = settings or ConsulSettings()
    return ConsulConf(
        host=locator.host,
        key=locator.key,
        tag=list(settings.tags),
        meta=dict(settings.meta),
        ttl=settings.ttl,
        token=settings.token,
    )


def build_nacos_conf(locator: Locator, endpoint: str, settings: NacosSettings | None = None) -> NacosConf:
    """Build the nacos registration from the locator authority and query.

    Query defaults: namespaceId ``public``, timeoutMs 5000, logLevel ``debug``;
    notLoadCacheAtStart is true unless the query says exactly ``false``.
    """
    settings = settings or NacosSettings()
    lenient = settings.lenient_numbers
    host, port_text = locator.split_host_port()
    if port_text or locator.host.endswith(":"):
        # An explicit ":" with nothing after it is a malformed port, not a missing one.
        port = _parse_uint(port_text, "port", lenient=lenient)
    else:
        port = settings.default_port

    params = locator.query_params
    timeout_text = params.get(QueryParams.TIMEOUT_MS, "")
    user = params.get(QueryParams.USER, "")
    client = NacosClientConfig(
        namespace_id=params.get(QueryParams.NAMESPACE_ID) or DEFAULT_NACOS_NAMESPACE,
        timeout_ms=_parse_uint(timeout_text, "timeoutMs", lenient=lenient) if timeout_text else DEFAULT_NACOS_TIMEOUT_MS,
        not_load_cache_at_start=params.get(QueryParams.NOT_LOAD_CACHE_AT_START) != "false",
        log_level=params.get(QueryParams.LOG_LEVEL) or DEFAULT_NACOS_LOG_LEVEL,
        username=user or None,
        password=params.get(QueryParams.PASSWORD) if user else None,
    )
    return NacosConf(
        service_name=locator.key,
        endpoint=endpoint,
        servers=[NacosServerConfig(ip_addr=host, port=port)],
        client=client,
        group=settings.group,
        cluster=settings.cluster,
        weight=settings.weight,
    )


class RegistrationDispatcher:
    """Registers this process's endpoint with the registry a locator names."""

    def __init__(
        self,
        config: DriverConfig | None = None,
        *,
        publisher_factory: PublisherFactory | None = None,
        consul: ConsulRegistry | None = None,
        nacos: NacosRegistry | None = None,
    ) -> None:
        self.config = config or DriverConfig()
        self._publisher_factory = publisher_factory or self._default_publisher
        self._consul = consul
        self._nacos = nacos
        self._publishers: list[Publisher] = []

    def _default_publisher(self, conf: EtcdPubConf) -> Publisher:
        from dtm_discovery.backends.etcd import EtcdPublisher

        return EtcdPublisher(conf, lease_ttl=self.config.etcd.lease_ttl, timeout=self.config.http_timeout)

    @property
    def consul(self) -> ConsulRegistry:
        if self._consul is None:
            from dtm_discovery.backends.consul import ConsulRegistrar

            self._consul = ConsulRegistrar(timeout=self.config.http_timeout)
        return self._consul

    @property
    def nacos(self) -> NacosRegistry:
        if self._nacos is None:
            from dtm_discovery.backends.nacos import NacosRegistrar

            self._nacos = NacosRegistrar()
        return self._nacos

    @property
    def publishers(self) -> list[Publisher]:
        return list(self._publishers)

    async def register_service(self, target: str, endpoint: str) -> None:
        """Register ``endpoint`` with the registry ``target`` points at.

        An empty target means registration is disabled and is not an error.

        Raises:
            LocatorParseError: ``target`` is not a parseable URI.
            UnknownSchemeError: the scheme names no supported registry.
            InvalidLocatorError: a nacos port or timeout is malformed.
            BackendError: the consul or nacos call failed.
        """
        if not target:
            logger.debug("No registry target configured, skipping registration")
            return

        locator = parse_locator(target)
        if not locator.scheme:
            raise LocatorParseError(message="missing protocol scheme", data={"target": target})
        kind = RegistryKind.from_scheme(locator.scheme)
        if kind is None or kind is RegistryKind.DIRECT:
            raise UnknownSchemeError(
                message=f"unknown scheme: {locator.scheme}",
                data={"scheme": locator.scheme},
            )

        if kind.is_key_value:
            publisher = self._publisher_factory(build_etcd_conf(locator, endpoint))
            publisher.keep_alive()
            self._publishers.append(publisher)
            logger.info(
                "Publishing %s under %s on %s", endpoint, locator.key, locator.host,
                extra={"registry": kind.value, "target": target, "endpoint": endpoint},
            )
        elif kind is RegistryKind.CONSUL:
            await self.consul.register_service(endpoint, build_consul_conf(locator, self.config.consul))
        else:
            await self.nacos.register_service(build_nacos_conf(locator, endpoint, self.config.nacos))

    async def close(self) -> None:
        """Stop every keep-alive started by this dispatcher and release registry clients."""
        publishers, self._publishers = self._publishers, []
        for publisher in publishers:
            await publisher.stop()
        if self._consul is not None:
            await self._consul.close()
        if self._nacos is not None:
            await self._nacos.close()
