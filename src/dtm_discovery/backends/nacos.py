from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from v2.nacos import (
    ClientConfigBuilder,
    DeregisterInstanceParam,
    ListInstanceParam,
    NacosNamingService,
    RegisterInstanceParam,
)

from dtm_discovery.backends.base import NacosRegistry
from dtm_discovery.entities import NacosConf
from dtm_discovery.exceptions import BackendError
from dtm_discovery.observability.logging import LEVEL_NAME_TO_INT
from dtm_discovery.utils.net_utils import NetUtils

__all__ = ["NacosRegistrar", "build_client_config"]

logger = logging.getLogger(__name__)

NamingServiceFactory = Callable[[Any], Awaitable[Any]]


def build_client_config(conf: NacosConf) -> Any:
    """Translate a NacosConf into a ``v2.nacos`` client config."""
    client = conf.client
    builder = (
        ClientConfigBuilder()
        .server_address(conf.server_addresses)
        .namespace_id(client.namespace_id)
        .log_level(LEVEL_NAME_TO_INT.get(client.log_level.upper(), logging.DEBUG))
    )
    if client.username:
        builder = builder.username(client.username).password(client.password or "")
    client_config = builder.build()
    client_config.timeout_ms = client.timeout_ms
    client_config.load_cache_at_start = not client.not_load_cache_at_start
    return client_config


async def _create_naming_service(client_config: Any) -> Any:
    return await NacosNamingService.create_naming_service(client_config)


class NacosRegistrar(NacosRegistry):
    """Registers instances with nacos; naming clients are cached per server set and namespace."""

    def __init__(self, naming_factory: NamingServiceFactory | None = None) -> None:
        self._naming_factory = naming_factory or _create_naming_service
        self._naming: dict[tuple[str, str], Any] = {}

    async def naming_service(self, conf: NacosConf) -> Any:
        cache_key = (conf.server_addresses, conf.client.namespace_id)
        naming = self._naming.get(cache_key)
        if naming is None:
            try:
                naming = await self._naming_factory(build_client_config(conf))
            except Exception as exc:
                raise BackendError(
                    message=f"nacos client for {conf.server_addresses} could not be created: {exc}",
                    cause=exc,
                ) from exc
            self._naming[cache_key] = naming
        return naming

    async def register_service(self, conf: NacosConf) -> None:
        ip, port = NetUtils.endpoint_host_port(conf.endpoint)
        naming = await self.naming_service(conf)
        param = RegisterInstanceParam(
            service_name=conf.service_name,
            group_name=conf.group,
            cluster_name=conf.cluster,
            ip=ip,
            port=port,
            weight=conf.weight,
            enabled=True,
            healthy=True,
            ephemeral=True,
            metadata=dict(conf.metadata),
        )
        try:
            ok = await naming.register_instance(request=param)
        except Exception as exc:
            raise BackendError(message=f"nacos register of {conf.service_name} failed: {exc}", cause=exc) from exc
        if ok is False:
            raise BackendError(message=f"nacos refused registration of {conf.service_name}")
        logger.info(
            "Registered %s at %s:%s with nacos %s (namespace %s)",
            conf.service_name, ip, port, conf.server_addresses, conf.client.namespace_id,
            extra={"registry": "nacos", "endpoint": conf.endpoint},
        )

    async def deregister_service(self, conf: NacosConf) -> None:
        ip, port = NetUtils.endpoint_host_port(conf.endpoint)
        naming = await self.naming_service(conf)
        param = DeregisterInstanceParam(
            service_name=conf.service_name,
            group_name=conf.group,
            cluster_name=conf.cluster,
            ip=ip,
            port=port,
            ephemeral=True,
        )
        try:
            await naming.deregister_instance(request=param)
        except Exception as exc:
            raise BackendError(message=f"nacos deregister of {conf.service_name} failed: {exc}", cause=exc) from exc

    async def healthy_addresses(self, conf: NacosConf) -> list[str]:
        naming = await self.naming_service(conf)
        param = ListInstanceParam(
            service_name=conf.service_name,
            group_name=conf.group,
            healthy_only=True,
        )
        try:
            instances = await naming.list_instances(param)
        except Exception as exc:
            raise BackendError(message=f"nacos lookup of {conf.service_name} failed: {exc}", cause=exc) from exc
        addresses: list[str] = []
        for instance in instances or []:
            ip = getattr(instance, "ip", None)
            port = getattr(instance, "port", None)
            if ip and port:
                addresses.append(f"[{ip}]:{port}" if ":" in ip else f"{ip}:{port}")
        return addresses

    async def close(self) -> None:
        naming_services = list(self._naming.values())
        self._naming.clear()
        for naming in naming_services:
            try:
                await naming.shutdown()
            except Exception:
                logger.warning("Shutting down nacos client failed", exc_info=True, extra={"registry": "nacos"})
