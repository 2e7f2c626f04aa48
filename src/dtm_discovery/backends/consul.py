from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from dtm_discovery.backends.base import ConsulRegistry
from dtm_discovery.entities import ConsulConf
from dtm_discovery.exceptions import BackendError
from dtm_discovery.utils.net_utils import NetUtils

__all__ = ["ConsulRegistrar", "consul_base_url"]

logger = logging.getLogger(__name__)


def consul_base_url(host: str) -> str:
    if "://" in host:
        return host.rstrip("/")
    return f"http://{host}"


class ConsulRegistrar(ConsulRegistry):
    """Registers services with a consul agent and keeps their TTL check passing."""

    def __init__(
        self,
        *,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, transport=transport)
        self._heartbeats: dict[str, asyncio.Task] = {}

    async def _request(
        self,
        conf: ConsulConf,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        headers = {"X-Consul-Token": conf.token} if conf.token else {}
        url = f"{consul_base_url(conf.host)}{path}"
        try:
            response = await self._client.request(method, url, json=payload, params=params, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise BackendError(
                message=f"consul {path} failed with HTTP {exc.response.status_code}",
                data={"body": exc.response.text},
                cause=exc,
            ) from exc
        except httpx.RequestError as exc:
            raise BackendError(message=f"consul agent at {conf.host} unreachable: {exc}", cause=exc) from exc
        return response

    @staticmethod
    def service_id(conf: ConsulConf, host: str, port: int) -> str:
        return f"{conf.key}-{host}-{port}"

    async def register_service(self, endpoint: str, conf: ConsulConf) -> str:
        host, port = NetUtils.endpoint_host_port(endpoint)
        service_id = self.service_id(conf, host, port)
        ttl = f"{conf.ttl}s"
        registration = {
            "ID": service_id,
            "Name": conf.key,
            "Tags": list(conf.tag),
            "Meta": dict(conf.meta),
            "Address": host,
            "Port": port,
            "Checks": [
                {
                    "CheckID": service_id,
                    "TTL": ttl,
                    "Status": "passing",
                    "DeregisterCriticalServiceAfter": f"{conf.ttl * 3}s",
                }
            ],
        }
        await self._request(conf, "PUT", "/v1/agent/service/register", registration)
        logger.info(
            "Registered %s at %s:%s with consul %s", conf.key, host, port, conf.host,
            extra={"registry": "consul", "service_id": service_id, "endpoint": endpoint},
        )
        self._start_heartbeat(conf, service_id)
        return service_id

    async def pass_ttl(self, conf: ConsulConf, check_id: str) -> None:
        await self._request(
            conf,
            "PUT",
            f"/v1/agent/check/update/{check_id}",
            {"Status": "passing", "Output": ""},
        )

    def _start_heartbeat(self, conf: ConsulConf, service_id: str) -> None:
        existing = self._heartbeats.get(service_id)
        if existing is not None and not existing.done():
            return
        self._heartbeats[service_id] = asyncio.get_running_loop().create_task(
            self._heartbeat_loop(conf, service_id), name=f"consul-ttl:{service_id}"
        )

    async def _heartbeat_loop(self, conf: ConsulConf, service_id: str) -> None:
        interval = max(conf.ttl - 1, 1)
        while True:
            await asyncio.sleep(interval)
            try:
                await self.pass_ttl(conf, service_id)
            except BackendError:
                logger.warning(
                    "TTL update for %s failed", service_id, exc_info=True, extra={"service_id": service_id}
                )

    async def deregister_service(self, conf: ConsulConf, service_id: str) -> None:
        task = self._heartbeats.pop(service_id, None)
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await self._request(conf, "PUT", f"/v1/agent/service/deregister/{service_id}")
        logger.info("Deregistered %s from consul %s", service_id, conf.host)

    async def healthy_addresses(self, conf: ConsulConf, tag: str | None = None) -> list[str]:
        """Addresses of passing instances of ``conf.key``."""
        params: dict[str, Any] = {"passing": "true"}
        if tag:
            params["tag"] = tag
        response = await self._request(conf, "GET", f"/v1/health/service/{conf.key}", params=params)
        addresses: list[str] = []
        for entry in response.json() or []:
            service = entry.get("Service") or {}
            host = service.get("Address") or (entry.get("Node") or {}).get("Address")
            port = service.get("Port")
            if host and port:
                addresses.append(f"[{host}]:{port}" if ":" in host else f"{host}:{port}")
        return addresses

    async def close(self) -> None:
        tasks = list(self._heartbeats.values())
        self._heartbeats.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self._owns_client:
            await self._client.aclose()
