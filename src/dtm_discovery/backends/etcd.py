"""Key-value registry support over the etcd v3 JSON gateway.

Values are published as ``<key>/<leaseId> = <endpoint>`` bound to a lease, so a
crashed process drops out of the registry once its lease runs out.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any

import httpx

from dtm_discovery.backends.base import Publisher
from dtm_discovery.entities import EtcdPubConf
from dtm_discovery.exceptions import BackendError
from dtm_discovery.utils.constant import DEFAULT_ETCD_LEASE_TTL

__all__ = ["EtcdGateway", "EtcdPublisher", "make_etcd_key"]

logger = logging.getLogger(__name__)


def _b64(value: str | bytes) -> str:
    if isinstance(value, str):
        value = value.encode("utf-8")
    return base64.b64encode(value).decode("ascii")


def _unb64(value: str) -> str:
    return base64.b64decode(value).decode("utf-8")


def _prefix_end(prefix: str) -> bytes:
    raw = bytearray(prefix.encode("utf-8"))
    for i in range(len(raw) - 1, -1, -1):
        if raw[i] < 0xFF:
            raw[i] += 1
            return bytes(raw[: i + 1])
    # All 0xff: read to the end of the keyspace.
    return b"\x00"


def make_etcd_key(key: str, lease_id: int) -> str:
    return f"{key}/{lease_id}"


class EtcdGateway:
    """Thin client for the etcd v3 JSON gateway.

    Endpoints are tried in order; the first one that answers is remembered.
    """

    def __init__(
        self,
        hosts: list[str],
        *,
        user: str | None = None,
        password: str | None = None,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not hosts or not any(hosts):
            raise BackendError(message="etcd: no endpoints given")
        self._hosts = [host for host in hosts if host]
        self._user = user
        self._password = password
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._current = 0
        self._token: str | None = None

    @staticmethod
    def _base_url(host: str) -> str:
        if "://" in host:
            return host.rstrip("/")
        return f"http://{host}"

    async def _send(self, path: str, payload: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
        last_exc: Exception | None = None
        for offset in range(len(self._hosts)):
            index = (self._current + offset) % len(self._hosts)
            url = f"{self._base_url(self._hosts[index])}{path}"
            try:
                response = await self._client.post(url, json=payload, headers=headers)
            except httpx.TransportError as exc:
                logger.debug("etcd endpoint %s unreachable: %s", self._hosts[index], exc)
                last_exc = exc
                continue
            self._current = index
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise BackendError(
                    message=f"etcd {path} failed with HTTP {response.status_code}",
                    data={"body": response.text},
                    cause=exc,
                ) from exc
            return response.json()
        raise BackendError(
            message=f"etcd: no endpoint reachable among {self._hosts}",
            cause=last_exc,
        ) from last_exc

    async def authenticate(self) -> None:
        if not self._user:
            return
        result = await self._send(
            "/v3/auth/authenticate",
            {"name": self._user, "password": self._password or ""},
            {},
        )
        self._token = result.get("token")

    async def call(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        if self._user and self._token is None:
            await self.authenticate()
        headers = {"Authorization": self._token} if self._token else {}
        return await self._send(path, payload, headers)

    async def grant(self, ttl: int) -> int:
        result = await self.call("/v3/lease/grant", {"TTL": ttl})
        return int(result["ID"])

    async def put(self, key: str, value: str, lease_id: int | None = None) -> None:
        payload: dict[str, Any] = {"key": _b64(key), "value": _b64(value)}
        if lease_id is not None:
            payload["lease"] = str(lease_id)
        await self.call("/v3/kv/put", payload)

    async def keep_alive_once(self, lease_id: int) -> int:
        """Renew ``lease_id`` once and return the remaining TTL (0 when expired)."""
        result = await self.call("/v3/lease/keepalive", {"ID": str(lease_id)})
        body = result.get("result", result)
        return int(body.get("TTL", 0))

    async def revoke(self, lease_id: int) -> None:
        await self.call("/v3/lease/revoke", {"ID": str(lease_id)})

    async def get_prefix(self, prefix: str) -> dict[str, str]:
        result = await self.call(
            "/v3/kv/range",
            {"key": _b64(prefix), "range_end": _b64(_prefix_end(prefix))},
        )
        return {_unb64(kv["key"]): _unb64(kv.get("value", "")) for kv in result.get("kvs", [])}

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class EtcdPublisher(Publisher):
    """Publishes an endpoint under a key and renews its lease in the background."""

    def __init__(
        self,
        conf: EtcdPubConf,
        *,
        lease_ttl: int = DEFAULT_ETCD_LEASE_TTL,
        timeout: float = 5.0,
        gateway: EtcdGateway | None = None,
    ) -> None:
        self.conf = conf
        self.lease_ttl = lease_ttl
        self._gateway = gateway or EtcdGateway(
            conf.hosts, user=conf.user, password=conf.password, timeout=timeout
        )
        self._lease_id: int | None = None
        self._task: asyncio.Task | None = None

    @property
    def lease_id(self) -> int | None:
        return self._lease_id

    @property
    def full_key(self) -> str | None:
        if self._lease_id is None:
            return None
        return make_etcd_key(self.conf.key, self._lease_id)

    async def register(self) -> int:
        """Grant a lease and put the value under it."""
        lease_id = await self._gateway.grant(self.lease_ttl)
        await self._gateway.put(make_etcd_key(self.conf.key, lease_id), self.conf.value, lease_id)
        self._lease_id = lease_id
        logger.info(
            "Published %s under %s", self.conf.value, self.full_key,
            extra={"registry": "etcd", "endpoint": self.conf.value, "lease_id": lease_id},
        )
        return lease_id

    def keep_alive(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.get_running_loop().create_task(
            self._keep_alive_loop(), name=f"etcd-keepalive:{self.conf.key}"
        )

    async def _keep_alive_loop(self) -> None:
        interval = max(self.lease_ttl / 3, 1.0)
        while True:
            try:
                if self._lease_id is None:
                    await self.register()
                elif await self._gateway.keep_alive_once(self._lease_id) <= 0:
                    logger.warning("Lease for %s expired, re-publishing", self.conf.key)
                    self._lease_id = None
                    continue
            except asyncio.CancelledError:
                raise
            except (BackendError, httpx.HTTPError, KeyError, ValueError):
                logger.warning("Keep-alive for %s failed", self.conf.key, exc_info=True)
                self._lease_id = None
            await asyncio.sleep(interval)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        if self._lease_id is not None:
            try:
                await self._gateway.revoke(self._lease_id)
            except BackendError:
                logger.warning("Failed to revoke lease for %s", self.conf.key, exc_info=True)
            self._lease_id = None
        await self._gateway.aclose()
