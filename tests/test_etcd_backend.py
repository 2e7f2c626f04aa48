import asyncio
import base64
import json

import httpx
import pytest

from dtm_discovery.backends.etcd import EtcdGateway, EtcdPublisher, _prefix_end, make_etcd_key
from dtm_discovery.entities import EtcdPubConf
from dtm_discovery.exceptions import BackendError


def b64(text: str) -> str:
    return base64.b64encode(text.encode()).decode()


class FakeEtcd:
    """Answers the handful of v3 gateway calls the publisher makes."""

    def __init__(self, lease_id: int = 7, keepalive_ttl: int = 10, down_hosts: tuple[str, ...] = ()):
        self.lease_id = lease_id
        self.keepalive_ttl = keepalive_ttl
        self.down_hosts = down_hosts
        self.calls: list[tuple[str, str, dict, str | None]] = []
        self.kvs: dict[str, str] = {}

    def paths(self) -> list[str]:
        return [path for _, path, _, _ in self.calls]

    def body(self, path: str) -> dict:
        return next(body for _, p, body, _ in self.calls if p == path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host in self.down_hosts:
            raise httpx.ConnectError("connection refused", request=request)
        body = json.loads(request.content or b"{}")
        path = request.url.path
        self.calls.append((request.url.host, path, body, request.headers.get("Authorization")))
        if path == "/v3/auth/authenticate":
            return httpx.Response(200, json={"token": "tok"})
        if path == "/v3/lease/grant":
            return httpx.Response(200, json={"ID": str(self.lease_id), "TTL": str(body["TTL"])})
        if path == "/v3/kv/put":
            self.kvs[body["key"]] = body["value"]
            return httpx.Response(200, json={"header": {}})
        if path == "/v3/lease/keepalive":
            result = {"ID": body["ID"]}
            if self.keepalive_ttl:
                result["TTL"] = str(self.keepalive_ttl)
            return httpx.Response(200, json={"result": result})
        if path == "/v3/lease/revoke":
            return httpx.Response(200, json={"header": {}})
        if path == "/v3/kv/range":
            kvs = [{"key": key, "value": value} for key, value in sorted(self.kvs.items())]
            return httpx.Response(200, json={"kvs": kvs, "count": str(len(kvs))})
        return httpx.Response(404, text="not found")

    def gateway(self, hosts=("127.0.0.1:2379",), **kwargs) -> EtcdGateway:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return EtcdGateway(list(hosts), client=client, **kwargs)


def make_conf(**kwargs) -> EtcdPubConf:
    values = {"hosts": ["127.0.0.1:2379"], "key": "dtm.service", "value": "10.0.0.5:36790"}
    values.update(kwargs)
    return EtcdPubConf(**values)


def test_make_etcd_key():
    assert make_etcd_key("dtm.service", 7) == "dtm.service/7"


def test_prefix_end():
    assert _prefix_end("a/") == b"a0"


class TestEtcdGateway:
    @pytest.mark.asyncio
    async def test_authenticates_before_first_call(self):
        etcd = FakeEtcd()
        gateway = etcd.gateway(user="root", password="secret")
        await gateway.grant(10)
        await gateway.grant(10)
        assert etcd.paths() == ["/v3/auth/authenticate", "/v3/lease/grant", "/v3/lease/grant"]
        assert etcd.body("/v3/auth/authenticate") == {"name": "root", "password": "secret"}
        assert [token for *_, token in etcd.calls[1:]] == ["tok", "tok"]

    @pytest.mark.asyncio
    async def test_fails_over_to_next_host(self):
        etcd = FakeEtcd(down_hosts=("10.0.0.1",))
        gateway = etcd.gateway(hosts=("10.0.0.1:2379", "10.0.0.2:2379"))
        assert await gateway.grant(10) == 7
        assert [host for host, *_ in etcd.calls] == ["10.0.0.2"]

    @pytest.mark.asyncio
    async def test_no_reachable_host(self):
        etcd = FakeEtcd(down_hosts=("10.0.0.1", "10.0.0.2"))
        gateway = etcd.gateway(hosts=("10.0.0.1:2379", "10.0.0.2:2379"))
        with pytest.raises(BackendError) as info:
            await gateway.grant(10)
        assert isinstance(info.value.cause, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_http_error(self):
        gateway = FakeEtcd().gateway()
        with pytest.raises(BackendError) as info:
            await gateway.call("/v3/unknown", {})
        assert "404" in info.value.message

    def test_requires_hosts(self):
        with pytest.raises(BackendError):
            EtcdGateway([""])

    @pytest.mark.asyncio
    async def test_expired_lease_reports_zero_ttl(self):
        gateway = FakeEtcd(keepalive_ttl=0).gateway()
        assert await gateway.keep_alive_once(7) == 0

    @pytest.mark.asyncio
    async def test_get_prefix(self):
        etcd = FakeEtcd()
        gateway = etcd.gateway()
        await gateway.put("svc/1", "10.0.0.1:80", 1)
        await gateway.put("svc/2", "10.0.0.2:80", 2)
        assert await gateway.get_prefix("svc/") == {"svc/1": "10.0.0.1:80", "svc/2": "10.0.0.2:80"}
        assert etcd.body("/v3/kv/range") == {"key": b64("svc/"), "range_end": b64("svc0")}


class TestEtcdPublisher:
    @pytest.mark.asyncio
    async def test_register_puts_value_under_lease(self):
        etcd = FakeEtcd()
        publisher = EtcdPublisher(make_conf(), lease_ttl=10, gateway=etcd.gateway())
        assert await publisher.register() == 7
        assert publisher.full_key == "dtm.service/7"
        assert etcd.body("/v3/lease/grant") == {"TTL": 10}
        assert etcd.body("/v3/kv/put") == {
            "key": b64("dtm.service/7"),
            "value": b64("10.0.0.5:36790"),
            "lease": "7",
        }

    @pytest.mark.asyncio
    async def test_keep_alive_returns_immediately_and_stop_revokes(self):
        etcd = FakeEtcd()
        publisher = EtcdPublisher(make_conf(), lease_ttl=30, gateway=etcd.gateway())

        publisher.keep_alive()
        assert etcd.calls == []

        for _ in range(100):
            if "/v3/kv/put" in etcd.paths():
                break
            await asyncio.sleep(0.01)
        assert publisher.lease_id == 7

        await publisher.stop()
        assert etcd.paths()[-1] == "/v3/lease/revoke"
        assert etcd.body("/v3/lease/revoke") == {"ID": "7"}
        assert publisher.lease_id is None

    @pytest.mark.asyncio
    async def test_keep_alive_is_idempotent(self):
        publisher = EtcdPublisher(make_conf(), lease_ttl=30, gateway=FakeEtcd().gateway())
        publisher.keep_alive()
        task = publisher._task
        publisher.keep_alive()
        assert publisher._task is task
        await publisher.stop()

    @pytest.mark.asyncio
    async def test_keep_alive_survives_unreachable_cluster(self):
        etcd = FakeEtcd(down_hosts=("127.0.0.1",))
        publisher = EtcdPublisher(make_conf(), lease_ttl=30, gateway=etcd.gateway())
        publisher.keep_alive()
        await asyncio.sleep(0.05)
        assert publisher._task is not None and not publisher._task.done()
        assert publisher.lease_id is None
        await publisher.stop()
