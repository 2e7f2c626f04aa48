import pytest

from dtm_discovery.exceptions import InvalidLocatorError, LocatorParseError
from dtm_discovery.utils.locator import parse_locator, split_host_port
from dtm_discovery.utils.net_utils import NetUtils


class TestParseLocator:
    def test_components(self):
        locator = parse_locator("nacos://127.0.0.1:8848/my-service?namespaceId=ns1&timeoutMs=3000")
        assert locator.scheme == "nacos"
        assert locator.host == "127.0.0.1:8848"
        assert locator.path == "/my-service"
        assert locator.key == "my-service"
        assert locator.raw_query == "namespaceId=ns1&timeoutMs=3000"
        assert locator.query("namespaceId") == "ns1"
        assert locator.query("logLevel", "debug") == "debug"

    def test_scheme_is_lowercased(self):
        assert parse_locator("CONSUL://localhost:8500/svc").scheme == "consul"

    def test_multiple_hosts(self):
        locator = parse_locator("etcd://h1:2379,h2:2379/dtm.service")
        assert locator.hosts == ["h1:2379", "h2:2379"]
        assert locator.key == "dtm.service"

    def test_first_query_value_wins(self):
        locator = parse_locator("etcd://h:2379/k?user=a&user=b&password=")
        assert locator.query("user") == "a"
        assert locator.query_params["password"] == ""

    def test_userinfo_is_kept_apart_from_host(self):
        locator = parse_locator("etcd://root:secret@h:2379/k")
        assert locator.userinfo == "root:secret"
        assert locator.host == "h:2379"
        assert locator.geturl() == "etcd://root:secret@h:2379/k"

    def test_geturl_round_trips_raw_query(self):
        raw = "consul://10.0.0.5:8500/inventory-svc?tag=prod&token=xyz789&zone=us-east-1"
        assert str(parse_locator(raw)) == raw

    def test_replace(self):
        locator = parse_locator("consul://h:8500/svc/a.B/C").replace(path="/svc")
        assert locator.geturl() == "consul://h:8500/svc"

    def test_ipv6_host(self):
        locator = parse_locator("nacos://[::1]:8848/svc")
        assert locator.host == "[::1]:8848"
        assert locator.split_host_port() == ("::1", "8848")

    @pytest.mark.parametrize(
        "raw",
        [
            "etcd://localhost:abc/key",
            "consul://[::1:8500/svc",
            "://localhost:8500/svc",
            "etcd://local\nhost:2379/key",
        ],
    )
    def test_rejects_malformed(self, raw):
        with pytest.raises(LocatorParseError):
            parse_locator(raw)


class TestSplitHostPort:
    def test_plain(self):
        assert split_host_port("10.0.0.1:8080") == ("10.0.0.1", "8080")

    def test_no_port(self):
        assert split_host_port("example.com") == ("example.com", "")

    def test_ipv6(self):
        assert split_host_port("[fe80::1]:50051") == ("fe80::1", "50051")

    def test_unbalanced_bracket(self):
        with pytest.raises(LocatorParseError):
            split_host_port("[fe80::1:50051")


class TestNetUtils:
    def test_concrete_endpoint_unchanged(self):
        assert NetUtils.figure_out_listen_on("10.0.0.5:36790") == "10.0.0.5:36790"

    def test_wildcard_endpoint_uses_internal_ip(self, monkeypatch):
        monkeypatch.setattr(NetUtils, "internal_ip", staticmethod(lambda: "192.168.1.9"))
        assert NetUtils.figure_out_listen_on("0.0.0.0:36790") == "192.168.1.9:36790"
        assert NetUtils.figure_out_listen_on(":36790") == "192.168.1.9:36790"

    def test_endpoint_host_port(self):
        assert NetUtils.endpoint_host_port("10.0.0.5:36790") == ("10.0.0.5", 36790)

    @pytest.mark.parametrize("endpoint", ["10.0.0.5:abc", "10.0.0.5:70000", "10.0.0.5"])
    def test_endpoint_host_port_rejects_bad_port(self, endpoint):
        with pytest.raises(InvalidLocatorError):
            NetUtils.endpoint_host_port(endpoint)
