import pytest

from dtm_discovery.config import (
    CONFIG_PATH_ENV,
    ConfigError,
    DriverConfig,
    get_default_config_path,
    load_config,
    load_config_with_overrides,
    load_default_config,
)


def write(path, content: str):
    path.write_text(content, encoding="utf-8")
    return path


def test_defaults():
    config = DriverConfig.from_dict(None)
    assert config.etcd.lease_ttl == 10
    assert config.consul.ttl == 20
    assert config.consul.tags == ["tag", "rpc"]
    assert config.consul.meta == {"Protocol": "grpc"}
    assert config.nacos.default_port == 8848
    assert config.nacos.lenient_numbers is False
    assert config.logging.level == "INFO"
    assert config.logging.format == "console"
    assert config.http_timeout == 5.0


def test_load_config_with_env_expansion(tmp_path, monkeypatch):
    monkeypatch.setenv("CONSUL_TOKEN", "abc")
    monkeypatch.delenv("CONSUL_TTL", raising=False)
    path = write(
        tmp_path / "dtm_discovery.yaml",
        """
dtm_discovery:
  http_timeout: 2.5
  consul:
    ttl: ${CONSUL_TTL:-30}
    token: ${CONSUL_TOKEN}
    tags: grpc,dtm
  nacos:
    lenient_numbers: "true"
  logging:
    level: debug
    format: json
""",
    )
    config = load_config(path)
    assert config.http_timeout == 2.5
    assert config.consul.ttl == 30
    assert config.consul.token == "abc"
    assert config.consul.tags == ["grpc", "dtm"]
    assert config.nacos.lenient_numbers is True
    assert config.logging.level == "DEBUG"
    assert config.logging.format == "json"


def test_missing_env_without_default(tmp_path, monkeypatch):
    monkeypatch.delenv("DTM_DISCOVERY_UNSET", raising=False)
    path = write(tmp_path / "config.yaml", "consul:\n  token: ${DTM_DISCOVERY_UNSET}\n")
    with pytest.raises(ConfigError, match="DTM_DISCOVERY_UNSET"):
        load_config(path)


def test_invalid_value(tmp_path):
    path = write(tmp_path / "config.yaml", "consul:\n  ttl: 1\n")
    with pytest.raises(ConfigError):
        load_config(path)


def test_invalid_log_format(tmp_path):
    path = write(tmp_path / "config.yaml", "logging:\n  format: xml\n")
    with pytest.raises(ConfigError):
        load_config(path)


def test_unsupported_suffix(tmp_path):
    path = write(tmp_path / "config.json", "{}")
    with pytest.raises(ConfigError):
        load_config(path)


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yaml")


def test_non_mapping(tmp_path):
    path = write(tmp_path / "config.yaml", "- a\n- b\n")
    with pytest.raises(ConfigError):
        load_config(path)


def test_overrides_are_deep_merged(tmp_path):
    base = write(tmp_path / "base.yaml", "etcd:\n  lease_ttl: 15\nconsul:\n  ttl: 20\n  token: base\n")
    override = write(tmp_path / "override.yaml", "consul:\n  ttl: 40\n")
    config = load_config_with_overrides(base, override)
    assert config.etcd.lease_ttl == 15
    assert config.consul.ttl == 40
    assert config.consul.token == "base"


def test_default_config_without_file(tmp_path, monkeypatch):
    monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    assert load_default_config() == DriverConfig()
    assert load_config(None) == DriverConfig()


def test_default_config_from_working_directory(tmp_path, monkeypatch):
    monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
    monkeypatch.chdir(tmp_path)
    write(tmp_path / "dtm_discovery.yaml", "nacos:\n  default_port: 9848\n")
    assert load_default_config().nacos.default_port == 9848


def test_default_config_path_from_environment(tmp_path, monkeypatch):
    path = write(tmp_path / "custom.yml", "etcd:\n  lease_ttl: 6\n")
    monkeypatch.setenv(CONFIG_PATH_ENV, str(path))
    assert get_default_config_path() == path
    assert load_config(None).etcd.lease_ttl == 6


def test_top_level_keys_override_root_section(tmp_path):
    path = write(tmp_path / "config.yaml", "dtm_discovery:\n  http_timeout: 1\nhttp_timeout: 3\n")
    assert load_config(path).http_timeout == 3.0
