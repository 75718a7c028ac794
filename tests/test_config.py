"""
Tests for configuration loading and connection resolution.
"""

import io
import json
from decimal import Decimal

import pytest

from publish.synths.config import (
    ConfigError,
    ConfigManager,
    ConfigValue,
    PublishConfig,
    ValidationError,
    ensure_network,
    explorer_link_prefix,
    get_config_manager,
    load_connections,
)
from publish.synths.errors import InputError
from publish.synths.observability import configure_logging

KEY = "0x" + "11" * 32


class TestConfigValue:
    """Test single configuration values."""

    def test_default(self):
        assert ConfigValue(default=5).get() == 5

    def test_env_overrides(self, monkeypatch):
        value = ConfigValue(default=5, env_var="PUBLISH_TEST_VALUE")
        value.set(7)
        monkeypatch.setenv("PUBLISH_TEST_VALUE", "9")
        assert value.get() == 9

    def test_coerce_types(self):
        assert ConfigValue(default=Decimal("1"))._coerce("2.5") == Decimal("2.5")
        assert ConfigValue(default=False)._coerce("yes") is True
        assert ConfigValue(default=("a",))._coerce("XDR, sUSD") == ("XDR", "sUSD")

    def test_bad_coercion(self):
        with pytest.raises(ValidationError):
            ConfigValue(default=1).set("many")

    def test_validator(self):
        value = ConfigValue(default=1, validator=lambda x: x > 0)
        with pytest.raises(ValidationError):
            value.set(0)

    def test_change_callback(self):
        seen = []
        value = ConfigValue(default=1)
        value.on_change(lambda old, new: seen.append((old, new)))
        value.set(2)
        assert seen == [(None, 2)]


class TestConfigManager:
    """Test the configuration manager."""

    def test_singleton_and_reset(self):
        mgr = ConfigManager()
        assert get_config_manager() is mgr
        ConfigManager.reset()
        assert ConfigManager() is not mgr

    def test_defaults(self):
        mgr = get_config_manager()
        assert mgr.get("network.default_network") == "kovan"
        assert mgr.get("gas.gas_price_gwei") == Decimal("1")
        assert mgr.get("gas.gas_limit") == 150000
        assert mgr.get("removal.protected_synths") == ("XDR", "sUSD")

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text(
            "network:\n  default_network: rinkeby\n"
            "gas:\n  gas_price_gwei: 3.5\n  gas_limit: 200000\n"
            "removal:\n  protected_synths: [XDR, sUSD, sETH]\n"
        )
        mgr = get_config_manager()
        mgr.load_from_file(path)

        assert mgr.get("network.default_network") == "rinkeby"
        assert mgr.get("gas.gas_price_gwei") == Decimal("3.5")
        assert mgr.get("gas.gas_limit") == 200000
        assert mgr.get("removal.protected_synths") == ("XDR", "sUSD", "sETH")
        assert mgr.loaded_paths == [path]

    def test_file_load_logged_on_config_layer(self, tmp_path):
        buf = io.StringIO()
        configure_logging(level="info", fmt="json", stream=buf)
        path = tmp_path / "logged.yaml"
        path.write_text("gas:\n  gas_limit: 5000\n")

        get_config_manager().load_from_file(path)

        events = [json.loads(line) for line in buf.getvalue().splitlines()]
        loaded = [e for e in events if e["message"] == "Loaded configuration file"]
        assert loaded[-1]["layer"] == "config"
        assert loaded[-1]["context"] == {"path": str(path), "keys": ["gas"]}

    def test_load_defaults_picks_up_project_file(self, tmp_path):
        (tmp_path / "publish.yaml").write_text("gas:\n  gas_limit: 99000\n")
        mgr = get_config_manager()
        mgr.load_defaults()
        assert mgr.get("gas.gas_limit") == 99000

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("gas:\n  gas_limt: 1\n")
        with pytest.raises(ConfigError, match="gas.gas_limt"):
            get_config_manager().load_from_file(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("gas: [\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            get_config_manager().load_from_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            get_config_manager().load_from_file(tmp_path / "nope.yaml")

    def test_env_precedence(self, tmp_path, monkeypatch):
        path = tmp_path / "c.yaml"
        path.write_text("gas:\n  gas_limit: 1000\n")
        mgr = get_config_manager()
        mgr.load_from_file(path)
        monkeypatch.setenv("PUBLISH_GAS_LIMIT", "2000")
        assert mgr.get("gas.gas_limit") == 2000

    def test_set_and_invalid_path(self):
        mgr = get_config_manager()
        mgr.set("gas.gas_limit", 123456)
        assert mgr.get("gas.gas_limit") == 123456
        with pytest.raises(ConfigError):
            mgr.get("gas.nothing")
        with pytest.raises(ConfigError):
            mgr.set("gas", 1)

    def test_validate(self, monkeypatch):
        mgr = get_config_manager()
        assert mgr.validate() == []
        monkeypatch.setenv("PUBLISH_NETWORK", "moonnet")
        errors = mgr.validate()
        assert len(errors) == 1
        assert errors[0].startswith("network.default_network")

    def test_secret_masked(self, monkeypatch):
        monkeypatch.setenv("PUBLISH_PRIVATE_KEY", KEY)
        data = get_config_manager().config.to_dict()
        assert data["network"]["private_key"] == "***"
        assert KEY not in PublishConfig().to_yaml()

    def test_export_schema(self):
        schema = get_config_manager().export_schema()
        gas_limit = schema["properties"]["gas"]["gas_limit"]
        assert gas_limit["type"] == "int"
        assert gas_limit["env_var"] == "PUBLISH_GAS_LIMIT"


class TestNetworks:
    """Test network validation and connection loading."""

    @pytest.mark.parametrize("name", ["kovan", "KOVAN", " mainnet ", "local"])
    def test_ensure_network(self, name):
        assert ensure_network(name) == name.strip().lower()

    @pytest.mark.parametrize("name", ["moonnet", "", None])
    def test_ensure_network_rejects(self, name):
        with pytest.raises(InputError):
            ensure_network(name)

    def test_explorer_prefix(self):
        assert explorer_link_prefix("mainnet") == "https://etherscan.io"
        assert explorer_link_prefix("kovan") == "https://kovan.etherscan.io"

    def test_provider_template(self, monkeypatch):
        monkeypatch.setenv("PUBLISH_PROVIDER_URL", "https://network.example.org/rpc")
        monkeypatch.setenv("PUBLISH_PRIVATE_KEY", KEY)
        connections = load_connections("ropsten")
        assert connections.provider_url == "https://ropsten.example.org/rpc"
        assert connections.explorer_link_prefix == "https://ropsten.etherscan.io"

    def test_infura_fallback(self, monkeypatch):
        monkeypatch.setenv("PUBLISH_INFURA_PROJECT_ID", "abc123")
        monkeypatch.setenv("PUBLISH_PRIVATE_KEY", KEY)
        assert load_connections("kovan").provider_url == "https://kovan.infura.io/v3/abc123"

    def test_local_network(self, monkeypatch):
        monkeypatch.setenv("PUBLISH_PRIVATE_KEY", KEY)
        assert load_connections("local").provider_url == "http://127.0.0.1:8545"

    def test_missing_node(self, monkeypatch):
        monkeypatch.setenv("PUBLISH_PRIVATE_KEY", KEY)
        with pytest.raises(ConfigError, match="No node configured"):
            load_connections("kovan")

    def test_missing_key(self, monkeypatch):
        monkeypatch.setenv("PUBLISH_PROVIDER_URL", "http://node")
        with pytest.raises(ConfigError, match="No signing key"):
            load_connections("kovan")

    def test_repr_hides_key(self, monkeypatch):
        monkeypatch.setenv("PUBLISH_PRIVATE_KEY", KEY)
        assert KEY not in repr(load_connections("local"))
