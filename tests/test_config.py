"""
Tests for engine configuration and endpoint resolution.
"""

import pytest
from pydantic import ValidationError

from callforge.config import (
    CallForgeConfig,
    NetworkOverride,
    configure,
    get_config,
    get_explorer_address_url,
    get_explorer_tx_url,
    get_network,
    get_network_override,
    resolve_explorer_config,
    resolve_network_config,
    set_network_override,
)
from callforge.models.schema import Ecosystem


# ==================== Settings ====================


class TestCallForgeConfig:
    """Tests for settings defaults and validation."""

    def test_defaults(self):
        config = CallForgeConfig()

        assert config.provider_order == ["etherscan", "sourcify"]
        assert config.max_proxy_depth == 1
        assert config.default_relayer_gas_limit == 210000

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("CALLFORGE_ETHERSCAN_API_KEY", "env-key")
        monkeypatch.setenv("CALLFORGE_PROVIDER_ORDER", '["sourcify"]')

        config = CallForgeConfig()

        assert config.etherscan_api_key == "env-key"
        assert config.provider_order == ["sourcify"]

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValidationError, match="Unknown definition provider"):
            CallForgeConfig(provider_order=["blockscout"])

    def test_repeated_provider_rejected(self):
        with pytest.raises(ValidationError, match="must not repeat"):
            CallForgeConfig(provider_order=["sourcify", "sourcify"])

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValidationError):
            CallForgeConfig(per_provider_timeout_seconds=0)

    def test_negative_proxy_depth_rejected(self):
        with pytest.raises(ValidationError):
            CallForgeConfig(max_proxy_depth=-1)

    def test_url_trailing_slash_stripped(self):
        config = CallForgeConfig(sourcify_api_url="https://sourcify.example/server/")

        assert config.sourcify_api_url == "https://sourcify.example/server"

    def test_invalid_url_rejected(self):
        with pytest.raises(ValidationError, match="Invalid URL"):
            CallForgeConfig(etherscan_api_url="ftp://example.com")


class TestConfigSingleton:
    """Tests for the global configuration."""

    def test_get_config_is_cached(self):
        assert get_config() is get_config()

    def test_configure_replaces(self):
        config = CallForgeConfig(etherscan_api_key="custom")

        configure(config)

        assert get_config() is config


# ==================== Networks ====================


class TestResolveNetworkConfig:
    """Tests for layered endpoint resolution."""

    def test_unknown_network(self):
        with pytest.raises(ValueError, match="Unknown network"):
            get_network("nowhere")

    def test_builtin_default(self, test_config):
        network = resolve_network_config("ethereum-sepolia")

        assert network.rpc_url == "https://rpc.sepolia.org"
        assert network.ecosystem == Ecosystem.EVM

    def test_application_default_wins_over_builtin(self):
        config = CallForgeConfig(rpc_overrides={"ethereum-sepolia": "https://app.rpc"})

        assert resolve_network_config("ethereum-sepolia", config=config).rpc_url == "https://app.rpc"

    def test_user_override_wins(self):
        config = CallForgeConfig(rpc_overrides={"ethereum-sepolia": "https://app.rpc"})

        network = resolve_network_config(
            "ethereum-sepolia",
            user_override=NetworkOverride(rpc_url="https://user.rpc"),
            config=config,
        )

        assert network.rpc_url == "https://user.rpc"

    def test_registered_override(self, test_config):
        set_network_override("base-sepolia", NetworkOverride(rpc_url="https://registered.rpc"))

        assert resolve_network_config("base-sepolia").rpc_url == "https://registered.rpc"
        assert get_network_override("base-sepolia") is not None

        set_network_override("base-sepolia", None)

        assert get_network_override("base-sepolia") is None
        assert resolve_network_config("base-sepolia").rpc_url == "https://sepolia.base.org"

    def test_builtin_is_not_mutated(self):
        config = CallForgeConfig(rpc_overrides={"ethereum-sepolia": "https://app.rpc"})

        resolve_network_config("ethereum-sepolia", config=config)

        assert get_network("ethereum-sepolia").rpc_url == "https://rpc.sepolia.org"


class TestResolveExplorerConfig:
    """Tests for explorer endpoint and API key layers."""

    def test_application_key(self, sepolia, test_config):
        explorer = resolve_explorer_config(sepolia)

        assert explorer.api_key == "app-key"
        assert explorer.is_custom is False
        assert explorer.name == "Sepolia Explorer (V2 API)"

    def test_user_key_wins(self, sepolia, test_config):
        explorer = resolve_explorer_config(sepolia, user_override=NetworkOverride(api_key="user-key"))

        assert explorer.api_key == "user-key"
        assert explorer.is_custom is True

    def test_no_key(self, sepolia):
        explorer = resolve_explorer_config(sepolia, config=CallForgeConfig())

        assert explorer.api_key is None
        assert explorer.explorer_url == "https://sepolia.etherscan.io"

    def test_stellar_never_gets_etherscan_key(self, stellar_testnet, test_config):
        assert resolve_explorer_config(stellar_testnet).api_key is None

    def test_explorer_links(self, sepolia, test_config):
        assert get_explorer_address_url("0xabc", sepolia) == "https://sepolia.etherscan.io/address/0xabc"
        assert get_explorer_tx_url("0xdef", sepolia) == "https://sepolia.etherscan.io/tx/0xdef"
        assert get_explorer_tx_url("", sepolia) is None
