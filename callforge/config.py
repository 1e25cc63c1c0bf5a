"""
Engine Configuration

This module defines the settings of the contract-interaction engine and the
registry of built-in networks.

Network endpoints are resolved once per operation from a layered priority:
an explicit user override wins over the application default (settings
loaded from CALLFORGE_* environment variables), which wins over the
network's built-in default.
"""

from enum import Enum

import structlog
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from .models.schema import Ecosystem

logger = structlog.get_logger(__name__)


class EngineEnvironment(str, Enum):
    """Deployment environment of the engine."""

    PRODUCTION = "production"
    TESTNET = "testnet"
    LOCAL = "local"


class NetworkConfig(BaseModel):
    """Static description of a network the engine can talk to."""

    id: str = Field(description="Stable network identifier, e.g. 'ethereum-mainnet'")
    name: str
    ecosystem: Ecosystem
    chain_id: int | None = Field(default=None, description="EVM chain id")
    rpc_url: str
    explorer_url: str | None = None
    api_url: str | None = Field(default=None, description="Explorer API base URL")
    native_currency_symbol: str = "ETH"
    native_currency_decimals: int = 18
    supports_etherscan_v2: bool = False
    is_testnet: bool = False

    model_config = {"frozen": True}


class NetworkOverride(BaseModel):
    """User supplied endpoint overrides for one network."""

    rpc_url: str | None = None
    explorer_url: str | None = None
    api_url: str | None = None
    api_key: str | None = None


class ExplorerConfig(BaseModel):
    """Resolved block explorer endpoints for one network."""

    name: str
    explorer_url: str | None = None
    api_url: str | None = None
    api_key: str | None = None
    is_custom: bool = False


# Built-in network defaults
NETWORKS: dict[str, NetworkConfig] = {
    "ethereum-mainnet": NetworkConfig(
        id="ethereum-mainnet",
        name="Ethereum",
        ecosystem=Ecosystem.EVM,
        chain_id=1,
        rpc_url="https://eth.llamarpc.com",
        explorer_url="https://etherscan.io",
        api_url="https://api.etherscan.io/v2/api",
        supports_etherscan_v2=True,
    ),
    "ethereum-sepolia": NetworkConfig(
        id="ethereum-sepolia",
        name="Sepolia",
        ecosystem=Ecosystem.EVM,
        chain_id=11155111,
        rpc_url="https://rpc.sepolia.org",
        explorer_url="https://sepolia.etherscan.io",
        api_url="https://api.etherscan.io/v2/api",
        supports_etherscan_v2=True,
        is_testnet=True,
    ),
    "base-mainnet": NetworkConfig(
        id="base-mainnet",
        name="Base",
        ecosystem=Ecosystem.EVM,
        chain_id=8453,
        rpc_url="https://mainnet.base.org",
        explorer_url="https://basescan.org",
        api_url="https://api.etherscan.io/v2/api",
        supports_etherscan_v2=True,
    ),
    "base-sepolia": NetworkConfig(
        id="base-sepolia",
        name="Base Sepolia",
        ecosystem=Ecosystem.EVM,
        chain_id=84532,
        rpc_url="https://sepolia.base.org",
        explorer_url="https://sepolia.basescan.org",
        api_url="https://api.etherscan.io/v2/api",
        supports_etherscan_v2=True,
        is_testnet=True,
    ),
    "polygon-mainnet": NetworkConfig(
        id="polygon-mainnet",
        name="Polygon",
        ecosystem=Ecosystem.EVM,
        chain_id=137,
        rpc_url="https://polygon-rpc.com",
        explorer_url="https://polygonscan.com",
        api_url="https://api.etherscan.io/v2/api",
        native_currency_symbol="POL",
        supports_etherscan_v2=True,
    ),
    "arbitrum-mainnet": NetworkConfig(
        id="arbitrum-mainnet",
        name="Arbitrum One",
        ecosystem=Ecosystem.EVM,
        chain_id=42161,
        rpc_url="https://arb1.arbitrum.io/rpc",
        explorer_url="https://arbiscan.io",
        api_url="https://api.etherscan.io/v2/api",
        supports_etherscan_v2=True,
    ),
    "stellar-mainnet": NetworkConfig(
        id="stellar-mainnet",
        name="Stellar",
        ecosystem=Ecosystem.STELLAR,
        rpc_url="https://mainnet.sorobanrpc.com",
        explorer_url="https://stellar.expert/explorer/public",
        native_currency_symbol="XLM",
        native_currency_decimals=7,
    ),
    "stellar-testnet": NetworkConfig(
        id="stellar-testnet",
        name="Stellar Testnet",
        ecosystem=Ecosystem.STELLAR,
        rpc_url="https://soroban-testnet.stellar.org",
        explorer_url="https://stellar.expert/explorer/testnet",
        native_currency_symbol="XLM",
        native_currency_decimals=7,
        is_testnet=True,
    ),
}

KNOWN_PROVIDERS = ("etherscan", "sourcify")


class CallForgeConfig(BaseSettings):
    """
    Main configuration class for the engine.

    All settings can be overridden via environment variables prefixed with
    CALLFORGE_. For example, CALLFORGE_ETHERSCAN_API_KEY sets etherscan_api_key.
    """

    environment: EngineEnvironment = Field(
        default=EngineEnvironment.TESTNET,
        description="Deployment environment (production, testnet, local)",
    )
    default_network: str = Field(
        default="ethereum-sepolia", description="Network used when none is given"
    )

    # Definition providers
    etherscan_api_key: str | None = Field(
        default=None, description="Application-wide Etherscan V2 API key"
    )
    etherscan_api_url: str = Field(
        default="https://api.etherscan.io/v2/api", description="Etherscan V2 endpoint"
    )
    sourcify_api_url: str = Field(
        default="https://sourcify.dev/server", description="Sourcify server base URL"
    )
    sourcify_repo_url: str = Field(
        default="https://repo.sourcify.dev", description="Sourcify repository browser"
    )
    provider_order: list[str] = Field(
        default=["etherscan", "sourcify"],
        description="Definition providers in fallback order",
    )
    per_provider_timeout_seconds: float = Field(
        default=4.0, description="Timeout for a single provider attempt"
    )
    overall_resolution_budget_seconds: float = Field(
        default=10.0, description="Total time budget across all provider attempts"
    )
    max_proxy_depth: int = Field(
        default=1, description="Proxy hops followed before giving up with low confidence"
    )

    # Execution
    confirmation_timeout_seconds: float = Field(
        default=120.0, description="Receipt polling timeout for direct signing"
    )
    relayer_poll_interval_seconds: float = Field(
        default=2.0, description="Interval between relay status polls"
    )
    relayer_timeout_seconds: float = Field(
        default=300.0, description="Relay settlement polling timeout"
    )
    default_relayer_gas_limit: int = Field(
        default=210000, description="gas_limit sent to the relay service when unset"
    )

    # Endpoint overrides (application defaults)
    rpc_overrides: dict[str, str] = Field(
        default_factory=dict, description="network id -> RPC URL"
    )
    explorer_overrides: dict[str, str] = Field(
        default_factory=dict, description="network id -> explorer URL"
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False, description="Render logs as JSON")

    @field_validator("provider_order")
    @classmethod
    def validate_provider_order(cls, v: list[str]) -> list[str]:
        """Only known providers, each at most once."""
        unknown = [p for p in v if p not in KNOWN_PROVIDERS]
        if unknown:
            raise ValueError(f"Unknown definition provider(s): {', '.join(unknown)}")
        if len(set(v)) != len(v):
            raise ValueError("Definition providers must not repeat")
        return v

    @field_validator(
        "per_provider_timeout_seconds",
        "overall_resolution_budget_seconds",
        "confirmation_timeout_seconds",
        "relayer_poll_interval_seconds",
        "relayer_timeout_seconds",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts and intervals must be positive")
        return v

    @field_validator("max_proxy_depth")
    @classmethod
    def validate_proxy_depth(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_proxy_depth cannot be negative")
        return v

    @field_validator("etherscan_api_url", "sourcify_api_url", "sourcify_repo_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid URL: {v}")
        return v.rstrip("/")

    model_config = {
        "env_prefix": "CALLFORGE_",
        "env_file": ".env",
        "extra": "ignore",
    }


# Singleton instance for global access
_config: CallForgeConfig | None = None

# User overrides registered at runtime, keyed by network id
_user_overrides: dict[str, NetworkOverride] = {}


def get_config() -> CallForgeConfig:
    """
    Get the global engine configuration instance.

    The settings are loaded from the environment on first access.
    """
    global _config
    if _config is None:
        _config = CallForgeConfig()
    return _config


def configure(config: CallForgeConfig) -> None:
    """
    Set a custom configuration instance.

    Useful for testing or when configuration needs to be loaded
    from a non-standard source.
    """
    global _config
    _config = config


def set_network_override(network_id: str, override: NetworkOverride | None) -> None:
    """Register (or clear, with None) a user override for a network."""
    if override is None:
        _user_overrides.pop(network_id, None)
    else:
        _user_overrides[network_id] = override
    logger.info("network_override_updated", network=network_id, cleared=override is None)


def get_network_override(network_id: str) -> NetworkOverride | None:
    return _user_overrides.get(network_id)


def get_network(network_id: str) -> NetworkConfig:
    """Look up a built-in network by id."""
    try:
        return NETWORKS[network_id]
    except KeyError:
        raise ValueError(f"Unknown network: {network_id}") from None


def resolve_network_config(
    network: str | NetworkConfig,
    user_override: NetworkOverride | None = None,
    config: CallForgeConfig | None = None,
) -> NetworkConfig:
    """
    Resolve the endpoints to use for one operation.

    Priority: explicit user override > registered user override >
    application default > network built-in default.

    Args:
        network: Network id or a network configuration to start from
        user_override: Explicit override for this call
        config: Settings to read application defaults from

    Returns:
        A new NetworkConfig with the winning endpoints
    """
    base = get_network(network) if isinstance(network, str) else network
    config = config or get_config()
    override = user_override or get_network_override(base.id)

    rpc_url = base.rpc_url
    explorer_url = base.explorer_url
    api_url = base.api_url

    if base.id in config.rpc_overrides:
        rpc_url = config.rpc_overrides[base.id]
    if base.id in config.explorer_overrides:
        explorer_url = config.explorer_overrides[base.id]

    if override is not None:
        rpc_url = override.rpc_url or rpc_url
        explorer_url = override.explorer_url or explorer_url
        api_url = override.api_url or api_url

    return base.model_copy(
        update={"rpc_url": rpc_url, "explorer_url": explorer_url, "api_url": api_url}
    )


def resolve_explorer_config(
    network: NetworkConfig,
    user_override: NetworkOverride | None = None,
    config: CallForgeConfig | None = None,
) -> ExplorerConfig:
    """
    Resolve block explorer endpoints and API key for a network.

    A user-configured explorer wins, then the application Etherscan V2 key
    (for V2 capable networks), then the network's plain defaults.
    """
    config = config or get_config()
    override = user_override or get_network_override(network.id)
    app_key = config.etherscan_api_key if network.supports_etherscan_v2 else None

    if override is not None and (override.explorer_url or override.api_url or override.api_key):
        logger.debug("explorer_config_resolved", network=network.id, layer="user")
        return ExplorerConfig(
            name=f"{network.name} Explorer",
            explorer_url=override.explorer_url or network.explorer_url,
            api_url=override.api_url or network.api_url,
            api_key=override.api_key or app_key,
            is_custom=True,
        )

    explorer_url = config.explorer_overrides.get(network.id, network.explorer_url)
    if app_key:
        logger.debug("explorer_config_resolved", network=network.id, layer="application")
        return ExplorerConfig(
            name=f"{network.name} Explorer (V2 API)",
            explorer_url=explorer_url,
            api_url=network.api_url or config.etherscan_api_url,
            api_key=app_key,
        )

    logger.debug("explorer_config_resolved", network=network.id, layer="default")
    return ExplorerConfig(
        name=f"{network.name} Explorer",
        explorer_url=explorer_url,
        api_url=network.api_url,
    )


def get_explorer_address_url(address: str, network: NetworkConfig) -> str | None:
    """Block explorer page for an address, or None without an explorer."""
    explorer = resolve_explorer_config(network)
    if not address or not explorer.explorer_url:
        return None
    return f"{explorer.explorer_url.rstrip('/')}/address/{address}"


def get_explorer_tx_url(tx_hash: str, network: NetworkConfig) -> str | None:
    """Block explorer page for a transaction, or None without an explorer."""
    explorer = resolve_explorer_config(network)
    if not tx_hash or not explorer.explorer_url:
        return None
    return f"{explorer.explorer_url.rstrip('/')}/tx/{tx_hash}"
