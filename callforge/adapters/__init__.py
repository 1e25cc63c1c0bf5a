"""
Ecosystem Adapters

Usage:
    from callforge.adapters import get_adapter

    adapter = get_adapter("base-sepolia")
    result = await adapter.load_contract(ContractArtifacts(address="0x..."))
"""

from ..config import CallForgeConfig, NetworkConfig, resolve_network_config
from ..models.schema import Ecosystem
from .base import ContractAdapter
from .evm import EvmAdapter
from .stellar import StellarAdapter

ADAPTERS: dict[Ecosystem, type[ContractAdapter]] = {
    Ecosystem.EVM: EvmAdapter,
    Ecosystem.STELLAR: StellarAdapter,
}


def get_adapter(
    network: str | NetworkConfig,
    config: CallForgeConfig | None = None,
) -> ContractAdapter:
    """Build the adapter for a network's ecosystem, with endpoints resolved."""
    network_config = resolve_network_config(network, config=config)
    adapter_class = ADAPTERS.get(network_config.ecosystem)
    if adapter_class is None:
        raise ValueError(f"No adapter for ecosystem {network_config.ecosystem.value}")
    return adapter_class(network_config, config=config)  # type: ignore[call-arg]


__all__ = [
    "ADAPTERS",
    "ContractAdapter",
    "EvmAdapter",
    "StellarAdapter",
    "get_adapter",
]
