"""
Shared fixtures for engine tests.

Provides a clean configuration per test, sample ABIs and addresses, and a
mocked chain client for code that reads on-chain state.
"""

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

import callforge.config as config_module
from callforge.chains import base_client
from callforge.chains.base_client import BaseChainClient
from callforge.config import CallForgeConfig, get_network
from callforge.resolver.transformer import stellar_spec_to_schema

# ==================== Configuration ====================


@pytest.fixture(autouse=True)
def reset_engine_state():
    """Reset module-level singletons between tests."""
    config_module._config = None
    config_module._user_overrides.clear()
    base_client._clients.clear()
    yield
    config_module._config = None
    config_module._user_overrides.clear()
    base_client._clients.clear()


@pytest.fixture
def test_config() -> CallForgeConfig:
    """Configuration with short timeouts and an application API key."""
    config = CallForgeConfig(
        etherscan_api_key="app-key",
        per_provider_timeout_seconds=1.0,
        overall_resolution_budget_seconds=2.0,
        relayer_poll_interval_seconds=0.01,
        relayer_timeout_seconds=1.0,
        confirmation_timeout_seconds=1.0,
    )
    config_module.configure(config)
    return config


@pytest.fixture
def sepolia():
    return get_network("ethereum-sepolia")


@pytest.fixture
def stellar_testnet():
    return get_network("stellar-testnet")


# ==================== ABIs ====================


@pytest.fixture
def erc20_abi() -> list[dict[str, Any]]:
    return [
        {
            "type": "function",
            "name": "transfer",
            "inputs": [
                {"name": "to", "type": "address"},
                {"name": "amount", "type": "uint256"},
            ],
            "outputs": [{"name": "", "type": "bool"}],
            "stateMutability": "nonpayable",
        },
        {
            "type": "function",
            "name": "balanceOf",
            "inputs": [{"name": "account", "type": "address"}],
            "outputs": [{"name": "", "type": "uint256"}],
            "stateMutability": "view",
        },
        {
            "type": "function",
            "name": "name",
            "inputs": [],
            "outputs": [{"name": "", "type": "string"}],
            "stateMutability": "view",
        },
        {
            "type": "event",
            "name": "Transfer",
            "inputs": [
                {"name": "from", "type": "address", "indexed": True},
                {"name": "to", "type": "address", "indexed": True},
                {"name": "value", "type": "uint256", "indexed": False},
            ],
        },
    ]


@pytest.fixture
def uups_proxy_abi() -> list[dict[str, Any]]:
    return [
        {
            "type": "constructor",
            "inputs": [
                {"name": "implementation", "type": "address"},
                {"name": "_data", "type": "bytes"},
            ],
            "stateMutability": "payable",
        },
        {"type": "error", "name": "ERC1967InvalidImplementation", "inputs": []},
        {
            "type": "event",
            "name": "Upgraded",
            "inputs": [{"name": "implementation", "type": "address", "indexed": True}],
        },
        {"type": "fallback", "stateMutability": "payable"},
    ]


@pytest.fixture
def shapes_schema():
    """Stellar contract whose enums and tuples carry user-defined types."""
    return stellar_spec_to_schema(
        {
            "name": "Canvas",
            "functions": [
                {
                    "name": "draw",
                    "inputs": [
                        {"name": "shape", "type": "Shape"},
                        {"name": "pair", "type": "Tuple<Point, U32>"},
                    ],
                },
                {"name": "last", "read_only": True, "inputs": [], "outputs": [{"type": "Shape"}]},
            ],
            "types": {
                "Point": {
                    "kind": "struct",
                    "fields": [{"name": "x", "type": "I32"}, {"name": "y", "type": "I32"}],
                },
                "Color": {
                    "kind": "enum",
                    "variants": [{"name": "Red", "type": "void"}, {"name": "Green", "type": "void"}],
                },
                "Shape": {
                    "kind": "enum",
                    "variants": [
                        {"name": "Empty", "type": "void"},
                        {"name": "At", "type": "tuple", "payload_types": ["Point"]},
                        {"name": "Paint", "type": "tuple", "payload_types": ["Color"]},
                    ],
                },
            },
        }
    )


# ==================== Chain Client ====================


@pytest.fixture
def mock_chain_client():
    """Chain client whose storage, code and calls are all empty."""
    client = MagicMock(spec=BaseChainClient)
    client.get_storage_at = AsyncMock(return_value="0x" + "0" * 64)
    client.get_code = AsyncMock(return_value="0x")
    client.call = AsyncMock(return_value=b"")
    client.call_function = AsyncMock(return_value=())
    client.get_receipt = AsyncMock(return_value=None)
    client.wait_for_transaction = AsyncMock(return_value={"status": 1, "blockNumber": 1})
    return client

