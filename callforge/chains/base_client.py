"""
Chain Client Base

Abstract interface for the on-chain reads the engine needs: storage slots
and bytecode for proxy detection, eth_call for read-only queries, and
receipt polling for confirmation tracking. Each ecosystem with on-chain
access provides a concrete client.
"""

from abc import ABC, abstractmethod
from typing import Any

import structlog

from ..config import NetworkConfig, resolve_network_config
from ..errors import ChainClientError

logger = structlog.get_logger(__name__)


class TransactionFailedError(ChainClientError):
    """Raised when a mined transaction reports failure."""

    pass


class BaseChainClient(ABC):
    """
    Abstract base class for chain client implementations.

    The client is not connected until initialize() is called.
    """

    def __init__(self, network: NetworkConfig) -> None:
        """
        Initialize the chain client.

        Args:
            network: Resolved network configuration (endpoints already layered)
        """
        self.network = network
        self._rpc_endpoint = network.rpc_url
        self._initialized = False

    @abstractmethod
    async def initialize(self) -> None:
        """Establish the RPC connection and verify connectivity."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection and cleanup resources."""
        pass

    # ==================== State Reads ====================

    @abstractmethod
    async def get_storage_at(self, address: str, slot: str | int) -> str:
        """
        Read one storage word.

        Args:
            address: Contract address
            slot: Storage slot as int or 0x-prefixed hex

        Returns:
            The 32-byte word as 0x-prefixed hex
        """
        pass

    @abstractmethod
    async def get_code(self, address: str) -> str:
        """Return deployed bytecode as 0x-prefixed hex ("0x" when none)."""
        pass

    @abstractmethod
    async def call(self, address: str, data: str) -> bytes:
        """
        Execute a read-only call.

        Args:
            address: Contract address
            data: 0x-prefixed calldata

        Returns:
            Raw return data
        """
        pass

    @abstractmethod
    async def call_function(
        self,
        address: str,
        abi_entry: dict[str, Any],
        args: list[Any],
    ) -> tuple[Any, ...]:
        """Encode a call from its ABI item, execute it and decode the outputs."""
        pass

    # ==================== Transactions ====================

    @abstractmethod
    async def wait_for_transaction(
        self,
        tx_hash: str,
        timeout_seconds: float = 120,
    ) -> dict[str, Any]:
        """
        Wait for a transaction to be mined.

        Args:
            tx_hash: The transaction hash to monitor
            timeout_seconds: Maximum time to wait

        Returns:
            The transaction receipt

        Raises:
            TimeoutError: If no receipt arrives in time
            TransactionFailedError: If the transaction reverted
        """
        pass

    @abstractmethod
    async def get_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        """Return the receipt, or None while the transaction is pending or unknown."""
        pass

    def _ensure_initialized(self) -> None:
        """Raise error if client is not initialized."""
        if not self._initialized:
            raise ChainClientError(
                f"Chain client for {self.network.id} not initialized. "
                "Call initialize() first."
            )


# Initialized clients, keyed by (network id, rpc url)
_clients: dict[tuple[str, str], BaseChainClient] = {}


async def get_chain_client(network: str | NetworkConfig) -> BaseChainClient:
    """
    Get an initialized client for a network.

    Endpoints are resolved through the layered network configuration;
    clients are cached per resolved RPC URL.
    """
    from .evm_client import EVMChainClient

    resolved = resolve_network_config(network)
    key = (resolved.id, resolved.rpc_url)
    client = _clients.get(key)
    if client is None:
        if resolved.chain_id is None:
            raise ChainClientError(f"Network {resolved.id} has no EVM chain client")
        client = EVMChainClient(resolved)
        await client.initialize()
        _clients[key] = client
        logger.info("chain_client_initialized", network=resolved.id)
    return client


async def close_chain_clients() -> None:
    """Close and forget all cached clients."""
    for client in _clients.values():
        await client.close()
    _clients.clear()
