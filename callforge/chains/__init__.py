"""
Chain Client Package

On-chain access used by proxy detection, read-only queries and
confirmation polling.

Usage:
    from callforge.chains import get_chain_client

    async def example():
        client = await get_chain_client("ethereum-sepolia")
        word = await client.get_storage_at("0x...", 0)
"""

from ..errors import ChainClientError
from .base_client import (
    BaseChainClient,
    TransactionFailedError,
    close_chain_clients,
    get_chain_client,
)
from .evm_client import EVMChainClient

__all__ = [
    "BaseChainClient",
    "ChainClientError",
    "TransactionFailedError",
    "EVMChainClient",
    "get_chain_client",
    "close_chain_clients",
]
