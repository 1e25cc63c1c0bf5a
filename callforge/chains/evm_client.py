"""
EVM Chain Client Implementation

Concrete chain client for EVM-compatible networks, built on web3.py's
AsyncWeb3. Used by proxy detection (storage slots, bytecode, getter calls),
the query path (eth_call) and direct-signer confirmation polling.
"""

import asyncio
from typing import Any

import structlog
from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import TransactionNotFound  # type: ignore[import-not-found]

from ..config import NetworkConfig
from ..errors import ChainClientError
from ..models.execution import canonical_abi_type
from .base_client import BaseChainClient, TransactionFailedError

logger = structlog.get_logger(__name__)


class EVMChainClient(BaseChainClient):
    """
    Chain client for EVM-compatible blockchains.

    Reads go straight to the configured RPC endpoint; signing is never done
    here, it belongs to the wallet capability.
    """

    def __init__(self, network: NetworkConfig) -> None:
        super().__init__(network)
        self._w3: AsyncWeb3 | None = None

    def _get_w3(self) -> AsyncWeb3:
        """Return the Web3 instance, raising if not initialized."""
        if self._w3 is None:
            raise ChainClientError(
                f"Chain client for {self.network.id} not initialized. "
                "Call initialize() first."
            )
        return self._w3

    async def initialize(self) -> None:
        """
        Connect to the RPC endpoint and verify the chain id.

        A chain id that differs from the network configuration is logged
        but not fatal; custom RPC overrides sometimes point at forks.
        """
        self._w3 = AsyncWeb3(AsyncHTTPProvider(self._rpc_endpoint))

        try:
            chain_id: int = await self._w3.eth.chain_id  # type: ignore[misc]
        except Exception as e:
            raise ChainClientError(f"Failed to connect to {self.network.id}: {e}") from e

        if self.network.chain_id is not None and chain_id != self.network.chain_id:
            logger.warning(
                "chain_id_mismatch",
                network=self.network.id,
                expected=self.network.chain_id,
                actual=chain_id,
            )
        logger.info("rpc_connected", network=self.network.id, chain_id=chain_id)
        self._initialized = True

    async def close(self) -> None:
        """Dispose of the provider session."""
        if self._w3 and hasattr(self._w3.provider, "disconnect"):  # type: ignore[attr-defined]
            await self._w3.provider.disconnect()  # type: ignore[attr-defined]
        self._w3 = None
        self._initialized = False

    # ==================== State Reads ====================

    async def get_storage_at(self, address: str, slot: str | int) -> str:
        self._ensure_initialized()
        w3 = self._get_w3()
        position = int(slot, 16) if isinstance(slot, str) else slot
        word: Any = await w3.eth.get_storage_at(to_checksum_address(address), position)
        return "0x" + bytes(word).hex().rjust(64, "0")

    async def get_code(self, address: str) -> str:
        self._ensure_initialized()
        w3 = self._get_w3()
        code: Any = await w3.eth.get_code(to_checksum_address(address))
        return "0x" + bytes(code).hex()

    async def call(self, address: str, data: str) -> bytes:
        self._ensure_initialized()
        w3 = self._get_w3()
        try:
            result: Any = await w3.eth.call(
                {"to": to_checksum_address(address), "data": data}  # type: ignore[typeddict-item]
            )
        except Exception as e:
            raise ChainClientError(f"eth_call to {address} failed: {e}") from e
        return bytes(result)

    async def call_function(
        self,
        address: str,
        abi_entry: dict[str, Any],
        args: list[Any],
    ) -> tuple[Any, ...]:
        """
        eth_call a function and decode its outputs.

        Args:
            address: Contract address
            abi_entry: ABI item of the function
            args: Encoder-ready arguments

        Returns:
            Decoded output values, one per declared output
        """
        input_types = [canonical_abi_type(p) for p in abi_entry.get("inputs", [])]
        output_types = [canonical_abi_type(p) for p in abi_entry.get("outputs", [])]
        signature = f"{abi_entry['name']}({','.join(input_types)})"
        data = function_signature_to_4byte_selector(signature) + encode(input_types, args)

        raw = await self.call(address, "0x" + data.hex())
        if not output_types:
            return ()
        try:
            return tuple(decode(output_types, raw))
        except Exception as e:
            raise ChainClientError(
                f"Could not decode the result of {signature} at {address}: {e}"
            ) from e

    # ==================== Transactions ====================

    async def get_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        self._ensure_initialized()
        w3 = self._get_w3()
        try:
            receipt: Any = await w3.eth.get_transaction_receipt(tx_hash)  # type: ignore[arg-type]
        except TransactionNotFound:
            return None
        return dict(receipt) if receipt else None

    async def wait_for_transaction(
        self,
        tx_hash: str,
        timeout_seconds: float = 120,
    ) -> dict[str, Any]:
        """
        Wait for a transaction to be mined.

        Polls for the receipt with exponential backoff (x1.5, capped at
        10 seconds) so a slow chain does not hammer the RPC endpoint.
        """
        self._ensure_initialized()

        loop = asyncio.get_running_loop()
        start_time: float = loop.time()
        poll_interval: float = 1.0

        while True:
            receipt = await self.get_receipt(tx_hash)
            if receipt:
                if receipt.get("status") != 1:
                    raise TransactionFailedError(f"Transaction {tx_hash} reverted")
                logger.info(
                    "transaction_mined",
                    tx_hash=tx_hash,
                    block_number=receipt.get("blockNumber"),
                )
                return receipt

            elapsed: float = loop.time() - start_time
            if elapsed >= timeout_seconds:
                raise TimeoutError(
                    f"Transaction {tx_hash} not confirmed within {timeout_seconds}s"
                )

            await asyncio.sleep(min(poll_interval, max(timeout_seconds - elapsed, 0)))
            poll_interval = min(poll_interval * 1.5, 10.0)
