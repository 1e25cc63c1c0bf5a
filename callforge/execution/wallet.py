"""
Local Account Wallet

WalletCapability backed by a private key held in process. Intended for
scripts, backends and tests; interactive front ends provide their own
WalletCapability bridging to the user's wallet.
"""

from typing import Any

import structlog
from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3

from ..config import NetworkConfig, resolve_network_config
from ..errors import NetworkSwitchFailed
from .base import WalletCapability

logger = structlog.get_logger(__name__)


class LocalAccountWallet(WalletCapability):
    """
    Signs locally with an eth_account key and broadcasts raw transactions.

    Usage:
        wallet = LocalAccountWallet(private_key, "base-sepolia")
        tx_hash = await wallet.send_transaction({"to": ..., "data": ...})
    """

    def __init__(
        self,
        private_key: str,
        network: str | NetworkConfig,
        networks: dict[int, NetworkConfig] | None = None,
    ) -> None:
        """
        Args:
            private_key: Hex private key of the signing account
            network: Network the wallet starts on
            networks: Networks reachable through switch_network, by chain id
        """
        self._account: LocalAccount = Account.from_key(private_key)
        self._network = resolve_network_config(network)
        self._networks = dict(networks or {})
        if self._network.chain_id is not None:
            self._networks.setdefault(self._network.chain_id, self._network)
        self._w3 = AsyncWeb3(AsyncHTTPProvider(self._network.rpc_url))

    async def get_account(self) -> str | None:
        return self._account.address

    async def get_chain_id(self) -> int:
        chain_id: int = await self._w3.eth.chain_id  # type: ignore[misc]
        return chain_id

    async def switch_network(self, chain_id: int) -> None:
        network = self._networks.get(chain_id)
        if network is None:
            raise NetworkSwitchFailed(f"No network configured for chain {chain_id}")
        self._network = resolve_network_config(network)
        self._w3 = AsyncWeb3(AsyncHTTPProvider(self._network.rpc_url))
        logger.info("wallet_network_switched", network=self._network.id, chain_id=chain_id)

    async def send_transaction(self, tx: dict[str, Any]) -> str:
        """Fill nonce, gas and EIP-1559 fees, then sign and broadcast."""
        w3 = self._w3
        account = self._account

        full_tx: dict[str, Any] = {
            "from": account.address,
            "to": w3.to_checksum_address(tx["to"]),
            "value": int(tx.get("value", 0)),
            "data": tx.get("data", "0x"),
            "nonce": await w3.eth.get_transaction_count(account.address),
            "chainId": tx.get("chainId") or await w3.eth.chain_id,  # type: ignore[misc]
        }
        full_tx["gas"] = tx.get("gas") or await w3.eth.estimate_gas(full_tx)  # type: ignore[arg-type]

        latest_block: Any = await w3.eth.get_block("latest")
        base_fee: int = latest_block["baseFeePerGas"]
        max_priority_fee: int = await w3.eth.max_priority_fee  # type: ignore[attr-defined]
        full_tx["maxFeePerGas"] = base_fee * 2 + max_priority_fee
        full_tx["maxPriorityFeePerGas"] = max_priority_fee

        signed_tx: Any = account.sign_transaction(full_tx)
        tx_hash: Any = await w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        result: str = tx_hash.to_0x_hex()
        logger.info("transaction_broadcast", tx_hash=result, sender=account.address)
        return result
