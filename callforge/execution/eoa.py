"""
EOA Execution Strategy

The connected wallet signs and broadcasts; the engine then polls for the
receipt through the chain client.
"""

from typing import Any

import structlog
from eth_utils import is_address

from ..chains.base_client import BaseChainClient, TransactionFailedError, get_chain_client
from ..config import CallForgeConfig, NetworkConfig, get_config
from ..errors import (
    ChainClientError,
    ConfirmationTimeout,
    ExecutionConfigInvalid,
    ExecutionError,
    ExecutionReverted,
    InsufficientFunds,
    NetworkSwitchFailed,
    SignatureRejected,
)
from ..models.execution import EncodedCall, EoaExecutionConfig, TransactionStatusUpdate, TxStatus
from .base import ExecutionStrategy, StatusTracker, WalletCapability

logger = structlog.get_logger(__name__)

REJECTION_MARKERS = ("user rejected", "user denied", "rejected the request", "request rejected")
INSUFFICIENT_FUNDS_MARKERS = ("insufficient funds", "insufficient balance")
REVERT_MARKERS = ("execution reverted", "revert")


def classify_wallet_error(error: BaseException, last_status: TxStatus) -> ExecutionError:
    """
    Map a wallet failure to a typed execution error.

    Wallets report failures as free-form messages (and EIP-1193 code 4001
    for user rejection); the classification is by message content.
    """
    if isinstance(error, ExecutionError):
        return error

    message = str(error)
    lowered = message.lower()
    code = getattr(error, "code", None)

    if code == 4001 or any(m in lowered for m in REJECTION_MARKERS):
        return SignatureRejected("Transaction was rejected in the wallet", last_status, error)
    if any(m in lowered for m in INSUFFICIENT_FUNDS_MARKERS):
        return InsufficientFunds("Insufficient funds for value and gas", last_status, error)
    if any(m in lowered for m in REVERT_MARKERS):
        return ExecutionReverted(f"Transaction would revert: {message}", last_status, error)
    return ExecutionError(f"Wallet failed to send the transaction: {message}", last_status, error)


class EoaExecutionStrategy(ExecutionStrategy):
    """Direct signing by an externally owned account."""

    method = "eoa"

    def __init__(
        self,
        network: NetworkConfig,
        chain_client_factory: Any = get_chain_client,
        config: CallForgeConfig | None = None,
    ) -> None:
        self._network = network
        self._chain_client_factory = chain_client_factory
        self._config = config

    async def _client(self) -> BaseChainClient:
        client: BaseChainClient = await self._chain_client_factory(self._network)
        return client

    async def _validate_account(self, config: EoaExecutionConfig, wallet: WalletCapability) -> str:
        account = await wallet.get_account()
        if not account:
            raise ExecutionConfigInvalid("No wallet account is connected", TxStatus.IDLE)
        if config.allow_any:
            return account
        if not config.specific_address or not is_address(config.specific_address):
            raise ExecutionConfigInvalid(
                "A valid signer address is required when any account is not allowed", TxStatus.IDLE
            )
        if account.lower() != config.specific_address.lower():
            raise ExecutionConfigInvalid(
                f"Connected account {account} is not the required signer {config.specific_address}",
                TxStatus.IDLE,
            )
        return account

    async def _ensure_network(self, wallet: WalletCapability, chain_id: int | None) -> None:
        if chain_id is None:
            return
        if await wallet.get_chain_id() == chain_id:
            return
        logger.info("wallet_network_switch_requested", chain_id=chain_id)
        try:
            await wallet.switch_network(chain_id)
        except NetworkSwitchFailed:
            raise
        except Exception as e:
            raise NetworkSwitchFailed(
                f"Could not switch the wallet to chain {chain_id}: {e}", TxStatus.IDLE, e
            ) from e
        if await wallet.get_chain_id() != chain_id:
            raise NetworkSwitchFailed(f"Wallet is still not on chain {chain_id}", TxStatus.IDLE)

    async def execute(
        self,
        call: EncodedCall,
        config: Any,
        wallet: WalletCapability | None,
        tracker: StatusTracker,
        runtime_secret: str | None = None,
        confirmation_timeout: float | None = None,
    ) -> str:
        if not isinstance(config, EoaExecutionConfig):
            raise ExecutionConfigInvalid("EOA strategy needs an EOA execution config", tracker.status)
        if wallet is None:
            raise ExecutionConfigInvalid("EOA execution requires a connected wallet", tracker.status)

        account = await self._validate_account(config, wallet)
        chain_id = call.chain_id or self._network.chain_id
        await self._ensure_network(wallet, chain_id)

        tracker.transition(
            TxStatus.PENDING_SIGNATURE,
            TransactionStatusUpdate(title="Waiting for signature", message=f"Sign with {account}"),
        )
        tx: dict[str, Any] = {
            "from": account,
            "to": call.address,
            "data": call.data,
            "value": call.value,
        }
        if chain_id is not None:
            tx["chainId"] = chain_id

        try:
            tx_hash = await wallet.send_transaction(tx)
        except Exception as e:
            raise classify_wallet_error(e, TxStatus.PENDING_SIGNATURE) from e

        tracker.transition(
            TxStatus.PENDING_CONFIRMATION,
            TransactionStatusUpdate(tx_hash=tx_hash, title="Waiting for confirmation"),
        )
        logger.info("eoa_transaction_sent", tx_hash=tx_hash, to=call.address, function=call.function_name)

        timeout = confirmation_timeout or (self._config or get_config()).confirmation_timeout_seconds
        try:
            client = await self._client()
            await client.wait_for_transaction(tx_hash, timeout_seconds=timeout)
        except TransactionFailedError as e:
            raise ExecutionReverted(
                f"Transaction {tx_hash} reverted", TxStatus.PENDING_CONFIRMATION, e, tx_id=tx_hash
            ) from e
        except TimeoutError as e:
            raise ConfirmationTimeout(
                f"Transaction {tx_hash} was not confirmed within {timeout}s",
                TxStatus.PENDING_CONFIRMATION,
                e,
                tx_id=tx_hash,
            ) from e
        except ChainClientError as e:
            raise ExecutionError(
                f"Could not track transaction {tx_hash}: {e}", TxStatus.PENDING_CONFIRMATION, e, tx_id=tx_hash
            ) from e
        return tx_hash

    async def get_status(
        self,
        tx_id: str,
        config: Any,
        runtime_secret: str | None = None,
    ) -> TxStatus:
        client = await self._client()
        receipt = await client.get_receipt(tx_id)
        if receipt is None:
            return TxStatus.PENDING_CONFIRMATION
        return TxStatus.SUCCESS if receipt.get("status") == 1 else TxStatus.ERROR
