"""
Tests for direct signing through a connected wallet.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from eth_account import Account
from eth_utils import to_checksum_address
from hexbytes import HexBytes

from callforge.chains.base_client import TransactionFailedError
from callforge.errors import (
    ChainClientError,
    ConfirmationTimeout,
    ExecutionConfigInvalid,
    ExecutionError,
    ExecutionReverted,
    InsufficientFunds,
    NetworkSwitchFailed,
    SignatureRejected,
)
from callforge.execution import (
    EoaExecutionStrategy,
    ExecutionEngine,
    LocalAccountWallet,
    StatusTracker,
    WalletCapability,
    classify_wallet_error,
)
from callforge.models.execution import EncodedCall, EoaExecutionConfig, RelayerDetails, RelayerExecutionConfig, TxStatus

ACCOUNT = "0x" + "12" * 20
CONTRACT = "0x" + "ab" * 20
TX_HASH = "0x" + "22" * 32
SEPOLIA_CHAIN_ID = 11155111


class FakeWallet(WalletCapability):
    """In-memory wallet with scripted responses."""

    def __init__(self, account=ACCOUNT, chain_id=SEPOLIA_CHAIN_ID, send_error=None, switch_works=True):
        self.account = account
        self.chain_id = chain_id
        self.send_error = send_error
        self.switch_works = switch_works
        self.sent: list[dict] = []

    async def get_account(self):
        return self.account

    async def get_chain_id(self):
        return self.chain_id

    async def switch_network(self, chain_id):
        if self.switch_works:
            self.chain_id = chain_id

    async def send_transaction(self, tx):
        self.sent.append(tx)
        if self.send_error is not None:
            raise self.send_error
        return TX_HASH


class WalletRpcError(Exception):
    def __init__(self, message, code=None):
        super().__init__(message)
        self.code = code


@pytest.fixture
def call():
    return EncodedCall(
        address=CONTRACT,
        function_name="pause",
        abi=[{"type": "function", "name": "pause", "inputs": []}],
        chain_id=SEPOLIA_CHAIN_ID,
    )


@pytest.fixture
def strategy(sepolia, test_config, mock_chain_client):
    return EoaExecutionStrategy(
        sepolia,
        chain_client_factory=AsyncMock(return_value=mock_chain_client),
        config=test_config,
    )


# ==================== Error Classification ====================


class TestClassifyWalletError:
    """Tests for mapping wallet failures to typed errors."""

    def test_user_rejection_code(self):
        error = classify_wallet_error(WalletRpcError("whatever", code=4001), TxStatus.PENDING_SIGNATURE)

        assert isinstance(error, SignatureRejected)
        assert error.last_status == TxStatus.PENDING_SIGNATURE

    def test_user_rejection_message(self):
        assert isinstance(
            classify_wallet_error(RuntimeError("User denied transaction signature"), TxStatus.PENDING_SIGNATURE),
            SignatureRejected,
        )

    def test_insufficient_funds(self):
        assert isinstance(
            classify_wallet_error(RuntimeError("insufficient funds for gas * price + value"), TxStatus.PENDING_SIGNATURE),
            InsufficientFunds,
        )

    def test_revert(self):
        assert isinstance(
            classify_wallet_error(RuntimeError("execution reverted: Pausable: paused"), TxStatus.PENDING_SIGNATURE),
            ExecutionReverted,
        )

    def test_other(self):
        error = classify_wallet_error(RuntimeError("nonce too low"), TxStatus.PENDING_SIGNATURE)

        assert type(error) is ExecutionError
        assert isinstance(error.cause, RuntimeError)


# ==================== Strategy ====================


class TestEoaExecutionStrategy:
    """Tests for the EOA flow."""

    @pytest.mark.asyncio
    async def test_success(self, strategy, call, mock_chain_client):
        wallet = FakeWallet()
        tracker = StatusTracker()

        tx_hash = await strategy.execute(call, EoaExecutionConfig(), wallet, tracker)

        assert tx_hash == TX_HASH
        assert tracker.history == [TxStatus.IDLE, TxStatus.PENDING_SIGNATURE, TxStatus.PENDING_CONFIRMATION]
        assert wallet.sent[0]["to"] == CONTRACT
        assert wallet.sent[0]["data"] == call.data
        assert wallet.sent[0]["chainId"] == SEPOLIA_CHAIN_ID
        mock_chain_client.wait_for_transaction.assert_awaited_once_with(TX_HASH, timeout_seconds=1.0)

    @pytest.mark.asyncio
    async def test_confirmation_timeout_override(self, strategy, call, mock_chain_client):
        await strategy.execute(call, EoaExecutionConfig(), FakeWallet(), StatusTracker(), confirmation_timeout=30)

        mock_chain_client.wait_for_transaction.assert_awaited_once_with(TX_HASH, timeout_seconds=30)

    @pytest.mark.asyncio
    async def test_requires_wallet(self, strategy, call):
        with pytest.raises(ExecutionConfigInvalid, match="connected wallet"):
            await strategy.execute(call, EoaExecutionConfig(), None, StatusTracker())

    @pytest.mark.asyncio
    async def test_requires_eoa_config(self, strategy, call):
        config = RelayerExecutionConfig(
            service_url="https://relay.example",
            relayer=RelayerDetails(relayer_id="r1", name="R1", address=ACCOUNT, network="sepolia"),
        )

        with pytest.raises(ExecutionConfigInvalid):
            await strategy.execute(call, config, FakeWallet(), StatusTracker())

    @pytest.mark.asyncio
    async def test_disconnected_wallet(self, strategy, call):
        with pytest.raises(ExecutionConfigInvalid, match="No wallet account"):
            await strategy.execute(call, EoaExecutionConfig(), FakeWallet(account=None), StatusTracker())

    @pytest.mark.asyncio
    async def test_specific_address_matches_case_insensitively(self, strategy, call):
        config = EoaExecutionConfig(allow_any=False, specific_address=ACCOUNT.upper().replace("0X", "0x"))

        assert await strategy.execute(call, config, FakeWallet(), StatusTracker()) == TX_HASH

    @pytest.mark.asyncio
    async def test_specific_address_mismatch(self, strategy, call):
        config = EoaExecutionConfig(allow_any=False, specific_address="0x" + "99" * 20)
        tracker = StatusTracker()

        with pytest.raises(ExecutionConfigInvalid, match="not the required signer"):
            await strategy.execute(call, config, FakeWallet(), tracker)

        assert tracker.status == TxStatus.IDLE

    @pytest.mark.asyncio
    async def test_specific_address_missing(self, strategy, call):
        with pytest.raises(ExecutionConfigInvalid, match="valid signer address"):
            await strategy.execute(call, EoaExecutionConfig(allow_any=False), FakeWallet(), StatusTracker())

    @pytest.mark.asyncio
    async def test_switches_network(self, strategy, call):
        wallet = FakeWallet(chain_id=1)

        await strategy.execute(call, EoaExecutionConfig(), wallet, StatusTracker())

        assert wallet.chain_id == SEPOLIA_CHAIN_ID

    @pytest.mark.asyncio
    async def test_network_switch_failure(self, strategy, call):
        wallet = FakeWallet(chain_id=1, switch_works=False)

        with pytest.raises(NetworkSwitchFailed):
            await strategy.execute(call, EoaExecutionConfig(), wallet, StatusTracker())

        assert wallet.sent == []

    @pytest.mark.asyncio
    async def test_rejected_signature(self, strategy, call):
        wallet = FakeWallet(send_error=WalletRpcError("User rejected the request.", code=4001))

        with pytest.raises(SignatureRejected) as exc_info:
            await strategy.execute(call, EoaExecutionConfig(), wallet, StatusTracker())

        assert exc_info.value.last_status == TxStatus.PENDING_SIGNATURE

    @pytest.mark.asyncio
    async def test_reverted_on_chain(self, strategy, call, mock_chain_client):
        mock_chain_client.wait_for_transaction.side_effect = TransactionFailedError("reverted")

        with pytest.raises(ExecutionReverted) as exc_info:
            await strategy.execute(call, EoaExecutionConfig(), FakeWallet(), StatusTracker())

        assert exc_info.value.tx_id == TX_HASH
        assert exc_info.value.last_status == TxStatus.PENDING_CONFIRMATION

    @pytest.mark.asyncio
    async def test_confirmation_timeout(self, strategy, call, mock_chain_client):
        mock_chain_client.wait_for_transaction.side_effect = TimeoutError("slow chain")

        with pytest.raises(ConfirmationTimeout) as exc_info:
            await strategy.execute(call, EoaExecutionConfig(), FakeWallet(), StatusTracker())

        assert exc_info.value.tx_id == TX_HASH
        assert exc_info.value.may_settle_later is True

    @pytest.mark.asyncio
    async def test_tracking_failure(self, strategy, call, mock_chain_client):
        mock_chain_client.wait_for_transaction.side_effect = ChainClientError("rpc down")

        with pytest.raises(ExecutionError, match="Could not track"):
            await strategy.execute(call, EoaExecutionConfig(), FakeWallet(), StatusTracker())

    @pytest.mark.asyncio
    async def test_get_status(self, strategy, mock_chain_client):
        assert await strategy.get_status(TX_HASH, EoaExecutionConfig()) == TxStatus.PENDING_CONFIRMATION

        mock_chain_client.get_receipt.return_value = {"status": 1}
        assert await strategy.get_status(TX_HASH, EoaExecutionConfig()) == TxStatus.SUCCESS

        mock_chain_client.get_receipt.return_value = {"status": 0}
        assert await strategy.get_status(TX_HASH, EoaExecutionConfig()) == TxStatus.ERROR

    @pytest.mark.asyncio
    async def test_through_engine(self, sepolia, strategy, call, test_config):
        engine = ExecutionEngine(sepolia, strategies={"eoa": strategy}, config=test_config)
        seen = []

        result = await engine.execute(
            call, EoaExecutionConfig(), FakeWallet(), on_status_change=lambda s, d: seen.append((s, d.tx_hash))
        )

        assert result.tx_id == TX_HASH
        assert seen == [
            (TxStatus.PENDING_SIGNATURE, None),
            (TxStatus.PENDING_CONFIRMATION, TX_HASH),
            (TxStatus.SUCCESS, TX_HASH),
        ]


# ==================== Local Wallet ====================


@pytest.fixture
def mock_web3():
    """Create a mock AsyncWeb3 instance."""
    mock_w3 = MagicMock()
    mock_eth = MagicMock()

    async def chain_id():
        return SEPOLIA_CHAIN_ID

    type(mock_eth).chain_id = property(lambda self: chain_id())
    mock_eth.get_transaction_count = AsyncMock(return_value=5)
    mock_eth.estimate_gas = AsyncMock(return_value=50000)
    mock_eth.get_block = AsyncMock(return_value={"baseFeePerGas": 10**9})
    mock_eth.send_raw_transaction = AsyncMock(return_value=HexBytes(b"\x33" * 32))

    async def max_priority_fee():
        return 10**8

    type(mock_eth).max_priority_fee = property(lambda self: max_priority_fee())
    mock_w3.eth = mock_eth
    mock_w3.to_checksum_address = MagicMock(side_effect=to_checksum_address)
    return mock_w3


class TestLocalAccountWallet:
    """Tests for the in-process signer."""

    @pytest.mark.asyncio
    async def test_signs_and_broadcasts(self, mock_web3, test_config):
        account = Account.create()
        with patch("callforge.execution.wallet.AsyncWeb3", return_value=mock_web3):
            with patch("callforge.execution.wallet.AsyncHTTPProvider"):
                wallet = LocalAccountWallet(account.key.hex(), "ethereum-sepolia")
                tx_hash = await wallet.send_transaction({"to": CONTRACT, "data": "0x8456cb59", "value": 0})

        assert tx_hash == "0x" + "33" * 32
        assert await wallet.get_account() == account.address
        mock_web3.eth.send_raw_transaction.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_switch_to_unknown_network(self, mock_web3, test_config):
        with patch("callforge.execution.wallet.AsyncWeb3", return_value=mock_web3):
            with patch("callforge.execution.wallet.AsyncHTTPProvider"):
                wallet = LocalAccountWallet(Account.create().key.hex(), "ethereum-sepolia")

                with pytest.raises(NetworkSwitchFailed):
                    await wallet.switch_network(999)
