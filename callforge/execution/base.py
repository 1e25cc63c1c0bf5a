"""
Execution Base

The status state machine shared by every strategy, plus the two
extension points: ExecutionStrategy (how a call reaches the chain) and
WalletCapability (who signs it).
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import structlog

from ..errors import InvalidStatusTransition, UnsupportedExecutionMethod
from ..models.execution import EncodedCall, TransactionStatusUpdate, TxStatus

logger = structlog.get_logger(__name__)

StatusCallback = Callable[[TxStatus, TransactionStatusUpdate], None]

# idle -> pendingSignature -> (pendingConfirmation | pendingRelayer) -> (success | error)
ALLOWED_TRANSITIONS: dict[TxStatus, frozenset[TxStatus]] = {
    TxStatus.IDLE: frozenset({TxStatus.PENDING_SIGNATURE, TxStatus.ERROR}),
    TxStatus.PENDING_SIGNATURE: frozenset(
        {TxStatus.PENDING_CONFIRMATION, TxStatus.PENDING_RELAYER, TxStatus.ERROR}
    ),
    TxStatus.PENDING_CONFIRMATION: frozenset({TxStatus.SUCCESS, TxStatus.ERROR}),
    TxStatus.PENDING_RELAYER: frozenset({TxStatus.SUCCESS, TxStatus.ERROR}),
    TxStatus.SUCCESS: frozenset(),
    TxStatus.ERROR: frozenset(),
}


class StatusTracker:
    """
    Ordered status transitions for one submission.

    Each transition is delivered synchronously to the callback before
    transition() returns, so observers see statuses in order. A terminal
    status is reached at most once.
    """

    def __init__(
        self,
        on_status_change: StatusCallback | None = None,
        initial: TxStatus = TxStatus.IDLE,
    ) -> None:
        self._status = initial
        self._on_status_change = on_status_change
        self.history: list[TxStatus] = [initial]
        self.tx_id: str | None = None

    @property
    def status(self) -> TxStatus:
        return self._status

    def transition(self, status: TxStatus, details: TransactionStatusUpdate | None = None) -> None:
        """
        Move to a new status and notify the observer.

        Raises:
            InvalidStatusTransition: On a skipped, backwards or post-terminal move
        """
        if status not in ALLOWED_TRANSITIONS[self._status]:
            raise InvalidStatusTransition(
                f"Cannot move from {self._status.value} to {status.value}"
            )

        details = details or TransactionStatusUpdate()
        if details.tx_hash or details.transaction_id:
            self.tx_id = details.tx_hash or details.transaction_id

        self._status = status
        self.history.append(status)
        logger.debug("status_changed", status=status.value, tx_id=self.tx_id)

        if self._on_status_change is not None:
            try:
                self._on_status_change(status, details)
            except Exception:
                logger.exception("status_callback_failed", status=status.value)

    def fail(self, error: BaseException) -> None:
        """Move to error unless already terminal."""
        if not self._status.is_terminal:
            self.transition(
                TxStatus.ERROR,
                TransactionStatusUpdate(
                    tx_hash=self.tx_id,
                    title="Transaction failed",
                    error=str(error),
                ),
            )


class WalletCapability(ABC):
    """
    A connected signer.

    Implementations wrap a browser wallet bridge, a hardware signer or a
    local key; the engine only needs these four operations.
    """

    @abstractmethod
    async def get_account(self) -> str | None:
        """Connected account address, or None when disconnected."""
        pass

    @abstractmethod
    async def get_chain_id(self) -> int:
        pass

    @abstractmethod
    async def switch_network(self, chain_id: int) -> None:
        pass

    @abstractmethod
    async def send_transaction(self, tx: dict[str, Any]) -> str:
        """
        Sign and broadcast a transaction.

        Args:
            tx: Transaction fields (from, to, data, value, chainId)

        Returns:
            The transaction hash
        """
        pass


class ExecutionStrategy(ABC):
    """
    One way of getting an encoded call onto the chain.

    Strategies drive the tracker up to (but not including) the terminal
    status; the engine records success or failure.
    """

    method: str = ""

    @abstractmethod
    async def execute(
        self,
        call: EncodedCall,
        config: Any,
        wallet: WalletCapability | None,
        tracker: StatusTracker,
        runtime_secret: str | None = None,
        confirmation_timeout: float | None = None,
    ) -> str:
        """
        Submit the call and wait for it to settle.

        Returns:
            Transaction hash of the settled transaction

        Raises:
            ExecutionError: Typed subclass describing the failure
        """
        pass

    async def get_status(
        self,
        tx_id: str,
        config: Any,
        runtime_secret: str | None = None,
    ) -> TxStatus:
        """Current status of a previously submitted transaction."""
        raise UnsupportedExecutionMethod(
            f"Execution method '{self.method}' cannot report transaction status"
        )
