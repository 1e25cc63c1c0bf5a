"""
Execution Engine

Dispatches an encoded call to the strategy registered for the configured
execution method and owns the terminal status of the submission.
"""

from typing import Any

import structlog

from ..config import CallForgeConfig, NetworkConfig, resolve_network_config
from ..errors import ExecutionError, UnsupportedExecutionMethod
from ..models.execution import EncodedCall, ExecutionResult, TransactionStatusUpdate, TxStatus
from ..monitoring.logging import bind_context, unbind_context
from .base import ExecutionStrategy, StatusCallback, StatusTracker, WalletCapability
from .eoa import EoaExecutionStrategy
from .relayer import RelayerExecutionStrategy

logger = structlog.get_logger(__name__)


class ExecutionEngine:
    """
    Runs state-changing calls for one network.

    EOA and relayer strategies are registered by default. Other methods
    (multisig) are added with register_strategy().

    Usage:
        engine = ExecutionEngine("base-sepolia")
        result = await engine.execute(call, EoaExecutionConfig(), wallet)
    """

    def __init__(
        self,
        network: str | NetworkConfig,
        strategies: dict[str, ExecutionStrategy] | None = None,
        config: CallForgeConfig | None = None,
    ) -> None:
        self.network = resolve_network_config(network, config=config)
        if strategies is None:
            strategies = {
                "eoa": EoaExecutionStrategy(self.network, config=config),
                "relayer": RelayerExecutionStrategy(self.network, config=config),
            }
        self._strategies: dict[str, ExecutionStrategy] = dict(strategies)

    def register_strategy(self, method: str, strategy: ExecutionStrategy) -> None:
        """Register (or replace) the strategy for an execution method."""
        self._strategies[method] = strategy
        logger.info("execution_strategy_registered", method=method, strategy=type(strategy).__name__)

    @property
    def methods(self) -> list[str]:
        return sorted(self._strategies)

    def _strategy(self, method: str) -> ExecutionStrategy:
        strategy = self._strategies.get(method)
        if strategy is None:
            raise UnsupportedExecutionMethod(
                f"No strategy registered for execution method '{method}'", TxStatus.IDLE
            )
        return strategy

    async def execute(
        self,
        call: EncodedCall,
        execution_config: Any,
        wallet: WalletCapability | None = None,
        on_status_change: StatusCallback | None = None,
        runtime_secret: str | None = None,
        confirmation_timeout: float | None = None,
    ) -> ExecutionResult:
        """
        Submit a call and wait for a terminal status.

        Args:
            call: Encoded call from format_transaction_data
            execution_config: Eoa/Relayer/Multisig execution config
            wallet: Signer, required by wallet-based methods
            on_status_change: Receives every status change synchronously
            runtime_secret: Session-only secret (relayer API key)
            confirmation_timeout: Overrides the method's default timeout

        Returns:
            ExecutionResult with the transaction hash

        Raises:
            ExecutionError: Typed failure with last_status and cause; the
                            status has already moved to error
        """
        tracker = StatusTracker(on_status_change)
        method = getattr(execution_config, "method", None)
        bind_context(execution_method=method, network=self.network.id)
        try:
            strategy = self._strategy(str(method))
            tx_hash = await strategy.execute(
                call,
                execution_config,
                wallet,
                tracker,
                runtime_secret=runtime_secret,
                confirmation_timeout=confirmation_timeout,
            )
            # Strategies stop at a pending status; success is only set here
            tracker.transition(
                TxStatus.SUCCESS,
                TransactionStatusUpdate(tx_hash=tx_hash, title="Transaction confirmed"),
            )
        except ExecutionError as e:
            if e.last_status is None:
                e.last_status = tracker.status
            if e.tx_id is None:
                e.tx_id = tracker.tx_id
            logger.warning(
                "execution_failed",
                error_type=type(e).__name__,
                last_status=e.last_status.value if e.last_status else None,
                tx_id=e.tx_id,
                error=str(e),
            )
            tracker.fail(e)
            raise
        except Exception as e:
            last_status = tracker.status
            logger.error("execution_crashed", last_status=last_status.value, error=str(e))
            tracker.fail(e)
            raise ExecutionError(f"Execution failed: {e}", last_status, e, tx_id=tracker.tx_id) from e
        finally:
            unbind_context("execution_method", "network")

        logger.info("execution_succeeded", method=method, tx_hash=tx_hash, function=call.function_name)
        return ExecutionResult(tx_id=tx_hash, status=TxStatus.SUCCESS)

    async def get_transaction_status(
        self,
        tx_id: str,
        execution_config: Any,
        runtime_secret: str | None = None,
    ) -> TxStatus:
        """Re-attach to a previously submitted transaction and report its status."""
        strategy = self._strategy(str(getattr(execution_config, "method", None)))
        status = await strategy.get_status(tx_id, execution_config, runtime_secret=runtime_secret)
        logger.debug("transaction_status_checked", tx_id=tx_id, status=status.value)
        return status
