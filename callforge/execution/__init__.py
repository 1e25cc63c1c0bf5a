"""
Execution Engine

Submits state-changing calls through pluggable strategies and reports
ordered status transitions.

Usage:
    from callforge.execution import ExecutionEngine

    engine = ExecutionEngine("base-sepolia")
    result = await engine.execute(call, EoaExecutionConfig(), wallet, on_status_change=print)
"""

from .base import (
    ALLOWED_TRANSITIONS,
    ExecutionStrategy,
    StatusCallback,
    StatusTracker,
    WalletCapability,
)
from .engine import ExecutionEngine
from .eoa import EoaExecutionStrategy, classify_wallet_error
from .relayer import RelayerClient, RelayerExecutionStrategy, format_native_balance
from .wallet import LocalAccountWallet

__all__ = [
    "ALLOWED_TRANSITIONS",
    "ExecutionEngine",
    "ExecutionStrategy",
    "StatusCallback",
    "StatusTracker",
    "WalletCapability",
    "EoaExecutionStrategy",
    "classify_wallet_error",
    "RelayerClient",
    "RelayerExecutionStrategy",
    "format_native_balance",
    "LocalAccountWallet",
]
