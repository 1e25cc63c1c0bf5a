"""
Execution Models

Execution configuration is a closed tagged union discriminated by the
`method` field. Configurations, relayer details and call payloads are
frozen; they are inputs to a single submission and never change mid-flight.
"""

from enum import Enum
from typing import Annotated, Any, Literal

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector
from pydantic import BaseModel, Field


class TxStatus(str, Enum):
    """
    Lifecycle state of one submission.

    idle -> pendingSignature -> (pendingConfirmation | pendingRelayer)
         -> (success | error)
    """

    IDLE = "idle"
    PENDING_SIGNATURE = "pendingSignature"  # Waiting for the signer
    PENDING_CONFIRMATION = "pendingConfirmation"  # Broadcast, waiting for inclusion
    PENDING_RELAYER = "pendingRelayer"  # Accepted by relay service
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (TxStatus.SUCCESS, TxStatus.ERROR)


class RelayerSpeed(str, Enum):
    """Gas pricing speed understood by the relay service."""

    SAFE_LOW = "safeLow"
    AVERAGE = "average"
    FAST = "fast"
    FASTEST = "fastest"


class RelayerDetails(BaseModel):
    """Relayer as listed by the relay service directory."""

    relayer_id: str
    name: str
    address: str
    network: str
    paused: bool = False

    model_config = {"frozen": True}


class RelayerDetailsRich(RelayerDetails):
    """Relayer with balance and health information."""

    system_disabled: bool | None = None
    balance: str | None = Field(default=None, description="Formatted as '<amount> <symbol>'")
    nonce: str | None = None
    pending_transactions_count: int | None = None
    last_confirmed_transaction_timestamp: str | None = None


class EvmRelayerTransactionOptions(BaseModel):
    """
    EVM transaction options forwarded to the relay service.

    The relay service requires exactly one pricing strategy: speed,
    gas_price, or max_fee_per_gas plus max_priority_fee_per_gas.
    """

    speed: RelayerSpeed | None = None
    gas_limit: int | None = None
    gas_price: int | None = None
    max_fee_per_gas: int | None = None
    max_priority_fee_per_gas: int | None = None
    valid_until: str | None = Field(default=None, description="ISO 8601 expiry")

    model_config = {"frozen": True}


class EoaExecutionConfig(BaseModel):
    """Direct signing by the connected externally owned account."""

    method: Literal["eoa"] = "eoa"
    allow_any: bool = True
    specific_address: str | None = None

    model_config = {"frozen": True}


class RelayerExecutionConfig(BaseModel):
    """Submission through a relay service."""

    method: Literal["relayer"] = "relayer"
    service_url: str
    relayer: RelayerDetails
    transaction_options: EvmRelayerTransactionOptions | None = None

    model_config = {"frozen": True}


class MultisigExecutionConfig(BaseModel):
    """Multi-signature proposal flow; executed by a registered strategy."""

    method: Literal["multisig"] = "multisig"
    safe_address: str
    threshold: int | None = None
    owners: list[str] = Field(default_factory=list)
    service_url: str | None = None

    model_config = {"frozen": True}


ExecutionConfig = Annotated[
    EoaExecutionConfig | RelayerExecutionConfig | MultisigExecutionConfig,
    Field(discriminator="method"),
]


class TransactionStatusUpdate(BaseModel):
    """Details delivered with each status change."""

    tx_hash: str | None = None
    transaction_id: str | None = None
    title: str | None = None
    message: str | None = None
    error: str | None = None


class EncodedCall(BaseModel):
    """
    A fully formatted contract call, ready for a strategy.

    `args` are already parsed into encoder-ready values.
    """

    address: str
    function_name: str
    abi: list[dict[str, Any]] = Field(default_factory=list)
    args: list[Any] = Field(default_factory=list)
    value: int = 0
    chain_id: int | None = None

    model_config = {"frozen": True}

    def _abi_entry(self) -> dict[str, Any]:
        candidates = [
            item
            for item in self.abi
            if item.get("type", "function") == "function" and item.get("name") == self.function_name
        ]
        for item in candidates:
            if len(item.get("inputs", [])) == len(self.args):
                return item
        raise ValueError(f"Function {self.function_name} with {len(self.args)} args not in ABI")

    @property
    def data(self) -> str:
        """Calldata: 4-byte selector followed by ABI-encoded arguments."""
        entry = self._abi_entry()
        types = [canonical_abi_type(p) for p in entry.get("inputs", [])]
        signature = f"{self.function_name}({','.join(types)})"
        selector = function_signature_to_4byte_selector(signature)
        return "0x" + (selector + encode(types, self.args)).hex()


def canonical_abi_type(param: dict[str, Any]) -> str:
    """Expand tuple types into the canonical '(t1,t2)[]' form eth_abi expects."""
    abi_type: str = param["type"]
    if abi_type.startswith("tuple"):
        inner = ",".join(canonical_abi_type(c) for c in param.get("components", []))
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


class ExecutionResult(BaseModel):
    """Outcome of a successful execution."""

    tx_id: str
    status: TxStatus = TxStatus.SUCCESS
