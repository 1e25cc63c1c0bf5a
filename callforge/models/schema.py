"""
Contract Schema Models

Chain-agnostic description of a resolved contract: its callable functions,
events, proxy indirection and provenance metadata. Schemas are frozen;
a re-fetch produces a new schema instead of mutating the old one.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Ecosystem(str, Enum):
    """Blockchain ecosystems understood by the engine."""

    EVM = "evm"
    STELLAR = "stellar"


class DefinitionSource(str, Enum):
    """Where a contract definition came from."""

    MANUAL = "manual"  # Supplied by the user, never fetched
    FETCHED = "fetched"  # Loaded from a remote definition provider


class ProxyConfidence(str, Enum):
    """How sure proxy detection is about its verdict."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FunctionParameter(BaseModel):
    """
    A single function input or output.

    Recursive: components are set for composite types (tuple/struct,
    array-of-tuple, map key/value pairs, user-defined types).
    """

    name: str = Field(default="", description="Parameter name, may be empty for outputs")
    type: str = Field(description="Chain-native type string, e.g. 'uint256' or 'Vec<U32>'")
    display_name: str | None = Field(default=None, description="Human friendly label")
    description: str | None = Field(default=None, description="Documentation for the parameter")
    components: list["FunctionParameter"] | None = Field(
        default=None, description="Member parameters for composite types"
    )
    enum_variants: list[dict[str, Any]] | None = Field(
        default=None, description="Raw variant definitions when the type is an enum"
    )

    model_config = {"frozen": True}


class ContractFunction(BaseModel):
    """A callable function exposed by a contract."""

    id: str = Field(description="Unique id, distinguishes overloads")
    name: str = Field(description="Function name as declared on chain")
    display_name: str = Field(description="Human friendly function name")
    description: str | None = Field(default=None)
    inputs: list[FunctionParameter] = Field(default_factory=list)
    outputs: list[FunctionParameter] | None = Field(default=None)
    state_mutability: str = Field(default="nonpayable")
    type: str = Field(default="function")
    modifies_state: bool = Field(
        default=True, description="False routes the function to the query path"
    )

    model_config = {"frozen": True}

    @property
    def is_payable(self) -> bool:
        return self.state_mutability == "payable"


class ContractEvent(BaseModel):
    """An event declared by a contract."""

    id: str
    name: str
    inputs: list[FunctionParameter] = Field(default_factory=list)

    model_config = {"frozen": True}


class ContractSchema(BaseModel):
    """
    Normalized, typed description of a contract.

    Immutable once resolved. Callers replace the whole schema on re-fetch.
    """

    name: str | None = Field(default=None, description="Contract name, if known")
    ecosystem: Ecosystem = Field(description="Ecosystem the contract lives in")
    address: str | None = Field(default=None, description="Deployed address")
    functions: list[ContractFunction] = Field(default_factory=list)
    events: list[ContractEvent] | None = Field(default=None)
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    def get_function(self, function_id: str) -> ContractFunction | None:
        """Find a function by id, falling back to an unambiguous name match."""
        for fn in self.functions:
            if fn.id == function_id:
                return fn
        by_name = [fn for fn in self.functions if fn.name == function_id]
        if len(by_name) == 1:
            return by_name[0]
        return None


class ProxyInfo(BaseModel):
    """
    Proxy indirection discovered while resolving a contract.

    Attached to a load result; absence means the contract is not proxied.
    """

    is_proxy: bool = Field(default=False)
    proxy_type: str | None = Field(
        default=None, description="uups, transparent, beacon, diamond, minimal or unknown"
    )
    implementation_address: str | None = Field(default=None)
    admin_address: str | None = Field(default=None)
    proxy_address: str | None = Field(default=None)
    detection_method: str | None = Field(default=None, description="automatic or manual")
    confidence: ProxyConfidence = Field(default=ProxyConfidence.LOW)
    indicators: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class ContractDefinitionMetadata(BaseModel):
    """Provenance of a loaded contract definition."""

    fetched_from: str | None = Field(default=None, description="Explorer or registry URL")
    provider: str | None = Field(default=None, description="Provider key that supplied it")
    contract_name: str | None = Field(default=None)
    verification_status: str = Field(default="unknown")
    fetch_timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    definition_hash: str | None = Field(default=None)


class ContractLoadResult(BaseModel):
    """Everything the resolver returns for one contract."""

    contract_schema: ContractSchema
    source: DefinitionSource
    metadata: ContractDefinitionMetadata
    proxy_info: ProxyInfo | None = None
    definition_original: str = Field(
        default="", description="The raw definition JSON used to build the schema"
    )


class EnumValue(BaseModel):
    """Chain-agnostic enum value: a variant tag plus an ordered payload."""

    tag: str
    values: list[Any] | None = None

    model_config = {"frozen": True}


class MapEntry(BaseModel):
    """One key/value pair of a chain-agnostic map."""

    key: Any
    value: Any

    model_config = {"frozen": True}
