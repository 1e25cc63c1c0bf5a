"""
Data Models

Pydantic models shared by the resolver, mapping, transform and execution
layers.
"""

from .execution import (
    EncodedCall,
    EoaExecutionConfig,
    EvmRelayerTransactionOptions,
    ExecutionConfig,
    ExecutionResult,
    MultisigExecutionConfig,
    RelayerDetails,
    RelayerDetailsRich,
    RelayerExecutionConfig,
    RelayerSpeed,
    TransactionStatusUpdate,
    TxStatus,
    canonical_abi_type,
)
from .fields import (
    EnumMetadata,
    EnumVariant,
    EnumVariantKind,
    FieldDescriptor,
    FieldOverrides,
    FieldType,
    FieldValidation,
)
from .schema import (
    ContractDefinitionMetadata,
    ContractEvent,
    ContractFunction,
    ContractLoadResult,
    ContractSchema,
    DefinitionSource,
    Ecosystem,
    EnumValue,
    FunctionParameter,
    MapEntry,
    ProxyConfidence,
    ProxyInfo,
)

__all__ = [
    # Schema
    "Ecosystem",
    "DefinitionSource",
    "FunctionParameter",
    "ContractFunction",
    "ContractEvent",
    "ContractSchema",
    "ProxyConfidence",
    "ProxyInfo",
    "ContractDefinitionMetadata",
    "ContractLoadResult",
    "EnumValue",
    "MapEntry",
    # Fields
    "FieldType",
    "FieldValidation",
    "FieldDescriptor",
    "FieldOverrides",
    "EnumVariantKind",
    "EnumVariant",
    "EnumMetadata",
    # Execution
    "TxStatus",
    "RelayerSpeed",
    "RelayerDetails",
    "RelayerDetailsRich",
    "EvmRelayerTransactionOptions",
    "EoaExecutionConfig",
    "RelayerExecutionConfig",
    "MultisigExecutionConfig",
    "ExecutionConfig",
    "TransactionStatusUpdate",
    "EncodedCall",
    "ExecutionResult",
    "canonical_abi_type",
]
