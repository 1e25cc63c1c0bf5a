"""
Schema Resolver

Loads contract definitions from manual input or remote providers,
follows proxies, and produces frozen ContractSchema instances.

Usage:
    from callforge.resolver import ContractArtifacts, SchemaResolver

    resolver = SchemaResolver()
    result = await resolver.resolve(ContractArtifacts(address="0x..."), "base-mainnet")
    print(result.contract_schema.functions)
"""

from .comparison import (
    AbiComparisonResult,
    AbiComparisonService,
    AbiDifference,
    AbiValidationResult,
    ChangeSeverity,
    DifferenceType,
    hash_definition,
    normalize_abi,
    validate_abi,
)
from .loader import ContractArtifacts, ResolveOptions, SchemaResolver
from .providers import (
    DefinitionProvider,
    EtherscanProvider,
    FetchedDefinition,
    SourcifyProvider,
    build_provider,
)
from .proxy import (
    EIP1967_ADMIN_SLOT,
    EIP1967_BEACON_SLOT,
    EIP1967_IMPLEMENTATION_SLOT,
    ProxyResolver,
    detect_proxy_from_abi,
)
from .transformer import StellarSpecError, abi_to_schema, stellar_spec_to_schema

__all__ = [
    # Resolver
    "ContractArtifacts",
    "ResolveOptions",
    "SchemaResolver",
    # Providers
    "DefinitionProvider",
    "EtherscanProvider",
    "FetchedDefinition",
    "SourcifyProvider",
    "build_provider",
    # Proxies
    "EIP1967_ADMIN_SLOT",
    "EIP1967_BEACON_SLOT",
    "EIP1967_IMPLEMENTATION_SLOT",
    "ProxyResolver",
    "detect_proxy_from_abi",
    # ABI handling
    "AbiComparisonResult",
    "AbiComparisonService",
    "AbiDifference",
    "AbiValidationResult",
    "ChangeSeverity",
    "DifferenceType",
    "hash_definition",
    "normalize_abi",
    "validate_abi",
    "StellarSpecError",
    "abi_to_schema",
    "stellar_spec_to_schema",
]
