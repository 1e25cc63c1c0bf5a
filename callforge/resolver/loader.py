"""
Schema Resolver

Turns contract artifacts (an address plus an optional manual definition)
into a ContractLoadResult. Manual definitions are used as-is; otherwise
the definition providers are tried in order within a shared time budget,
and proxies are followed to their implementation.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, Field

from ..chains.base_client import BaseChainClient, get_chain_client
from ..config import CallForgeConfig, NetworkConfig, get_config, resolve_network_config
from ..errors import ChainClientError, DefinitionProviderError, DefinitionUnavailable, ProxyResolutionAmbiguous
from ..models.schema import (
    ContractDefinitionMetadata,
    ContractLoadResult,
    DefinitionSource,
    Ecosystem,
    ProxyConfidence,
    ProxyInfo,
)
from ..utils import with_timeout
from .comparison import hash_definition, validate_abi
from .providers import DefinitionProvider, FetchedDefinition, build_provider
from .proxy import ProxyResolver, detect_proxy_from_abi
from .transformer import StellarSpecError, abi_to_schema, stellar_spec_to_schema

logger = structlog.get_logger(__name__)

# Lower bound for a provider attempt once the overall budget runs low
MIN_ATTEMPT_SECONDS = 0.1

# Methods that read the address straight from storage or bytecode
AUTHORITATIVE_METHODS = ("eip1967_slot", "beacon_slot", "legacy_slot", "minimal_bytecode")


class ContractArtifacts(BaseModel):
    """What the caller knows about the contract to resolve."""

    address: str
    manual_definition: str | list[Any] | dict[str, Any] | None = Field(
        default=None, description="ABI JSON (EVM) or contract spec JSON (Stellar)"
    )
    contract_name: str | None = None


class ResolveOptions(BaseModel):
    skip_proxy_detection: bool = False
    treat_as_implementation: bool = Field(
        default=False, description="Load the ABI at this address even if it is a proxy"
    )
    force_provider: str | None = Field(default=None, description="Provider tried first")
    max_proxy_depth: int | None = Field(
        default=None, description="Proxy hops to follow; None uses the configured default"
    )
    strict_proxy: bool = Field(
        default=False, description="Raise instead of degrading confidence on ambiguous proxies"
    )


ChainClientFactory = Callable[[NetworkConfig], Awaitable[BaseChainClient]]


class SchemaResolver:
    """
    Resolves contract schemas.

    Usage:
        resolver = SchemaResolver()
        result = await resolver.resolve(
            ContractArtifacts(address="0x..."),
            "ethereum-mainnet",
        )
    """

    def __init__(
        self,
        providers: list[DefinitionProvider] | None = None,
        chain_client_factory: ChainClientFactory = get_chain_client,
        config: CallForgeConfig | None = None,
    ) -> None:
        """
        Args:
            providers: Provider instances to use instead of the defaults,
                       matched to provider_order by their name
            chain_client_factory: Returns an initialized client for proxy reads
            config: Settings; the global configuration when None
        """
        self._config = config
        self._providers = {p.name: p for p in providers or []}
        self._chain_client_factory = chain_client_factory

    @property
    def config(self) -> CallForgeConfig:
        return self._config or get_config()

    def _provider(self, name: str) -> DefinitionProvider:
        if name not in self._providers:
            self._providers[name] = build_provider(name, config=self.config)
        return self._providers[name]

    async def resolve(
        self,
        artifacts: ContractArtifacts,
        network: str | NetworkConfig,
        options: ResolveOptions | None = None,
    ) -> ContractLoadResult:
        """
        Resolve a contract into a schema.

        Raises:
            DefinitionUnavailable: When no usable definition was found
            ProxyResolutionAmbiguous: Only with options.strict_proxy
        """
        options = options or ResolveOptions()
        network_config = resolve_network_config(network, config=self.config)

        if artifacts.manual_definition is not None:
            return self._load_manual(artifacts, network_config)

        if network_config.ecosystem != Ecosystem.EVM:
            raise DefinitionUnavailable(
                f"{network_config.name} contracts can only be loaded from a manual definition",
                address=artifacts.address,
            )
        if not is_address(artifacts.address):
            raise DefinitionUnavailable(
                f"Invalid contract address: {artifacts.address}", address=artifacts.address
            )
        address = to_checksum_address(artifacts.address)

        fetched = await self.fetch_definition(address, network_config, options.force_provider)

        proxy_info: ProxyInfo | None = None
        if not options.skip_proxy_detection and not options.treat_as_implementation:
            fetched, proxy_info = await self._follow_proxy(address, fetched, network_config, options)

        definition_hash = hash_definition(fetched.abi)
        contract_name = artifacts.contract_name or fetched.contract_name
        schema = abi_to_schema(fetched.abi, address=address, name=contract_name)

        logger.info(
            "definition_loaded",
            provider=fetched.provider,
            address=address,
            network=network_config.id,
            is_proxy=bool(proxy_info and proxy_info.is_proxy),
            functions=len(schema.functions),
        )
        return ContractLoadResult(
            contract_schema=schema,
            source=DefinitionSource.FETCHED,
            metadata=ContractDefinitionMetadata(
                fetched_from=fetched.fetched_from,
                provider=fetched.provider,
                contract_name=contract_name,
                verification_status=fetched.verification_status,
                definition_hash=definition_hash,
            ),
            proxy_info=proxy_info,
            definition_original=json.dumps(fetched.abi),
        )

    # ==================== Manual Definitions ====================

    def _load_manual(self, artifacts: ContractArtifacts, network: NetworkConfig) -> ContractLoadResult:
        raw = artifacts.manual_definition
        if isinstance(raw, str):
            try:
                definition = json.loads(raw)
            except ValueError as e:
                raise DefinitionUnavailable(
                    f"Manual definition is not valid JSON: {e}", address=artifacts.address
                ) from e
            original = raw
        else:
            definition = raw
            original = json.dumps(raw)

        if network.ecosystem == Ecosystem.STELLAR:
            try:
                schema = stellar_spec_to_schema(definition, address=artifacts.address)
            except StellarSpecError as e:
                raise DefinitionUnavailable(
                    f"Manual definition is invalid: {e}", address=artifacts.address
                ) from e
            if artifacts.contract_name:
                schema = schema.model_copy(update={"name": artifacts.contract_name})
        else:
            validation = validate_abi(definition)
            if not validation.is_valid:
                raise DefinitionUnavailable(
                    f"Manual definition is invalid: {'; '.join(validation.errors)}",
                    address=artifacts.address,
                )
            schema = abi_to_schema(definition, address=artifacts.address, name=artifacts.contract_name)

        logger.info(
            "manual_definition_loaded",
            address=artifacts.address,
            network=network.id,
            functions=len(schema.functions),
        )
        return ContractLoadResult(
            contract_schema=schema,
            source=DefinitionSource.MANUAL,
            metadata=ContractDefinitionMetadata(
                contract_name=schema.name,
                verification_status="unknown",
                definition_hash=hash_definition(definition),
            ),
            definition_original=original,
        )

    # ==================== Provider Fallback ====================

    def _provider_order(self, force_provider: str | None) -> list[str]:
        order = list(self.config.provider_order)
        if force_provider:
            if force_provider in order:
                order.remove(force_provider)
            order.insert(0, force_provider)
        return order

    async def fetch_definition(
        self,
        address: str,
        network: NetworkConfig,
        force_provider: str | None = None,
    ) -> FetchedDefinition:
        """
        Try each provider in order until one returns a valid ABI.

        Each attempt gets min(per-provider timeout, remaining budget), but
        never less than MIN_ATTEMPT_SECONDS.

        Raises:
            DefinitionUnavailable: With one (provider, cause) pair per attempt
        """
        config = self.config
        loop = asyncio.get_running_loop()
        started = loop.time()
        causes: list[tuple[str, str]] = []

        for name in self._provider_order(force_provider):
            remaining = config.overall_resolution_budget_seconds - (loop.time() - started)
            timeout = min(config.per_provider_timeout_seconds, max(MIN_ATTEMPT_SECONDS, remaining))
            try:
                provider = self._provider(name)
                fetched = await with_timeout(
                    provider.fetch(address, network, timeout), timeout, f"{name} lookup"
                )
            except (DefinitionProviderError, TimeoutError, ValueError) as e:
                logger.warning("definition_provider_failed", provider=name, address=address, error=str(e))
                causes.append((name, str(e)))
                continue

            validation = validate_abi(fetched.abi)
            if not validation.is_valid:
                causes.append((name, f"Invalid ABI: {'; '.join(validation.errors)}"))
                continue
            return fetched

        raise DefinitionUnavailable(
            f"Could not load the contract definition for {address}",
            address=address,
            causes=causes,
        )

    # ==================== Proxies ====================

    async def _follow_proxy(
        self,
        address: str,
        fetched: FetchedDefinition,
        network: NetworkConfig,
        options: ResolveOptions,
    ) -> tuple[FetchedDefinition, ProxyInfo | None]:
        """
        Detect a proxy and swap in its implementation ABI.

        Returns:
            The definition to build the schema from, and the proxy info
            (None when the contract is not a proxy)
        """
        detected = detect_proxy_from_abi(fetched.abi)
        if not detected.is_proxy:
            return fetched, None

        max_depth = options.max_proxy_depth
        if max_depth is None:
            max_depth = self.config.max_proxy_depth

        indicators = list(detected.indicators)
        try:
            resolver = ProxyResolver(await self._chain_client_factory(network))
        except ChainClientError as e:
            logger.warning("proxy_resolution_unavailable", address=address, error=str(e))
            return fetched, self._unresolved_proxy(address, detected, indicators, options)

        found = await resolver.get_implementation_address(address, detected.proxy_type)
        if found is None:
            return fetched, self._unresolved_proxy(address, detected, indicators, options)

        implementation, method = found
        admin = await resolver.get_admin_address(address)
        indicators.append(f"Implementation resolved via {method}")
        confidence = ProxyConfidence.HIGH if method in AUTHORITATIVE_METHODS else ProxyConfidence.MEDIUM

        definition = fetched
        hops = 0
        current = implementation
        while hops < max_depth:
            try:
                candidate = await self.fetch_definition(current, network, options.force_provider)
            except DefinitionUnavailable as e:
                logger.warning(
                    "implementation_definition_unavailable",
                    proxy=address,
                    implementation=current,
                    error=str(e),
                )
                indicators.append("Implementation definition unavailable, using proxy ABI")
                break

            definition = candidate
            implementation = current
            hops += 1

            nested = detect_proxy_from_abi(candidate.abi)
            if not nested.is_proxy:
                break

            if hops >= max_depth:
                message = f"Implementation {current} of proxy {address} is itself a proxy"
                logger.warning("nested_proxy_not_followed", proxy=address, implementation=current, max_depth=max_depth)
                indicators.append("Implementation is itself a proxy")
                confidence = ProxyConfidence.LOW
                if options.strict_proxy:
                    raise ProxyResolutionAmbiguous(
                        message,
                        self._proxy_info(address, detected.proxy_type, implementation, admin, confidence, indicators),
                    )
                break

            next_hop = await resolver.get_implementation_address(current, nested.proxy_type)
            if next_hop is None:
                indicators.append("Nested proxy implementation not found")
                confidence = ProxyConfidence.LOW
                break
            current = next_hop[0]

        if definition is not fetched:
            definition = definition.model_copy(
                update={"contract_name": definition.contract_name or fetched.contract_name}
            )

        return definition, self._proxy_info(
            address, detected.proxy_type, implementation, admin, confidence, indicators
        )

    @staticmethod
    def _proxy_info(
        address: str,
        proxy_type: str | None,
        implementation: str | None,
        admin: str | None,
        confidence: ProxyConfidence,
        indicators: list[str],
    ) -> ProxyInfo:
        return ProxyInfo(
            is_proxy=True,
            proxy_type=proxy_type,
            implementation_address=implementation,
            admin_address=admin,
            proxy_address=address,
            detection_method="automatic",
            confidence=confidence,
            indicators=indicators,
        )

    def _unresolved_proxy(
        self,
        address: str,
        detected: ProxyInfo,
        indicators: list[str],
        options: ResolveOptions,
    ) -> ProxyInfo:
        indicators = indicators + ["Implementation address not found"]
        info = self._proxy_info(address, detected.proxy_type, None, None, ProxyConfidence.LOW, indicators)
        logger.warning("proxy_implementation_not_found", address=address, proxy_type=detected.proxy_type)
        if options.strict_proxy:
            raise ProxyResolutionAmbiguous(f"Could not resolve the implementation of proxy {address}", info)
        return info

    @staticmethod
    def needs_refresh(cached_hash: str | None, result: ContractLoadResult) -> bool:
        """True when a freshly loaded definition differs from the cached one."""
        return cached_hash != result.metadata.definition_hash
