"""
Tests for the schema resolver.

Covers manual definitions, provider fallback within the time budget,
and following proxies to their implementation.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from eth_utils import to_checksum_address

from callforge.config import CallForgeConfig
from callforge.errors import ChainClientError, DefinitionProviderError, DefinitionUnavailable, ProxyResolutionAmbiguous
from callforge.models.schema import DefinitionSource, Ecosystem, ProxyConfidence
from callforge.resolver.comparison import hash_definition
from callforge.resolver.loader import ContractArtifacts, ResolveOptions, SchemaResolver
from callforge.resolver.providers import DefinitionProvider, FetchedDefinition
from callforge.resolver.proxy import EIP1967_IMPLEMENTATION_SLOT

PROXY = "0x" + "ab" * 20
IMPLEMENTATION = "0x" + "cd" * 20
NESTED = "0x" + "56" * 20
STELLAR_CONTRACT = "C" + "B" * 55


class StubProvider(DefinitionProvider):
    """Serves canned ABIs keyed by lowercase address."""

    def __init__(self, name: str, abis: dict[str, list] | None = None, delay: float = 0.0):
        super().__init__()
        self.name = name
        self.abis = abis or {}
        self.delay = delay
        self.calls: list[str] = []

    async def fetch(self, address, network, timeout):
        self.calls.append(address)
        if self.delay:
            await asyncio.sleep(self.delay)
        abi = self.abis.get(address.lower())
        if abi is None:
            raise DefinitionProviderError(self.name, f"Contract is not verified on {network.name}")
        return FetchedDefinition(
            abi=abi,
            provider=self.name,
            contract_name=f"{self.name}-{address[:6]}",
            fetched_from=f"https://explorer.example/{address}",
        )


def address_word(address: str) -> str:
    return "0x" + address[2:].lower().rjust(64, "0")


@pytest.fixture
def slots_to(mock_chain_client):
    """Point the EIP-1967 implementation slot of each proxy at a target."""

    def configure(mapping: dict[str, str]):
        async def read(address, slot):
            target = mapping.get(address.lower())
            if slot == EIP1967_IMPLEMENTATION_SLOT and target:
                return address_word(target)
            return "0x" + "0" * 64

        mock_chain_client.get_storage_at.side_effect = read

    return configure


def make_resolver(config, etherscan=None, sourcify=None, chain_client=None):
    factory = AsyncMock(return_value=chain_client)
    resolver = SchemaResolver(
        providers=[etherscan or StubProvider("etherscan"), sourcify or StubProvider("sourcify")],
        chain_client_factory=factory,
        config=config,
    )
    return resolver, factory


# ==================== Manual Definitions ====================


class TestManualDefinitions:
    """Tests for user supplied definitions."""

    @pytest.mark.asyncio
    async def test_manual_abi_list(self, test_config, erc20_abi):
        resolver, factory = make_resolver(test_config)

        result = await resolver.resolve(
            ContractArtifacts(address=PROXY, manual_definition=erc20_abi, contract_name="Token"),
            "ethereum-sepolia",
        )

        assert result.source == DefinitionSource.MANUAL
        assert result.contract_schema.name == "Token"
        assert result.metadata.verification_status == "unknown"
        assert result.metadata.definition_hash == hash_definition(erc20_abi)
        assert json.loads(result.definition_original) == erc20_abi
        factory.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_manual_abi_string_kept_verbatim(self, test_config, erc20_abi):
        resolver, _ = make_resolver(test_config)
        raw = json.dumps(erc20_abi, indent=2)

        result = await resolver.resolve(ContractArtifacts(address=PROXY, manual_definition=raw), "ethereum-sepolia")

        assert result.definition_original == raw
        assert len(result.contract_schema.functions) == 3

    @pytest.mark.asyncio
    async def test_manual_invalid_json(self, test_config):
        resolver, _ = make_resolver(test_config)

        with pytest.raises(DefinitionUnavailable, match="not valid JSON"):
            await resolver.resolve(ContractArtifacts(address=PROXY, manual_definition="[{"), "ethereum-sepolia")

    @pytest.mark.asyncio
    async def test_manual_invalid_abi(self, test_config):
        resolver, _ = make_resolver(test_config)

        with pytest.raises(DefinitionUnavailable, match="cannot be empty"):
            await resolver.resolve(ContractArtifacts(address=PROXY, manual_definition=[]), "ethereum-sepolia")

    @pytest.mark.asyncio
    async def test_manual_stellar_spec(self, test_config):
        resolver, _ = make_resolver(test_config)
        spec = {
            "name": "Counter",
            "functions": [
                {"name": "increment", "inputs": [{"name": "by", "type": "U32"}]},
                {"name": "get", "read_only": True, "inputs": [], "outputs": [{"type": "U32"}]},
            ],
        }

        result = await resolver.resolve(
            ContractArtifacts(address=STELLAR_CONTRACT, manual_definition=spec), "stellar-testnet"
        )

        assert result.contract_schema.ecosystem == Ecosystem.STELLAR
        assert result.contract_schema.name == "Counter"
        assert result.contract_schema.get_function("get").modifies_state is False

    @pytest.mark.asyncio
    async def test_invalid_stellar_spec(self, test_config):
        resolver, _ = make_resolver(test_config)

        with pytest.raises(DefinitionUnavailable, match="invalid"):
            await resolver.resolve(
                ContractArtifacts(address=STELLAR_CONTRACT, manual_definition={"functions": []}),
                "stellar-testnet",
            )

    @pytest.mark.asyncio
    async def test_stellar_requires_manual_definition(self, test_config):
        resolver, _ = make_resolver(test_config)

        with pytest.raises(DefinitionUnavailable, match="manual definition"):
            await resolver.resolve(ContractArtifacts(address=STELLAR_CONTRACT), "stellar-testnet")


# ==================== Provider Fallback ====================


class TestProviderFallback:
    """Tests for trying providers in order."""

    @pytest.mark.asyncio
    async def test_first_provider_wins(self, test_config, erc20_abi):
        etherscan = StubProvider("etherscan", {PROXY: erc20_abi})
        sourcify = StubProvider("sourcify", {PROXY: erc20_abi})
        resolver, _ = make_resolver(test_config, etherscan, sourcify)

        result = await resolver.resolve(ContractArtifacts(address=PROXY), "ethereum-sepolia")

        assert result.source == DefinitionSource.FETCHED
        assert result.metadata.provider == "etherscan"
        assert result.contract_schema.address == to_checksum_address(PROXY)
        assert sourcify.calls == []

    @pytest.mark.asyncio
    async def test_falls_back_to_next_provider(self, test_config, erc20_abi):
        sourcify = StubProvider("sourcify", {PROXY: erc20_abi})
        resolver, _ = make_resolver(test_config, sourcify=sourcify)

        result = await resolver.resolve(ContractArtifacts(address=PROXY), "ethereum-sepolia")

        assert result.metadata.provider == "sourcify"
        assert result.metadata.fetched_from == f"https://explorer.example/{to_checksum_address(PROXY)}"

    @pytest.mark.asyncio
    async def test_all_providers_fail(self, test_config):
        resolver, _ = make_resolver(test_config)

        with pytest.raises(DefinitionUnavailable) as exc_info:
            await resolver.resolve(ContractArtifacts(address=PROXY), "ethereum-sepolia")

        assert [provider for provider, _ in exc_info.value.causes] == ["etherscan", "sourcify"]
        assert "not verified on Sepolia" in exc_info.value.causes[0][1]

    @pytest.mark.asyncio
    async def test_force_provider_goes_first(self, test_config, erc20_abi):
        etherscan = StubProvider("etherscan", {PROXY: erc20_abi})
        sourcify = StubProvider("sourcify", {PROXY: erc20_abi})
        resolver, _ = make_resolver(test_config, etherscan, sourcify)

        result = await resolver.resolve(
            ContractArtifacts(address=PROXY), "ethereum-sepolia", ResolveOptions(force_provider="sourcify")
        )

        assert result.metadata.provider == "sourcify"
        assert etherscan.calls == []

    @pytest.mark.asyncio
    async def test_slow_provider_times_out(self, erc20_abi):
        config = CallForgeConfig(per_provider_timeout_seconds=0.05, overall_resolution_budget_seconds=1.0)
        etherscan = StubProvider("etherscan", {PROXY: erc20_abi}, delay=5.0)
        sourcify = StubProvider("sourcify", {PROXY: erc20_abi})
        resolver, _ = make_resolver(config, etherscan, sourcify)

        result = await resolver.resolve(ContractArtifacts(address=PROXY), "ethereum-sepolia")

        assert result.metadata.provider == "sourcify"

    @pytest.mark.asyncio
    async def test_timeout_recorded_as_cause(self):
        config = CallForgeConfig(per_provider_timeout_seconds=0.05, overall_resolution_budget_seconds=1.0)
        etherscan = StubProvider("etherscan", {PROXY: []}, delay=5.0)
        resolver, _ = make_resolver(config, etherscan)

        with pytest.raises(DefinitionUnavailable) as exc_info:
            await resolver.resolve(ContractArtifacts(address=PROXY), "ethereum-sepolia")

        assert "timed out after 50ms" in exc_info.value.causes[0][1]

    @pytest.mark.asyncio
    async def test_invalid_abi_skipped(self, test_config, erc20_abi):
        etherscan = StubProvider("etherscan", {PROXY: [{"type": "bogus"}]})
        sourcify = StubProvider("sourcify", {PROXY: erc20_abi})
        resolver, _ = make_resolver(test_config, etherscan, sourcify)

        result = await resolver.resolve(ContractArtifacts(address=PROXY), "ethereum-sepolia")

        assert result.metadata.provider == "sourcify"

    @pytest.mark.asyncio
    async def test_invalid_address(self, test_config):
        resolver, _ = make_resolver(test_config)

        with pytest.raises(DefinitionUnavailable, match="Invalid contract address"):
            await resolver.resolve(ContractArtifacts(address="0x1234"), "ethereum-sepolia")


# ==================== Proxies ====================


class TestProxyFollowing:
    """Tests for swapping a proxy ABI for its implementation ABI."""

    @pytest.mark.asyncio
    async def test_not_a_proxy_skips_chain(self, test_config, erc20_abi, mock_chain_client):
        etherscan = StubProvider("etherscan", {PROXY: erc20_abi})
        resolver, factory = make_resolver(test_config, etherscan, chain_client=mock_chain_client)

        result = await resolver.resolve(ContractArtifacts(address=PROXY), "ethereum-sepolia")

        assert result.proxy_info is None
        factory.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_follows_uups_proxy(self, test_config, erc20_abi, uups_proxy_abi, mock_chain_client, slots_to):
        slots_to({PROXY: IMPLEMENTATION})
        etherscan = StubProvider("etherscan", {PROXY: uups_proxy_abi, IMPLEMENTATION: erc20_abi})
        resolver, _ = make_resolver(test_config, etherscan, chain_client=mock_chain_client)

        result = await resolver.resolve(ContractArtifacts(address=PROXY), "ethereum-sepolia")

        info = result.proxy_info
        assert info.is_proxy is True
        assert info.proxy_type == "uups"
        assert info.implementation_address == to_checksum_address(IMPLEMENTATION)
        assert info.proxy_address == to_checksum_address(PROXY)
        assert info.confidence == ProxyConfidence.HIGH
        assert info.detection_method == "automatic"
        assert "Implementation resolved via eip1967_slot" in info.indicators
        assert result.contract_schema.get_function("transfer") is not None
        assert result.contract_schema.address == to_checksum_address(PROXY)
        assert result.metadata.definition_hash == hash_definition(erc20_abi)

    @pytest.mark.asyncio
    async def test_treat_as_implementation(self, test_config, uups_proxy_abi, mock_chain_client):
        etherscan = StubProvider("etherscan", {PROXY: uups_proxy_abi})
        resolver, factory = make_resolver(test_config, etherscan, chain_client=mock_chain_client)

        result = await resolver.resolve(
            ContractArtifacts(address=PROXY), "ethereum-sepolia", ResolveOptions(treat_as_implementation=True)
        )

        assert result.proxy_info is None
        assert result.contract_schema.functions == []
        factory.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_implementation_not_found(self, test_config, uups_proxy_abi, mock_chain_client):
        etherscan = StubProvider("etherscan", {PROXY: uups_proxy_abi})
        resolver, _ = make_resolver(test_config, etherscan, chain_client=mock_chain_client)

        result = await resolver.resolve(ContractArtifacts(address=PROXY), "ethereum-sepolia")

        assert result.proxy_info.confidence == ProxyConfidence.LOW
        assert result.proxy_info.implementation_address is None
        assert "Implementation address not found" in result.proxy_info.indicators
        assert result.contract_schema.events[0].name == "Upgraded"

    @pytest.mark.asyncio
    async def test_implementation_not_found_strict(self, test_config, uups_proxy_abi, mock_chain_client):
        etherscan = StubProvider("etherscan", {PROXY: uups_proxy_abi})
        resolver, _ = make_resolver(test_config, etherscan, chain_client=mock_chain_client)

        with pytest.raises(ProxyResolutionAmbiguous) as exc_info:
            await resolver.resolve(
                ContractArtifacts(address=PROXY), "ethereum-sepolia", ResolveOptions(strict_proxy=True)
            )

        assert exc_info.value.proxy_info.proxy_type == "uups"

    @pytest.mark.asyncio
    async def test_chain_client_unavailable(self, test_config, uups_proxy_abi):
        etherscan = StubProvider("etherscan", {PROXY: uups_proxy_abi})
        resolver = SchemaResolver(
            providers=[etherscan, StubProvider("sourcify")],
            chain_client_factory=AsyncMock(side_effect=ChainClientError("no rpc")),
            config=test_config,
        )

        result = await resolver.resolve(ContractArtifacts(address=PROXY), "ethereum-sepolia")

        assert result.proxy_info.confidence == ProxyConfidence.LOW

    @pytest.mark.asyncio
    async def test_implementation_definition_unavailable(
        self, test_config, uups_proxy_abi, mock_chain_client, slots_to
    ):
        slots_to({PROXY: IMPLEMENTATION})
        etherscan = StubProvider("etherscan", {PROXY: uups_proxy_abi})
        resolver, _ = make_resolver(test_config, etherscan, chain_client=mock_chain_client)

        result = await resolver.resolve(ContractArtifacts(address=PROXY), "ethereum-sepolia")

        assert result.proxy_info.implementation_address == to_checksum_address(IMPLEMENTATION)
        assert "Implementation definition unavailable, using proxy ABI" in result.proxy_info.indicators
        assert result.contract_schema.functions == []

    @pytest.mark.asyncio
    async def test_nested_proxy_degrades_confidence(
        self, test_config, uups_proxy_abi, mock_chain_client, slots_to
    ):
        slots_to({PROXY: IMPLEMENTATION, IMPLEMENTATION: NESTED})
        etherscan = StubProvider("etherscan", {PROXY: uups_proxy_abi, IMPLEMENTATION: uups_proxy_abi})
        resolver, _ = make_resolver(test_config, etherscan, chain_client=mock_chain_client)

        result = await resolver.resolve(ContractArtifacts(address=PROXY), "ethereum-sepolia")

        assert result.proxy_info.confidence == ProxyConfidence.LOW
        assert "Implementation is itself a proxy" in result.proxy_info.indicators
        assert result.proxy_info.implementation_address == to_checksum_address(IMPLEMENTATION)

    @pytest.mark.asyncio
    async def test_nested_proxy_strict(self, test_config, uups_proxy_abi, mock_chain_client, slots_to):
        slots_to({PROXY: IMPLEMENTATION})
        etherscan = StubProvider("etherscan", {PROXY: uups_proxy_abi, IMPLEMENTATION: uups_proxy_abi})
        resolver, _ = make_resolver(test_config, etherscan, chain_client=mock_chain_client)

        with pytest.raises(ProxyResolutionAmbiguous, match="itself a proxy"):
            await resolver.resolve(
                ContractArtifacts(address=PROXY), "ethereum-sepolia", ResolveOptions(strict_proxy=True)
            )

    @pytest.mark.asyncio
    async def test_two_hops(self, test_config, erc20_abi, uups_proxy_abi, mock_chain_client, slots_to):
        slots_to({PROXY: IMPLEMENTATION, IMPLEMENTATION: NESTED})
        etherscan = StubProvider(
            "etherscan", {PROXY: uups_proxy_abi, IMPLEMENTATION: uups_proxy_abi, NESTED: erc20_abi}
        )
        resolver, _ = make_resolver(test_config, etherscan, chain_client=mock_chain_client)

        result = await resolver.resolve(
            ContractArtifacts(address=PROXY), "ethereum-sepolia", ResolveOptions(max_proxy_depth=2)
        )

        assert result.proxy_info.implementation_address == to_checksum_address(NESTED)
        assert result.proxy_info.confidence == ProxyConfidence.HIGH
        assert result.contract_schema.get_function("transfer") is not None

    @pytest.mark.asyncio
    async def test_zero_depth_detects_only(self, test_config, uups_proxy_abi, mock_chain_client, slots_to):
        slots_to({PROXY: IMPLEMENTATION})
        etherscan = StubProvider("etherscan", {PROXY: uups_proxy_abi})
        resolver, _ = make_resolver(test_config, etherscan, chain_client=mock_chain_client)

        result = await resolver.resolve(
            ContractArtifacts(address=PROXY), "ethereum-sepolia", ResolveOptions(max_proxy_depth=0)
        )

        assert result.proxy_info.implementation_address == to_checksum_address(IMPLEMENTATION)
        assert etherscan.calls == [to_checksum_address(PROXY)]


# ==================== Refresh ====================


class TestNeedsRefresh:
    """Tests for change detection against a cached hash."""

    @pytest.mark.asyncio
    async def test_needs_refresh(self, test_config, erc20_abi):
        resolver, _ = make_resolver(test_config)
        result = await resolver.resolve(
            ContractArtifacts(address=PROXY, manual_definition=erc20_abi), "ethereum-sepolia"
        )

        assert SchemaResolver.needs_refresh(None, result) is True
        assert SchemaResolver.needs_refresh(hash_definition(erc20_abi), result) is False
        assert SchemaResolver.needs_refresh("stale", result) is True
