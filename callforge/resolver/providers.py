"""
Definition Providers

Remote sources of verified contract ABIs. Each provider fetches one
definition; the resolver decides the order, the time budget and the
fallback between them.
"""

import json
from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field

from ..config import CallForgeConfig, NetworkConfig, get_config, resolve_explorer_config
from ..errors import DefinitionProviderError

logger = structlog.get_logger(__name__)


class FetchedDefinition(BaseModel):
    """A definition returned by a provider, before schema transformation."""

    abi: list[dict[str, Any]]
    provider: str
    contract_name: str | None = None
    fetched_from: str | None = Field(default=None, description="Human-browsable source URL")
    verification_status: str = Field(default="verified", description="verified or partial")


class DefinitionProvider(ABC):
    """Base class for remote definition providers."""

    name: str = ""

    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        """
        Args:
            http_client: Shared client to send requests through. When None, a
                         short-lived client is created per request.
        """
        self._http_client = http_client

    @abstractmethod
    async def fetch(self, address: str, network: NetworkConfig, timeout: float) -> FetchedDefinition:
        """
        Fetch the definition of a deployed contract.

        Raises:
            DefinitionProviderError: When the provider cannot supply a definition
        """
        pass

    async def _get(self, url: str, params: dict[str, Any], timeout: float) -> httpx.Response:
        try:
            if self._http_client is not None:
                return await self._http_client.get(url, params=params, timeout=timeout)
            async with httpx.AsyncClient(timeout=timeout) as client:
                return await client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise DefinitionProviderError(self.name, f"Request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise DefinitionProviderError(self.name, f"Request failed: {e}") from e


class EtherscanProvider(DefinitionProvider):
    """
    Etherscan V2 multichain API.

    One endpoint serves every supported chain; the chain is selected with
    the chainid query parameter.
    """

    name = "etherscan"

    def __init__(
        self,
        config: CallForgeConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(http_client)
        self._config = config

    async def fetch(self, address: str, network: NetworkConfig, timeout: float) -> FetchedDefinition:
        config = self._config or get_config()
        if network.chain_id is None:
            raise DefinitionProviderError(self.name, f"Network {network.id} has no chain id")

        explorer = resolve_explorer_config(network, config=config)
        if not explorer.api_key:
            raise DefinitionProviderError(self.name, "No Etherscan API key configured")
        api_url = explorer.api_url or config.etherscan_api_url

        response = await self._get(
            api_url,
            {
                "chainid": network.chain_id,
                "module": "contract",
                "action": "getabi",
                "address": address,
                "apikey": explorer.api_key,
            },
            timeout,
        )
        if response.status_code != 200:
            raise DefinitionProviderError(self.name, f"HTTP {response.status_code} from explorer API")

        try:
            payload = response.json()
        except ValueError as e:
            raise DefinitionProviderError(self.name, "Explorer API returned invalid JSON") from e

        if str(payload.get("status")) != "1":
            raise DefinitionProviderError(self.name, self._describe_error(payload, network))

        try:
            abi = json.loads(payload["result"])
        except (KeyError, TypeError, ValueError) as e:
            raise DefinitionProviderError(self.name, "Explorer API returned a malformed ABI") from e
        if not isinstance(abi, list):
            raise DefinitionProviderError(self.name, "Explorer API returned a malformed ABI")

        fetched_from = None
        if explorer.explorer_url:
            fetched_from = f"{explorer.explorer_url.rstrip('/')}/address/{address}#code"

        logger.info("definition_fetched", provider=self.name, address=address, network=network.id)
        return FetchedDefinition(
            abi=abi,
            provider=self.name,
            contract_name=f"Contract_{address[:6]}",
            fetched_from=fetched_from,
        )

    @staticmethod
    def _describe_error(payload: dict[str, Any], network: NetworkConfig) -> str:
        result = str(payload.get("result") or payload.get("message") or "Unknown error")
        lowered = result.lower()
        if "invalid api key" in lowered:
            return "Invalid API Key"
        if "not verified" in lowered:
            return f"Contract is not verified on {network.name}"
        if "chainid" in lowered or "chain id" in lowered:
            return f"Chain {network.chain_id} is not supported by the Etherscan V2 API"
        return result


class SourcifyProvider(DefinitionProvider):
    """Sourcify v2 contract lookup."""

    name = "sourcify"

    def __init__(
        self,
        config: CallForgeConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(http_client)
        self._config = config

    async def fetch(self, address: str, network: NetworkConfig, timeout: float) -> FetchedDefinition:
        config = self._config or get_config()
        if network.chain_id is None:
            raise DefinitionProviderError(self.name, f"Network {network.id} has no chain id")

        url = f"{config.sourcify_api_url}/v2/contract/{network.chain_id}/{address}"
        response = await self._get(url, {"fields": "abi,compilation"}, timeout)

        if response.status_code == 404:
            raise DefinitionProviderError(
                self.name, f"Contract is not verified on Sourcify for {network.name}"
            )
        if response.status_code != 200:
            raise DefinitionProviderError(self.name, f"HTTP {response.status_code} from Sourcify")

        try:
            payload = response.json()
        except ValueError as e:
            raise DefinitionProviderError(self.name, "Sourcify returned invalid JSON") from e

        abi = payload.get("abi")
        if not isinstance(abi, list):
            raise DefinitionProviderError(self.name, "Sourcify response has no ABI")

        compilation = payload.get("compilation") or {}
        match = payload.get("match")

        logger.info(
            "definition_fetched",
            provider=self.name,
            address=address,
            network=network.id,
            match=match,
        )
        return FetchedDefinition(
            abi=abi,
            provider=self.name,
            contract_name=compilation.get("name"),
            fetched_from=f"{config.sourcify_repo_url}/{network.chain_id}/{address}",
            verification_status="verified" if match == "exact_match" else "partial",
        )


def build_provider(name: str, config: CallForgeConfig | None = None, http_client: httpx.AsyncClient | None = None) -> DefinitionProvider:
    """Instantiate a provider by its configuration key."""
    if name == EtherscanProvider.name:
        return EtherscanProvider(config=config, http_client=http_client)
    if name == SourcifyProvider.name:
        return SourcifyProvider(config=config, http_client=http_client)
    raise ValueError(f"Unknown definition provider: {name}")
