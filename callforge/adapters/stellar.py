"""
Stellar adapter.

Contracts load from a manual spec only; mapping and value transformation
follow the Soroban type grammar. On-chain queries and execution are not
provided.
"""

import re
from typing import Any

from ..config import CallForgeConfig, NetworkConfig
from ..errors import UnsupportedOperation
from ..models.execution import EncodedCall, ExecutionResult
from ..models.schema import ContractLoadResult, Ecosystem
from ..resolver.loader import ContractArtifacts, ResolveOptions, SchemaResolver
from .base import ContractAdapter

# Account (G...) and contract (C...) strkeys
STRKEY_RE = re.compile(r"^[GC][A-Z2-7]{55}$")


class StellarAdapter(ContractAdapter):
    ecosystem = Ecosystem.STELLAR

    def __init__(
        self,
        network: NetworkConfig,
        resolver: SchemaResolver | None = None,
        config: CallForgeConfig | None = None,
    ) -> None:
        super().__init__(network)
        self.resolver = resolver or SchemaResolver(config=config)

    async def load_contract(
        self,
        artifacts: ContractArtifacts,
        options: ResolveOptions | None = None,
    ) -> ContractLoadResult:
        return await self.resolver.resolve(artifacts, self.network, options)

    async def query_view_function(
        self,
        address: str,
        function_id: str,
        params: list[Any],
        load_result: ContractLoadResult,
    ) -> Any:
        raise UnsupportedOperation(f"View queries are not supported on {self.network.name}")

    async def execute(self, call: EncodedCall, execution_config: Any, **kwargs: Any) -> ExecutionResult:
        raise UnsupportedOperation(f"Transaction execution is not supported on {self.network.name}")

    def is_valid_address(self, address: str) -> bool:
        return bool(address) and bool(STRKEY_RE.match(address))
