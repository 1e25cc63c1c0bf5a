"""EVM adapter: full load, map, transform, query and execute support."""

from typing import Any

from eth_utils import is_address

from ..config import CallForgeConfig, NetworkConfig
from ..execution.engine import ExecutionEngine
from ..models.execution import EncodedCall, ExecutionResult
from ..models.schema import ContractLoadResult, Ecosystem
from ..query import QueryHandler
from ..resolver.loader import ContractArtifacts, ResolveOptions, SchemaResolver
from .base import ContractAdapter


class EvmAdapter(ContractAdapter):
    ecosystem = Ecosystem.EVM

    def __init__(
        self,
        network: NetworkConfig,
        resolver: SchemaResolver | None = None,
        query_handler: QueryHandler | None = None,
        engine: ExecutionEngine | None = None,
        config: CallForgeConfig | None = None,
    ) -> None:
        super().__init__(network)
        self.resolver = resolver or SchemaResolver(config=config)
        self.query_handler = query_handler or QueryHandler()
        self.engine = engine or ExecutionEngine(network, config=config)

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
        return await self.query_handler.query_view_function(
            address, function_id, params, load_result.contract_schema, self.network
        )

    async def execute(self, call: EncodedCall, execution_config: Any, **kwargs: Any) -> ExecutionResult:
        """Forwards keyword arguments (wallet, on_status_change, ...) to ExecutionEngine.execute."""
        return await self.engine.execute(call, execution_config, **kwargs)

    def is_valid_address(self, address: str) -> bool:
        return bool(address) and is_address(address)
