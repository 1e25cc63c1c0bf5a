"""
Contract Adapter Base

One adapter per ecosystem ties the resolver, mapping, transform, query and
execution modules together behind a single interface bound to a network.
"""

from abc import ABC, abstractmethod
from typing import Any

from ..config import NetworkConfig, get_explorer_address_url, get_explorer_tx_url
from ..mapping.field_generator import map_parameter
from ..models.execution import EncodedCall, ExecutionResult
from ..models.fields import FieldDescriptor, FieldOverrides
from ..models.schema import ContractFunction, ContractLoadResult, Ecosystem, FunctionParameter
from ..resolver.loader import ContractArtifacts, ResolveOptions
from ..transform.input_parser import parse_input
from ..transform.output_formatter import format_output


class ContractAdapter(ABC):
    """
    Abstract base class for ecosystem adapters.

    Mapping, parsing and formatting are shared; loading, querying,
    execution and address validation are ecosystem specific.
    """

    ecosystem: Ecosystem

    def __init__(self, network: NetworkConfig) -> None:
        self.network = network

    @abstractmethod
    async def load_contract(
        self,
        artifacts: ContractArtifacts,
        options: ResolveOptions | None = None,
    ) -> ContractLoadResult:
        pass

    def map_parameter(
        self,
        parameter: FunctionParameter,
        overrides: FieldOverrides | None = None,
    ) -> FieldDescriptor:
        return map_parameter(parameter, self.ecosystem, overrides)

    def parse_input(self, parameter: FunctionParameter, raw_value: Any, path: str | None = None) -> Any:
        return parse_input(parameter, raw_value, self.ecosystem, path)

    def format_output(self, raw_value: Any, function: ContractFunction) -> Any:
        return format_output(raw_value, function)

    @abstractmethod
    async def query_view_function(
        self,
        address: str,
        function_id: str,
        params: list[Any],
        load_result: ContractLoadResult,
    ) -> Any:
        pass

    @abstractmethod
    async def execute(self, call: EncodedCall, execution_config: Any, **kwargs: Any) -> ExecutionResult:
        pass

    @abstractmethod
    def is_valid_address(self, address: str) -> bool:
        pass

    def get_explorer_url(self, address: str) -> str | None:
        return get_explorer_address_url(address, self.network)

    def get_explorer_tx_url(self, tx_hash: str) -> str | None:
        return get_explorer_tx_url(tx_hash, self.network)
