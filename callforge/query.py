"""
Query Path

Read-only function calls: parse the arguments, eth_call the contract,
decode and format the result for display.
"""

from typing import Any

import structlog
from eth_utils import is_address, to_checksum_address

from .chains.base_client import get_chain_client
from .config import NetworkConfig, resolve_network_config
from .errors import ChainClientError, QueryError
from .models.schema import ContractFunction, ContractSchema, Ecosystem
from .transform.input_parser import parse_input
from .transform.output_formatter import format_output
from .transform.payload import function_to_abi

logger = structlog.get_logger(__name__)

# Proxy plumbing that should not be auto-queried on load
PROXY_ADMIN_FUNCTIONS = frozenset(
    {
        "admin",
        "implementation",
        "getImplementation",
        "_implementation",
        "proxyAdmin",
        "changeAdmin",
        "upgradeTo",
        "upgradeToAndCall",
    }
)


def is_view_function(function: ContractFunction) -> bool:
    """True for functions that can be called without a transaction."""
    return not function.modifies_state


def get_writable_functions(schema: ContractSchema) -> list[ContractFunction]:
    return [fn for fn in schema.functions if fn.modifies_state]


def filter_auto_queryable_functions(functions: list[ContractFunction]) -> list[ContractFunction]:
    """
    View functions worth calling as soon as a contract is loaded.

    Only parameterless views qualify, minus proxy administration getters
    that often revert when called by anyone but the admin.
    """
    return [
        fn
        for fn in functions
        if is_view_function(fn) and not fn.inputs and fn.name not in PROXY_ADMIN_FUNCTIONS
    ]


class QueryHandler:
    """Executes read-only calls against EVM contracts."""

    def __init__(self, chain_client_factory: Any = get_chain_client) -> None:
        self._chain_client_factory = chain_client_factory

    async def query_view_function(
        self,
        address: str,
        function_id: str,
        params: list[Any],
        schema: ContractSchema,
        network: str | NetworkConfig,
    ) -> Any:
        """
        Call a view function and format its result.

        Args:
            address: Contract address
            function_id: Function id (or unambiguous name) from the schema
            params: Raw values, one per input, in input order
            schema: Resolved contract schema
            network: Network id or configuration

        Returns:
            A display string for a single output, a dict keyed by output
            name for several outputs

        Raises:
            QueryError: Invalid address, unknown or state-changing function,
                        wrong parameter count or RPC failure
            ValueTransformInvalid: A parameter failed to parse
        """
        if not address or not is_address(address):
            raise QueryError(f"Invalid contract address: {address}")

        function = schema.get_function(function_id)
        if function is None:
            raise QueryError(f"Function {function_id} not found in contract schema")
        if function.modifies_state:
            raise QueryError(f"Function {function.name} modifies state and cannot be queried")
        if len(params) != len(function.inputs):
            raise QueryError(
                f"Function {function.name} expects {len(function.inputs)} parameter(s), got {len(params)}"
            )

        network_config = resolve_network_config(network)
        if network_config.ecosystem != Ecosystem.EVM:
            raise QueryError(f"Queries are not supported on {network_config.name}")

        args = [
            parse_input(parameter, value, Ecosystem.EVM, path=parameter.name or f"param{index}")
            for index, (parameter, value) in enumerate(zip(function.inputs, params))
        ]

        try:
            client = await self._chain_client_factory(network_config)
            decoded = await client.call_function(
                to_checksum_address(address), function_to_abi(function), args
            )
        except ChainClientError as e:
            logger.warning("view_call_failed", address=address, function=function.name, error=str(e))
            raise QueryError(f"Query of {function.name} failed: {e}") from e

        outputs = function.outputs or []
        raw = decoded[0] if len(outputs) == 1 else list(decoded)
        logger.debug("view_call_succeeded", address=address, function=function.name)
        return format_output(raw, function)
