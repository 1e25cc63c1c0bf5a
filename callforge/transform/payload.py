"""
Call Payload Formatting

Turns a submitted form (values keyed by field path) into call arguments.
Every input is parsed even after a failure so the caller can report all
invalid fields in one pass.
"""

import re
from typing import Any

import structlog
from eth_utils import is_address, to_checksum_address

from ..errors import ValueTransformErrors, ValueTransformInvalid
from ..models.execution import EncodedCall
from ..models.fields import FieldDescriptor
from ..models.schema import ContractFunction, ContractSchema, Ecosystem, FunctionParameter
from ..mapping.type_mapper import parse_generic_type
from .input_parser import ABSENT, parse_input

logger = structlog.get_logger(__name__)

_PATH_TOKEN_RE = re.compile(r"([^.\[\]]+)|\[(\d+)\]")

_MISSING = object()


def _conflict(path: str) -> ValueTransformInvalid:
    return ValueTransformInvalid(path, "Path conflicts with another entered value")


def _slot(node: Any, token: str | int, path: str) -> Any:
    """Check that node can hold token and return the current occupant."""
    if isinstance(token, int):
        if not isinstance(node, list):
            raise _conflict(path)
        while len(node) <= token:
            node.append(None)
        return node[token]
    if not isinstance(node, dict):
        raise _conflict(path)
    return node.get(token)


def unflatten_form_values(values: dict[str, Any]) -> dict[str, Any]:
    """
    Expand flat field paths into nested values.

    {"range.min": "1", "ids[0]": "5"} -> {"range": {"min": "1"}, "ids": ["5"]}
    Keys without path separators are kept as they are.

    Raises:
        ValueTransformInvalid: If one path addresses a value another path
                               already uses as a struct or list, or the reverse
    """
    result: dict[str, Any] = {}
    for path, value in values.items():
        tokens: list[str | int] = [
            name if name else int(index) for name, index in _PATH_TOKEN_RE.findall(path)
        ]
        if len(tokens) <= 1:
            if isinstance(result.get(path), (list, dict)):
                raise _conflict(path)
            result[path] = value
            continue

        node: Any = result
        for token, next_token in zip(tokens, tokens[1:]):
            child = _slot(node, token, path)
            if child is None:
                child = [] if isinstance(next_token, int) else {}
                node[token] = child
            elif not isinstance(child, (list, dict)):
                raise _conflict(path)
            node = child

        last = tokens[-1]
        if isinstance(_slot(node, last, path), (list, dict)):
            raise _conflict(path)
        node[last] = value
    return result


def _is_optional(ecosystem: Ecosystem, parameter: FunctionParameter) -> bool:
    return ecosystem == Ecosystem.STELLAR and parse_generic_type(parameter.type)[0] == "Option"


def format_call_arguments(
    function: ContractFunction,
    submitted_values: dict[str, Any],
    ecosystem: Ecosystem | str = Ecosystem.EVM,
    fields: list[FieldDescriptor] | None = None,
) -> list[Any]:
    """
    Parse every input of a function from submitted form values.

    Args:
        function: Function being called
        submitted_values: Values keyed by field name or flat field path
        ecosystem: Ecosystem whose type grammar applies
        fields: Mapped descriptors; hardcoded fields use their hardcoded value

    Returns:
        Encoder-ready arguments in input order

    Raises:
        ValueTransformErrors: With one entry per invalid field
    """
    eco = ecosystem if isinstance(ecosystem, Ecosystem) else Ecosystem(ecosystem)
    try:
        values = unflatten_form_values(submitted_values)
    except ValueTransformInvalid as e:
        raise ValueTransformErrors([e]) from e
    fields_by_name = {f.name: f for f in fields or []}

    args: list[Any] = []
    errors: list[ValueTransformInvalid] = []
    for index, parameter in enumerate(function.inputs):
        name = parameter.name or f"param{index}"
        field = fields_by_name.get(name)
        raw = field.hardcoded_value if field is not None and field.is_hardcoded else values.get(name, _MISSING)

        if raw is _MISSING:
            if _is_optional(eco, parameter):
                args.append(ABSENT)
            else:
                errors.append(ValueTransformInvalid(name, "Value is required", parameter.type))
            continue

        try:
            args.append(parse_input(parameter, raw, eco, path=name))
        except ValueTransformInvalid as e:
            errors.append(e)

    if errors:
        logger.info(
            "form_values_invalid",
            function=function.name,
            fields=[e.path for e in errors],
        )
        raise ValueTransformErrors(errors)
    return args


def parameter_to_abi(parameter: FunctionParameter) -> dict[str, Any]:
    entry: dict[str, Any] = {"name": parameter.name, "type": parameter.type}
    if parameter.components:
        entry["components"] = [parameter_to_abi(c) for c in parameter.components]
    return entry


def function_to_abi(function: ContractFunction) -> dict[str, Any]:
    """Rebuild the ABI entry of an EVM function from its schema."""
    return {
        "type": "function",
        "name": function.name,
        "inputs": [parameter_to_abi(p) for p in function.inputs],
        "outputs": [parameter_to_abi(p) for p in function.outputs or []],
        "stateMutability": function.state_mutability,
    }


def format_transaction_data(
    schema: ContractSchema,
    function_id: str,
    submitted_values: dict[str, Any],
    fields: list[FieldDescriptor] | None = None,
    value: int | str = 0,
    chain_id: int | None = None,
) -> EncodedCall:
    """
    Build the call payload for a state-changing EVM function.

    Raises:
        ValueError: If the function is unknown or the schema has no address
        ValueTransformErrors: With one entry per invalid field
    """
    function = schema.get_function(function_id)
    if function is None:
        raise ValueError(f"Function {function_id} not found in contract schema")
    if not schema.address or not is_address(schema.address):
        raise ValueError(f"Contract schema has no valid address: {schema.address!r}")

    args = format_call_arguments(function, submitted_values, schema.ecosystem, fields)

    amount = 0
    if function.is_payable:
        try:
            amount = parse_input(FunctionParameter(name="value", type="uint256"), value or 0)
        except ValueTransformInvalid as e:
            raise ValueTransformErrors([e]) from e

    return EncodedCall(
        address=to_checksum_address(schema.address),
        function_name=function.name,
        abi=[function_to_abi(function)],
        args=args,
        value=amount,
        chain_id=chain_id,
    )
