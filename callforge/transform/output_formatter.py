"""
Output Formatter

Converts chain-native values returned by read-only calls into display
values: a plain string for a single scalar output, nested lists and dicts
for composites, and a dict keyed by output name for multi-output functions.
"""

from typing import Any

from eth_utils import is_address, to_checksum_address

from ..errors import ValueTransformInvalid
from ..models.schema import ContractFunction, EnumValue, FunctionParameter, MapEntry
from ..mapping.enum_metadata import payload_parameters
from ..mapping.type_mapper import parse_evm_array, parse_generic_type
from .input_parser import ABSENT


def _element_parameter(parameter: FunctionParameter) -> FunctionParameter | None:
    array = parse_evm_array(parameter.type)
    if array is not None:
        return FunctionParameter(name=parameter.name, type=array[0], components=parameter.components)
    base, args = parse_generic_type(parameter.type)
    if base in ("Vec", "Option") and len(args) == 1:
        return FunctionParameter(
            name=parameter.name,
            type=args[0],
            components=parameter.components,
            enum_variants=parameter.enum_variants,
        )
    return None


def _is_struct(parameter: FunctionParameter | None) -> bool:
    if parameter is None or not parameter.components:
        return False
    if parameter.type == "tuple":
        return True
    if parse_evm_array(parameter.type) is not None:
        return False
    return not parse_generic_type(parameter.type)[1]


def _map_parameters(parameter: FunctionParameter | None) -> tuple[FunctionParameter | None, FunctionParameter | None]:
    if parameter is None:
        return None, None
    base, args = parse_generic_type(parameter.type)
    if base != "Map" or len(args) != 2:
        return None, None
    resolved = {c.name: c for c in parameter.components or []}
    return (
        resolved.get("key") or FunctionParameter(name="key", type=args[0]),
        resolved.get("value") or FunctionParameter(name="value", type=args[1]),
    )


def _tuple_members(parameter: FunctionParameter | None) -> list[FunctionParameter] | None:
    if parameter is None:
        return None
    base, args = parse_generic_type(parameter.type)
    if base != "Tuple" or not args:
        return None
    if parameter.components and len(parameter.components) == len(args):
        return list(parameter.components)
    return [FunctionParameter(name=str(index), type=arg) for index, arg in enumerate(args)]


def _payload_parameters(parameter: FunctionParameter | None, tag: str) -> list[FunctionParameter]:
    if parameter is None or not parameter.enum_variants:
        return []
    for variant in parameter.enum_variants:
        if variant.get("name") == tag:
            return payload_parameters(variant)
    return []


def format_value(value: Any, parameter: FunctionParameter | None = None, path: str = "value") -> Any:
    """
    Format one chain-native value for display.

    Scalars become strings; tuples become dicts keyed by component name;
    arrays stay lists. Unknown shapes fall back to str().

    Raises:
        ValueTransformInvalid: If a tuple's arity does not match its components
    """
    if parameter is not None:
        base, args = parse_generic_type(parameter.type)
        if base == "Option" and len(args) == 1:
            parameter = parameter.model_copy(update={"type": args[0]})
    type_str = parameter.type if parameter is not None else ""

    if value is None or value is ABSENT:
        return ""

    if isinstance(value, bool):
        return "true" if value else "false"

    if isinstance(value, int):
        return str(value)

    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()

    if isinstance(value, EnumValue):
        payload_params = _payload_parameters(parameter, value.tag)
        values = list(value.values or [])
        return {
            "tag": value.tag,
            "values": [
                format_value(
                    item,
                    payload_params[index] if index < len(payload_params) else None,
                    f"{path}.{value.tag}[{index}]",
                )
                for index, item in enumerate(values)
            ],
        }

    if isinstance(value, MapEntry):
        key_param, value_param = _map_parameters(parameter)
        return {
            "key": format_value(value.key, key_param, f"{path}.key"),
            "value": format_value(value.value, value_param, f"{path}.value"),
        }

    if _is_struct(parameter) and isinstance(value, (list, tuple)):
        components = parameter.components or []
        if len(value) != len(components):
            raise ValueTransformInvalid(
                path, f"Expected {len(components)} members, got {len(value)}", type_str
            )
        return {
            component.name or str(index): format_value(item, component, f"{path}.{component.name or index}")
            for index, (component, item) in enumerate(zip(components, value))
        }

    members = _tuple_members(parameter)
    if members is not None and isinstance(value, (list, tuple)):
        if len(value) != len(members):
            raise ValueTransformInvalid(path, f"Expected {len(members)} members, got {len(value)}", type_str)
        return [format_value(item, member, f"{path}.{index}") for index, (member, item) in enumerate(zip(members, value))]

    if isinstance(value, dict):
        if _is_struct(parameter):
            components = parameter.components or []
            return {
                component.name or str(index): format_value(
                    value.get(component.name or str(index)), component, f"{path}.{component.name or index}"
                )
                for index, component in enumerate(components)
            }
        return {str(k): format_value(v, None, f"{path}.{k}") for k, v in value.items()}

    if isinstance(value, (list, tuple)):
        if parameter is not None and type_str.startswith("Map<"):
            return [format_value(item, parameter, f"{path}[{index}]") for index, item in enumerate(value)]
        element = _element_parameter(parameter) if parameter is not None else None
        return [format_value(item, element, f"{path}[{index}]") for index, item in enumerate(value)]

    if isinstance(value, str):
        if type_str == "address" and is_address(value):
            return to_checksum_address(value)
        return value

    return str(value)


def format_output(raw_value: Any, function: ContractFunction) -> Any:
    """
    Format a read-only call result for display.

    Args:
        raw_value: The decoded value; a sequence with one item per output
                   when the function declares more than one output
        function: Function whose outputs describe the value

    Returns:
        A plain string for a single scalar output, a nested structure for a
        single composite output, or a dict keyed by output name (output_<i>
        for unnamed outputs) when there are several outputs

    Raises:
        ValueTransformInvalid: If the value's shape does not match the outputs
    """
    outputs = function.outputs or []

    if not outputs:
        return format_value(raw_value)

    if len(outputs) == 1:
        return format_value(raw_value, outputs[0], outputs[0].name or "output_0")

    if not isinstance(raw_value, (list, tuple)) or len(raw_value) != len(outputs):
        raise ValueTransformInvalid(
            function.name,
            f"Expected {len(outputs)} output values, got {type(raw_value).__name__}",
        )

    result: dict[str, Any] = {}
    for index, (output, item) in enumerate(zip(outputs, raw_value)):
        key = output.name or f"output_{index}"
        result[key] = format_value(item, output, key)
    return result
