"""
Input Parser

Converts user-entered form data (strings from text inputs, nested dicts and
lists from composite fields) into encoder-ready values. Parsing recurses
over the same shapes the mapping engine describes and reports failures as
field-scoped ValueTransformInvalid errors carrying the nested path.
"""

import json
import re
from typing import Any

import structlog
from eth_utils import is_address, to_checksum_address

from ..errors import ValueTransformInvalid
from ..models.schema import Ecosystem, EnumValue, FunctionParameter, MapEntry
from ..mapping.enum_metadata import payload_parameters
from ..mapping.type_mapper import (
    EVM_BYTES_N_RE,
    STELLAR_INT_BITS,
    evm_integer_spec,
    integer_bounds,
    parse_evm_array,
    parse_generic_type,
)

logger = structlog.get_logger(__name__)

INTEGER_LITERAL_RE = re.compile(r"^[+-]?\d+$")
HEX_BYTES_RE = re.compile(r"^0x([0-9a-fA-F]{2})*$")
STELLAR_ADDRESS_RE = re.compile(r"^[GC][A-Z2-7]{55}$")
STELLAR_SYMBOL_RE = re.compile(r"^[A-Za-z0-9_]{0,32}$")


class _Absent:
    """Marker for an optional parameter left empty."""

    _instance: "_Absent | None" = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


# ==================== Shared Primitives ====================


def parse_integer(value: Any, signed: bool, bits: int, path: str, type_str: str) -> int:
    """
    Parse an integer literal without ever going through floating point.

    Accepts Python ints and strings of decimal digits with an optional sign.
    Exponents, fractions, floats and booleans are rejected.
    """
    if isinstance(value, bool):
        raise ValueTransformInvalid(path, "Expected an integer, got a boolean", type_str)
    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueTransformInvalid(path, "Numeric value cannot be empty", type_str)
        if not INTEGER_LITERAL_RE.match(text):
            raise ValueTransformInvalid(path, f"'{value}' is not an integer literal", type_str)
        number = int(text)
    else:
        raise ValueTransformInvalid(
            path, f"Expected an integer literal, got {type(value).__name__}", type_str
        )

    low, high = integer_bounds(signed, bits)
    if not low <= number <= high:
        raise ValueTransformInvalid(path, f"Value out of range [{low}, {high}]", type_str)
    return number


def parse_bool(value: Any, path: str, type_str: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueTransformInvalid(path, "Expected 'true' or 'false'", type_str)


def parse_hex_bytes(value: Any, path: str, type_str: str, size: int | None = None, require_prefix: bool = True) -> bytes:
    """Parse 0x-prefixed hex into bytes, optionally checking an exact size."""
    if isinstance(value, (bytes, bytearray)):
        data = bytes(value)
    elif isinstance(value, str):
        text = value.strip()
        if not require_prefix and not text.startswith("0x"):
            text = "0x" + text
        if not HEX_BYTES_RE.match(text):
            raise ValueTransformInvalid(
                path, "Expected 0x-prefixed hex with an even number of digits", type_str
            )
        data = bytes.fromhex(text[2:])
    else:
        raise ValueTransformInvalid(path, f"Expected hex string, got {type(value).__name__}", type_str)

    if size is not None and len(data) != size:
        raise ValueTransformInvalid(path, f"Expected exactly {size} bytes, got {len(data)}", type_str)
    return data


def _load_json(value: Any, expected: type | tuple[type, ...], path: str, type_str: str) -> Any:
    """Accept structured values directly, or as a JSON string from a text input."""
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueTransformInvalid(path, "Value is required", type_str)
        try:
            value = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueTransformInvalid(path, f"Invalid JSON: {e.msg}", type_str) from e
    if not isinstance(value, expected):
        raise ValueTransformInvalid(path, f"Expected {_describe(expected)}", type_str)
    return value


def _describe(expected: type | tuple[type, ...]) -> str:
    types = expected if isinstance(expected, tuple) else (expected,)
    names = {list: "an array", tuple: "an array", dict: "an object"}
    return " or ".join(dict.fromkeys(names.get(t, t.__name__) for t in types))


def _parse_members(
    components: list[FunctionParameter],
    value: Any,
    path: str,
    type_str: str,
    parse_member: Any,
) -> list[Any]:
    """Parse struct members in component order from a dict or a positional list."""
    value = _load_json(value, (dict, list, tuple), path, type_str)

    if isinstance(value, (list, tuple)):
        if len(value) != len(components):
            raise ValueTransformInvalid(
                path, f"Expected {len(components)} members, got {len(value)}", type_str
            )
        return [
            parse_member(component, item, f"{path}.{component.name or index}")
            for index, (component, item) in enumerate(zip(components, value))
        ]

    names = [component.name or str(index) for index, component in enumerate(components)]
    missing = [name for name in names if name not in value]
    if missing:
        raise ValueTransformInvalid(path, f"Missing member(s): {', '.join(missing)}", type_str)
    extra = [key for key in value if key not in names]
    if extra:
        raise ValueTransformInvalid(path, f"Unexpected member(s): {', '.join(extra)}", type_str)
    return [
        parse_member(component, value[name], f"{path}.{name}")
        for component, name in zip(components, names)
    ]


# ==================== EVM ====================


def _parse_evm(parameter: FunctionParameter, value: Any, path: str) -> Any:
    type_str = parameter.type

    array = parse_evm_array(type_str)
    if array is not None:
        element_type, length = array
        items = _load_json(value, (list, tuple), path, type_str)
        if length is not None and len(items) != length:
            raise ValueTransformInvalid(path, f"Expected {length} items, got {len(items)}", type_str)
        element = FunctionParameter(name=parameter.name, type=element_type, components=parameter.components)
        return [_parse_evm(element, item, f"{path}[{index}]") for index, item in enumerate(items)]

    if type_str == "tuple":
        return _parse_members(parameter.components or [], value, path, type_str, _parse_evm)

    int_spec = evm_integer_spec(type_str)
    if int_spec is not None:
        return parse_integer(value, int_spec[0], int_spec[1], path, type_str)

    if type_str == "address":
        if not isinstance(value, str) or not is_address(value.strip()):
            raise ValueTransformInvalid(path, f"Invalid address: {value!r}", type_str)
        return to_checksum_address(value.strip())

    if type_str == "bool":
        return parse_bool(value, path, type_str)

    if type_str == "bytes":
        return parse_hex_bytes(value, path, type_str)

    size_match = EVM_BYTES_N_RE.match(type_str)
    if size_match:
        return parse_hex_bytes(value, path, type_str, size=int(size_match.group("size")))

    if type_str == "string":
        if value is None:
            raise ValueTransformInvalid(path, "Value is required", type_str)
        return str(value)

    logger.warning("unsupported_parameter_type", ecosystem="evm", type=type_str, path=path)
    return value


# ==================== Stellar ====================


def _parse_enum(parameter: FunctionParameter, value: Any, path: str) -> EnumValue:
    type_str = parameter.type
    variants = {str(v.get("name")): v for v in parameter.enum_variants or []}

    if isinstance(value, EnumValue):
        tag, payload = value.tag, list(value.values or [])
    elif isinstance(value, dict):
        if "tag" not in value:
            raise ValueTransformInvalid(path, "Enum value needs a 'tag'", type_str)
        tag, payload = str(value["tag"]), list(value.get("values") or [])
    elif isinstance(value, str) and value.strip():
        tag, payload = value.strip(), []
    else:
        raise ValueTransformInvalid(path, "Expected an enum variant", type_str)

    variant = variants.get(tag)
    if variant is None:
        raise ValueTransformInvalid(
            path, f"Unknown variant '{tag}' (expected one of: {', '.join(variants)})", type_str
        )

    members = payload_parameters(variant)
    if len(payload) != len(members):
        raise ValueTransformInvalid(
            f"{path}.{tag}",
            f"Variant '{tag}' takes {len(members)} value(s), got {len(payload)}",
            type_str,
        )
    values = [
        _parse_stellar(member, item, f"{path}.{tag}[{index}]")
        for index, (member, item) in enumerate(zip(members, payload))
    ]
    return EnumValue(tag=tag, values=values)


def _parse_map(parameter: FunctionParameter, key_type: str, value_type: str, value: Any, path: str) -> list[MapEntry]:
    type_str = parameter.type
    if isinstance(value, dict) and set(value) != {"key", "value"}:
        raw_entries: list[Any] = [{"key": k, "value": v} for k, v in value.items()]
    else:
        raw_entries = list(_load_json(value, (list, tuple), path, type_str))

    resolved = {c.name: c for c in parameter.components or []}
    key_param = resolved.get("key") or FunctionParameter(name="key", type=key_type)
    value_param = resolved.get("value") or FunctionParameter(name="value", type=value_type)

    entries: list[MapEntry] = []
    seen: set[str] = set()
    for index, raw in enumerate(raw_entries):
        entry_path = f"{path}[{index}]"
        if isinstance(raw, MapEntry):
            raw_key, raw_value = raw.key, raw.value
        elif isinstance(raw, dict) and "key" in raw and "value" in raw:
            raw_key, raw_value = raw["key"], raw["value"]
        else:
            raise ValueTransformInvalid(entry_path, "Map entries need 'key' and 'value'", type_str)

        key = _parse_stellar(key_param, raw_key, f"{entry_path}.key")
        marker = repr(key)
        if marker in seen:
            raise ValueTransformInvalid(f"{entry_path}.key", f"Duplicate map key {raw_key!r}", type_str)
        seen.add(marker)
        entries.append(MapEntry(key=key, value=_parse_stellar(value_param, raw_value, f"{entry_path}.value")))
    return entries


def _parse_stellar(parameter: FunctionParameter, value: Any, path: str) -> Any:
    type_str = parameter.type.strip()

    base, args = parse_generic_type(type_str)
    if base == "Option" and len(args) == 1:
        if value is None or value is ABSENT or (isinstance(value, str) and not value.strip()):
            return ABSENT
        return _parse_stellar(parameter.model_copy(update={"type": args[0]}), value, path)

    if base == "Vec" and len(args) == 1:
        items = _load_json(value, (list, tuple), path, type_str)
        element = FunctionParameter(
            name=parameter.name,
            type=args[0],
            components=parameter.components,
            enum_variants=parameter.enum_variants,
        )
        return [_parse_stellar(element, item, f"{path}[{index}]") for index, item in enumerate(items)]

    if base == "Map" and len(args) == 2:
        return _parse_map(parameter, args[0], args[1], value, path)

    if base == "Tuple" and args:
        members = list(parameter.components or [])
        if len(members) != len(args):
            members = [FunctionParameter(name=str(index), type=arg) for index, arg in enumerate(args)]
        return _parse_members(members, value, path, type_str, _parse_stellar)

    if base == "BytesN" and len(args) == 1 and args[0].isdigit():
        return parse_hex_bytes(value, path, type_str, size=int(args[0]), require_prefix=False)

    if parameter.enum_variants:
        return _parse_enum(parameter, value, path)

    if type_str in STELLAR_INT_BITS:
        signed, bits = STELLAR_INT_BITS[type_str]
        return parse_integer(value, signed, bits, path, type_str)

    if type_str == "Bool":
        return parse_bool(value, path, type_str)

    if type_str == "Bytes":
        return parse_hex_bytes(value, path, type_str, require_prefix=False)

    if type_str == "Address":
        text = value.strip() if isinstance(value, str) else ""
        if not STELLAR_ADDRESS_RE.match(text):
            raise ValueTransformInvalid(path, f"Invalid Stellar address: {value!r}", type_str)
        return text

    if type_str == "ScSymbol":
        text = "" if value is None else str(value)
        if not STELLAR_SYMBOL_RE.match(text):
            raise ValueTransformInvalid(path, "Symbols are up to 32 characters of [A-Za-z0-9_]", type_str)
        return text

    if type_str == "ScString":
        if value is None:
            raise ValueTransformInvalid(path, "Value is required", type_str)
        return str(value)

    if parameter.components:
        members = _parse_members(parameter.components, value, path, type_str, _parse_stellar)
        return {
            component.name or str(index): member
            for index, (component, member) in enumerate(zip(parameter.components, members))
        }

    logger.warning("unsupported_parameter_type", ecosystem="stellar", type=type_str, path=path)
    return value


# ==================== Entry Point ====================


def parse_input(
    parameter: FunctionParameter,
    raw_value: Any,
    ecosystem: Ecosystem | str = Ecosystem.EVM,
    path: str | None = None,
) -> Any:
    """
    Convert a user-entered value into the form the chain encoder expects.

    Args:
        parameter: Declared parameter, with components for composites
        raw_value: Value as entered (string, dict, list, EnumValue, ...)
        ecosystem: Ecosystem whose type grammar applies
        path: Field path prefix for error reporting (defaults to the name)

    Returns:
        Encoder-ready value; ABSENT for an empty optional parameter

    Raises:
        ValueTransformInvalid: If the value does not fit the declared type
    """
    eco = ecosystem if isinstance(ecosystem, Ecosystem) else Ecosystem(ecosystem)
    field_path = path or parameter.name or "value"
    if eco == Ecosystem.STELLAR:
        return _parse_stellar(parameter, raw_value, field_path)
    return _parse_evm(parameter, raw_value, field_path)
