"""
Type Mapper

Static, total lookup from chain-native parameter type strings to field
type tags, for EVM (Solidity ABI) and Stellar (Soroban) type grammars.
Unknown types fall back to a text field and log a warning; nothing here
raises.
"""

import re

import structlog

from ..models.fields import FieldType
from ..models.schema import Ecosystem

logger = structlog.get_logger(__name__)

# Solidity ABI type grammar
EVM_ARRAY_RE = re.compile(r"^(?P<base>.+)\[(?P<length>\d*)\]$")
EVM_INT_RE = re.compile(r"^(?P<sign>u?)int(?P<bits>\d*)$")
EVM_BYTES_N_RE = re.compile(r"^bytes(?P<size>\d+)$")

# Integers up to this width fit a native number field
NUMBER_FIELD_MAX_BITS = 32

EVM_TYPE_TO_FIELD_TYPE: dict[str, FieldType] = {
    "address": FieldType.BLOCKCHAIN_ADDRESS,
    "bool": FieldType.CHECKBOX,
    "string": FieldType.TEXT,
    "bytes": FieldType.TEXTAREA,
    "tuple": FieldType.OBJECT,
}

STELLAR_TYPE_TO_FIELD_TYPE: dict[str, FieldType] = {
    "U32": FieldType.NUMBER,
    "I32": FieldType.NUMBER,
    "U64": FieldType.BIGINT,
    "U128": FieldType.BIGINT,
    "U256": FieldType.BIGINT,
    "I64": FieldType.BIGINT,
    "I128": FieldType.BIGINT,
    "I256": FieldType.BIGINT,
    "Bool": FieldType.CHECKBOX,
    "ScString": FieldType.TEXT,
    "ScSymbol": FieldType.TEXT,
    "Address": FieldType.BLOCKCHAIN_ADDRESS,
    "Bytes": FieldType.TEXTAREA,
    "Timepoint": FieldType.BIGINT,
    "Duration": FieldType.BIGINT,
}

STELLAR_INT_BITS: dict[str, tuple[bool, int]] = {
    "U32": (False, 32),
    "U64": (False, 64),
    "U128": (False, 128),
    "U256": (False, 256),
    "I32": (True, 32),
    "I64": (True, 64),
    "I128": (True, 128),
    "I256": (True, 256),
    "Timepoint": (False, 64),
    "Duration": (False, 64),
}

STELLAR_UDT_RE = re.compile(r"^[A-Z][A-Za-z0-9_]*$")

# Field types a renderer may offer instead of the default one
COMPATIBLE_FIELD_TYPES: dict[FieldType, list[FieldType]] = {
    FieldType.BIGINT: [FieldType.BIGINT, FieldType.NUMBER, FieldType.AMOUNT, FieldType.TEXT],
    FieldType.NUMBER: [FieldType.NUMBER, FieldType.AMOUNT, FieldType.TEXT],
    FieldType.BLOCKCHAIN_ADDRESS: [FieldType.BLOCKCHAIN_ADDRESS, FieldType.TEXT],
    FieldType.CHECKBOX: [FieldType.CHECKBOX, FieldType.SELECT, FieldType.RADIO, FieldType.TEXT],
    FieldType.TEXT: [
        FieldType.TEXT,
        FieldType.TEXTAREA,
        FieldType.EMAIL,
        FieldType.PASSWORD,
        FieldType.URL,
    ],
    FieldType.TEXTAREA: [FieldType.TEXTAREA, FieldType.TEXT],
    FieldType.ARRAY: [FieldType.ARRAY, FieldType.TEXTAREA, FieldType.TEXT],
    FieldType.ARRAY_OBJECT: [FieldType.ARRAY_OBJECT, FieldType.TEXTAREA, FieldType.TEXT],
    FieldType.OBJECT: [FieldType.OBJECT, FieldType.TEXTAREA, FieldType.TEXT],
    FieldType.MAP: [FieldType.MAP, FieldType.TEXTAREA],
    FieldType.ENUM: [FieldType.ENUM, FieldType.SELECT, FieldType.RADIO],
}


def _as_ecosystem(ecosystem: Ecosystem | str) -> Ecosystem:
    return ecosystem if isinstance(ecosystem, Ecosystem) else Ecosystem(ecosystem)


# ==================== Type Grammar Helpers ====================


def parse_generic_type(type_str: str) -> tuple[str, list[str]]:
    """
    Split a generic type into its base and top-level arguments.

    Nested generics are kept whole, so "Map<Vec<U32>, Option<Address>>"
    gives ("Map", ["Vec<U32>", "Option<Address>"]). Non-generic or
    unbalanced input returns (type_str, []).
    """
    type_str = type_str.strip()
    start = type_str.find("<")
    if start == -1 or not type_str.endswith(">"):
        return type_str, []

    base = type_str[:start].strip()
    inner = type_str[start + 1 : -1]
    args: list[str] = []
    depth = 0
    current = ""
    for char in inner:
        if char == "<":
            depth += 1
        elif char == ">":
            depth -= 1
            if depth < 0:
                return type_str, []
        if char == "," and depth == 0:
            args.append(current.strip())
            current = ""
        else:
            current += char
    if depth != 0:
        return type_str, []
    if current.strip():
        args.append(current.strip())
    return base, args


def parse_evm_array(type_str: str) -> tuple[str, int | None] | None:
    """
    Split an EVM array type into (element type, fixed length or None).

    Only the outermost dimension is removed: "uint8[2][]" -> ("uint8[2]", None).
    Returns None for non-array types.
    """
    match = EVM_ARRAY_RE.match(type_str)
    if not match:
        return None
    length = match.group("length")
    return match.group("base"), int(length) if length else None


def evm_integer_spec(type_str: str) -> tuple[bool, int] | None:
    """Return (signed, bits) for uint/int types, None otherwise."""
    match = EVM_INT_RE.match(type_str)
    if not match:
        return None
    bits = int(match.group("bits") or 256)
    if bits % 8 != 0 or not 8 <= bits <= 256:
        return None
    return match.group("sign") != "u", bits


def integer_spec(ecosystem: Ecosystem | str, type_str: str) -> tuple[bool, int] | None:
    """Return (signed, bits) for any integer type of the ecosystem."""
    if _as_ecosystem(ecosystem) == Ecosystem.STELLAR:
        return STELLAR_INT_BITS.get(type_str)
    return evm_integer_spec(type_str)


def integer_bounds(signed: bool, bits: int) -> tuple[int, int]:
    """Inclusive (min, max) representable by an integer type."""
    if signed:
        return -(2 ** (bits - 1)), 2 ** (bits - 1) - 1
    return 0, 2**bits - 1


def is_wide_integer(ecosystem: Ecosystem | str, type_str: str) -> bool:
    """True when the integer type needs a string-backed field."""
    spec = integer_spec(ecosystem, type_str)
    return spec is not None and spec[1] > NUMBER_FIELD_MAX_BITS


def is_stellar_composite(type_str: str, has_components: bool = False) -> bool:
    """Composite Stellar types render as nested objects."""
    base, args = parse_generic_type(type_str)
    if base == "Option" and args:
        return is_stellar_composite(args[0], has_components)
    if base in ("Map", "Tuple"):
        return True
    if args:
        return False
    return has_components or (
        type_str not in STELLAR_TYPE_TO_FIELD_TYPE and bool(STELLAR_UDT_RE.match(type_str))
    )


# ==================== Mapping ====================


def _map_evm_type(type_str: str) -> FieldType | None:
    array = parse_evm_array(type_str)
    if array is not None:
        element, _ = array
        return FieldType.ARRAY_OBJECT if element.startswith("tuple") else FieldType.ARRAY

    spec = evm_integer_spec(type_str)
    if spec is not None:
        return FieldType.BIGINT if spec[1] > NUMBER_FIELD_MAX_BITS else FieldType.NUMBER

    size_match = EVM_BYTES_N_RE.match(type_str)
    if size_match and 1 <= int(size_match.group("size")) <= 32:
        return FieldType.TEXT

    return EVM_TYPE_TO_FIELD_TYPE.get(type_str)


def _map_stellar_type(
    type_str: str, has_components: bool = False, is_enum: bool = False
) -> FieldType | None:
    base, args = parse_generic_type(type_str)
    if args:
        if base == "Vec":
            return (
                FieldType.ARRAY_OBJECT
                if is_enum or is_stellar_composite(args[0], has_components)
                else FieldType.ARRAY
            )
        if base == "Map" and len(args) == 2:
            return FieldType.MAP
        if base == "Option":
            return _map_stellar_type(args[0], has_components, is_enum)
        if base == "BytesN":
            return FieldType.TEXTAREA
        if base == "Tuple":
            return FieldType.OBJECT
        return None

    if is_enum:
        return FieldType.ENUM
    mapped = STELLAR_TYPE_TO_FIELD_TYPE.get(type_str)
    if mapped is not None:
        return mapped
    if STELLAR_UDT_RE.match(type_str):
        return FieldType.OBJECT
    return None


def map_parameter_type_to_field_type(
    ecosystem: Ecosystem | str,
    type_str: str,
    has_components: bool = False,
    is_enum: bool = False,
) -> FieldType:
    """
    Map a chain-native parameter type to its default field type.

    Args:
        ecosystem: Ecosystem whose type grammar applies
        type_str: Parameter type string, e.g. "uint256[]" or "Map<U32, Address>"
        has_components: Whether the parameter declares member components
        is_enum: Whether the parameter carries enum variants

    Returns:
        The field type tag; FieldType.TEXT for anything unrecognized
    """
    try:
        eco = _as_ecosystem(ecosystem)
    except ValueError:
        logger.warning("unsupported_ecosystem", ecosystem=str(ecosystem), type=type_str)
        return FieldType.TEXT

    if eco == Ecosystem.STELLAR:
        mapped = _map_stellar_type(type_str, has_components, is_enum)
    else:
        mapped = _map_evm_type(type_str)

    if mapped is None:
        logger.warning(
            "unsupported_parameter_type",
            ecosystem=eco.value,
            type=type_str,
            fallback=FieldType.TEXT.value,
        )
        return FieldType.TEXT
    return mapped


def get_compatible_field_types(
    ecosystem: Ecosystem | str,
    type_str: str,
    has_components: bool = False,
    is_enum: bool = False,
) -> list[FieldType]:
    """Field types a renderer may use for this parameter, default first."""
    default = map_parameter_type_to_field_type(ecosystem, type_str, has_components, is_enum)
    return list(COMPATIBLE_FIELD_TYPES.get(default, [default]))
