"""
Type Mapping Engine

Turns contract parameter types into renderable field descriptors.

Usage:
    from callforge.mapping import map_parameter

    field = map_parameter(FunctionParameter(name="amount", type="uint256"))
    assert field.type == FieldType.BIGINT
"""

from .enum_metadata import build_enum_metadata
from .field_generator import apply_overrides, generate_fields, humanize, map_parameter
from .type_mapper import (
    get_compatible_field_types,
    integer_bounds,
    integer_spec,
    is_wide_integer,
    map_parameter_type_to_field_type,
    parse_evm_array,
    parse_generic_type,
)

__all__ = [
    "map_parameter",
    "generate_fields",
    "apply_overrides",
    "humanize",
    "build_enum_metadata",
    "map_parameter_type_to_field_type",
    "get_compatible_field_types",
    "parse_generic_type",
    "parse_evm_array",
    "integer_spec",
    "integer_bounds",
    "is_wide_integer",
]
