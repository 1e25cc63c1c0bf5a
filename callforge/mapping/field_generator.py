"""
Field Generator

Recursive-descent mapping of FunctionParameter trees into FieldDescriptor
trees. Mapping is pure: ids are derived from the parameter path, so mapping
the same parameter twice yields equal descriptors.
"""

import re
from typing import Any

import structlog

from ..models.fields import FieldDescriptor, FieldOverrides, FieldType, FieldValidation
from ..models.schema import ContractFunction, Ecosystem, FunctionParameter
from .enum_metadata import build_enum_metadata
from .type_mapper import (
    NUMBER_FIELD_MAX_BITS,
    integer_bounds,
    integer_spec,
    map_parameter_type_to_field_type,
    parse_evm_array,
    parse_generic_type,
)

logger = structlog.get_logger(__name__)

EVM_ADDRESS_PATTERN = r"^0x[a-fA-F0-9]{40}$"
STELLAR_ADDRESS_PATTERN = r"^[GC][A-Z2-7]{55}$"


def humanize(name: str) -> str:
    """'amountIn' -> 'Amount In', '_to' -> 'To', 'max_fee' -> 'Max Fee'."""
    spaced = re.sub(r"([a-z0-9])([A-Z])", r"\1 \2", name.strip("_"))
    words = [w for w in re.split(r"[_\s]+", spaced) if w]
    return " ".join(w[:1].upper() + w[1:] for w in words) or "Value"


def _default_value(field_type: FieldType) -> Any:
    if field_type in (FieldType.CHECKBOX, FieldType.BOOLEAN):
        return False
    if field_type in (FieldType.ARRAY, FieldType.ARRAY_OBJECT, FieldType.MAP):
        return []
    if field_type == FieldType.OBJECT:
        return {}
    return ""


def _unwrap_option(ecosystem: Ecosystem, type_str: str) -> tuple[str, bool]:
    """Strip Option<T> wrappers; returns (inner type, optional)."""
    if ecosystem != Ecosystem.STELLAR:
        return type_str, False
    base, args = parse_generic_type(type_str)
    if base == "Option" and len(args) == 1:
        return args[0], True
    return type_str, False


def _validation(ecosystem: Ecosystem, type_str: str, field_type: FieldType, required: bool) -> FieldValidation:
    spec = integer_spec(ecosystem, type_str)
    if spec is not None:
        signed, bits = spec
        if bits <= NUMBER_FIELD_MAX_BITS:
            low, high = integer_bounds(signed, bits)
            return FieldValidation(required=required, min=low, max=high)
        return FieldValidation(required=required, pattern=r"^-?\d+$" if signed else r"^\d+$")
    if field_type == FieldType.BLOCKCHAIN_ADDRESS:
        pattern = STELLAR_ADDRESS_PATTERN if ecosystem == Ecosystem.STELLAR else EVM_ADDRESS_PATTERN
        return FieldValidation(required=required, pattern=pattern)
    return FieldValidation(required=required)


def _element_parameter(ecosystem: Ecosystem, parameter: FunctionParameter) -> FunctionParameter | None:
    """Element parameter of an array or Vec, carrying tuple components along."""
    if ecosystem == Ecosystem.STELLAR:
        base, args = parse_generic_type(_unwrap_option(ecosystem, parameter.type)[0])
        if base != "Vec" or len(args) != 1:
            return None
        element_type = args[0]
    else:
        array = parse_evm_array(parameter.type)
        if array is None:
            return None
        element_type = array[0]
    return FunctionParameter(
        name=f"{parameter.name or 'item'}_element",
        type=element_type,
        components=parameter.components,
        enum_variants=parameter.enum_variants,
    )


def _map_entry_parameters(
    parameter: FunctionParameter, inner_type: str
) -> tuple[FunctionParameter, FunctionParameter] | None:
    _, args = parse_generic_type(inner_type)
    if len(args) != 2:
        return None
    resolved = {c.name: c for c in parameter.components or []}
    return (
        resolved.get("key") or FunctionParameter(name="key", type=args[0]),
        resolved.get("value") or FunctionParameter(name="value", type=args[1]),
    )


def _map(
    parameter: FunctionParameter,
    ecosystem: Ecosystem,
    parent_id: str | None,
) -> FieldDescriptor:
    name = parameter.name or "value"
    field_id = f"{parent_id}.{name}" if parent_id else name
    inner_type, optional = _unwrap_option(ecosystem, parameter.type)

    field_type = map_parameter_type_to_field_type(
        ecosystem,
        inner_type,
        has_components=bool(parameter.components),
        is_enum=bool(parameter.enum_variants),
    )
    label = parameter.display_name or humanize(name)

    components: list[FieldDescriptor] | None = None
    element_type: FieldType | None = None
    element_field_config: FieldDescriptor | None = None
    key_field_config: FieldDescriptor | None = None
    value_field_config: FieldDescriptor | None = None
    enum_metadata = None

    if field_type == FieldType.OBJECT and parameter.components:
        components = [_map(c, ecosystem, field_id) for c in parameter.components]
    elif field_type in (FieldType.ARRAY, FieldType.ARRAY_OBJECT):
        element = _element_parameter(ecosystem, parameter.model_copy(update={"type": inner_type}))
        if element is not None:
            element_field_config = _map(element, ecosystem, f"{field_id}[]")
            element_type = element_field_config.type
    elif field_type == FieldType.MAP:
        entry = _map_entry_parameters(parameter, inner_type)
        if entry is not None:
            key_field_config = _map(entry[0], ecosystem, field_id)
            value_field_config = _map(entry[1], ecosystem, field_id)
    elif field_type == FieldType.ENUM:
        enum_metadata = build_enum_metadata(
            parameter,
            lambda p, prefix: _map(p, ecosystem, prefix),
            field_id,
        )

    return FieldDescriptor(
        id=field_id,
        name=name,
        label=label,
        type=field_type,
        placeholder=f"Enter {label}",
        helper_text=parameter.description,
        default_value=_default_value(field_type),
        validation=_validation(ecosystem, inner_type, field_type, required=not optional),
        components=components,
        element_type=element_type,
        element_field_config=element_field_config,
        key_field_config=key_field_config,
        value_field_config=value_field_config,
        enum_metadata=enum_metadata,
        original_parameter_type=parameter.type,
    )


def map_parameter(
    parameter: FunctionParameter,
    ecosystem: Ecosystem | str = Ecosystem.EVM,
    overrides: FieldOverrides | None = None,
    parent_id: str | None = None,
) -> FieldDescriptor:
    """
    Map a parameter to a renderable field descriptor.

    Never raises: a parameter that cannot be mapped yields a plain text
    field so partially understood contracts stay usable.

    Args:
        parameter: Parameter to map (recursively, for composites)
        ecosystem: Ecosystem whose type grammar applies
        overrides: Optional user overrides (label, hardcoded value, hidden)
        parent_id: Id prefix for nested fields

    Returns:
        A FieldDescriptor mirroring the parameter's nesting
    """
    try:
        eco = ecosystem if isinstance(ecosystem, Ecosystem) else Ecosystem(ecosystem)
        descriptor = _map(parameter, eco, parent_id)
    except Exception as e:
        logger.warning(
            "parameter_mapping_failed",
            parameter=parameter.name,
            type=parameter.type,
            error=str(e),
        )
        name = parameter.name or "value"
        descriptor = FieldDescriptor(
            id=f"{parent_id}.{name}" if parent_id else name,
            name=name,
            label=parameter.display_name or humanize(name),
            type=FieldType.TEXT,
            helper_text=parameter.description,
            default_value="",
            original_parameter_type=parameter.type,
        )

    if overrides is None:
        return descriptor
    return apply_overrides(descriptor, overrides)


def apply_overrides(descriptor: FieldDescriptor, overrides: FieldOverrides) -> FieldDescriptor:
    """Return a copy of the descriptor with user overrides applied."""
    update: dict[str, Any] = {"is_hidden": overrides.is_hidden}
    if overrides.label:
        update["label"] = overrides.label
    if overrides.is_hardcoded:
        update["is_hardcoded"] = True
        update["hardcoded_value"] = overrides.hardcoded_value
        update["readonly"] = True
    return descriptor.model_copy(update=update)


def generate_fields(
    function: ContractFunction,
    ecosystem: Ecosystem | str = Ecosystem.EVM,
    overrides: dict[str, FieldOverrides] | None = None,
) -> list[FieldDescriptor]:
    """Map every input of a function; overrides are keyed by input name."""
    overrides = overrides or {}
    fields: list[FieldDescriptor] = []
    for index, parameter in enumerate(function.inputs):
        if not parameter.name:
            parameter = parameter.model_copy(update={"name": f"param{index}"})
        fields.append(map_parameter(parameter, ecosystem, overrides.get(parameter.name)))
    return fields
