"""
Enum Metadata

Builds the ordered variant list carried by enum field descriptors from the
raw variant definitions attached to a parameter.
"""

from collections.abc import Callable
from typing import Any

import structlog

from ..models.fields import EnumMetadata, EnumVariant, EnumVariantKind, FieldDescriptor
from ..models.schema import FunctionParameter

logger = structlog.get_logger(__name__)


def _variant_kind(raw: dict[str, Any]) -> EnumVariantKind:
    kind = str(raw.get("type", "")).lower()
    if kind in ("tuple", "integer", "void"):
        return EnumVariantKind(kind)
    if raw.get("payload_types"):
        return EnumVariantKind.TUPLE
    if raw.get("value") is not None:
        return EnumVariantKind.INTEGER
    return EnumVariantKind.VOID


def payload_parameters(variant: dict[str, Any]) -> list[FunctionParameter]:
    """
    Payload parameters of an enum variant, in declaration order.

    Variants built by the Stellar spec transformer carry resolved
    parameters (with struct members, tuple members and nested enum
    variants). Variants listing only ``payload_types`` get bare parameters.
    """
    resolved = variant.get("payload_parameters")
    if resolved:
        return [p if isinstance(p, FunctionParameter) else FunctionParameter.model_validate(p) for p in resolved]
    name = str(variant.get("name", ""))
    return [
        FunctionParameter(name=f"{name}_{index}", type=str(payload_type))
        for index, payload_type in enumerate(variant.get("payload_types") or [])
    ]


def build_enum_metadata(
    parameter: FunctionParameter,
    map_payload: Callable[[FunctionParameter, str], FieldDescriptor],
    field_id: str,
) -> EnumMetadata:
    """
    Build enum metadata for a parameter with enum variants.

    Args:
        parameter: Parameter whose enum_variants list describes the variants
        map_payload: Mapping callback applied to each payload type
        field_id: Id of the enum field, used as prefix for payload field ids

    Returns:
        EnumMetadata with variants in declaration order
    """
    variants: list[EnumVariant] = []
    for raw in parameter.enum_variants or []:
        name = str(raw.get("name", ""))
        if not name:
            logger.warning("enum_variant_without_name", parameter=parameter.name)
            continue
        kind = _variant_kind(raw)
        payload = payload_parameters(raw) if kind == EnumVariantKind.TUPLE else []
        payload_types = [p.type for p in payload]
        payload_fields = [map_payload(p, f"{field_id}.{name}") for p in payload]
        value = raw.get("value")
        variants.append(
            EnumVariant(
                name=name,
                type=kind,
                value=int(value) if value is not None else None,
                payload_types=payload_types,
                payload_fields=payload_fields,
            )
        )

    return EnumMetadata(
        name=parameter.type,
        variants=variants,
        is_unit_only=all(v.type != EnumVariantKind.TUPLE for v in variants),
    )
