"""
Definition to Schema Transformation

Builds ContractSchema instances from raw definitions: EVM ABI arrays and
manual Stellar contract specs. The Stellar spec is a JSON document of the
form

    {
        "name": "Token",
        "functions": [
            {"name": "transfer", "read_only": false,
             "inputs": [{"name": "to", "type": "Address"}],
             "outputs": [{"type": "Bool"}]}
        ],
        "types": {
            "Range": {"kind": "struct", "fields": [{"name": "min", "type": "U32"}]},
            "Color": {"kind": "enum", "variants": [{"name": "Red", "type": "void"}]},
            "Shape": {"kind": "enum", "variants": [
                {"name": "At", "type": "tuple", "payload_types": ["Range"]}]}
        }
    }

where "types" declares the user-defined structs and enums the function
signatures refer to.
"""

from typing import Any

import structlog

from ..mapping.field_generator import humanize
from ..mapping.type_mapper import parse_generic_type
from ..models.schema import (
    ContractEvent,
    ContractFunction,
    ContractSchema,
    Ecosystem,
    FunctionParameter,
)

logger = structlog.get_logger(__name__)

READ_ONLY_MUTABILITIES = ("view", "pure")

# Guards against self-referencing user-defined types
MAX_TYPE_DEPTH = 8


# ==================== EVM ====================


def _evm_parameter(raw: dict[str, Any]) -> FunctionParameter:
    name = str(raw.get("name") or "")
    components = raw.get("components")
    return FunctionParameter(
        name=name,
        type=str(raw.get("type", "")),
        display_name=humanize(name) if name else None,
        components=[_evm_parameter(c) for c in components] if components else None,
    )


def evm_function_id(name: str, inputs: list[dict[str, Any]] | None) -> str:
    """Overload-safe function id: name followed by the input types."""
    return f"{name}_{'_'.join(str(i.get('type', '')) for i in inputs or [])}"


def _modifies_state(item: dict[str, Any]) -> bool:
    mutability = item.get("stateMutability")
    if mutability is not None:
        return mutability not in READ_ONLY_MUTABILITIES
    return not item.get("constant", False)


def _state_mutability(item: dict[str, Any]) -> str:
    if "stateMutability" in item:
        return str(item["stateMutability"])
    if item.get("constant"):
        return "view"
    return "payable" if item.get("payable") else "nonpayable"


def abi_to_schema(
    abi: list[dict[str, Any]],
    address: str | None = None,
    name: str | None = None,
) -> ContractSchema:
    """
    Build a contract schema from an EVM ABI.

    Only "function" and "event" items are carried over; constructors,
    errors, fallback and receive entries are not callable from a form.

    Args:
        abi: ABI array, assumed valid (see validate_abi)
        address: Deployed contract address
        name: Contract name, if known

    Returns:
        A frozen ContractSchema for the EVM ecosystem
    """
    functions: list[ContractFunction] = []
    events: list[ContractEvent] = []

    for item in abi:
        item_type = item.get("type", "function")
        if item_type == "function":
            fn_name = str(item.get("name", ""))
            functions.append(
                ContractFunction(
                    id=evm_function_id(fn_name, item.get("inputs")),
                    name=fn_name,
                    display_name=humanize(fn_name) or fn_name,
                    inputs=[_evm_parameter(p) for p in item.get("inputs") or []],
                    outputs=[_evm_parameter(p) for p in item.get("outputs") or []],
                    state_mutability=_state_mutability(item),
                    type="function",
                    modifies_state=_modifies_state(item),
                )
            )
        elif item_type == "event":
            event_name = str(item.get("name", ""))
            events.append(
                ContractEvent(
                    id=evm_function_id(event_name, item.get("inputs")),
                    name=event_name,
                    inputs=[_evm_parameter(p) for p in item.get("inputs") or []],
                )
            )

    logger.debug(
        "abi_transformed",
        address=address,
        functions=len(functions),
        events=len(events),
    )
    return ContractSchema(
        name=name,
        ecosystem=Ecosystem.EVM,
        address=address,
        functions=functions,
        events=events,
    )


# ==================== Stellar ====================


class StellarSpecError(ValueError):
    """The manual Stellar contract spec is malformed."""

    pass


def _stellar_parameter(
    name: str,
    type_str: str,
    types: dict[str, dict[str, Any]],
    depth: int = 0,
) -> FunctionParameter:
    """Resolve user-defined types referenced by a Soroban type string."""
    type_str = type_str.strip()
    display_name = humanize(name) if name else None
    if depth > MAX_TYPE_DEPTH:
        logger.warning("stellar_type_too_deep", type=type_str)
        return FunctionParameter(name=name, type=type_str, display_name=display_name)

    base, args = parse_generic_type(type_str)

    if base == "Map" and len(args) == 2:
        return FunctionParameter(
            name=name,
            type=type_str,
            display_name=display_name,
            components=[
                _stellar_parameter("key", args[0], types, depth + 1),
                _stellar_parameter("value", args[1], types, depth + 1),
            ],
        )

    if base == "Tuple" and args:
        return FunctionParameter(
            name=name,
            type=type_str,
            display_name=display_name,
            components=[_stellar_parameter(str(index), arg, types, depth + 1) for index, arg in enumerate(args)],
        )

    if base in ("Vec", "Option") and len(args) == 1:
        inner = _stellar_parameter(name, args[0], types, depth + 1)
        return FunctionParameter(
            name=name,
            type=type_str,
            display_name=display_name,
            components=inner.components,
            enum_variants=inner.enum_variants,
        )

    declared = types.get(type_str)
    if declared is None:
        return FunctionParameter(name=name, type=type_str, display_name=display_name)

    kind = declared.get("kind")
    if kind == "struct":
        return FunctionParameter(
            name=name,
            type=type_str,
            display_name=display_name,
            components=[
                _stellar_parameter(str(f.get("name", "")), str(f.get("type", "")), types, depth + 1)
                for f in declared.get("fields", [])
            ],
        )
    if kind == "enum":
        return FunctionParameter(
            name=name,
            type=type_str,
            display_name=display_name,
            enum_variants=[_stellar_variant(v, types, depth) for v in declared.get("variants", [])],
        )
    raise StellarSpecError(f"Type '{type_str}' has unknown kind '{kind}'")


def _stellar_variant(raw: dict[str, Any], types: dict[str, dict[str, Any]], depth: int) -> dict[str, Any]:
    """Copy a variant, resolving each payload type into a full parameter."""
    variant = dict(raw)
    payload_types = [str(t) for t in raw.get("payload_types") or []]
    if payload_types:
        variant["payload_parameters"] = [
            _stellar_parameter(f"{raw.get('name', '')}_{index}", payload_type, types, depth + 1)
            for index, payload_type in enumerate(payload_types)
        ]
    return variant


def stellar_spec_to_schema(spec: dict[str, Any], address: str | None = None) -> ContractSchema:
    """
    Build a contract schema from a manual Stellar contract spec.

    Raises:
        StellarSpecError: If the spec is missing functions or declares
                          a type of unknown kind
    """
    if not isinstance(spec, dict) or not isinstance(spec.get("functions"), list):
        raise StellarSpecError("Stellar spec must be an object with a 'functions' array")
    if not spec["functions"]:
        raise StellarSpecError("Stellar spec declares no functions")

    types = spec.get("types") or {}
    functions: list[ContractFunction] = []
    for index, raw in enumerate(spec["functions"]):
        fn_name = str(raw.get("name") or "")
        if not fn_name:
            raise StellarSpecError(f"Function {index} has no name")
        inputs = [
            _stellar_parameter(str(p.get("name", "")), str(p.get("type", "")), types)
            for p in raw.get("inputs") or []
        ]
        outputs = [
            _stellar_parameter(str(p.get("name", "")), str(p.get("type", "")), types)
            for p in raw.get("outputs") or []
        ]
        read_only = bool(raw.get("read_only", False))
        functions.append(
            ContractFunction(
                id=f"{fn_name}_{'_'.join(p.type for p in inputs)}",
                name=fn_name,
                display_name=humanize(fn_name) or fn_name,
                description=raw.get("doc"),
                inputs=inputs,
                outputs=outputs,
                state_mutability="view" if read_only else "nonpayable",
                modifies_state=not read_only,
            )
        )

    return ContractSchema(
        name=spec.get("name"),
        ecosystem=Ecosystem.STELLAR,
        address=address,
        functions=functions,
    )
