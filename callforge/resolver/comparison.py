"""
ABI Validation, Hashing and Comparison

Validates raw ABI definitions, hashes them in a canonical form for change
detection, and compares two versions of a contract interface to classify
how disruptive the difference is for saved forms.
"""

import hashlib
import json
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)

ALLOWED_ABI_TYPES = ("function", "event", "constructor", "error", "fallback", "receive")

# Canonical ordering of ABI items before hashing
ABI_TYPE_ORDER = {
    "constructor": 0,
    "fallback": 1,
    "receive": 2,
    "function": 3,
    "event": 4,
    "error": 5,
}


class DifferenceType(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


class ChangeSeverity(str, Enum):
    """Overall impact of an interface change on existing forms."""

    NONE = "none"  # Identical interfaces
    MINOR = "minor"  # Only additions
    MAJOR = "major"  # Events or errors changed
    BREAKING = "breaking"  # Callable surface removed or changed


class AbiValidationResult(BaseModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class AbiDifference(BaseModel):
    type: DifferenceType
    section: str = Field(description="ABI item type: function, event, error, ...")
    name: str
    signature: str
    details: str
    impact: str = Field(description="low, medium or high")


class AbiComparisonResult(BaseModel):
    identical: bool
    differences: list[AbiDifference] = Field(default_factory=list)
    severity: ChangeSeverity = ChangeSeverity.NONE
    summary: str = ""


# ==================== Validation ====================


def _validate_parameters(params: Any, where: str, errors: list[str]) -> None:
    if params is None:
        return
    if not isinstance(params, list):
        errors.append(f"{where}: parameters must be an array")
        return
    for index, param in enumerate(params):
        if not isinstance(param, dict) or not isinstance(param.get("type"), str):
            errors.append(f"{where}: parameter {index} has no type")
            continue
        if param["type"].startswith("tuple"):
            _validate_parameters(param.get("components", []), f"{where}.{param.get('name') or index}", errors)


def validate_abi(abi: Any) -> AbiValidationResult:
    """
    Check that a value is a usable ABI definition.

    An ABI is a non-empty array of items, each with a known type, a name
    for functions/events/errors, and well-formed parameter lists.
    """
    errors: list[str] = []
    warnings: list[str] = []

    if not isinstance(abi, list):
        return AbiValidationResult(is_valid=False, errors=["ABI must be an array"])
    if not abi:
        return AbiValidationResult(is_valid=False, errors=["ABI array cannot be empty"])

    function_count = 0
    for index, item in enumerate(abi):
        if not isinstance(item, dict):
            errors.append(f"Item {index}: must be an object")
            continue
        item_type = item.get("type", "function")
        if "type" not in item:
            warnings.append(f"Item {index}: missing type, assuming function")
        if item_type not in ALLOWED_ABI_TYPES:
            errors.append(f"Item {index}: invalid type '{item_type}'")
            continue
        if item_type in ("function", "event", "error") and not item.get("name"):
            errors.append(f"Item {index}: {item_type} without a name")
        if item_type == "function":
            function_count += 1
        where = f"{item_type} {item.get('name') or index}"
        _validate_parameters(item.get("inputs"), where, errors)
        _validate_parameters(item.get("outputs"), where, errors)

    if function_count == 0 and not errors:
        warnings.append("ABI contains no functions")

    return AbiValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


# ==================== Normalization / Hashing ====================


def _normalize_params(params: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    normalized = []
    for param in params or []:
        entry = {k: v for k, v in param.items() if k != "components"}
        if param.get("components"):
            entry["components"] = _normalize_params(param["components"])
        normalized.append(entry)
    return sorted(normalized, key=lambda p: str(p.get("name", "")))


def normalize_abi(abi: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Return a canonical copy: items ordered by type then name, parameters by name."""
    normalized = []
    for item in abi:
        entry = dict(item)
        entry.setdefault("type", "function")
        if "inputs" in entry:
            entry["inputs"] = _normalize_params(entry["inputs"])
        if "outputs" in entry:
            entry["outputs"] = _normalize_params(entry["outputs"])
        normalized.append(entry)
    return sorted(
        normalized,
        key=lambda i: (ABI_TYPE_ORDER.get(i["type"], 99), str(i.get("name", ""))),
    )


def hash_definition(definition: Any) -> str:
    """
    Content hash of a contract definition.

    ABI arrays are normalized first, so reordering items or parameters does
    not change the hash. Other definition shapes are hashed as canonical JSON.
    """
    canonical = normalize_abi(definition) if isinstance(definition, list) else definition
    payload = json.dumps(canonical, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


# ==================== Comparison ====================


def _param_types(params: list[dict[str, Any]] | None) -> str:
    types = []
    for param in params or []:
        abi_type = param.get("type", "")
        if abi_type.startswith("tuple"):
            abi_type = f"({_param_types(param.get('components'))}){abi_type[len('tuple'):]}"
        types.append(abi_type)
    return ",".join(types)


def _signature(item: dict[str, Any]) -> str:
    item_type = item.get("type", "function")
    if item_type in ("constructor", "fallback", "receive"):
        return item_type
    return f"{item.get('name', '')}({_param_types(item.get('inputs'))})"


class AbiComparisonService:
    """Compares two ABI versions of the same contract."""

    def compare_abis(self, old: list[dict[str, Any]], new: list[dict[str, Any]]) -> AbiComparisonResult:
        """
        Compare two ABIs item by item.

        Items are matched by (type, signature). Removed or changed functions
        are breaking for saved forms; additions are minor.
        """
        if hash_definition(old) == hash_definition(new):
            return AbiComparisonResult(identical=True, summary="ABIs are identical")

        old_items = {(i.get("type", "function"), _signature(i)): i for i in old}
        new_items = {(i.get("type", "function"), _signature(i)): i for i in new}
        differences: list[AbiDifference] = []

        for key, item in old_items.items():
            section, signature = key
            if key not in new_items:
                differences.append(
                    AbiDifference(
                        type=DifferenceType.REMOVED,
                        section=section,
                        name=item.get("name", section),
                        signature=signature,
                        details=f"{section} {signature} was removed",
                        impact="high" if section == "function" else "medium",
                    )
                )
                continue
            changes = self._item_changes(item, new_items[key])
            if changes:
                differences.append(
                    AbiDifference(
                        type=DifferenceType.MODIFIED,
                        section=section,
                        name=item.get("name", section),
                        signature=signature,
                        details="; ".join(changes),
                        impact="high" if section == "function" else "medium",
                    )
                )

        for key, item in new_items.items():
            if key not in old_items:
                section, signature = key
                differences.append(
                    AbiDifference(
                        type=DifferenceType.ADDED,
                        section=section,
                        name=item.get("name", section),
                        signature=signature,
                        details=f"{section} {signature} was added",
                        impact="low",
                    )
                )

        severity = self._severity(differences)
        counts = {t: sum(1 for d in differences if d.type == t) for t in DifferenceType}
        summary = (
            f"{counts[DifferenceType.ADDED]} added, {counts[DifferenceType.REMOVED]} removed, "
            f"{counts[DifferenceType.MODIFIED]} modified"
        )
        logger.debug("abi_compared", severity=severity.value, differences=len(differences))
        return AbiComparisonResult(
            identical=not differences,
            differences=differences,
            severity=severity if differences else ChangeSeverity.NONE,
            summary=summary,
        )

    @staticmethod
    def _item_changes(old: dict[str, Any], new: dict[str, Any]) -> list[str]:
        changes = []
        if _param_types(old.get("outputs")) != _param_types(new.get("outputs")):
            changes.append("outputs changed")
        old_mutability = old.get("stateMutability")
        new_mutability = new.get("stateMutability")
        if old_mutability != new_mutability:
            changes.append(f"stateMutability {old_mutability} -> {new_mutability}")
        old_names = [p.get("name") for p in old.get("inputs") or []]
        new_names = [p.get("name") for p in new.get("inputs") or []]
        if old_names != new_names:
            changes.append("input names changed")
        return changes

    @staticmethod
    def _severity(differences: list[AbiDifference]) -> ChangeSeverity:
        if any(d.impact == "high" for d in differences):
            return ChangeSeverity.BREAKING
        if any(d.impact == "medium" for d in differences):
            return ChangeSeverity.MAJOR
        if differences:
            return ChangeSeverity.MINOR
        return ChangeSeverity.NONE
