"""
Field Descriptor Models

UI-facing projection of contract parameters. A FieldDescriptor tree mirrors
the nesting of the FunctionParameter tree it was mapped from.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class FieldType(str, Enum):
    """Closed set of renderable field type tags."""

    TEXT = "text"
    NUMBER = "number"
    BIGINT = "bigint"  # String-backed arbitrary precision integer
    CHECKBOX = "checkbox"
    BOOLEAN = "boolean"
    RADIO = "radio"
    SELECT = "select"
    SELECT_GROUPED = "select-grouped"
    TEXTAREA = "textarea"
    BYTES = "bytes"
    CODE_EDITOR = "code-editor"
    DATE = "date"
    DATETIME = "datetime"
    EMAIL = "email"
    PASSWORD = "password"
    BLOCKCHAIN_ADDRESS = "blockchain-address"
    AMOUNT = "amount"
    URL = "url"
    ARRAY = "array"
    OBJECT = "object"
    ARRAY_OBJECT = "array-object"
    MAP = "map"
    ENUM = "enum"
    HIDDEN = "hidden"


class FieldValidation(BaseModel):
    """Validation rules a renderer applies before submission."""

    required: bool = True
    min: int | None = None
    max: int | None = None
    pattern: str | None = None

    model_config = {"frozen": True}


class EnumVariantKind(str, Enum):
    """Payload shape of an enum variant."""

    VOID = "void"  # No payload
    INTEGER = "integer"  # Numeric discriminant only
    TUPLE = "tuple"  # Ordered payload values


class EnumVariant(BaseModel):
    """One variant of an enum parameter."""

    name: str
    type: EnumVariantKind = EnumVariantKind.VOID
    value: int | None = Field(default=None, description="Discriminant for integer variants")
    payload_types: list[str] = Field(default_factory=list)
    payload_fields: list["FieldDescriptor"] = Field(
        default_factory=list, description="Mapped descriptors, one per payload type"
    )

    model_config = {"frozen": True}


class EnumMetadata(BaseModel):
    """Ordered variant list for an enum field."""

    name: str
    variants: list[EnumVariant] = Field(default_factory=list)
    is_unit_only: bool = True

    model_config = {"frozen": True}

    @property
    def variant_names(self) -> list[str]:
        return [v.name for v in self.variants]

    def get_variant(self, name: str) -> EnumVariant | None:
        for variant in self.variants:
            if variant.name == name:
                return variant
        return None


class FieldDescriptor(BaseModel):
    """
    Renderable field derived from a FunctionParameter.

    Descriptors are pure projections: mapping the same parameter twice
    yields equal descriptors.
    """

    id: str = Field(description="Deterministic path-based id")
    name: str
    label: str
    type: FieldType
    placeholder: str | None = None
    helper_text: str | None = None
    default_value: Any = None
    validation: FieldValidation = Field(default_factory=FieldValidation)
    components: list["FieldDescriptor"] | None = None
    element_type: FieldType | None = None
    element_field_config: "FieldDescriptor | None" = None
    key_field_config: "FieldDescriptor | None" = None
    value_field_config: "FieldDescriptor | None" = None
    enum_metadata: EnumMetadata | None = None
    original_parameter_type: str
    is_hardcoded: bool = False
    hardcoded_value: Any = None
    is_hidden: bool = False
    readonly: bool = False

    model_config = {"frozen": True}


class FieldOverrides(BaseModel):
    """User overrides applied on top of a mapped descriptor."""

    label: str | None = None
    hardcoded_value: Any = None
    is_hardcoded: bool = False
    is_hidden: bool = False


EnumVariant.model_rebuild()
