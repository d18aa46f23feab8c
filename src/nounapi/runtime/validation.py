"""
Field validation and type mapping.

Values are checked against parsed field types (see ``nounapi.specs.noun``).
The same FieldTypeSpec drives body validation, query-string coercion and
the OpenAPI and GraphQL type mappings, so every surface agrees on what a
field accepts.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

from nounapi.specs.noun import (
    BOOLEAN_TYPES,
    INTEGER_TYPES,
    NUMBER_TYPES,
    FieldTypeSpec,
    NounSpec,
    parse_field_type,
)

ROOT_FIELD = "_root"


@dataclass(frozen=True)
class FieldError:
    """A single field-level validation failure."""

    field: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def _as_spec(field_type: FieldTypeSpec | str) -> FieldTypeSpec:
    if isinstance(field_type, FieldTypeSpec):
        return field_type
    return parse_field_type(field_type)


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _validate_scalar(value: Any, spec: FieldTypeSpec) -> bool:
    if spec.kind == "enum":
        return isinstance(value, str) and value in (spec.enum_values or [])
    if spec.kind == "relation":
        return isinstance(value, str)

    base = spec.base
    if base in NUMBER_TYPES:
        return _is_number(value)
    if base in INTEGER_TYPES:
        return isinstance(value, int) and not isinstance(value, bool)
    if base in BOOLEAN_TYPES:
        return isinstance(value, bool)
    # string, text and unknown scalar names
    return isinstance(value, str)


def validate_field(value: Any, field_type: FieldTypeSpec | str) -> bool:
    """
    Check a value against a field type.

    ``None`` is only accepted for optional (``?``) fields. Booleans are never
    numbers. Array fields require a list whose every element is valid.

    >>> validate_field("active", "active | inactive")
    True
    >>> validate_field(True, "number")
    False
    >>> validate_field(None, "string?")
    True
    """
    spec = _as_spec(field_type)

    if value is None:
        return spec.optional

    if spec.array:
        return isinstance(value, list) and all(_validate_scalar(item, spec) for item in value)
    return _validate_scalar(value, spec)


def validate_body(noun: NounSpec, body: Any, is_update: bool = False) -> list[FieldError]:
    """
    Validate a create or update body against a noun.

    Args:
        noun: Target noun
        body: Parsed request body
        is_update: Updates are partial, so required fields may be absent

    Returns:
        Field errors, empty when the body is valid
    """
    if not isinstance(body, Mapping):
        return [FieldError(field=ROOT_FIELD, message="Body must be an object")]

    errors: list[FieldError] = []

    for name, value in body.items():
        if name == "id":
            if not isinstance(value, str):
                errors.append(
                    FieldError(field="id", message="Invalid type for id: expected string")
                )
            continue

        spec = noun.fields.get(name)
        if spec is None:
            errors.append(FieldError(field=name, message=f"Unknown field: {name}"))
            continue

        if not validate_field(value, spec):
            errors.append(
                FieldError(field=name, message=f"Invalid type for {name}: expected {spec.raw}")
            )

    if not is_update:
        for name in noun.required_fields:
            if name not in body:
                errors.append(FieldError(field=name, message=f"Missing required field: {name}"))

    return errors


def coerce_query_value(raw: str, field_type: FieldTypeSpec | str | None) -> Any:
    """
    Coerce a query-string filter value to the field's type.

    Booleans compare against the literal ``"true"``; numbers parse as floats
    (falling back to the raw string when unparseable). Everything else,
    including unknown fields, stays a string.
    """
    if field_type is None:
        return raw

    spec = _as_spec(field_type)
    if spec.kind != "scalar":
        return raw

    if spec.base in BOOLEAN_TYPES:
        return raw == "true"
    if spec.base in NUMBER_TYPES or spec.base in INTEGER_TYPES:
        try:
            number = float(raw)
        except ValueError:
            return raw
        return int(number) if number.is_integer() else number
    return raw


# =============================================================================
# Type Mapping
# =============================================================================


def map_field_type_to_openapi(field_type: FieldTypeSpec | str) -> dict[str, Any]:
    """
    Map a field type to an OpenAPI schema fragment.

    >>> map_field_type_to_openapi("active | inactive")
    {'type': 'string', 'enum': ['active', 'inactive']}
    >>> map_field_type_to_openapi("number?")
    {'type': 'number'}
    """
    spec = _as_spec(field_type)

    item: dict[str, Any]
    if spec.kind == "enum":
        item = {"type": "string", "enum": list(spec.enum_values or [])}
    elif spec.kind == "relation":
        item = {"type": "string"}
    elif spec.base in NUMBER_TYPES:
        item = {"type": "number"}
    elif spec.base in INTEGER_TYPES:
        item = {"type": "integer"}
    elif spec.base in BOOLEAN_TYPES:
        item = {"type": "boolean"}
    else:
        item = {"type": "string"}

    if spec.array:
        return {"type": "array", "items": item}
    return item


_GRAPHQL_SCALARS = {
    "number": "Float",
    "int": "Int",
    "integer": "Int",
    "boolean": "Boolean",
}


def map_field_type_to_graphql(field_type: FieldTypeSpec | str, input: bool = False) -> str:
    """
    Map a field type to a GraphQL type reference.

    Relations reference the target noun type on object types and an ``ID``
    on input types. Required fields get ``!``.

    >>> map_field_type_to_graphql("string!")
    'String!'
    >>> map_field_type_to_graphql("-> Author")
    'Author'
    >>> map_field_type_to_graphql("number[]")
    '[Float]'
    """
    spec = _as_spec(field_type)

    if spec.kind == "relation":
        name = "ID" if input or not spec.relation_target else spec.relation_target
    else:
        name = _GRAPHQL_SCALARS.get(spec.base, "String")

    if spec.array:
        name = f"[{name}]"
    if spec.required:
        name += "!"
    return name
