"""
Validation gate for record payloads.

Raw input is normalized, optionally stamped with the owner identity, and
then validated with a pydantic model.
"""

from __future__ import annotations

from typing import Any, Mapping, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from shared.utils.exceptions import ValidationError

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def is_identifier_field(name: str) -> bool:
    """True for ``id`` and for foreign-key style ``*_id`` names."""
    return name == "id" or name.endswith("_id")


def normalize_identifiers(data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Return a copy of ``data`` with empty-string identifiers set to None.

    Forms submit "" for an unselected reference, which the database would
    reject as a foreign key value.
    """
    normalized = dict(data)
    for key, value in normalized.items():
        if is_identifier_field(key) and value == "":
            normalized[key] = None
    return normalized


def validate_payload(
    schema: type[SchemaT],
    raw_input: Any,
    *,
    entity: str,
    owner_column: str | None = None,
    owner_id: str | None = None,
) -> SchemaT:
    """
    Normalize and validate ``raw_input`` against ``schema``.

    When ``owner_column`` is given, ``owner_id`` is injected before
    validation so the owner value is shape-checked like any other field.

    Raises:
        ValidationError: input is not a mapping or the schema rejects it.
    """
    if isinstance(raw_input, BaseModel):
        raw_input = raw_input.model_dump(exclude_unset=True)
    if not isinstance(raw_input, Mapping):
        raise ValidationError(
            f"Invalid {entity} payload",
            issues=[{
                "type": "model_type",
                "loc": [],
                "msg": "Input should be an object",
            }],
            entity=entity,
        )

    data = normalize_identifiers(raw_input)
    if owner_column is not None:
        data[owner_column] = owner_id

    try:
        return schema.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid {entity} payload",
            issues=exc.errors(include_url=False, include_context=False),
            entity=entity,
        ) from exc
