"""
Input Validation for Retrieval Calls
====================================

Validation helpers for caller-supplied arguments with clear error messages.
These guard the public entry points; record contents coming back from the
server are checked by entities.validate_record instead.

Usage
-----
    from mangalnet.retrieval.validation import (
        validate_page_size, validate_entity_id, validate_kind
    )

    try:
        page_size = validate_page_size(page_size)
        kind = validate_kind("network")
    except ValidationError as e:
        log.error(str(e))

Validation Functions
-------------------
    validate_positive_int(value, name, default=None, min_value=1, max_value=None)
    validate_page_size(value)
    validate_page_index(value)
    validate_entity_id(value, name="id")
    validate_kind(value)
    validate_max_workers(value)
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .config import Config
from .entities import EntityKind


@dataclass(eq=False)
class ValidationError(ValueError):
    """Invalid argument passed to a retrieval call."""

    parameter: str
    message: str
    value: Any = None

    def __post_init__(self):
        super().__init__(str(self))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parameter": self.parameter,
            "message": self.message,
            "value": str(self.value) if self.value is not None else None,
        }

    def __str__(self) -> str:
        return f"Invalid '{self.parameter}': {self.message}"


def validate_positive_int(
    value: Any,
    name: str,
    default: Optional[int] = None,
    min_value: int = 1,
    max_value: Optional[int] = None,
) -> int:
    """
    Validate and convert value to positive integer.

    Args:
        value: Input value (may be a numeric string)
        name: Parameter name for error messages
        default: Default value if None or empty
        min_value: Minimum allowed value (default: 1)
        max_value: Maximum allowed value (optional)

    Returns:
        Validated integer

    Raises:
        ValidationError: If value is invalid
    """
    if value is None or value == "":
        if default is not None:
            return default
        raise ValidationError(name, f"'{name}' is required", value)

    # bool is an int subclass but never a meaningful count or id
    if isinstance(value, bool):
        raise ValidationError(name, f"must be an integer, got '{value}'", value)

    try:
        int_val = int(value)
    except (ValueError, TypeError):
        raise ValidationError(name, f"must be an integer, got '{value}'", value)

    if isinstance(value, float) and value != int_val:
        raise ValidationError(name, f"must be an integer, got '{value}'", value)

    if int_val < min_value:
        raise ValidationError(
            name,
            f"must be at least {min_value}, got {int_val}",
            value
        )

    if max_value is not None and int_val > max_value:
        raise ValidationError(
            name,
            f"must be at most {max_value}, got {int_val}",
            value
        )

    return int_val


def validate_page_size(value: Any) -> int:
    """Page size, defaulting to Config.FETCH.PAGE_SIZE."""
    return validate_positive_int(
        value,
        "page_size",
        default=Config.FETCH.PAGE_SIZE,
        max_value=Config.FETCH.MAX_PAGE_SIZE,
    )


def validate_page_index(value: Any) -> int:
    """Zero-based page index."""
    return validate_positive_int(value, "page", min_value=0)


def validate_entity_id(value: Any, name: str = "id") -> int:
    """Remote identifier (positive integer)."""
    return validate_positive_int(value, name)


def validate_max_workers(value: Any) -> int:
    return validate_positive_int(
        value,
        "max_workers",
        default=Config.FETCH.MAX_WORKERS,
        max_value=64,
    )


def validate_kind(value: Any) -> EntityKind:
    """
    Accept an EntityKind, its resource name ("taxonomy") or its entity
    name ("ReferenceTaxon", case-insensitive).
    """
    if isinstance(value, EntityKind):
        return value
    if isinstance(value, str):
        key = value.strip().lower()
        for kind in EntityKind:
            if key in (kind.resource, kind.name.lower(), kind.label.lower()):
                return kind
    valid = ", ".join(k.resource for k in EntityKind)
    raise ValidationError("kind", f"must be one of: {valid}", value)
