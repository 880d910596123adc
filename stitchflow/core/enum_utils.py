"""
Enum Utilities for VARCHAR-based Status Fields

CONVENTION:
━━━━━━━━━━━
• Database: VARCHAR(50) - NOT PostgreSQL ENUM
• SQLAlchemy: String(50) with Mapped[str]
• Pydantic: Python Enum for API validation
• API Response: Use string directly (NO .value needed)
• Case: All enum values stored in UPPERCASE

USAGE PATTERNS:
━━━━━━━━━━━━━━━
1. In SQLAlchemy Models:
   status: Mapped[str] = mapped_column(String(50), comment=enum_comment(SectionStatus))

2. In Pydantic Schemas (with case normalization):
   normalize_status = create_uppercase_validator('status', set(enum_values(DemandStatus)))

3. In services, when the caller may pass an enum or a plain string:
   section.status = get_enum_value(new_status)
"""

from enum import Enum
from typing import Any, Set


def get_enum_value(value: Any) -> str:
    """
    Safely get string value from an enum or string.

    Examples:
        >>> get_enum_value(SectionStatus.INVENTORY_PASSED)
        'INVENTORY_PASSED'
        >>> get_enum_value("INVENTORY_PASSED")
        'INVENTORY_PASSED'
        >>> get_enum_value(None)
        None
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)


def enum_values(enum_class: type[Enum]) -> list:
    """Get all values from an enum class."""
    return [e.value for e in enum_class]


def enum_comment(enum_class: type[Enum]) -> str:
    """
    Generate a comment string for VARCHAR column.

    Examples:
        >>> enum_comment(DemandStatus)
        'OPEN, ORDERED, RECEIVED, FULFILLED, CANCELLED'
    """
    return ", ".join(enum_values(enum_class))


def normalize_to_uppercase(value: Any, valid_values: Set[str]) -> Any:
    """
    Normalize a string value to UPPERCASE if it's a valid enum value.

    Returns the original value when it is not valid, so Pydantic raises the
    validation error.

    Examples:
        >>> normalize_to_uppercase('ordered', {'OPEN', 'ORDERED'})
        'ORDERED'
        >>> normalize_to_uppercase('bogus', {'OPEN', 'ORDERED'})
        'bogus'
    """
    if value is None:
        return value
    if isinstance(value, str):
        upper_v = value.strip().upper()
        if upper_v in valid_values:
            return upper_v
    return value


def create_uppercase_validator(field_name: str, valid_values: Set[str]) -> classmethod:
    """
    Create a Pydantic field_validator that normalizes values to UPPERCASE.

    Usage:
        class MySchema(BaseModel):
            status: DemandStatus

            normalize_status = create_uppercase_validator('status', VALID_DEMAND_STATUSES)
    """
    from pydantic import field_validator

    @field_validator(field_name, mode='before')
    @classmethod
    def validate(cls, v):
        return normalize_to_uppercase(v, valid_values)

    return validate
