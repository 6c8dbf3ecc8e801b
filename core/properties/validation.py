"""
Property Validation - Draft Input Checks and the Publish Gate

Drafts may be saved incomplete: only the shape of the input is checked.
Completeness is enforced once, at the moment of publishing.

Publish checks run in a fixed order and stop at the first failure:
1. title non-empty after trimming
2. description non-empty after trimming
3. location non-empty after trimming
4. price > 0
5. at least one non-deleted image
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from core.errors import ValidationFailed
from core.properties.schema import (
    EDITABLE_FIELDS,
    MAX_LOCATION_LENGTH,
    MAX_TITLE_LENGTH,
    PROTECTED_FIELDS,
    Property,
)


# =============================================================================
# Publish Gate
# =============================================================================


@dataclass(frozen=True)
class PublishValidationResult:
    """Outcome of the publish gate. reason is set only when it failed."""

    valid: bool
    reason: Optional[str] = None
    field: Optional[str] = None

    @classmethod
    def ok(cls) -> "PublishValidationResult":
        return cls(valid=True)

    @classmethod
    def failed(cls, field: str, reason: str) -> "PublishValidationResult":
        return cls(valid=False, reason=reason, field=field)


def check_publish_readiness(prop: Property, image_count: int) -> PublishValidationResult:
    """
    Check whether a property is complete enough to go live.

    Args:
        prop: The property as currently stored
        image_count: Number of non-deleted images

    Returns:
        PublishValidationResult for the first failing check, or ok
    """
    if not (prop.title or "").strip():
        return PublishValidationResult.failed("title", "title is required")
    if not (prop.description or "").strip():
        return PublishValidationResult.failed("description", "description is required")
    if not (prop.location or "").strip():
        return PublishValidationResult.failed("location", "location is required")
    if prop.price is None or prop.price <= 0:
        return PublishValidationResult.failed("price", "price must be greater than 0")
    if image_count < 1:
        return PublishValidationResult.failed("images", "at least one image is required")
    return PublishValidationResult.ok()


def validate_for_publish(prop: Property, image_count: int) -> None:
    """
    Enforce the publish gate.

    Raises:
        ValidationFailed: With the first failing reason
    """
    result = check_publish_readiness(prop, image_count)
    if not result.valid:
        raise ValidationFailed(f"Cannot publish: {result.reason}", [result.reason])


# =============================================================================
# Draft Input
# =============================================================================


def parse_price(value: Any) -> Decimal:
    """
    Parse a price into a non-negative Decimal.

    Raises:
        ValidationFailed: Not a number, not finite, or negative
    """
    if isinstance(value, bool) or value is None:
        raise ValidationFailed("price must be a number")
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationFailed("price must be a number")
    if not price.is_finite():
        raise ValidationFailed("price must be a finite number")
    if price < 0:
        raise ValidationFailed("price must not be negative")
    return price


def validate_draft_data(data: dict[str, Any], partial: bool = False) -> dict[str, Any]:
    """
    Validate caller-supplied draft content.

    Args:
        data: Raw field values
        partial: True for updates (only supplied fields are checked)

    Returns:
        Cleaned values, with price as Decimal

    Raises:
        ValidationFailed: Listing every problem found
    """
    errors: list[str] = []
    cleaned: dict[str, Any] = {}

    for key in data:
        if key in PROTECTED_FIELDS:
            if key == "status":
                errors.append("status cannot be set directly; use publish or archive")
            else:
                errors.append(f"{key} cannot be changed")
        elif key not in EDITABLE_FIELDS:
            errors.append(f"unknown field: {key}")

    for key, max_length in (
        ("title", MAX_TITLE_LENGTH),
        ("description", None),
        ("location", MAX_LOCATION_LENGTH),
    ):
        if key not in data:
            if not partial:
                cleaned[key] = ""
            continue
        value = data[key]
        if value is None:
            value = ""
        if not isinstance(value, str):
            errors.append(f"{key} must be a string")
            continue
        if max_length is not None and len(value) > max_length:
            errors.append(f"{key} must be at most {max_length} characters")
            continue
        cleaned[key] = value

    if "price" in data:
        try:
            cleaned["price"] = parse_price(data["price"])
        except ValidationFailed as e:
            errors.append(e.message)
    elif not partial:
        cleaned["price"] = Decimal("0")

    if partial and not errors and not cleaned:
        errors.append("no changes supplied")

    if errors:
        raise ValidationFailed(errors[0], errors)
    return cleaned
