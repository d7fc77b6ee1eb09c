from __future__ import annotations

from typing import Any


# Maximum monetary amount: ¥9,999,999.99 (999,999,999 minor units)
MAX_AMOUNT_MINOR = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(LookupError):
    """404-level missing customer, plan, membership or session."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate active membership)."""


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for amounts and point counts.

    Rejects bools, floats, scientific notation and decimal strings.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def require_non_negative_int(value: Any, field: str) -> int:
    number = coerce_int(value, field)
    if number < 0:
        raise ValidationError(f"{field} must be >= 0")
    return number


def require_positive_int(value: Any, field: str) -> int:
    number = coerce_int(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be > 0")
    return number


def require_hours(value: Any, field: str, *, allow_zero: bool = True) -> float:
    """Decimal hours (ints, floats or numeric strings)."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        hours = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number")
    if hours != hours or hours in (float("inf"), float("-inf")):
        raise ValidationError(f"{field} must be a finite number")
    if hours < 0 or (hours == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'>=' if allow_zero else '>'} 0")
    return hours


def enforce_rules_plan(patch: dict) -> None:
    """
    Business rules for membership plans that are not captured by
    column metadata alone.
    """
    if "price" in patch:
        price = require_non_negative_int(patch["price"], "price")
        if price > MAX_AMOUNT_MINOR:
            raise ValidationError(f"price cannot exceed {MAX_AMOUNT_MINOR}")
        patch["price"] = price
    if "overage_rate" in patch:
        patch["overage_rate"] = require_non_negative_int(patch["overage_rate"], "overage_rate")
    if "points_on_purchase" in patch:
        patch["points_on_purchase"] = require_non_negative_int(patch["points_on_purchase"], "points_on_purchase")
    if "earn_rate_denominator" in patch:
        patch["earn_rate_denominator"] = require_positive_int(patch["earn_rate_denominator"], "earn_rate_denominator")
    if "hours_included" in patch:
        patch["hours_included"] = require_hours(patch["hours_included"], "hours_included")
    if "name" in patch:
        name = str(patch["name"] or "").strip()
        if not name:
            raise ValidationError("name cannot be blank")
        if len(name) > 128:
            raise ValidationError("name exceeds max length 128")
        patch["name"] = name
