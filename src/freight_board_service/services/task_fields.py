"""Validation and normalization of client-supplied task and bid fields."""

from __future__ import annotations

import math
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from freight_board_service.errors import ValidationError

MAX_TITLE_LENGTH = 200
MAX_ADDRESS_LENGTH = 500
MAX_NOTES_LENGTH = 1000
MAX_MESSAGE_LENGTH = 500
MAX_ITEM_DESCRIPTION_LENGTH = 500
MAX_ITEMS_PER_TASK = 100
MAX_AMOUNT = Decimal("1000000000")
MAX_MEASUREMENT = 1_000_000
MAX_USER_ID = 2**63 - 1

_CENT = Decimal("0.01")

# Accepted spellings -> stored value. Legacy client values map onto current ones.
_CATEGORY_ALIASES: dict[str, str] = {
    "MOVING": "MOVING",
    "FURNITURE": "FURNITURE",
    "PARCEL": "PARCEL",
    "PARCELS": "PARCEL",
    "PALLET_LTL": "PALLET_LTL",
    "PALLETS": "PALLET_LTL",
    "FTL": "FTL",
}
_SERVICE_LEVEL_ALIASES: dict[str, str] = {
    "CURBSIDE": "CURBSIDE",
    "DRIVER_HELP": "DRIVER_HELP",
    "ASSISTED": "DRIVER_HELP",
    "TWO_MEN": "TWO_MEN",
    "FULL_INDOOR": "TWO_MEN",
}
_ITEM_TYPE_ALIASES: dict[str, str] = {
    "PARCEL": "PARCEL",
    "PACKAGE": "PARCEL",
    "PALLET": "PALLET",
    "FURNITURE": "FURNITURE",
}


def parse_money(value: object, *, field: str, error_code: str) -> Decimal:
    """
    Parse a strictly positive amount given as a number or numeric string.

    Booleans, NaN and infinities are rejected. The result is rounded to cents.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValidationError(error_code, f"{field} must be a positive number")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(error_code, f"{field} must be a positive number")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise ValidationError(error_code, f"{field} must be a positive number") from exc
    if not amount.is_finite():
        raise ValidationError(error_code, f"{field} must be a positive number")
    if amount > MAX_AMOUNT:
        raise ValidationError(
            error_code,
            f"{field} must not exceed {MAX_AMOUNT}",
            details={"max": str(MAX_AMOUNT)},
        )
    try:
        amount = amount.quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValidationError(error_code, f"{field} must be a positive number") from exc
    if amount <= 0:
        raise ValidationError(error_code, f"{field} must be greater than zero")
    return amount


def format_money(value: Decimal | str | None) -> str | None:
    """Render a stored amount with two decimal places."""
    if value is None:
        return None
    return str(Decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP))


def optional_text(data: dict[str, Any], field: str, max_length: int) -> str | None:
    """Return a trimmed optional string field, or None when absent or blank."""
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("INVALID_PAYLOAD", f"{field} must be a string")
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(
            "INVALID_PAYLOAD",
            f"{field} must not exceed {max_length} characters",
        )
    return value or None


def required_title(data: dict[str, Any]) -> str:
    title = data.get("title")
    if not isinstance(title, str) or len(title.strip()) < 1:
        raise ValidationError("INVALID_PAYLOAD", "title must be a non-empty string")
    title = title.strip()
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(
            "TITLE_TOO_LONG",
            f"title must not exceed {MAX_TITLE_LENGTH} characters",
        )
    return title


def optional_datetime(data: dict[str, Any], field: str) -> str | None:
    """Validate an optional ISO 8601 timestamp and return it unchanged."""
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("INVALID_PAYLOAD", f"{field} must be an ISO 8601 string")
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError("INVALID_PAYLOAD", f"{field} must be an ISO 8601 string") from exc
    return value


def optional_bool(data: dict[str, Any], field: str) -> bool | None:
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValidationError("INVALID_PAYLOAD", f"{field} must be a boolean")
    return value


def optional_user_id(data: dict[str, Any], field: str) -> int | None:
    """Return an optional positive integer id field."""
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool) or not 0 < value <= MAX_USER_ID:
        raise ValidationError("INVALID_PAYLOAD", f"{field} must be a positive integer")
    return value


def normalize_category(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, str) and value.strip().upper() in _CATEGORY_ALIASES:
        return _CATEGORY_ALIASES[value.strip().upper()]
    raise ValidationError(
        "INVALID_PAYLOAD",
        f"Unknown category: {value}",
        details={"allowed": sorted(set(_CATEGORY_ALIASES.values()))},
    )


def normalize_service_level(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, str) and value.strip().upper() in _SERVICE_LEVEL_ALIASES:
        return _SERVICE_LEVEL_ALIASES[value.strip().upper()]
    raise ValidationError(
        "INVALID_PAYLOAD",
        f"Unknown service level: {value}",
        details={"allowed": sorted(set(_SERVICE_LEVEL_ALIASES.values()))},
    )


def _rounded_int(value: object, field: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("INVALID_PAYLOAD", f"items.{field} must be a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError("INVALID_PAYLOAD", f"items.{field} must be a number")
    if abs(value) > MAX_MEASUREMENT:
        raise ValidationError(
            "INVALID_PAYLOAD",
            f"items.{field} must not exceed {MAX_MEASUREMENT}",
            details={"field": f"items.{field}"},
        )
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def normalize_items(value: object) -> list[dict[str, Any]]:
    """
    Normalize line items.

    Unknown item types are stored as OTHER, measurements are rounded to
    whole numbers, and a missing or non-positive count becomes 1.
    """
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError("INVALID_PAYLOAD", "items must be a list")
    if len(value) > MAX_ITEMS_PER_TASK:
        raise ValidationError(
            "INVALID_PAYLOAD",
            f"A task may carry at most {MAX_ITEMS_PER_TASK} items",
        )

    items: list[dict[str, Any]] = []
    for raw in value:
        if not isinstance(raw, dict):
            raise ValidationError("INVALID_PAYLOAD", "Each item must be an object")
        raw_type = raw.get("type")
        type_key = raw_type.strip().upper() if isinstance(raw_type, str) else ""
        count = _rounded_int(raw.get("count"), "count")
        items.append(
            {
                "item_type": _ITEM_TYPE_ALIASES.get(type_key, "OTHER"),
                "description": optional_text(raw, "description", MAX_ITEM_DESCRIPTION_LENGTH),
                "length_cm": _rounded_int(raw.get("length_cm"), "length_cm"),
                "width_cm": _rounded_int(raw.get("width_cm"), "width_cm"),
                "height_cm": _rounded_int(raw.get("height_cm"), "height_cm"),
                "weight_kg": _rounded_int(raw.get("weight_kg"), "weight_kg"),
                "count": count if count is not None and count > 0 else 1,
            }
        )
    return items
