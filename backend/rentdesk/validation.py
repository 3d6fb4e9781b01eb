from __future__ import annotations
from datetime import datetime
from rentdesk.time_utils import parse_iso_datetime, to_utc_naive

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum amount: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical rents
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return to_utc_naive(value)
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{key} must be an ISO-8601 datetime")
        return dt
    raise ValidationError(f"{key} must be a datetime")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, DateTime):
        return _coerce_datetime(col.key, value)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    """
    if "default_rent_cents" in patch and patch["default_rent_cents"] is not None:
        check_amount(patch["default_rent_cents"], "default_rent_cents")


# =============================================================================
# FIELD PARSERS (booking / order payloads)
# =============================================================================

def check_amount(value: int, key: str, *, positive: bool = False) -> int:
    """Range-check an integer cent amount."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if positive and value <= 0:
        raise ValidationError(f"{key} must be > 0")
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_AMOUNT_CENTS} ({MAX_AMOUNT_CENTS / 100:,.2f})")
    return value


def parse_cents(data: dict, key: str, *, required: bool = False, positive: bool = False) -> int | None:
    raw = data.get(key)
    if raw is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    return check_amount(_coerce_int(key, raw), key, positive=positive)


def parse_id(data: dict, key: str, *, required: bool = False) -> int | None:
    raw = data.get(key)
    if raw is None or raw == "":
        if required:
            raise ValidationError(f"{key} is required")
        return None
    value = _coerce_int(key, raw)
    if value <= 0:
        raise ValidationError(f"{key} must be a positive id")
    return value


def parse_datetime(data: dict, key: str, *, required: bool = False) -> datetime | None:
    raw = data.get(key)
    if raw is None or raw == "":
        if required:
            raise ValidationError(f"{key} is required")
        return None
    return _coerce_datetime(key, raw)


def parse_bool(data: dict, key: str, default: bool = False) -> bool:
    raw = data.get(key)
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    raise ValidationError(f"{key} must be a boolean")


def parse_text(data: dict, key: str, *, max_length: int, required: bool = False) -> str | None:
    raw = data.get(key)
    if raw is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    value = str(raw).strip()
    if required and not value:
        raise ValidationError(f"{key} cannot be blank")
    if len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value


def parse_transfers(data: dict, key: str = "transfers") -> list[tuple[int, int]]:
    """
    Parse [{"booking_id": 12, "amount_cents": 500}, ...] into (id, cents) pairs.
    """
    raw = data.get(key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError(f"{key} must be a list")

    transfers = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError(f"{key}[{i}] must be an object")
        booking_id = parse_id(item, "booking_id", required=True)
        amount = parse_cents(item, "amount_cents", required=True, positive=True)
        transfers.append((booking_id, amount))
    return transfers


def require_interval(from_dt: datetime, to_dt: datetime) -> None:
    if to_dt <= from_dt:
        raise ValidationError("to_datetime must be after from_datetime")


# =============================================================================
# BOOKING PAYLOADS
# =============================================================================

BOOKING_DESCRIPTION_MAX = 1000


def parse_booking_create(data: dict, *, require_order: bool = True) -> dict:
    """
    Parse a booking creation payload into booking_service keyword arguments.

    {"order_id", "product_id", "from_datetime", "to_datetime",
     "decided_rent_cents", "advance_amount_cents"?, "category_id"?,
     "additional_items_description"?, "override_conflicts"?}
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    fields = {
        "product_id": parse_id(data, "product_id", required=True),
        "from_dt": parse_datetime(data, "from_datetime", required=True),
        "to_dt": parse_datetime(data, "to_datetime", required=True),
        "decided_rent_cents": parse_cents(data, "decided_rent_cents", required=True),
        "advance_amount_cents": parse_cents(data, "advance_amount_cents") or 0,
        "category_id": parse_id(data, "category_id"),
        "additional_items_description": parse_text(
            data, "additional_items_description", max_length=BOOKING_DESCRIPTION_MAX
        ),
        "override_conflicts": parse_bool(data, "override_conflicts"),
    }
    require_interval(fields["from_dt"], fields["to_dt"])
    if require_order:
        fields["order_id"] = parse_id(data, "order_id", required=True)
    return fields


def parse_booking_patch(data: dict) -> tuple[dict, bool]:
    """
    Parse a booking update payload.

    Returns (patch, override_conflicts); only keys present in data end up in
    the patch. category_id may be null to clear it.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    allowed = {
        "product_id", "category_id", "from_datetime", "to_datetime",
        "decided_rent_cents", "advance_amount_cents",
        "additional_items_description", "override_conflicts",
    }
    unknown = sorted(k for k in data if k not in allowed)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    patch: dict = {}
    if "product_id" in data:
        patch["product_id"] = parse_id(data, "product_id", required=True)
    if "category_id" in data:
        patch["category_id"] = parse_id(data, "category_id")
    if "from_datetime" in data:
        patch["from_datetime"] = parse_datetime(data, "from_datetime", required=True)
    if "to_datetime" in data:
        patch["to_datetime"] = parse_datetime(data, "to_datetime", required=True)
    if "decided_rent_cents" in data:
        patch["decided_rent_cents"] = parse_cents(data, "decided_rent_cents", required=True)
    if "advance_amount_cents" in data:
        patch["advance_amount_cents"] = parse_cents(data, "advance_amount_cents", required=True)
    if "additional_items_description" in data:
        patch["additional_items_description"] = parse_text(
            data, "additional_items_description", max_length=BOOKING_DESCRIPTION_MAX
        )

    return patch, parse_bool(data, "override_conflicts")
