from __future__ import annotations

from typing import Optional

import phonenumbers
from flask import current_app, has_app_context

from .validation import ValidationError


def default_region() -> str:
    if has_app_context():
        return current_app.config.get("DEFAULT_PHONE_REGION", "IN")
    return "IN"


def normalize_phone(value: Optional[str], region: Optional[str] = None) -> Optional[str]:
    """
    Normalize a customer phone number to E.164.

    - None / "" -> None
    - "+<country><number>" is parsed as-is
    - anything else is read as a national number of `region`
      (DEFAULT_PHONE_REGION), so "98765 43210" becomes "+919876543210"

    Raises ValidationError when the number cannot be parsed or is not a
    valid number for its country.
    """
    if value is None:
        return None
    raw = value.strip()
    if not raw:
        return None

    try:
        number = phonenumbers.parse(raw, region or default_region())
    except phonenumbers.NumberParseException as exc:
        raise ValidationError(f"customer_phone is not a valid phone number: {raw}") from exc

    if not phonenumbers.is_valid_number(number):
        raise ValidationError(f"customer_phone is not a valid phone number: {raw}")

    return phonenumbers.format_number(number, phonenumbers.PhoneNumberFormat.E164)
