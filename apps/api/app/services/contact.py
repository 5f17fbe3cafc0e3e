from __future__ import annotations

import re

from email_validator import EmailNotValidError, validate_email

from app.core.config import settings
from app.core.errors import InvalidArgumentError

_NON_DIGITS = re.compile(r"\D")


def normalize_email(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    try:
        result = validate_email(value.strip(), check_deliverability=False)
    except EmailNotValidError as exc:
        raise InvalidArgumentError(f"invalid email address: {exc}", field="email") from None
    return result.normalized.lower()


def mobile_digits(value: str | None) -> str | None:
    """
    Reduce a phone number to its 10 national digits, or None if it has none.

    Accepts leading 0 (11 digits) or the 91 country code (12 digits).
    """
    if value is None:
        return None
    cleaned = _NON_DIGITS.sub("", str(value))
    if not cleaned:
        return None
    if cleaned.startswith("0") and len(cleaned) == 11:
        cleaned = cleaned[1:]
    if cleaned.startswith("91") and len(cleaned) == 12:
        cleaned = cleaned[2:]
    return cleaned if len(cleaned) == 10 else None


def normalize_mobile(value: str | None) -> str | None:
    if value is None or not str(value).strip():
        return None
    digits = mobile_digits(value)
    if digits is None or not re.fullmatch(r"[6-9]\d{9}", digits):
        raise InvalidArgumentError("please enter a valid 10-digit mobile number", field="mobile")
    return f"{settings.mobile_country_code}{digits}"
