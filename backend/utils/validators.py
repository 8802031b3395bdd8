"""
Input validation utilities for checkout.

Raises domain ValidationError (400, code "validation") naming the offending
field, so the storefront can highlight it.
"""
import re

from domain.errors import ValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^\+?[0-9][0-9\s\-()]{5,}$")


def require_text(value: str | None, field: str) -> str:
    """Return the stripped value, or raise if it is missing/blank."""
    if value is None or not str(value).strip():
        raise ValidationError("is required", field=field)
    return str(value).strip()


def validate_email(email: str | None) -> str:
    """
    Validate an email address (shape only, no deliverability check).

    Returns:
        The stripped address
    """
    email = require_text(email, "email")
    if not _EMAIL_RE.match(email):
        raise ValidationError(f"'{email}' is not a valid email address", field="email")
    return email


def validate_phone(phone: str | None) -> str:
    phone = require_text(phone, "phone")
    if not _PHONE_RE.match(phone):
        raise ValidationError("must contain at least 6 digits", field="phone")
    return phone


def validate_customer(*, email: str | None, customer_name: str | None, phone: str | None, address: str | None) -> None:
    """All delivery details are required before any stock is touched."""
    validate_email(email)
    require_text(customer_name, "customer_name")
    validate_phone(phone)
    require_text(address, "address")
