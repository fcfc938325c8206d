"""Shared validation for lead-capture and admin form submissions.

Payloads arrive as dictionaries. These validators collect human-readable
messages per field; `raise_if_errors` turns a non-empty collection into a
`FormValidationError` so the API can return HTTP 422 with `field_errors`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional


@dataclass
class FormValidationError(Exception):
    """Exception raised for form validation failures.

    Attributes:
        field_errors: mapping of field name -> human-readable error message.
        message: optional top-level message.
    """

    field_errors: Dict[str, str]
    message: str = "Validation failed"

    def __str__(self) -> str:  # pragma: no cover
        return self.message


def _as_str(v: Any) -> str:
    return "" if v is None else str(v)


def _strip(v: Any) -> str:
    return _as_str(v).strip()


def add_error(errors: Dict[str, str], field: str, message: str) -> None:
    if field not in errors:
        errors[field] = message


def require_str(payload: Dict[str, Any], field: str, errors: Dict[str, str], *, label: Optional[str] = None) -> str:
    value = _strip(payload.get(field))
    if not value:
        add_error(errors, field, f"{label or field} is required")
    return value


def optional_str(payload: Dict[str, Any], field: str) -> str:
    return _strip(payload.get(field))


def require_bool(payload: Dict[str, Any], field: str, errors: Dict[str, str], *, label: Optional[str] = None) -> bool:
    if field not in payload:
        add_error(errors, field, f"{label or field} is required")
        return False
    v = payload.get(field)
    if isinstance(v, bool):
        return v
    s = _strip(v).lower()
    if s in ("true", "1", "yes", "y", "on"):
        return True
    if s in ("false", "0", "no", "n", "off"):
        return False
    add_error(errors, field, f"{label or field} must be true/false")
    return False


EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(value or ""))


def validate_email(value: str, errors: Dict[str, str], field: str = "email") -> str:
    value = _strip(value)
    if not value:
        add_error(errors, field, "Email is required")
        return value
    if not is_valid_email(value):
        add_error(errors, field, "Please enter a valid email address")
    return value


def normalize_phone(value: str) -> str:
    """Strip the separators people type into phone numbers.

    "(123) 456-7890", "123.456.7890" and "123 456 7890" all become "1234567890".
    """
    return re.sub(r"[\s\-\.\(\)]", "", _strip(value))


def validate_phone(value: str, errors: Dict[str, str], field: str = "phone", *, required: bool = True) -> str:
    raw = _strip(value)
    if not raw:
        if required:
            add_error(errors, field, "Phone number is required")
        return raw
    norm = normalize_phone(raw)
    if not norm.isdigit():
        add_error(errors, field, "Phone number must contain digits only")
        return raw
    if len(norm) != 10:
        add_error(errors, field, "Please enter a valid 10-digit phone number")
    return norm


def validate_list_ids(value: Any, allowed_ids: Iterable[str], errors: Dict[str, str], field: str) -> list[str]:
    allowed = set(allowed_ids)
    items: list[str]
    if value is None:
        return []
    if isinstance(value, str):
        items = [v.strip() for v in value.split(",") if v.strip()]
    elif isinstance(value, (list, tuple)):
        items = [str(v).strip() for v in value if str(v).strip()]
    else:
        add_error(errors, field, f"{field} must be a list")
        return []

    bad = [v for v in items if v not in allowed]
    if bad:
        add_error(errors, field, f"{field} contains invalid selection(s)")
    # keep first occurrence order, drop duplicates
    return list(dict.fromkeys(items))


def raise_if_errors(errors: Dict[str, str], message: str = "Please correct the highlighted fields") -> None:
    if errors:
        raise FormValidationError(field_errors=errors, message=message)
