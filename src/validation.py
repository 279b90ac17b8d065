"""Shared backend validation for administration payloads.

Clients, products and brokers arrive as dictionaries. These validators make
sure important fields are present and well-formed, collecting messages into a
``field name -> message`` mapping.

On failure, call ``raise_if_errors`` so the API can return HTTP 422 with
structured ``field_errors``.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from src.errors import raise_if_errors  # noqa: F401  (re-exported for controllers)
from src.rating.cnp import is_valid_cnp
from src.utils.money import to_decimal


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


def parse_bool(payload: Dict[str, Any], field: str, errors: Dict[str, str], *, default: bool = False) -> bool:
    if field not in payload or payload.get(field) is None:
        return default
    v = payload.get(field)
    if isinstance(v, bool):
        return v
    s = _strip(v).lower()
    if s in ("true", "1", "yes", "y", "on"):
        return True
    if s in ("false", "0", "no", "n", "off"):
        return False
    add_error(errors, field, f"{field} must be true/false")
    return default


def parse_int(payload: Dict[str, Any], field: str, errors: Dict[str, str], *, required: bool = False) -> Optional[int]:
    raw = payload.get(field)
    if raw is None or _strip(raw) == "":
        if required:
            add_error(errors, field, f"{field} is required")
        return None
    if isinstance(raw, bool):
        add_error(errors, field, f"{field} must be a whole number")
        return None
    try:
        return int(str(raw))
    except ValueError:
        add_error(errors, field, f"{field} must be a whole number")
        return None


def parse_decimal(
    payload: Dict[str, Any],
    field: str,
    errors: Dict[str, str],
    *,
    min_value: Optional[Decimal] = None,
    max_value: Optional[Decimal] = None,
    required: bool = False,
) -> Optional[Decimal]:
    raw = payload.get(field)
    if raw is None or _strip(raw) == "":
        if required:
            add_error(errors, field, f"{field} is required")
        return None
    value = to_decimal(raw)
    if value is None or not value.is_finite():
        add_error(errors, field, f"{field} must be a number")
        return None
    if min_value is not None and value < min_value:
        add_error(errors, field, f"{field} must be at least {min_value}")
    if max_value is not None and value > max_value:
        add_error(errors, field, f"{field} must be at most {max_value}")
    return value


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_email(value: str, errors: Dict[str, str], field: str = "email", *, required: bool = True) -> str:
    value = _strip(value)
    if not value:
        if required:
            add_error(errors, field, "Email is required")
        return value
    if not _EMAIL_RE.match(value):
        add_error(errors, field, "Email is not valid")
    return value


def normalize_phone(value: str) -> str:
    return re.sub(r"[\s\-\(\)\.]", "", _strip(value))


def validate_phone(value: str, errors: Dict[str, str], field: str = "phone") -> str:
    raw = _strip(value)
    if not raw:
        return raw
    norm = normalize_phone(raw)
    digits = norm[1:] if norm.startswith("+") else norm
    if not digits.isdigit() or not 9 <= len(digits) <= 15:
        add_error(errors, field, "Phone number format is not valid")
    return norm


def validate_cnp(value: str, errors: Dict[str, str], field: str = "cnp") -> str:
    raw = _strip(value)
    if not raw:
        add_error(errors, field, "CNP is required")
        return raw
    if not is_valid_cnp(raw):
        add_error(errors, field, "CNP must be exactly 13 digits")
    return raw


def validate_in(value: str, allowed: Iterable[str], errors: Dict[str, str], field: str, *, required: bool = True) -> str:
    raw = _strip(value)
    if not raw:
        if required:
            add_error(errors, field, f"{field} is required")
        return raw
    if raw not in set(allowed):
        add_error(errors, field, f"{field} has an invalid value")
    return raw
