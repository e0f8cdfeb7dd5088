from __future__ import annotations

from typing import Any

from .errors import ValidationError

# Maximum amount: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical amounts
MAX_AMOUNT_CENTS = 999_999_999


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


def get_json_body(req) -> dict:
    data = req.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_int(data: dict, key: str) -> int:
    if data.get(key) is None:
        raise ValidationError(f"{key} required")
    return _coerce_int(key, data[key])


def optional_int(data: dict, key: str) -> int | None:
    if data.get(key) is None:
        return None
    return _coerce_int(key, data[key])


def amount_cents(data: dict, key: str, *, required: bool = True) -> int | None:
    """Integer cents field, bounded by MAX_AMOUNT_CENTS."""
    value = require_int(data, key) if required else optional_int(data, key)
    if value is not None and value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{key} exceeds maximum allowed amount")
    return value


def optional_str(data: dict, key: str, *, max_length: int | None = None) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{key} must be at most {max_length} characters")
    return value


def optional_list(data: dict, key: str) -> list | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValidationError(f"{key} must be a list")
    return value
