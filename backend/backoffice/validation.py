from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from flask import request

from .errors import BadRequestError
from .time_utils import parse_iso_datetime


# Maximum amount: $9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

MAX_PAGE_SIZE = 100

_TRUE_STRINGS = {"true", "1", "yes"}
_FALSE_STRINGS = {"false", "0", "no"}


def parse_int(value: Any, field: str, *, required: bool = False, minimum: int | None = None) -> int | None:
    """
    Strict integer coercion: ints and plain digit strings only. Floats,
    decimals, scientific notation and booleans are rejected.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise BadRequestError(f"{field} is required")
        return None

    # bool is a subclass of int
    if isinstance(value, bool):
        raise BadRequestError(f"{field} must be an integer")

    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise BadRequestError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise BadRequestError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise BadRequestError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise BadRequestError(f"{field} must be an integer, not a decimal")
    else:
        raise BadRequestError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise BadRequestError(f"{field} must be >= {minimum}")
    return result


def parse_bool(value: Any, field: str) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        if not lowered:
            return None
    raise BadRequestError(f"{field} must be a boolean")


def parse_datetime(value: Any, field: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise BadRequestError(f"{field} must be an ISO-8601 datetime")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise BadRequestError(f"{field} must be an ISO-8601 datetime")


def amount_to_cents(value: Any, field: str) -> int:
    """
    Convert a decimal amount ("12.34", 12.34, 12) to integer cents exactly.
    More than two decimal places is an error, never a rounding.
    """
    if isinstance(value, bool):
        raise BadRequestError(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise BadRequestError(f"{field} must be a number")
    if not amount.is_finite():
        raise BadRequestError(f"{field} must be a number")

    cents = amount * 100
    if cents != cents.to_integral_value():
        raise BadRequestError(f"{field} cannot have more than two decimal places")
    return int(cents)


def parse_money_cents(payload: dict, field: str, *, required: bool = False) -> int | None:
    """
    Read a money field given either as "<field>_cents" (integer) or as
    "<field>" (decimal amount). Returns cents.
    """
    cents_key = f"{field}_cents"
    if payload.get(cents_key) is not None:
        cents = parse_int(payload[cents_key], cents_key)
    elif payload.get(field) is not None:
        cents = amount_to_cents(payload[field], field)
    else:
        if required:
            raise BadRequestError(f"{cents_key} is required")
        return None

    if cents < 0:
        raise BadRequestError(f"{cents_key} must be >= 0")
    if cents > MAX_AMOUNT_CENTS:
        raise BadRequestError(f"{cents_key} cannot exceed {MAX_AMOUNT_CENTS} (${MAX_AMOUNT_CENTS / 100:,.2f})")
    return cents


def parse_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def get_json_payload() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise BadRequestError("Invalid JSON payload")
    return payload


def parse_pagination(args, *, default_limit: int = 50) -> tuple[int, int]:
    """limit is clamped to 1..MAX_PAGE_SIZE, offset to >= 0."""
    limit = parse_int(args.get("limit"), "limit")
    offset = parse_int(args.get("offset"), "offset")

    if limit is None:
        limit = default_limit
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    offset = max(0, offset or 0)
    return limit, offset


def parse_sort(args, allowed: Iterable[str], *, default: str = "created_at") -> tuple[str, str]:
    sort_by = args.get("sort_by") or default
    if sort_by not in allowed:
        raise BadRequestError(f"sort_by must be one of: {', '.join(sorted(allowed))}")

    sort_order = (args.get("sort_order") or "desc").lower()
    if sort_order not in ("asc", "desc"):
        raise BadRequestError("sort_order must be 'asc' or 'desc'")
    return sort_by, sort_order


def pick(payload: dict, allowed: Iterable[str]) -> dict:
    """Subset of payload restricted to the writable keys."""
    return {key: payload[key] for key in allowed if key in payload}
