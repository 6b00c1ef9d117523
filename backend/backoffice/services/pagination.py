# Overview: Keyset (cursor) pagination over (created_at, id).

"""
Cursor Pagination

Cursors are opaque URL-safe base64 strings wrapping {"created_at", "id"} of
the last row returned. Ordering is (created_at DESC, id DESC), so the next
page is every row strictly "older" than the cursor row. Stable under
concurrent inserts, unlike offset pagination.
"""

from __future__ import annotations

import base64
import binascii
import json

from ..errors import BadRequestError
from ..time_utils import parse_iso_datetime, to_naive_utc


def encode_cursor(created_at, row_id: int) -> str:
    payload = json.dumps({"created_at": to_naive_utc(created_at).isoformat(), "id": row_id}, separators=(",", ":"))
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str):
    """Returns (created_at, id). Raises BadRequestError on a malformed cursor."""
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
        if not isinstance(data, dict) or not isinstance(data.get("created_at"), str):
            raise BadRequestError("Invalid cursor")
        created_at = parse_iso_datetime(data["created_at"])
        row_id = data["id"]
    except (binascii.Error, ValueError, KeyError, TypeError, UnicodeError):
        raise BadRequestError("Invalid cursor")
    if created_at is None or isinstance(row_id, bool) or not isinstance(row_id, int):
        raise BadRequestError("Invalid cursor")
    return created_at, row_id


def paginate_by_cursor(query, created_col, id_col, *, cursor: str | None, limit: int) -> dict:
    """
    Apply keyset pagination to query and fetch one page.

    Returns {"items": [...], "next_cursor": str | None, "has_more": bool}.
    """
    if cursor:
        created_at, row_id = decode_cursor(cursor)
        query = query.filter(
            (created_col < created_at) | ((created_col == created_at) & (id_col < row_id))
        )

    rows = query.order_by(created_col.desc(), id_col.desc()).limit(limit + 1).all()
    has_more = len(rows) > limit
    items = rows[:limit]

    next_cursor = None
    if has_more and items:
        last = items[-1]
        next_cursor = encode_cursor(last.created_at, last.id)

    return {"items": items, "next_cursor": next_cursor, "has_more": has_more}
