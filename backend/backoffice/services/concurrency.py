# Overview: Retry helpers for writes that race on unique columns.

from __future__ import annotations

import time

from sqlalchemy.exc import IntegrityError, OperationalError

from ..extensions import db


def run_with_retry(
    func,
    *,
    attempts: int = 3,
    backoff_base: float = 0.0,
    retry_on: tuple[type[Exception], ...] = (IntegrityError, OperationalError),
):
    """
    Execute a DB operation, rolling back and re-running it on failure.

    func must redo all of its reads on every call: after a rollback the
    session is empty and any snapshot taken earlier is stale.
    """
    for attempt in range(attempts):
        try:
            return func()
        except retry_on:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            if backoff_base:
                time.sleep(backoff_base * (2 ** attempt))
