# Overview: Service-layer operations for the audit trail.

"""
Audit Log Emitter

DESIGN:
- Called strictly after the business transaction has committed
- Writes in its own commit; a failure is rolled back and logged as a
  warning, and never changes the outcome of the business operation
- Nothing else is pending in the session when this runs, so the rollback
  only discards the audit row
"""

from __future__ import annotations

from typing import Any

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AuditLog


ACTION_CREATE = "CREATE"
ACTION_UPDATE = "UPDATE"
ACTION_SOFT_DELETE = "SOFT_DELETE"
ACTION_DELETE = "DELETE"
ACTION_APPROVE = "APPROVE"
ACTION_REJECT = "REJECT"
ACTION_CANCEL = "CANCEL"
ACTION_PROCESS = "PROCESS"
ACTION_ACCESS_DENIED = "ACCESS_DENIED"


def log(
    action: str,
    entity_type: str,
    entity_id: Any,
    *,
    user_id: Any = None,
    scope_type: str | None = None,
    scope_id: Any = None,
    metadata: dict | None = None,
    changes: dict | None = None,
) -> AuditLog | None:
    """
    Append an audit entry. Returns None (after logging a warning) when the
    entry could not be stored.
    """
    entry = AuditLog(
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        user_id=str(user_id) if user_id is not None else None,
        scope_type=scope_type,
        scope_id=str(scope_id) if scope_id is not None else None,
        metadata_json=metadata,
        changes_json=changes,
    )
    try:
        db.session.add(entry)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning(
            "Audit log write failed: %s %s %s", action, entity_type, entity_id, exc_info=True
        )
        return None
    return entry


def log_for(principal, action: str, entity_type: str, entity_id: Any, **kwargs) -> AuditLog | None:
    """Audit entry attributed to a principal (user, scope type and scope id)."""
    return log(
        action,
        entity_type,
        entity_id,
        user_id=principal.user_id,
        scope_type=principal.scope_type,
        scope_id=principal.scope_id,
        **kwargs,
    )
