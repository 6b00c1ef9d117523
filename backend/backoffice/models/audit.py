from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class AuditLog(db.Model):
    """
    Audit trail of mutating back-office operations.

    IMMUTABLE: Never update or delete. Rows are written after the business
    transaction has committed.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        db.Index("ix_audit_logs_scope_created", "scope_type", "scope_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(32), nullable=False, index=True)  # CREATE, UPDATE, SOFT_DELETE, ACCESS_DENIED, ...
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.String(64), nullable=True)

    user_id = db.Column(db.String(64), nullable=True, index=True)
    scope_type = db.Column(db.String(16), nullable=True)
    scope_id = db.Column(db.String(64), nullable=True)

    metadata_json = db.Column(db.JSON, nullable=True)
    changes_json = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "scope_type": self.scope_type,
            "scope_id": self.scope_id,
            "metadata": self.metadata_json,
            "changes": self.changes_json,
            "created_at": to_utc_z(self.created_at),
        }
