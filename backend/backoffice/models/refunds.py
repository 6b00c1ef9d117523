from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Refund(db.Model):
    """
    Refund request against a company order.

    LIFECYCLE:
    1. PENDING: Created, awaiting approval (unless auto-approved)
    2. APPROVED: Approved by a user or by SYSTEM_AUTO_APPROVAL
    3. PROCESSING: Handed to the payment gateway
    4. COMPLETED / FAILED: Settlement outcome
    REJECTED and CANCELLED are terminal side exits.

    Amounts are stored in cents. approval_level (TIER_1..3) is derived from
    the requested amount and does not depend on auto-approval.
    """
    __tablename__ = "refunds"
    __table_args__ = (
        db.Index("ix_refunds_company_status_created", "company_id", "status", "created_at"),
        db.Index("ix_refunds_created_id", "created_at", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    refund_number = db.Column(db.String(32), nullable=False, unique=True)

    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False, default="FULL")
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    reason = db.Column(db.String(64), nullable=True)
    reason_details = db.Column(db.Text, nullable=True)

    requested_amount_cents = db.Column(db.Integer, nullable=False)
    approved_amount_cents = db.Column(db.Integer, nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="USD")
    method = db.Column(db.String(32), nullable=False, default="ORIGINAL_PAYMENT")

    approval_level = db.Column(db.String(16), nullable=False, default="TIER_1")
    auto_approval_rule = db.Column(db.Text, nullable=True)

    # Approver is a user id or the literal SYSTEM_AUTO_APPROVAL
    approved_by = db.Column(db.String(64), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by = db.Column(db.String(64), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    cancelled_by = db.Column(db.String(64), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Settlement
    payment_processor = db.Column(db.String(64), nullable=True)
    processor_transaction_id = db.Column(db.String(128), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    failure_reason = db.Column(db.Text, nullable=True)
    retry_count = db.Column(db.Integer, nullable=False, default=0)

    initiated_by = db.Column(db.String(64), nullable=True)
    channel = db.Column(db.String(32), nullable=True)
    tags = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    company = db.relationship("Company", backref=db.backref("refunds", lazy=True))
    order = db.relationship("Order", backref=db.backref("refunds", lazy=True))

    def __repr__(self) -> str:
        return f"<Refund id={self.id} status={self.status} company_id={self.company_id}>"

    def to_dict(self, include_order: bool = False) -> dict:
        data = {
            "id": self.id,
            "refund_number": self.refund_number,
            "company_id": self.company_id,
            "customer_id": self.customer_id,
            "order_id": self.order_id,
            "type": self.type,
            "status": self.status,
            "reason": self.reason,
            "reason_details": self.reason_details,
            "requested_amount_cents": self.requested_amount_cents,
            "approved_amount_cents": self.approved_amount_cents,
            "currency": self.currency,
            "method": self.method,
            "approval_level": self.approval_level,
            "auto_approval_rule": self.auto_approval_rule,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "rejected_by": self.rejected_by,
            "rejected_at": to_utc_z(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "cancelled_by": self.cancelled_by,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "payment_processor": self.payment_processor,
            "processor_transaction_id": self.processor_transaction_id,
            "processed_at": to_utc_z(self.processed_at),
            "completed_at": to_utc_z(self.completed_at),
            "failure_reason": self.failure_reason,
            "retry_count": self.retry_count,
            "initiated_by": self.initiated_by,
            "channel": self.channel,
            "tags": list(self.tags or []),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_order and self.order is not None:
            data["order"] = self.order.to_summary()
        return data


class RefundSettings(db.Model):
    """Per-company refund policy. Created lazily with defaults on first read."""
    __tablename__ = "refund_settings"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, unique=True)

    auto_approval_enabled = db.Column(db.Boolean, nullable=False, default=False)
    auto_approval_max_amount_cents = db.Column(db.Integer, nullable=False, default=10000)
    auto_approval_max_days = db.Column(db.Integer, nullable=False, default=30)
    require_reason = db.Column(db.Boolean, nullable=False, default=True)
    require_approval = db.Column(db.Boolean, nullable=False, default=True)
    allow_partial_refunds = db.Column(db.Boolean, nullable=False, default=True)
    notify_on_request = db.Column(db.Boolean, nullable=False, default=True)
    notify_on_approval = db.Column(db.Boolean, nullable=False, default=True)
    notify_on_completion = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    company = db.relationship("Company", backref=db.backref("refund_settings", uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "auto_approval_enabled": self.auto_approval_enabled,
            "auto_approval_max_amount_cents": self.auto_approval_max_amount_cents,
            "auto_approval_max_days": self.auto_approval_max_days,
            "require_reason": self.require_reason,
            "require_approval": self.require_approval,
            "allow_partial_refunds": self.allow_partial_refunds,
            "notify_on_request": self.notify_on_request,
            "notify_on_approval": self.notify_on_approval,
            "notify_on_completion": self.notify_on_completion,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
