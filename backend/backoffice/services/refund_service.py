# Overview: Service-layer operations for refunds; encapsulates business logic and database work.

"""
Refund Service

WHY: Refunds move money back to customers, so every step is gated by an
explicit status transition and stamped with who made it.

LIFECYCLE:
    PENDING  -> APPROVED | REJECTED | CANCELLED
    APPROVED -> PROCESSING | CANCELLED
    PROCESSING -> COMPLETED | FAILED
Any other transition raises BadRequestError naming the current status.

AUTO-APPROVAL (per-company RefundSettings):
- enabled AND requested <= max amount AND whole days since order <= max days
- both bounds are inclusive
- approver is recorded as SYSTEM_AUTO_APPROVAL with the rule that matched

APPROVAL TIERS (requested amount, independent of auto-approval):
- TIER_1 below 100.00, TIER_2 from 100.00, TIER_3 from 500.00

SETTLEMENT: process_refund hands the refund to the configured gateway. The
stub gateway settles immediately; other gateways leave the refund in
PROCESSING until complete_refund / fail_refund is called back.

All amounts are integer cents.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import BadRequestError, NotFoundError
from ..models import Order, Refund, RefundSettings
from ..time_utils import hours_between, utcnow, whole_days_between
from . import audit_service
from .concurrency import run_with_retry
from .pagination import paginate_by_cursor
from .scope_service import Principal, actor_id, company_scope_for


STATUS_PENDING = "PENDING"
STATUS_APPROVED = "APPROVED"
STATUS_REJECTED = "REJECTED"
STATUS_PROCESSING = "PROCESSING"
STATUS_COMPLETED = "COMPLETED"
STATUS_CANCELLED = "CANCELLED"
STATUS_FAILED = "FAILED"
REFUND_STATUSES = (
    STATUS_PENDING,
    STATUS_APPROVED,
    STATUS_REJECTED,
    STATUS_PROCESSING,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
    STATUS_FAILED,
)

ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_APPROVED, STATUS_REJECTED, STATUS_CANCELLED},
    STATUS_APPROVED: {STATUS_PROCESSING, STATUS_CANCELLED},
    STATUS_PROCESSING: {STATUS_COMPLETED, STATUS_FAILED},
}

REFUND_TYPES = {"FULL", "PARTIAL", "SHIPPING_ONLY", "ITEM_SPECIFIC"}
REFUND_METHODS = {"ORIGINAL_PAYMENT", "STORE_CREDIT", "GIFT_CARD", "CHECK", "BANK_TRANSFER"}

TIER_2_THRESHOLD_CENTS = 10000
TIER_3_THRESHOLD_CENTS = 50000

SYSTEM_AUTO_APPROVAL = "SYSTEM_AUTO_APPROVAL"
STUB_GATEWAY = "stub"

SETTINGS_MUTABLE_FIELDS = {
    "auto_approval_enabled",
    "auto_approval_max_amount_cents",
    "auto_approval_max_days",
    "require_reason",
    "require_approval",
    "allow_partial_refunds",
    "notify_on_request",
    "notify_on_approval",
    "notify_on_completion",
}


def format_cents(cents: int) -> str:
    """12345 -> "123.45" """
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100}.{cents % 100:02d}"


def approval_level_for(amount_cents: int) -> str:
    if amount_cents >= TIER_3_THRESHOLD_CENTS:
        return "TIER_3"
    if amount_cents >= TIER_2_THRESHOLD_CENTS:
        return "TIER_2"
    return "TIER_1"


def auto_approval_rule(
    settings: RefundSettings,
    requested_amount_cents: int,
    ordered_at: datetime,
    now: datetime,
) -> str | None:
    """
    The rule text when the refund qualifies for auto-approval, else None.
    """
    if not settings.auto_approval_enabled:
        return None

    days_since_order = whole_days_between(ordered_at, now)
    if (
        requested_amount_cents <= settings.auto_approval_max_amount_cents
        and days_since_order <= settings.auto_approval_max_days
    ):
        return (
            f"AUTO_APPROVED: Amount {format_cents(requested_amount_cents)} "
            f"<= {format_cents(settings.auto_approval_max_amount_cents)}, "
            f"Days {days_since_order} <= {settings.auto_approval_max_days}"
        )
    return None


def _require_transition(refund: Refund, target: str, verb: str) -> None:
    if target not in ALLOWED_TRANSITIONS.get(refund.status, set()):
        raise BadRequestError(f"Cannot {verb} refund with status {refund.status}")


def _get_company_refund(company_id: int, refund_id: int) -> Refund:
    refund = db.session.query(Refund).filter(
        Refund.id == refund_id,
        Refund.company_id == company_id,
    ).first()
    if not refund:
        raise NotFoundError(f"Refund {refund_id} not found")
    return refund


def _next_refund_number() -> str:
    count = db.session.query(func.count(Refund.id)).scalar() or 0
    return f"RF-{count + 1:05d}"


# =============================================================================
# SETTINGS
# =============================================================================

def get_settings(company_id: int) -> RefundSettings:
    """Load the company's refund settings, creating the defaults on first use."""
    settings = db.session.query(RefundSettings).filter_by(company_id=company_id).first()
    if settings:
        return settings

    settings = RefundSettings(
        company_id=company_id,
        auto_approval_enabled=False,
        auto_approval_max_amount_cents=10000,
        auto_approval_max_days=30,
        require_reason=True,
        require_approval=True,
        allow_partial_refunds=True,
        notify_on_request=True,
        notify_on_approval=True,
        notify_on_completion=True,
    )
    try:
        db.session.add(settings)
        db.session.commit()
    except IntegrityError:
        # Created concurrently by another request
        db.session.rollback()
        settings = db.session.query(RefundSettings).filter_by(company_id=company_id).one()
    return settings


def update_settings(principal: Principal, company_id: int, patch: dict) -> RefundSettings:
    settings = get_settings(company_id)

    changes = {}
    for key, value in patch.items():
        if key not in SETTINGS_MUTABLE_FIELDS:
            continue
        if key in ("auto_approval_max_amount_cents", "auto_approval_max_days"):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise BadRequestError(f"{key} must be a non-negative integer")
        elif not isinstance(value, bool):
            raise BadRequestError(f"{key} must be a boolean")

        before = getattr(settings, key)
        if before != value:
            changes[key] = {"before": before, "after": value}
            setattr(settings, key, value)

    db.session.commit()

    current_app.logger.info("Updated refund settings for company %s", company_id)
    audit_service.log_for(principal, audit_service.ACTION_UPDATE, "RefundSettings", settings.id, changes=changes)
    return settings


# =============================================================================
# CREATE
# =============================================================================

def create_refund(principal: Principal, company_id: int, payload: dict) -> Refund:
    """
    Create a refund for an order of the company.

    payload keys: order_id, customer_id, requested_amount_cents (required);
    type, reason, reason_details, currency, method, initiated_by, channel,
    tags (optional).

    Raises:
        NotFoundError: order missing or belongs to another company
        BadRequestError: customer mismatch, invalid amount, missing reason
    """
    order = db.session.query(Order).filter(
        Order.id == payload.get("order_id"),
        Order.company_id == company_id,
    ).first()
    if not order:
        raise NotFoundError(f"Order {payload.get('order_id')} not found")

    if order.customer_id != payload.get("customer_id"):
        raise BadRequestError("Customer does not match order")

    requested = payload.get("requested_amount_cents")
    if isinstance(requested, bool) or not isinstance(requested, int) or requested <= 0:
        raise BadRequestError("requested_amount_cents must be a positive integer")

    refund_type = payload.get("type") or "FULL"
    if refund_type not in REFUND_TYPES:
        raise BadRequestError(f"Invalid refund type: {refund_type}")
    method = payload.get("method") or "ORIGINAL_PAYMENT"
    if method not in REFUND_METHODS:
        raise BadRequestError(f"Invalid refund method: {method}")

    settings = get_settings(company_id)
    if settings.require_reason and not payload.get("reason"):
        raise BadRequestError("A refund reason is required")

    now = utcnow()
    rule = auto_approval_rule(settings, requested, order.ordered_at, now)
    approval_level = approval_level_for(requested)

    def _create() -> Refund:
        refund = Refund(
            refund_number=_next_refund_number(),
            company_id=company_id,
            customer_id=order.customer_id,
            order_id=order.id,
            type=refund_type,
            status=STATUS_APPROVED if rule else STATUS_PENDING,
            reason=payload.get("reason"),
            reason_details=payload.get("reason_details"),
            requested_amount_cents=requested,
            approved_amount_cents=requested if rule else None,
            currency=(payload.get("currency") or order.currency or "USD").upper(),
            method=method,
            approval_level=approval_level,
            auto_approval_rule=rule,
            approved_by=SYSTEM_AUTO_APPROVAL if rule else None,
            approved_at=now if rule else None,
            initiated_by=payload.get("initiated_by") or actor_id(principal),
            channel=payload.get("channel"),
            tags=list(payload.get("tags") or []),
            created_at=now,
        )
        db.session.add(refund)
        db.session.commit()
        return refund

    refund = run_with_retry(
        _create,
        attempts=current_app.config["CODE_RESERVE_ATTEMPTS"],
        retry_on=(IntegrityError,),
    )

    if rule:
        current_app.logger.info("Auto-approved refund %s for order %s: %s", refund.id, order.id, rule)
    current_app.logger.info(
        "Created refund %s for order %s by user %s", refund.id, order.id, principal.user_id
    )

    audit_service.log_for(
        principal,
        audit_service.ACTION_CREATE,
        "Refund",
        refund.id,
        metadata={
            "refund_number": refund.refund_number,
            "order_id": order.id,
            "company_id": company_id,
            "requested_amount_cents": requested,
            "status": refund.status,
            "approval_level": approval_level,
            "auto_approval_rule": rule,
        },
    )
    return refund


# =============================================================================
# READ
# =============================================================================

def _refund_query(principal: Principal, company_id: int | None, filters: dict):
    query = db.session.query(Refund)

    if company_id is not None:
        query = query.filter(Refund.company_id == company_id)
    else:
        visible = company_scope_for(principal).company_ids_subquery()
        query = query.filter(Refund.company_id.in_(db.select(visible.c.id)))

    for key in ("customer_id", "order_id", "status", "type", "reason", "initiated_by"):
        value = filters.get(key)
        if value is not None and value != "":
            query = query.filter(getattr(Refund, key) == value)

    if filters.get("start_date"):
        query = query.filter(Refund.created_at >= filters["start_date"])
    if filters.get("end_date"):
        query = query.filter(Refund.created_at <= filters["end_date"])

    search = filters.get("search")
    if search:
        search_term = f"%{search}%"
        query = query.filter(
            db.or_(
                Refund.refund_number.ilike(search_term),
                Refund.reason_details.ilike(search_term),
                Refund.initiated_by.ilike(search_term),
            )
        )
    return query


def list_refunds(
    principal: Principal,
    company_id: int | None,
    filters: dict | None = None,
    *,
    limit: int = 20,
    offset: int = 0,
    cursor: str | None = None,
) -> dict:
    """
    company_id=None lists refunds of every company visible to the principal.

    Returns {"refunds", "total"} for offset pagination, or
    {"items", "next_cursor", "has_more"} when cursor is not None (an empty
    cursor starts keyset pagination at the newest refund).
    """
    query = _refund_query(principal, company_id, filters or {})

    if cursor is not None:
        return paginate_by_cursor(query, Refund.created_at, Refund.id, cursor=cursor, limit=limit)

    total = query.count()
    refunds = query.order_by(Refund.created_at.desc(), Refund.id.desc()).offset(offset).limit(limit).all()
    return {"refunds": refunds, "total": total}


def get_refund(company_id: int, refund_id: int) -> Refund:
    return _get_company_refund(company_id, refund_id)


def get_refund_stats(
    principal: Principal,
    company_id: int | None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict:
    query = _refund_query(principal, company_id, {"start_date": start_date, "end_date": end_date})
    ids = query.with_entities(Refund.id).subquery()
    scoped = db.session.query(Refund).filter(Refund.id.in_(db.select(ids.c.id)))

    by_status = dict(
        scoped.with_entities(Refund.status, func.count(Refund.id)).group_by(Refund.status).all()
    )

    completed = scoped.filter(Refund.status == STATUS_COMPLETED)
    completed_count, completed_sum = completed.with_entities(
        func.count(Refund.id),
        func.coalesce(func.sum(Refund.approved_amount_cents), 0),
    ).one()

    stats = {
        "total_refunds": sum(by_status.values()),
        "pending_refunds": by_status.get(STATUS_PENDING, 0),
        "approved_refunds": by_status.get(STATUS_APPROVED, 0),
        "processing_refunds": by_status.get(STATUS_PROCESSING, 0),
        "completed_refunds": by_status.get(STATUS_COMPLETED, 0),
        "rejected_refunds": by_status.get(STATUS_REJECTED, 0),
        "cancelled_refunds": by_status.get(STATUS_CANCELLED, 0),
        "failed_refunds": by_status.get(STATUS_FAILED, 0),
        "total_refunded_amount_cents": int(completed_sum),
        "average_refund_amount_cents": round(completed_sum / completed_count) if completed_count else 0,
    }

    timings = completed.filter(Refund.completed_at.isnot(None)).with_entities(
        Refund.created_at, Refund.completed_at
    ).all()
    if timings:
        total_hours = sum(hours_between(created, done) for created, done in timings)
        stats["average_processing_time_hours"] = round(total_hours / len(timings), 2)

    return stats


# =============================================================================
# TRANSITIONS
# =============================================================================

def approve_refund(
    principal: Principal,
    company_id: int,
    refund_id: int,
    *,
    approved_amount_cents: int | None = None,
    notes: str | None = None,
) -> Refund:
    """
    PENDING -> APPROVED. The approved amount defaults to the requested one.

    Raises:
        BadRequestError: not PENDING, amount above request, or a partial amount
            while the company does not allow partial refunds
    """
    refund = _get_company_refund(company_id, refund_id)
    _require_transition(refund, STATUS_APPROVED, "approve")

    amount = refund.requested_amount_cents if approved_amount_cents is None else approved_amount_cents
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise BadRequestError("approved_amount_cents must be a positive integer")
    if amount > refund.requested_amount_cents:
        raise BadRequestError("Approved amount cannot exceed the requested amount")
    if amount < refund.requested_amount_cents and not get_settings(company_id).allow_partial_refunds:
        raise BadRequestError("Partial refunds are not allowed for this company")

    refund.status = STATUS_APPROVED
    refund.approved_amount_cents = amount
    refund.approved_by = actor_id(principal)
    refund.approved_at = utcnow()
    db.session.commit()

    current_app.logger.info(
        "Refund %s approved by user %s for %s", refund.id, principal.user_id, format_cents(amount)
    )
    audit_service.log_for(
        principal,
        audit_service.ACTION_APPROVE,
        "Refund",
        refund.id,
        changes={"status": {"before": STATUS_PENDING, "after": STATUS_APPROVED}},
        metadata={"approved_amount_cents": amount, "notes": notes},
    )
    return refund


def reject_refund(principal: Principal, company_id: int, refund_id: int, *, rejection_reason: str) -> Refund:
    refund = _get_company_refund(company_id, refund_id)
    _require_transition(refund, STATUS_REJECTED, "reject")

    if not rejection_reason or not rejection_reason.strip():
        raise BadRequestError("rejection_reason is required")

    refund.status = STATUS_REJECTED
    refund.rejected_by = actor_id(principal)
    refund.rejected_at = utcnow()
    refund.rejection_reason = rejection_reason.strip()
    db.session.commit()

    current_app.logger.info("Refund %s rejected by user %s", refund.id, principal.user_id)
    audit_service.log_for(
        principal,
        audit_service.ACTION_REJECT,
        "Refund",
        refund.id,
        changes={"status": {"before": STATUS_PENDING, "after": STATUS_REJECTED}},
        metadata={"rejection_reason": refund.rejection_reason},
    )
    return refund


def _submit_to_gateway(refund: Refund) -> str | None:
    """
    Hand the refund to the configured gateway. Returns the processor
    transaction id when the gateway settled synchronously, None otherwise.
    """
    if current_app.config["REFUND_PAYMENT_GATEWAY"] == STUB_GATEWAY:
        return f"stub_{uuid.uuid4().hex[:16]}"
    return None


def process_refund(principal: Principal, company_id: int, refund_id: int) -> Refund:
    """
    APPROVED -> PROCESSING, then submit to the gateway. With the stub gateway
    the refund comes back COMPLETED.
    """
    refund = _get_company_refund(company_id, refund_id)
    if refund.status != STATUS_APPROVED:
        raise BadRequestError(
            f"Cannot process refund with status {refund.status}. Refund must be approved first."
        )

    refund.status = STATUS_PROCESSING
    refund.processed_at = utcnow()
    refund.payment_processor = current_app.config["REFUND_PAYMENT_GATEWAY"]
    db.session.commit()

    current_app.logger.info("Refund %s set to processing by user %s", refund.id, principal.user_id)
    audit_service.log_for(
        principal,
        audit_service.ACTION_PROCESS,
        "Refund",
        refund.id,
        changes={"status": {"before": STATUS_APPROVED, "after": STATUS_PROCESSING}},
        metadata={"payment_processor": refund.payment_processor},
    )

    transaction_id = _submit_to_gateway(refund)
    if transaction_id is None:
        return refund
    return complete_refund(principal, company_id, refund.id, processor_transaction_id=transaction_id)


def complete_refund(
    principal: Principal,
    company_id: int,
    refund_id: int,
    *,
    processor_transaction_id: str | None = None,
) -> Refund:
    """Settlement callback: PROCESSING -> COMPLETED."""
    refund = _get_company_refund(company_id, refund_id)
    _require_transition(refund, STATUS_COMPLETED, "complete")

    refund.status = STATUS_COMPLETED
    refund.completed_at = utcnow()
    if processor_transaction_id:
        refund.processor_transaction_id = processor_transaction_id
    db.session.commit()

    current_app.logger.info("Refund %s completed successfully", refund.id)
    audit_service.log_for(
        principal,
        audit_service.ACTION_UPDATE,
        "Refund",
        refund.id,
        changes={"status": {"before": STATUS_PROCESSING, "after": STATUS_COMPLETED}},
        metadata={"processor_transaction_id": refund.processor_transaction_id},
    )
    return refund


def fail_refund(principal: Principal, company_id: int, refund_id: int, *, failure_reason: str) -> Refund:
    """Settlement callback: PROCESSING -> FAILED."""
    refund = _get_company_refund(company_id, refund_id)
    _require_transition(refund, STATUS_FAILED, "fail")

    refund.status = STATUS_FAILED
    refund.failure_reason = failure_reason
    refund.retry_count = (refund.retry_count or 0) + 1
    db.session.commit()

    current_app.logger.warning("Refund %s failed: %s", refund.id, failure_reason)
    audit_service.log_for(
        principal,
        audit_service.ACTION_UPDATE,
        "Refund",
        refund.id,
        changes={"status": {"before": STATUS_PROCESSING, "after": STATUS_FAILED}},
        metadata={"failure_reason": failure_reason},
    )
    return refund


def cancel_refund(principal: Principal, company_id: int, refund_id: int) -> Refund:
    """PENDING or APPROVED -> CANCELLED."""
    refund = _get_company_refund(company_id, refund_id)
    _require_transition(refund, STATUS_CANCELLED, "cancel")

    before = refund.status
    refund.status = STATUS_CANCELLED
    refund.cancelled_by = actor_id(principal)
    refund.cancelled_at = utcnow()
    db.session.commit()

    current_app.logger.info("Refund %s cancelled by user %s", refund.id, principal.user_id)
    audit_service.log_for(
        principal,
        audit_service.ACTION_CANCEL,
        "Refund",
        refund.id,
        changes={"status": {"before": before, "after": STATUS_CANCELLED}},
    )
    return refund
