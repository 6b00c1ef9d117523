# Overview: Flask API routes for the refund workflow; parses input and returns JSON responses.

# backend/backoffice/routes/refunds.py
"""
Refund API Routes

WHY: Expose the refund approval workflow (create, approve/reject, process,
settle, cancel) and the per-company refund policy.

COMPANY CONTEXT:
- COMPANY / DEPARTMENT principals always act on their own company
- ORGANIZATION / CLIENT principals may pass company_id (query string or
  body); it is checked against their place in the hierarchy and a denied
  attempt is audited
- Reads without company_id cover every company visible to the caller
- Writes and single-refund reads require a company context (403 otherwise)
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import ForbiddenError, ServiceError
from ..services import refund_service
from ..services.hierarchy_service import validate_company_access
from ..services.scope_service import CompanyPrincipal, DepartmentPrincipal, Principal
from ..validation import (
    get_json_payload,
    parse_bool,
    parse_datetime,
    parse_int,
    parse_money_cents,
    parse_pagination,
)


refunds_bp = Blueprint("refunds", __name__, url_prefix="/api/refunds")


def _requested_company_id(payload: dict | None = None) -> int | None:
    company_id = request.args.get("company_id")
    if company_id is None and payload:
        company_id = payload.get("company_id")
    return parse_int(company_id, "company_id")


def _company_id_for_query(principal: Principal, operation: str) -> int | None:
    if isinstance(principal, (CompanyPrincipal, DepartmentPrincipal)):
        return principal.company_id

    company_id = _requested_company_id()
    if company_id is not None:
        validate_company_access(principal, company_id, operation)
    return company_id


def _company_id_for_write(principal: Principal, operation: str, payload: dict | None = None) -> int:
    if isinstance(principal, (CompanyPrincipal, DepartmentPrincipal)):
        return principal.company_id

    company_id = _requested_company_id(payload)
    if company_id is None:
        raise ForbiddenError("Company context required. Pass company_id to select a company.")
    validate_company_access(principal, company_id, operation)
    return company_id


def _error_response(e: ServiceError):
    return jsonify({"error": str(e)}), e.status_code


# =============================================================================
# LIST / STATS
# =============================================================================

@refunds_bp.get("")
@require_auth
def list_refunds_route():
    """
    Query parameters:
    - company_id: ORGANIZATION / CLIENT only; omitted = all visible companies
    - customer_id, order_id, status, type, reason, initiated_by, search
    - start_date, end_date: ISO-8601, inclusive
    - limit (1-100, default 20), offset
    - cursor: switches to keyset pagination (pass an empty cursor for the
      first page)

    Returns:
        {refunds, total} or, with a cursor, {items, next_cursor, has_more}
    """
    try:
        principal = g.principal
        args = request.args
        company_id = _company_id_for_query(principal, "list refunds")
        limit, offset = parse_pagination(args, default_limit=20)

        filters = {
            "customer_id": parse_int(args.get("customer_id"), "customer_id"),
            "order_id": parse_int(args.get("order_id"), "order_id"),
            "status": args.get("status"),
            "type": args.get("type"),
            "reason": args.get("reason"),
            "initiated_by": args.get("initiated_by"),
            "start_date": parse_datetime(args.get("start_date"), "start_date"),
            "end_date": parse_datetime(args.get("end_date"), "end_date"),
            "search": args.get("search"),
        }

        result = refund_service.list_refunds(
            principal,
            company_id,
            filters,
            limit=limit,
            offset=offset,
            cursor=args.get("cursor"),
        )

        if "items" in result:
            return jsonify({
                "items": [r.to_dict() for r in result["items"]],
                "next_cursor": result["next_cursor"],
                "has_more": result["has_more"],
            })
        return jsonify({
            "refunds": [r.to_dict() for r in result["refunds"]],
            "total": result["total"],
        })

    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list refunds")
        return jsonify({"error": "Internal server error"}), 500


@refunds_bp.get("/stats")
@require_auth
def refund_stats_route():
    try:
        principal = g.principal
        company_id = _company_id_for_query(principal, "refund stats")
        stats = refund_service.get_refund_stats(
            principal,
            company_id,
            start_date=parse_datetime(request.args.get("start_date"), "start_date"),
            end_date=parse_datetime(request.args.get("end_date"), "end_date"),
        )
        return jsonify(stats)
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to compute refund stats")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CREATE / READ
# =============================================================================

@refunds_bp.post("")
@require_auth
def create_refund_route():
    """
    Request body:
    {
        "order_id": 12,                   // required
        "customer_id": 7,                 // required, must match the order
        "requested_amount_cents": 2500,   // or "requested_amount": "25.00"
        "reason": "PRODUCT_DEFECT",
        "reason_details": "...",
        "type": "FULL",
        "method": "ORIGINAL_PAYMENT",
        "currency": "USD",
        "channel": "EMAIL",
        "tags": ["vip"],
        "company_id": 3                   // ORGANIZATION / CLIENT only
    }

    Returns:
        201: {refund: Refund} (APPROVED when auto-approval matched)
    """
    try:
        principal = g.principal
        data = get_json_payload()
        company_id = _company_id_for_write(principal, "create refund", data)

        payload = {
            "order_id": parse_int(data.get("order_id"), "order_id", required=True),
            "customer_id": parse_int(data.get("customer_id"), "customer_id", required=True),
            "requested_amount_cents": parse_money_cents(data, "requested_amount", required=True),
            "type": data.get("type"),
            "reason": data.get("reason"),
            "reason_details": data.get("reason_details"),
            "currency": data.get("currency"),
            "method": data.get("method"),
            "initiated_by": data.get("initiated_by"),
            "channel": data.get("channel"),
            "tags": data.get("tags"),
        }

        refund = refund_service.create_refund(principal, company_id, payload)
        return jsonify({"refund": refund.to_dict()}), 201

    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create refund")
        return jsonify({"error": "Internal server error"}), 500


@refunds_bp.get("/<int:refund_id>")
@require_auth
def get_refund_route(refund_id: int):
    try:
        company_id = _company_id_for_write(g.principal, "view refund")
        refund = refund_service.get_refund(company_id, refund_id)
        return jsonify({"refund": refund.to_dict(include_order=True)})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get refund")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# TRANSITIONS
# =============================================================================

@refunds_bp.post("/<int:refund_id>/approve")
@require_auth
def approve_refund_route(refund_id: int):
    """
    Request body:
    {
        "approved_amount_cents": 2000,   // optional, defaults to requested
        "notes": "..."
    }
    """
    try:
        principal = g.principal
        data = get_json_payload()
        company_id = _company_id_for_write(principal, "approve refund", data)
        refund = refund_service.approve_refund(
            principal,
            company_id,
            refund_id,
            approved_amount_cents=parse_money_cents(data, "approved_amount"),
            notes=data.get("notes"),
        )
        return jsonify({"refund": refund.to_dict()})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to approve refund")
        return jsonify({"error": "Internal server error"}), 500


@refunds_bp.post("/<int:refund_id>/reject")
@require_auth
def reject_refund_route(refund_id: int):
    try:
        principal = g.principal
        data = get_json_payload()
        company_id = _company_id_for_write(principal, "reject refund", data)
        refund = refund_service.reject_refund(
            principal,
            company_id,
            refund_id,
            rejection_reason=data.get("rejection_reason"),
        )
        return jsonify({"refund": refund.to_dict()})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reject refund")
        return jsonify({"error": "Internal server error"}), 500


@refunds_bp.post("/<int:refund_id>/process")
@require_auth
def process_refund_route(refund_id: int):
    try:
        principal = g.principal
        data = get_json_payload()
        company_id = _company_id_for_write(principal, "process refund", data)
        refund = refund_service.process_refund(principal, company_id, refund_id)
        return jsonify({"refund": refund.to_dict()})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process refund")
        return jsonify({"error": "Internal server error"}), 500


@refunds_bp.post("/<int:refund_id>/complete")
@require_auth
def complete_refund_route(refund_id: int):
    """Settlement callback from the payment gateway."""
    try:
        principal = g.principal
        data = get_json_payload()
        company_id = _company_id_for_write(principal, "complete refund", data)
        refund = refund_service.complete_refund(
            principal,
            company_id,
            refund_id,
            processor_transaction_id=data.get("processor_transaction_id"),
        )
        return jsonify({"refund": refund.to_dict()})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete refund")
        return jsonify({"error": "Internal server error"}), 500


@refunds_bp.post("/<int:refund_id>/fail")
@require_auth
def fail_refund_route(refund_id: int):
    """Settlement callback from the payment gateway."""
    try:
        principal = g.principal
        data = get_json_payload()
        company_id = _company_id_for_write(principal, "fail refund", data)
        failure_reason = data.get("failure_reason")
        if not failure_reason:
            return jsonify({"error": "failure_reason is required"}), 400
        refund = refund_service.fail_refund(principal, company_id, refund_id, failure_reason=failure_reason)
        return jsonify({"refund": refund.to_dict()})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark refund as failed")
        return jsonify({"error": "Internal server error"}), 500


@refunds_bp.delete("/<int:refund_id>")
@require_auth
def cancel_refund_route(refund_id: int):
    try:
        principal = g.principal
        company_id = _company_id_for_write(principal, "cancel refund")
        refund = refund_service.cancel_refund(principal, company_id, refund_id)
        return jsonify({"refund": refund.to_dict()})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel refund")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# SETTINGS
# =============================================================================

@refunds_bp.get("/settings/current")
@require_auth
def get_refund_settings_route():
    try:
        company_id = _company_id_for_write(g.principal, "view refund settings")
        return jsonify({"settings": refund_service.get_settings(company_id).to_dict()})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get refund settings")
        return jsonify({"error": "Internal server error"}), 500


@refunds_bp.patch("/settings/current")
@require_auth
def update_refund_settings_route():
    """
    Request body: any of
    auto_approval_enabled, auto_approval_max_amount_cents (or
    auto_approval_max_amount), auto_approval_max_days, require_reason,
    require_approval, allow_partial_refunds, notify_on_request,
    notify_on_approval, notify_on_completion
    """
    try:
        principal = g.principal
        data = get_json_payload()
        company_id = _company_id_for_write(principal, "update refund settings", data)

        patch = {}
        max_amount = parse_money_cents(data, "auto_approval_max_amount")
        if max_amount is not None:
            patch["auto_approval_max_amount_cents"] = max_amount
        if "auto_approval_max_days" in data:
            patch["auto_approval_max_days"] = parse_int(
                data["auto_approval_max_days"], "auto_approval_max_days", required=True, minimum=0
            )
        for key in (
            "auto_approval_enabled",
            "require_reason",
            "require_approval",
            "allow_partial_refunds",
            "notify_on_request",
            "notify_on_approval",
            "notify_on_completion",
        ):
            if key in data:
                value = parse_bool(data[key], key)
                if value is None:
                    return jsonify({"error": f"{key} must be a boolean"}), 400
                patch[key] = value

        settings = refund_service.update_settings(principal, company_id, patch)
        return jsonify({"settings": settings.to_dict()})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update refund settings")
        return jsonify({"error": "Internal server error"}), 500
