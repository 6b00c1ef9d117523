# Overview: Flask API routes for vendors, vendor companies and vendor connections.

"""
Vendor Admin Routes

SECURITY: All routes require authentication.
- Reads: ORGANIZATION and CLIENT scope (within the resolved organization)
- Writes: ORGANIZATION scope (enforced by the services)
- Connection approval: any principal that can access the buyer company

Vendors are scoped to organizations (multi-tenant).
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_scope
from ..errors import BadRequestError, ServiceError
from ..models.auth import SCOPE_CLIENT, SCOPE_ORGANIZATION
from ..services import vendor_company_service, vendor_connection_service, vendor_service
from ..validation import get_json_payload, parse_bool, parse_int, parse_pagination, parse_sort, pick


vendors_bp = Blueprint("vendors", __name__, url_prefix="/api/admin")


def _error_response(e: ServiceError):
    return jsonify({"error": str(e)}), e.status_code


def _internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# VENDORS
# =============================================================================

@vendors_bp.get("/vendors")
@require_auth
@require_scope(SCOPE_ORGANIZATION, SCOPE_CLIENT)
def list_vendors_route():
    """
    Query parameters:
    - search: Name, code or contact email
    - status: PENDING_VERIFICATION | VERIFIED | ACTIVE | SUSPENDED | INACTIVE
    - is_verified: true | false
    - sort_by / sort_order
    - limit (1-100, default 50), offset

    Returns:
        {vendors: Vendor[], total: int}
    """
    try:
        args = request.args
        limit, offset = parse_pagination(args)
        sort_by, sort_order = parse_sort(args, vendor_service.SORTABLE_FIELDS)
        vendors, total = vendor_service.list_vendors(
            g.principal,
            search=args.get("search"),
            status=args.get("status"),
            is_verified=parse_bool(args.get("is_verified"), "is_verified"),
            sort_by=sort_by,
            sort_order=sort_order,
            limit=limit,
            offset=offset,
        )
        return jsonify({"vendors": [v.to_dict() for v in vendors], "total": total})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to list vendors")


@vendors_bp.post("/vendors")
@require_auth
@require_scope(SCOPE_ORGANIZATION)
def create_vendor_route():
    """
    Request body:
    {
        "name": "Vendor Name",   // required
        "contact_name": "...",
        "contact_email": "...",
        "contact_phone": "...",
        "website": "..."
    }
    """
    try:
        data = get_json_payload()
        vendor = vendor_service.create_vendor(
            g.principal,
            name=data.get("name"),
            contact_name=data.get("contact_name"),
            contact_email=data.get("contact_email"),
            contact_phone=data.get("contact_phone"),
            website=data.get("website"),
        )
        return jsonify({"vendor": vendor.to_dict()}), 201
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to create vendor")


@vendors_bp.get("/vendors/<int:vendor_id>")
@require_auth
@require_scope(SCOPE_ORGANIZATION, SCOPE_CLIENT)
def get_vendor_route(vendor_id: int):
    try:
        return jsonify({"vendor": vendor_service.get_vendor(g.principal, vendor_id).to_dict()})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to get vendor")


@vendors_bp.patch("/vendors/<int:vendor_id>")
@require_auth
@require_scope(SCOPE_ORGANIZATION)
def update_vendor_route(vendor_id: int):
    try:
        patch = pick(get_json_payload(), vendor_service.VENDOR_MUTABLE_FIELDS)
        vendor = vendor_service.update_vendor(g.principal, vendor_id, patch)
        return jsonify({"vendor": vendor.to_dict()})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to update vendor")


@vendors_bp.post("/vendors/<int:vendor_id>/verify")
@require_auth
@require_scope(SCOPE_ORGANIZATION)
def verify_vendor_route(vendor_id: int):
    try:
        vendor = vendor_service.verify_vendor(g.principal, vendor_id)
        return jsonify({"vendor": vendor.to_dict()})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to verify vendor")


@vendors_bp.delete("/vendors/<int:vendor_id>")
@require_auth
@require_scope(SCOPE_ORGANIZATION)
def delete_vendor_route(vendor_id: int):
    """Soft delete with cascade; returns the cascade_id."""
    try:
        cascade_id = vendor_service.delete_vendor(g.principal, vendor_id)
        return jsonify({"success": True, "cascade_id": cascade_id})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to delete vendor")


# =============================================================================
# VENDOR COMPANIES
# =============================================================================

@vendors_bp.get("/vendor-companies")
@require_auth
@require_scope(SCOPE_ORGANIZATION, SCOPE_CLIENT)
def list_vendor_companies_route():
    try:
        args = request.args
        limit, offset = parse_pagination(args)
        items, total = vendor_company_service.list_vendor_companies(
            g.principal,
            vendor_id=parse_int(args.get("vendor_id"), "vendor_id"),
            search=args.get("search"),
            status=args.get("status"),
            limit=limit,
            offset=offset,
        )
        return jsonify({"vendor_companies": [vc.to_dict() for vc in items], "total": total})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to list vendor companies")


@vendors_bp.post("/vendor-companies")
@require_auth
@require_scope(SCOPE_ORGANIZATION)
def create_vendor_company_route():
    """
    Request body:
    {
        "vendor_id": 1,      // required
        "name": "...",       // required
        "domain": "...",
        "status": "ACTIVE"
    }
    """
    try:
        data = get_json_payload()
        vendor_company = vendor_company_service.create_vendor_company(
            g.principal,
            vendor_id=parse_int(data.get("vendor_id"), "vendor_id", required=True),
            name=data.get("name"),
            domain=data.get("domain"),
            status=data.get("status") or "ACTIVE",
        )
        return jsonify({"vendor_company": vendor_company.to_dict()}), 201
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to create vendor company")


@vendors_bp.get("/vendor-companies/<int:vendor_company_id>")
@require_auth
@require_scope(SCOPE_ORGANIZATION, SCOPE_CLIENT)
def get_vendor_company_route(vendor_company_id: int):
    try:
        vendor_company = vendor_company_service.get_vendor_company(g.principal, vendor_company_id)
        return jsonify({"vendor_company": vendor_company.to_dict()})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to get vendor company")


@vendors_bp.patch("/vendor-companies/<int:vendor_company_id>")
@require_auth
@require_scope(SCOPE_ORGANIZATION)
def update_vendor_company_route(vendor_company_id: int):
    try:
        patch = pick(get_json_payload(), ("name", "domain", "status"))
        vendor_company = vendor_company_service.update_vendor_company(g.principal, vendor_company_id, patch)
        return jsonify({"vendor_company": vendor_company.to_dict()})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to update vendor company")


@vendors_bp.delete("/vendor-companies/<int:vendor_company_id>")
@require_auth
@require_scope(SCOPE_ORGANIZATION)
def delete_vendor_company_route(vendor_company_id: int):
    try:
        cascade_id = vendor_company_service.delete_vendor_company(g.principal, vendor_company_id)
        return jsonify({"success": True, "cascade_id": cascade_id})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to delete vendor company")


# =============================================================================
# VENDOR CONNECTIONS
# =============================================================================

@vendors_bp.get("/vendor-connections")
@require_auth
@require_scope(SCOPE_ORGANIZATION, SCOPE_CLIENT)
def list_connections_route():
    try:
        args = request.args
        limit, offset = parse_pagination(args)
        items, total = vendor_connection_service.list_connections(
            g.principal,
            vendor_company_id=parse_int(args.get("vendor_company_id"), "vendor_company_id"),
            company_id=parse_int(args.get("company_id"), "company_id"),
            status=args.get("status"),
            limit=limit,
            offset=offset,
        )
        return jsonify({"connections": [c.to_dict() for c in items], "total": total})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to list vendor connections")


@vendors_bp.post("/vendor-connections")
@require_auth
@require_scope(SCOPE_ORGANIZATION)
def create_connection_route():
    """
    Request body:
    {
        "vendor_company_id": 1,   // required
        "company_id": 4,          // required, buyer company
        "notes": "..."
    }
    """
    try:
        data = get_json_payload()
        connection = vendor_connection_service.create_connection(
            g.principal,
            vendor_company_id=parse_int(data.get("vendor_company_id"), "vendor_company_id", required=True),
            company_id=parse_int(data.get("company_id"), "company_id", required=True),
            notes=data.get("notes"),
        )
        return jsonify({"connection": connection.to_dict()}), 201
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to create vendor connection")


@vendors_bp.get("/vendor-connections/<int:connection_id>")
@require_auth
@require_scope(SCOPE_ORGANIZATION, SCOPE_CLIENT)
def get_connection_route(connection_id: int):
    try:
        connection = vendor_connection_service.get_connection(g.principal, connection_id)
        return jsonify({"connection": connection.to_dict()})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to get vendor connection")


@vendors_bp.post("/vendor-connections/<int:connection_id>/approve")
@require_auth
def approve_connection_route(connection_id: int):
    """
    Request body:
    {
        "approved": true,              // required
        "rejection_reason": "..."      // when approved is false
    }
    """
    try:
        data = get_json_payload()
        approved = parse_bool(data.get("approved"), "approved")
        if approved is None:
            raise BadRequestError("approved is required")
        connection = vendor_connection_service.approve_connection(
            g.principal,
            connection_id,
            approved=approved,
            rejection_reason=data.get("rejection_reason"),
        )
        return jsonify({"connection": connection.to_dict()})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to approve vendor connection")


@vendors_bp.patch("/vendor-connections/<int:connection_id>")
@require_auth
@require_scope(SCOPE_ORGANIZATION)
def update_connection_route(connection_id: int):
    try:
        patch = pick(get_json_payload(), ("status", "notes"))
        connection = vendor_connection_service.update_connection(g.principal, connection_id, patch)
        return jsonify({"connection": connection.to_dict()})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to update vendor connection")


@vendors_bp.delete("/vendor-connections/<int:connection_id>")
@require_auth
@require_scope(SCOPE_ORGANIZATION)
def terminate_connection_route(connection_id: int):
    try:
        connection = vendor_connection_service.terminate_connection(g.principal, connection_id)
        return jsonify({"connection": connection.to_dict()})
    except ServiceError as e:
        return _error_response(e)
    except Exception:
        return _internal_error("Failed to terminate vendor connection")
