# Overview: Flask API routes for company management; parses input and returns JSON responses.

"""
Company Routes

SECURITY: All routes require authentication and ORGANIZATION or CLIENT scope.
- ORGANIZATION: manages companies of every client in the organization
- CLIENT: manages only its own client's companies
Companies outside the caller's scope are reported as 404.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_scope
from ..errors import ServiceError
from ..models.auth import SCOPE_CLIENT, SCOPE_ORGANIZATION
from ..services import company_service
from ..validation import get_json_payload, parse_int, parse_pagination, parse_sort, pick


companies_bp = Blueprint("companies", __name__, url_prefix="/api/companies")


@companies_bp.get("")
@require_auth
@require_scope(SCOPE_ORGANIZATION, SCOPE_CLIENT)
def list_companies_route():
    """
    Query parameters:
    - client_id: Restrict to one client (ORGANIZATION scope)
    - search: Name, code or domain (case-insensitive)
    - status: ACTIVE | INACTIVE | SUSPENDED
    - sort_by / sort_order
    - limit (1-100, default 50), offset

    Returns:
        {companies: Company[], total: int}
    """
    try:
        args = request.args
        limit, offset = parse_pagination(args, default_limit=50)
        sort_by, sort_order = parse_sort(args, company_service.SORTABLE_FIELDS)

        companies, total = company_service.list_companies(
            g.principal,
            client_id=parse_int(args.get("client_id"), "client_id"),
            search=args.get("search"),
            status=args.get("status"),
            sort_by=sort_by,
            sort_order=sort_order,
            limit=limit,
            offset=offset,
        )
        return jsonify({"companies": [c.to_dict() for c in companies], "total": total})

    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list companies")
        return jsonify({"error": "Internal server error"}), 500


@companies_bp.get("/stats")
@require_auth
@require_scope(SCOPE_ORGANIZATION, SCOPE_CLIENT)
def company_stats_route():
    try:
        return jsonify(company_service.get_company_stats(g.principal))
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute company stats")
        return jsonify({"error": "Internal server error"}), 500


@companies_bp.post("")
@require_auth
@require_scope(SCOPE_ORGANIZATION, SCOPE_CLIENT)
def create_company_route():
    """
    Create a company and its default site.

    Request body:
    {
        "name": "Acme",           // required
        "client_id": 3,           // required for ORGANIZATION scope
        "domain": "acme.example",
        "logo": "https://...",
        "timezone": "UTC",
        "currency": "USD"
    }

    Returns:
        201: {company: Company}
    """
    try:
        data = get_json_payload()
        company = company_service.create_company(
            g.principal,
            name=data.get("name"),
            client_id=parse_int(data.get("client_id"), "client_id"),
            domain=data.get("domain"),
            logo=data.get("logo"),
            timezone=data.get("timezone"),
            currency=data.get("currency"),
        )
        return jsonify({"company": company.to_dict()}), 201

    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create company")
        return jsonify({"error": "Internal server error"}), 500


@companies_bp.get("/<int:company_id>")
@require_auth
@require_scope(SCOPE_ORGANIZATION, SCOPE_CLIENT)
def get_company_route(company_id: int):
    try:
        company = company_service.get_company(g.principal, company_id)
        return jsonify({"company": company.to_dict()})
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get company")
        return jsonify({"error": "Internal server error"}), 500


@companies_bp.patch("/<int:company_id>")
@require_auth
@require_scope(SCOPE_ORGANIZATION, SCOPE_CLIENT)
def update_company_route(company_id: int):
    try:
        patch = pick(get_json_payload(), company_service.COMPANY_MUTABLE_FIELDS)
        company = company_service.update_company(g.principal, company_id, patch)
        return jsonify({"company": company.to_dict()})
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update company")
        return jsonify({"error": "Internal server error"}), 500


@companies_bp.delete("/<int:company_id>")
@require_auth
@require_scope(SCOPE_ORGANIZATION, SCOPE_CLIENT)
def delete_company_route(company_id: int):
    """Soft delete; the company disappears from every read."""
    try:
        company_service.delete_company(g.principal, company_id)
        return jsonify({"success": True, "message": "Company deleted"})
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete company")
        return jsonify({"error": "Internal server error"}), 500
