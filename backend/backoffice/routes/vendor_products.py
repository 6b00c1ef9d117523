# Overview: Flask API routes for vendor catalog products; parses input and returns JSON responses.

"""
Vendor Product Routes

SECURITY: Reads for ORGANIZATION and CLIENT scope, writes for ORGANIZATION
scope. Products are reached through their vendor company's organization.

Prices are exchanged as integer cents ("retail_price_cents") or as decimal
amounts ("retail_price": "12.99") converted exactly.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_scope
from ..errors import BadRequestError, ServiceError
from ..models.auth import SCOPE_CLIENT, SCOPE_ORGANIZATION
from ..services import vendor_product_service
from ..validation import (
    get_json_payload,
    parse_bool,
    parse_csv,
    parse_int,
    parse_money_cents,
    parse_pagination,
    parse_sort,
)


vendor_products_bp = Blueprint("vendor_products", __name__, url_prefix="/api/admin/vendor-products")


def _product_fields(data: dict, *, partial: bool) -> dict:
    """Coerce the writable product fields present in the payload."""
    fields = {}
    for key in ("sku", "name", "description", "categories"):
        if key in data:
            fields[key] = data[key]
    for money_field in ("wholesale_price", "retail_price"):
        if f"{money_field}_cents" in data or money_field in data:
            fields[f"{money_field}_cents"] = parse_money_cents(data, money_field)
    for key in ("stock_quantity", "low_stock_threshold"):
        if key in data:
            fields[key] = parse_int(data[key], key, required=True, minimum=0)
    if "is_active" in data:
        is_active = parse_bool(data["is_active"], "is_active")
        if is_active is None:
            raise BadRequestError("is_active must be a boolean")
        fields["is_active"] = is_active
    if not partial:
        fields["vendor_company_id"] = parse_int(data.get("vendor_company_id"), "vendor_company_id", required=True)
    return fields


@vendor_products_bp.get("")
@require_auth
@require_scope(SCOPE_ORGANIZATION, SCOPE_CLIENT)
def list_products_route():
    """
    Query parameters:
    - search: Name or SKU
    - vendor_company_id
    - categories: comma-separated, matches any
    - is_active: true | false
    - low_stock: true to only return products at or below their threshold
    - sort_by / sort_order
    - limit (1-100, default 50), offset

    Returns:
        {products: VendorProduct[], total: int}
    """
    try:
        args = request.args
        limit, offset = parse_pagination(args)
        sort_by, sort_order = parse_sort(args, vendor_product_service.SORTABLE_FIELDS)
        products, total = vendor_product_service.list_products(
            g.principal,
            search=args.get("search"),
            vendor_company_id=parse_int(args.get("vendor_company_id"), "vendor_company_id"),
            categories=parse_csv(args.get("categories")),
            is_active=parse_bool(args.get("is_active"), "is_active"),
            low_stock=bool(parse_bool(args.get("low_stock"), "low_stock")),
            sort_by=sort_by,
            sort_order=sort_order,
            limit=limit,
            offset=offset,
        )
        return jsonify({"products": [p.to_dict() for p in products], "total": total})
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list vendor products")
        return jsonify({"error": "Internal server error"}), 500


@vendor_products_bp.get("/low-stock")
@require_auth
@require_scope(SCOPE_ORGANIZATION, SCOPE_CLIENT)
def low_stock_route():
    try:
        limit, _ = parse_pagination(request.args)
        products = vendor_product_service.list_low_stock(
            g.principal,
            vendor_company_id=parse_int(request.args.get("vendor_company_id"), "vendor_company_id"),
            limit=limit,
        )
        return jsonify({"products": [p.to_dict() for p in products]})
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list low stock products")
        return jsonify({"error": "Internal server error"}), 500


@vendor_products_bp.post("/bulk-stock")
@require_auth
@require_scope(SCOPE_ORGANIZATION)
def bulk_stock_route():
    """
    Request body:
    {
        "updates": [{"product_id": 1, "stock_quantity": 40}, ...]
    }

    Returns:
        200: {updated: count, failed: [product_id], errors: [{product_id, error}]}
    """
    try:
        updates = get_json_payload().get("updates")
        if not isinstance(updates, list) or not updates:
            return jsonify({"error": "updates must be a non-empty list"}), 400
        result = vendor_product_service.bulk_update_stock(g.principal, updates)
        return jsonify(result)
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to bulk update stock")
        return jsonify({"error": "Internal server error"}), 500


@vendor_products_bp.post("")
@require_auth
@require_scope(SCOPE_ORGANIZATION)
def create_product_route():
    """
    Request body:
    {
        "vendor_company_id": 1,     // required
        "sku": "SKU-001",           // required
        "name": "Widget",           // required
        "description": "...",
        "categories": ["tools"],
        "wholesale_price_cents": 500,
        "retail_price_cents": 999,
        "stock_quantity": 25,
        "low_stock_threshold": 5
    }
    """
    try:
        fields = _product_fields(get_json_payload(), partial=False)
        product = vendor_product_service.create_product(
            g.principal,
            vendor_company_id=fields.pop("vendor_company_id"),
            sku=fields.pop("sku", None),
            name=fields.pop("name", None),
            **fields,
        )
        return jsonify({"product": product.to_dict()}), 201
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create vendor product")
        return jsonify({"error": "Internal server error"}), 500


@vendor_products_bp.get("/<int:product_id>")
@require_auth
@require_scope(SCOPE_ORGANIZATION, SCOPE_CLIENT)
def get_product_route(product_id: int):
    try:
        product = vendor_product_service.get_product(g.principal, product_id)
        return jsonify({"product": product.to_dict()})
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get vendor product")
        return jsonify({"error": "Internal server error"}), 500


@vendor_products_bp.patch("/<int:product_id>")
@require_auth
@require_scope(SCOPE_ORGANIZATION)
def update_product_route(product_id: int):
    try:
        patch = _product_fields(get_json_payload(), partial=True)
        product = vendor_product_service.update_product(g.principal, product_id, patch)
        return jsonify({"product": product.to_dict()})
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update vendor product")
        return jsonify({"error": "Internal server error"}), 500


@vendor_products_bp.delete("/<int:product_id>")
@require_auth
@require_scope(SCOPE_ORGANIZATION)
def delete_product_route(product_id: int):
    """Deactivates synced products, deletes the rest."""
    try:
        result = vendor_product_service.delete_product(g.principal, product_id)
        return jsonify({"success": True, **result})
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete vendor product")
        return jsonify({"error": "Internal server error"}), 500


@vendor_products_bp.post("/<int:product_id>/sync")
@require_auth
@require_scope(SCOPE_ORGANIZATION)
def sync_product_route(product_id: int):
    """
    Request body:
    {
        "connection_id": 3   // ACTIVE connection of the product's vendor company
    }
    """
    try:
        data = get_json_payload()
        sync = vendor_product_service.sync_product(
            g.principal,
            product_id,
            parse_int(data.get("connection_id"), "connection_id", required=True),
        )
        return jsonify({"sync": sync.to_dict()})
    except ServiceError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to sync vendor product")
        return jsonify({"error": "Internal server error"}), 500
