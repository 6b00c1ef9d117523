# Overview: Service-layer operations for vendor catalog products and stock.

"""
Vendor Product Service

MULTI-TENANT: Products are reached through their vendor company, which must
belong to a vendor of the caller's organization.

DESIGN:
- SKU is unique per vendor company (ConflictError)
- Products synced to any connection are deactivated on delete so buyer-side
  references stay valid; unsynced products are removed
- Bulk stock updates run item by item and report partial success
- Quantities and prices are integers (prices in cents)
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import String, cast

from ..extensions import db
from ..errors import BadRequestError, ConflictError, NotFoundError, ServiceError
from ..models import Vendor, VendorClientConnection, VendorCompany, VendorProduct, VendorProductSync
from ..models.vendors import CONNECTION_STATUS_ACTIVE
from ..time_utils import utcnow
from . import audit_service
from .scope_service import Principal, actor_id
from .vendor_company_service import vendor_company_in_org
from .vendor_service import reader_organization_id, writer_organization_id


PRODUCT_MUTABLE_FIELDS = {
    "sku",
    "name",
    "description",
    "categories",
    "wholesale_price_cents",
    "retail_price_cents",
    "stock_quantity",
    "low_stock_threshold",
    "is_active",
}

SORTABLE_FIELDS = {
    "created_at": VendorProduct.created_at,
    "updated_at": VendorProduct.updated_at,
    "name": VendorProduct.name,
    "sku": VendorProduct.sku,
    "stock_quantity": VendorProduct.stock_quantity,
    "retail_price_cents": VendorProduct.retail_price_cents,
}


def _products_in_org(organization_id: int):
    return (
        db.session.query(VendorProduct)
        .join(VendorCompany, VendorProduct.vendor_company_id == VendorCompany.id)
        .join(Vendor, VendorCompany.vendor_id == Vendor.id)
        .filter(
            Vendor.organization_id == organization_id,
            Vendor.deleted_at.is_(None),
            VendorCompany.deleted_at.is_(None),
        )
    )


def _product_in_org(product_id: int, organization_id: int) -> VendorProduct:
    product = _products_in_org(organization_id).filter(VendorProduct.id == product_id).first()
    if not product:
        raise NotFoundError("Vendor product not found")
    return product


def _ensure_sku_available(vendor_company_id: int, sku: str, exclude_id: int | None = None) -> None:
    query = db.session.query(VendorProduct.id).filter(
        VendorProduct.vendor_company_id == vendor_company_id,
        VendorProduct.sku == sku,
    )
    if exclude_id is not None:
        query = query.filter(VendorProduct.id != exclude_id)
    if query.first():
        raise ConflictError(f"SKU '{sku}' already exists for this vendor company")


def _normalize_categories(categories) -> list[str]:
    if categories is None:
        return []
    if isinstance(categories, str):
        categories = categories.split(",")
    if not isinstance(categories, (list, tuple)):
        raise BadRequestError("categories must be a list of strings")
    return [str(c).strip() for c in categories if str(c).strip()]


def _validate_quantity(field: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise BadRequestError(f"{field} must be an integer")
    if value < 0:
        raise BadRequestError(f"{field} cannot be negative")
    return value


def list_products(
    principal: Principal,
    *,
    search: str | None = None,
    vendor_company_id: int | None = None,
    categories: list[str] | None = None,
    is_active: bool | None = None,
    low_stock: bool = False,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[VendorProduct], int]:
    """
    categories matches products carrying any of the given categories.
    """
    organization_id = reader_organization_id(principal)
    query = _products_in_org(organization_id)

    if vendor_company_id is not None:
        query = query.filter(VendorProduct.vendor_company_id == vendor_company_id)
    if search:
        search_term = f"%{search}%"
        query = query.filter(
            db.or_(
                VendorProduct.name.ilike(search_term),
                VendorProduct.sku.ilike(search_term),
            )
        )
    if categories:
        # JSON lists serialize each entry as a quoted string
        serialized = cast(VendorProduct.categories, String)
        query = query.filter(db.or_(*[serialized.like(f'%"{category}"%') for category in categories]))
    if is_active is not None:
        query = query.filter(VendorProduct.is_active.is_(is_active))
    if low_stock:
        query = query.filter(VendorProduct.stock_quantity <= VendorProduct.low_stock_threshold)

    column = SORTABLE_FIELDS.get(sort_by)
    if column is None:
        raise BadRequestError(f"Cannot sort products by '{sort_by}'")
    if sort_order not in ("asc", "desc"):
        raise BadRequestError("sort_order must be 'asc' or 'desc'")

    total = query.count()
    order = column.asc() if sort_order == "asc" else column.desc()
    products = query.order_by(order, VendorProduct.id.desc()).offset(offset).limit(limit).all()
    return products, total


def get_product(principal: Principal, product_id: int) -> VendorProduct:
    return _product_in_org(product_id, reader_organization_id(principal))


def create_product(
    principal: Principal,
    *,
    vendor_company_id: int,
    sku: str,
    name: str,
    description: str | None = None,
    categories=None,
    wholesale_price_cents: int | None = None,
    retail_price_cents: int | None = None,
    stock_quantity: int = 0,
    low_stock_threshold: int = 10,
    is_active: bool = True,
) -> VendorProduct:
    """
    Raises:
        NotFoundError: vendor company not in the organization
        BadRequestError: missing sku/name, negative quantities
        ConflictError: SKU already used by the vendor company
    """
    organization_id = writer_organization_id(principal)
    vendor_company = vendor_company_in_org(vendor_company_id, organization_id)

    sku = (sku or "").strip()
    name = (name or "").strip()
    if not sku:
        raise BadRequestError("SKU is required")
    if not name:
        raise BadRequestError("Product name is required")

    _ensure_sku_available(vendor_company.id, sku)

    product = VendorProduct(
        vendor_company_id=vendor_company.id,
        sku=sku,
        name=name,
        description=description,
        categories=_normalize_categories(categories),
        wholesale_price_cents=wholesale_price_cents,
        retail_price_cents=retail_price_cents,
        stock_quantity=_validate_quantity("stock_quantity", stock_quantity),
        low_stock_threshold=_validate_quantity("low_stock_threshold", low_stock_threshold),
        is_active=is_active,
    )
    db.session.add(product)
    db.session.commit()

    audit_service.log_for(
        principal,
        audit_service.ACTION_CREATE,
        "VendorProduct",
        product.id,
        metadata={"sku": sku, "vendor_company_id": vendor_company.id},
    )
    return product


def update_product(principal: Principal, product_id: int, patch: dict) -> VendorProduct:
    organization_id = writer_organization_id(principal)
    product = _product_in_org(product_id, organization_id)

    changes = {}
    for key, value in patch.items():
        if key not in PRODUCT_MUTABLE_FIELDS:
            continue
        if key == "sku":
            value = (value or "").strip()
            if not value:
                raise BadRequestError("SKU cannot be empty")
            if value != product.sku:
                _ensure_sku_available(product.vendor_company_id, value, exclude_id=product.id)
        elif key == "name":
            value = (value or "").strip()
            if not value:
                raise BadRequestError("Product name cannot be empty")
        elif key == "categories":
            value = _normalize_categories(value)
        elif key in ("stock_quantity", "low_stock_threshold"):
            value = _validate_quantity(key, value)

        before = getattr(product, key)
        if before != value:
            changes[key] = {"before": before, "after": value}
            setattr(product, key, value)

    db.session.commit()

    audit_service.log_for(principal, audit_service.ACTION_UPDATE, "VendorProduct", product.id, changes=changes)
    return product


def delete_product(principal: Principal, product_id: int) -> dict:
    """
    Returns {"deleted": bool, "deactivated": bool}.
    """
    organization_id = writer_organization_id(principal)
    product = _product_in_org(product_id, organization_id)

    synced = db.session.query(VendorProductSync.id).filter(
        VendorProductSync.vendor_product_id == product.id
    ).first() is not None

    if synced:
        product.is_active = False
        db.session.commit()
        audit_service.log_for(
            principal,
            audit_service.ACTION_SOFT_DELETE,
            "VendorProduct",
            product_id,
            metadata={"reason": "synced to connections"},
        )
        return {"deleted": False, "deactivated": True}

    sku = product.sku
    db.session.delete(product)
    db.session.commit()
    audit_service.log_for(
        principal, audit_service.ACTION_DELETE, "VendorProduct", product_id, metadata={"sku": sku}
    )
    return {"deleted": True, "deactivated": False}


def list_low_stock(
    principal: Principal,
    *,
    vendor_company_id: int | None = None,
    limit: int = 50,
) -> list[VendorProduct]:
    """Active products at or below their threshold, lowest stock first."""
    organization_id = reader_organization_id(principal)
    query = _products_in_org(organization_id).filter(
        VendorProduct.is_active.is_(True),
        VendorProduct.stock_quantity <= VendorProduct.low_stock_threshold,
    )
    if vendor_company_id is not None:
        query = query.filter(VendorProduct.vendor_company_id == vendor_company_id)
    return query.order_by(VendorProduct.stock_quantity.asc(), VendorProduct.id.asc()).limit(limit).all()


def bulk_update_stock(principal: Principal, updates: list[dict]) -> dict:
    """
    Apply stock quantities one product at a time.

    Each item is {"product_id": int, "stock_quantity": int}. Returns
    {"updated": count, "failed": [product_id, ...], "errors": [...]} where
    "errors" carries the message for each failed id. Successful items stay
    committed when later ones fail.
    """
    organization_id = writer_organization_id(principal)

    updated = 0
    failed: list = []
    errors: list[dict] = []

    for item in updates:
        product_id = item.get("product_id") if isinstance(item, dict) else None
        try:
            if isinstance(product_id, bool) or not isinstance(product_id, int):
                raise BadRequestError("product_id must be an integer")
            quantity = _validate_quantity("stock_quantity", item.get("stock_quantity"))

            product = _product_in_org(product_id, organization_id)
            before = product.stock_quantity
            product.stock_quantity = quantity
            db.session.commit()
        except ServiceError as e:
            db.session.rollback()
            failed.append(product_id)
            errors.append({"product_id": product_id, "error": str(e)})
            continue

        updated += 1
        audit_service.log_for(
            principal,
            audit_service.ACTION_UPDATE,
            "VendorProduct",
            product_id,
            changes={"stock_quantity": {"before": before, "after": quantity}},
            metadata={"bulk": True},
        )

    current_app.logger.info("Bulk stock update: %s updated, %s failed", updated, len(failed))
    return {"updated": updated, "failed": failed, "errors": errors}


def sync_product(principal: Principal, product_id: int, connection_id: int) -> VendorProductSync:
    """
    Record that a product was pushed to an ACTIVE connection of its own
    vendor company. Re-syncing refreshes synced_at.
    """
    organization_id = writer_organization_id(principal)
    product = _product_in_org(product_id, organization_id)

    if not product.is_active:
        raise BadRequestError("Cannot sync an inactive product")

    connection = db.session.query(VendorClientConnection).filter(
        VendorClientConnection.id == connection_id
    ).first()
    if not connection or connection.vendor_company_id != product.vendor_company_id:
        raise NotFoundError("Vendor connection not found for this product's vendor company")
    if connection.status != CONNECTION_STATUS_ACTIVE:
        raise BadRequestError(f"Cannot sync to connection with status {connection.status}")

    sync = db.session.query(VendorProductSync).filter(
        VendorProductSync.vendor_product_id == product.id,
        VendorProductSync.connection_id == connection.id,
    ).first()
    if sync:
        sync.synced_at = utcnow()
        sync.synced_by = actor_id(principal)
    else:
        sync = VendorProductSync(
            vendor_product_id=product.id,
            connection_id=connection.id,
            synced_at=utcnow(),
            synced_by=actor_id(principal),
        )
        db.session.add(sync)
    db.session.commit()

    audit_service.log_for(
        principal,
        audit_service.ACTION_UPDATE,
        "VendorProduct",
        product.id,
        metadata={"synced_to_connection": connection.id, "company_id": connection.company_id},
    )
    return sync
