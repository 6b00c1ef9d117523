# Overview: Service-layer operations for vendor companies.

"""
Vendor Company Service

MULTI-TENANT: A vendor company is visible when its vendor belongs to the
caller's organization. Same read/write split as vendors: reads for
ORGANIZATION and CLIENT scope, writes for ORGANIZATION scope.

DESIGN:
- Slug is unique within the parent vendor (ConflictError otherwise)
- Code is drawn from the shared 4-character code space
- Delete is soft and cascades: products are deactivated, live connections
  are terminated, all with one cascade_id
"""

from __future__ import annotations

import uuid
from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import BadRequestError, ConflictError, NotFoundError
from ..models import Vendor, VendorClientConnection, VendorCompany, VendorProduct
from ..models.vendors import CONNECTION_STATUS_TERMINATED
from ..time_utils import utcnow
from . import audit_service
from .code_service import generate_entity_code, slugify
from .concurrency import run_with_retry
from .scope_service import Principal, actor_id
from .vendor_service import _vendor_in_org, reader_organization_id, writer_organization_id


VENDOR_COMPANY_STATUSES = {"ACTIVE", "INACTIVE", "SUSPENDED"}


def vendor_company_in_org(vendor_company_id: int, organization_id: int) -> VendorCompany:
    vendor_company = (
        db.session.query(VendorCompany)
        .join(Vendor, VendorCompany.vendor_id == Vendor.id)
        .filter(
            VendorCompany.id == vendor_company_id,
            VendorCompany.deleted_at.is_(None),
            Vendor.organization_id == organization_id,
            Vendor.deleted_at.is_(None),
        )
        .first()
    )
    if not vendor_company:
        raise NotFoundError("Vendor company not found")
    return vendor_company


def _ensure_slug_available(vendor_id: int, slug: str, exclude_id: int | None = None) -> None:
    query = db.session.query(VendorCompany.id).filter(
        VendorCompany.vendor_id == vendor_id,
        VendorCompany.slug == slug,
        VendorCompany.deleted_at.is_(None),
    )
    if exclude_id is not None:
        query = query.filter(VendorCompany.id != exclude_id)
    if query.first():
        raise ConflictError(f"Vendor company with slug '{slug}' already exists for this vendor")


def cascade_vendor_companies(
    vendor_companies: list[VendorCompany],
    *,
    cascade_id: str,
    actor: str,
    now: datetime,
) -> dict:
    """
    Soft delete vendor companies and everything that hangs off them.

    Runs inside the caller's transaction; the caller commits or rolls back.
    """
    ids = [vc.id for vc in vendor_companies]
    for vendor_company in vendor_companies:
        vendor_company.deleted_at = now
        vendor_company.deleted_by = actor
        vendor_company.cascade_id = cascade_id

    if not ids:
        return {"vendor_companies": 0, "products": 0, "connections": 0}

    products = db.session.query(VendorProduct).filter(
        VendorProduct.vendor_company_id.in_(ids),
        VendorProduct.is_active.is_(True),
    ).update(
        {VendorProduct.is_active: False, VendorProduct.cascade_id: cascade_id},
        synchronize_session=False,
    )

    connections = db.session.query(VendorClientConnection).filter(
        VendorClientConnection.vendor_company_id.in_(ids),
        VendorClientConnection.status != CONNECTION_STATUS_TERMINATED,
    ).update(
        {
            VendorClientConnection.status: CONNECTION_STATUS_TERMINATED,
            VendorClientConnection.terminated_at: now,
            VendorClientConnection.cascade_id: cascade_id,
        },
        synchronize_session=False,
    )

    return {"vendor_companies": len(ids), "products": products, "connections": connections}


def list_vendor_companies(
    principal: Principal,
    *,
    vendor_id: int | None = None,
    search: str | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[VendorCompany], int]:
    organization_id = reader_organization_id(principal)

    query = (
        db.session.query(VendorCompany)
        .join(Vendor, VendorCompany.vendor_id == Vendor.id)
        .filter(
            Vendor.organization_id == organization_id,
            Vendor.deleted_at.is_(None),
            VendorCompany.deleted_at.is_(None),
        )
    )
    if vendor_id is not None:
        query = query.filter(VendorCompany.vendor_id == vendor_id)
    if search:
        search_term = f"%{search}%"
        query = query.filter(
            db.or_(
                VendorCompany.name.ilike(search_term),
                VendorCompany.code.ilike(search_term),
                VendorCompany.domain.ilike(search_term),
            )
        )
    if status:
        query = query.filter(VendorCompany.status == status)

    total = query.count()
    items = query.order_by(VendorCompany.created_at.desc(), VendorCompany.id.desc()).offset(offset).limit(limit).all()
    return items, total


def get_vendor_company(principal: Principal, vendor_company_id: int) -> VendorCompany:
    return vendor_company_in_org(vendor_company_id, reader_organization_id(principal))


def create_vendor_company(
    principal: Principal,
    *,
    vendor_id: int,
    name: str,
    domain: str | None = None,
    status: str = "ACTIVE",
) -> VendorCompany:
    """
    Raises:
        NotFoundError: vendor missing or outside the organization
        ConflictError: slug already used by this vendor
    """
    organization_id = writer_organization_id(principal)
    vendor = _vendor_in_org(vendor_id, organization_id)

    name = (name or "").strip()
    if not name:
        raise BadRequestError("Vendor company name is required")
    if status not in VENDOR_COMPANY_STATUSES:
        raise BadRequestError(f"Invalid vendor company status: {status}")

    slug = slugify(name)

    def _create() -> VendorCompany:
        _ensure_slug_available(vendor.id, slug)
        vendor_company = VendorCompany(
            vendor_id=vendor.id,
            name=name,
            slug=slug,
            code=generate_entity_code(name),
            domain=domain,
            status=status,
        )
        db.session.add(vendor_company)
        db.session.flush()
        db.session.commit()
        return vendor_company

    vendor_company = run_with_retry(
        _create,
        attempts=current_app.config["CODE_RESERVE_ATTEMPTS"],
        retry_on=(IntegrityError,),
    )

    audit_service.log_for(
        principal,
        audit_service.ACTION_CREATE,
        "VendorCompany",
        vendor_company.id,
        metadata={"name": name, "code": vendor_company.code, "vendor_id": vendor_id},
    )
    return vendor_company


def update_vendor_company(principal: Principal, vendor_company_id: int, patch: dict) -> VendorCompany:
    organization_id = writer_organization_id(principal)
    vendor_company = vendor_company_in_org(vendor_company_id, organization_id)
    before = {"name": vendor_company.name, "status": vendor_company.status}

    if "name" in patch:
        name = (patch["name"] or "").strip()
        if not name:
            raise BadRequestError("Vendor company name cannot be empty")
        if name != vendor_company.name:
            slug = slugify(name)
            _ensure_slug_available(vendor_company.vendor_id, slug, exclude_id=vendor_company.id)
            vendor_company.slug = slug
        vendor_company.name = name

    if "status" in patch:
        if patch["status"] not in VENDOR_COMPANY_STATUSES:
            raise BadRequestError(f"Invalid vendor company status: {patch['status']}")
        vendor_company.status = patch["status"]

    if "domain" in patch:
        vendor_company.domain = patch["domain"]

    db.session.commit()

    changes = {
        field: {"before": before[field], "after": getattr(vendor_company, field)}
        for field in before
        if getattr(vendor_company, field) != before[field]
    }
    audit_service.log_for(
        principal, audit_service.ACTION_UPDATE, "VendorCompany", vendor_company.id, changes=changes
    )
    return vendor_company


def delete_vendor_company(principal: Principal, vendor_company_id: int) -> str:
    organization_id = writer_organization_id(principal)
    vendor_company = vendor_company_in_org(vendor_company_id, organization_id)

    cascade_id = str(uuid.uuid4())
    try:
        counts = cascade_vendor_companies(
            [vendor_company], cascade_id=cascade_id, actor=actor_id(principal), now=utcnow()
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Vendor company %s deleted (cascade %s): %s products, %s connections",
        vendor_company_id, cascade_id, counts["products"], counts["connections"],
    )
    audit_service.log_for(
        principal,
        audit_service.ACTION_SOFT_DELETE,
        "VendorCompany",
        vendor_company_id,
        metadata={"cascade_id": cascade_id, "products": counts["products"], "connections": counts["connections"]},
    )
    return cascade_id
