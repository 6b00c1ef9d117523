# Overview: Service-layer operations for vendors; encapsulates business logic and database work.

"""
Vendor Service

WHY: Vendors supply the vendor companies, products and buyer connections the
back office manages. Every one of those rows hangs off a vendor, so vendor
lifecycle (verification, activation, removal) governs all of them.

MULTI-TENANT: Vendors are scoped to organizations via organization_id.
- Reads: ORGANIZATION and CLIENT principals, within the resolved organization
- Writes: ORGANIZATION principals only
Slugs are unique within an organization; codes come from the shared
4-character code space.

DESIGN:
- Verification is explicit: PENDING_VERIFICATION -> VERIFIED via verify_vendor
- Only verified vendors may become ACTIVE
- Delete is soft and cascades to vendor companies, their products and their
  connections in one transaction, all stamped with the same cascade_id
"""

from __future__ import annotations

import uuid

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from ..models import Vendor, VendorCompany
from ..time_utils import utcnow
from . import audit_service
from .code_service import generate_entity_code, slugify
from .concurrency import run_with_retry
from .scope_service import (
    OrganizationPrincipal,
    Principal,
    actor_id,
    require_admin_scope,
    resolve_organization_id,
)


VENDOR_STATUS_PENDING = "PENDING_VERIFICATION"
VENDOR_STATUS_VERIFIED = "VERIFIED"
VENDOR_STATUS_ACTIVE = "ACTIVE"
VENDOR_STATUS_SUSPENDED = "SUSPENDED"
VENDOR_STATUS_INACTIVE = "INACTIVE"
VENDOR_STATUSES = {
    VENDOR_STATUS_PENDING,
    VENDOR_STATUS_VERIFIED,
    VENDOR_STATUS_ACTIVE,
    VENDOR_STATUS_SUSPENDED,
    VENDOR_STATUS_INACTIVE,
}

VENDOR_MUTABLE_FIELDS = {"name", "contact_name", "contact_email", "contact_phone", "website", "status"}

SORTABLE_FIELDS = {
    "created_at": Vendor.created_at,
    "updated_at": Vendor.updated_at,
    "name": Vendor.name,
    "code": Vendor.code,
    "status": Vendor.status,
}


def reader_organization_id(principal: Principal) -> int:
    """Organization bounding vendor reads (ORGANIZATION or CLIENT scope)."""
    require_admin_scope(principal)
    return resolve_organization_id(principal)


def writer_organization_id(principal: Principal) -> int:
    """Organization bounding vendor writes (ORGANIZATION scope only)."""
    if not isinstance(principal, OrganizationPrincipal):
        raise ForbiddenError("Only organization administrators can manage vendors")
    return principal.organization_id


def _vendor_in_org(vendor_id: int, organization_id: int) -> Vendor:
    vendor = db.session.query(Vendor).filter(
        Vendor.id == vendor_id,
        Vendor.organization_id == organization_id,
        Vendor.deleted_at.is_(None),
    ).first()
    if not vendor:
        raise NotFoundError("Vendor not found")
    return vendor


def _ensure_slug_available(organization_id: int, slug: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Vendor.id).filter(
        Vendor.organization_id == organization_id,
        Vendor.slug == slug,
        Vendor.deleted_at.is_(None),
    )
    if exclude_id is not None:
        query = query.filter(Vendor.id != exclude_id)
    if query.first():
        raise ConflictError(f"A vendor with slug '{slug}' already exists in this organization")


def list_vendors(
    principal: Principal,
    *,
    search: str | None = None,
    status: str | None = None,
    is_verified: bool | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Vendor], int]:
    organization_id = reader_organization_id(principal)

    query = db.session.query(Vendor).filter(
        Vendor.organization_id == organization_id,
        Vendor.deleted_at.is_(None),
    )

    if search:
        search_term = f"%{search}%"
        query = query.filter(
            db.or_(
                Vendor.name.ilike(search_term),
                Vendor.code.ilike(search_term),
                Vendor.contact_email.ilike(search_term),
            )
        )
    if status:
        query = query.filter(Vendor.status == status)
    if is_verified is not None:
        query = query.filter(Vendor.is_verified.is_(is_verified))

    column = SORTABLE_FIELDS.get(sort_by)
    if column is None:
        raise BadRequestError(f"Cannot sort vendors by '{sort_by}'")
    if sort_order not in ("asc", "desc"):
        raise BadRequestError("sort_order must be 'asc' or 'desc'")

    total = query.count()
    order = column.asc() if sort_order == "asc" else column.desc()
    vendors = query.order_by(order, Vendor.id.desc()).offset(offset).limit(limit).all()
    return vendors, total


def get_vendor(principal: Principal, vendor_id: int) -> Vendor:
    """
    Raises:
        NotFoundError: vendor missing, deleted, or in another organization
    """
    return _vendor_in_org(vendor_id, reader_organization_id(principal))


def create_vendor(
    principal: Principal,
    *,
    name: str,
    contact_name: str | None = None,
    contact_email: str | None = None,
    contact_phone: str | None = None,
    website: str | None = None,
) -> Vendor:
    """
    Create a vendor in the principal's organization. New vendors start in
    PENDING_VERIFICATION.

    Raises:
        ForbiddenError: principal is not an organization administrator
        BadRequestError: empty name
        ConflictError: slug already used in the organization
    """
    organization_id = writer_organization_id(principal)

    name = (name or "").strip()
    if not name:
        raise BadRequestError("Vendor name is required")

    slug = slugify(name)

    def _create() -> Vendor:
        _ensure_slug_available(organization_id, slug)
        vendor = Vendor(
            organization_id=organization_id,
            name=name,
            slug=slug,
            code=generate_entity_code(name),
            contact_name=contact_name,
            contact_email=contact_email,
            contact_phone=contact_phone,
            website=website,
            status=VENDOR_STATUS_PENDING,
            is_verified=False,
        )
        db.session.add(vendor)
        db.session.flush()
        db.session.commit()
        return vendor

    vendor = run_with_retry(
        _create,
        attempts=current_app.config["CODE_RESERVE_ATTEMPTS"],
        retry_on=(IntegrityError,),
    )

    audit_service.log_for(
        principal,
        audit_service.ACTION_CREATE,
        "Vendor",
        vendor.id,
        metadata={"name": vendor.name, "code": vendor.code, "organization_id": organization_id},
    )
    return vendor


def update_vendor(principal: Principal, vendor_id: int, patch: dict) -> Vendor:
    """
    Update vendor fields. A rename recomputes the slug (Conflict on clash);
    moving to ACTIVE requires a verified vendor.
    """
    organization_id = writer_organization_id(principal)
    vendor = _vendor_in_org(vendor_id, organization_id)
    before = {"name": vendor.name, "status": vendor.status}

    if "status" in patch:
        status = patch["status"]
        if status not in VENDOR_STATUSES:
            raise BadRequestError(f"Invalid vendor status: {status}")
        if status == VENDOR_STATUS_ACTIVE and not vendor.is_verified:
            raise BadRequestError("Vendor must be verified before it can be activated")

    if "name" in patch:
        name = (patch["name"] or "").strip()
        if not name:
            raise BadRequestError("Vendor name cannot be empty")
        if name != vendor.name:
            slug = slugify(name)
            _ensure_slug_available(organization_id, slug, exclude_id=vendor.id)
            vendor.slug = slug
        vendor.name = name

    for key, value in patch.items():
        if key in VENDOR_MUTABLE_FIELDS and key != "name":
            setattr(vendor, key, value)

    db.session.commit()

    changes = {
        field: {"before": before[field], "after": getattr(vendor, field)}
        for field in before
        if getattr(vendor, field) != before[field]
    }
    audit_service.log_for(principal, audit_service.ACTION_UPDATE, "Vendor", vendor.id, changes=changes)
    return vendor


def verify_vendor(principal: Principal, vendor_id: int) -> Vendor:
    """
    PENDING_VERIFICATION -> VERIFIED.

    Raises:
        BadRequestError: vendor is not awaiting verification
    """
    organization_id = writer_organization_id(principal)
    vendor = _vendor_in_org(vendor_id, organization_id)

    if vendor.status != VENDOR_STATUS_PENDING:
        raise BadRequestError(f"Cannot verify vendor with status {vendor.status}")

    vendor.status = VENDOR_STATUS_VERIFIED
    vendor.is_verified = True
    vendor.verified_at = utcnow()
    vendor.verified_by = actor_id(principal)
    db.session.commit()

    current_app.logger.info("Vendor %s verified by user %s", vendor.id, principal.user_id)
    audit_service.log_for(
        principal,
        audit_service.ACTION_UPDATE,
        "Vendor",
        vendor.id,
        changes={"status": {"before": VENDOR_STATUS_PENDING, "after": VENDOR_STATUS_VERIFIED}},
    )
    return vendor


def delete_vendor(principal: Principal, vendor_id: int) -> str:
    """
    Soft delete a vendor with everything beneath it. Returns the cascade_id
    stamped on every affected row.
    """
    from .vendor_company_service import cascade_vendor_companies

    organization_id = writer_organization_id(principal)
    vendor = _vendor_in_org(vendor_id, organization_id)

    cascade_id = str(uuid.uuid4())
    now = utcnow()
    actor = actor_id(principal)

    try:
        vendor.deleted_at = now
        vendor.deleted_by = actor
        vendor.cascade_id = cascade_id

        vendor_companies = db.session.query(VendorCompany).filter(
            VendorCompany.vendor_id == vendor.id,
            VendorCompany.deleted_at.is_(None),
        ).all()
        counts = cascade_vendor_companies(vendor_companies, cascade_id=cascade_id, actor=actor, now=now)

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Vendor %s deleted (cascade %s): %s vendor companies, %s products, %s connections",
        vendor_id, cascade_id, counts["vendor_companies"], counts["products"], counts["connections"],
    )
    audit_service.log_for(
        principal,
        audit_service.ACTION_SOFT_DELETE,
        "Vendor",
        vendor_id,
        metadata={"cascade_id": cascade_id, **counts},
    )
    return cascade_id
