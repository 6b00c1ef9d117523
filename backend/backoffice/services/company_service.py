# backend/backoffice/services/company_service.py
"""
Company Service with Multi-Tenant Support

MULTI-TENANT: Only ORGANIZATION and CLIENT principals may manage companies.
- ORGANIZATION: every company whose client belongs to the organization
- CLIENT: only companies of the principal's own client
Lookups outside the caller's scope raise NotFoundError, never Forbidden,
so company existence does not leak across tenants.

DESIGN:
- A company is created together with its default site in one transaction
- Slug follows the name; code comes from the shared code space
- Deletes are soft (deleted_at + deleted_by)
- Audit entries are written after the commit
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import BadRequestError, ForbiddenError, NotFoundError
from ..models import Client, Company, Site
from ..models.tenancy import COMPANY_STATUS_ACTIVE, COMPANY_STATUSES
from ..time_utils import utcnow
from . import audit_service
from .code_service import generate_company_code, generate_site_code, slugify
from .concurrency import run_with_retry
from .scope_service import (
    ClientPrincipal,
    Principal,
    actor_id,
    company_scope_for,
    find_client_in_organization,
    require_admin_scope,
    resolve_organization_id,
)


COMPANY_MUTABLE_FIELDS = {"name", "domain", "logo", "timezone", "currency", "status"}

SORTABLE_FIELDS = {
    "created_at": Company.created_at,
    "updated_at": Company.updated_at,
    "name": Company.name,
    "code": Company.code,
    "status": Company.status,
}


def _order_by(sort_by: str, sort_order: str):
    column = SORTABLE_FIELDS.get(sort_by)
    if column is None:
        raise BadRequestError(f"Cannot sort companies by '{sort_by}'")
    if sort_order not in ("asc", "desc"):
        raise BadRequestError("sort_order must be 'asc' or 'desc'")
    if sort_order == "asc":
        return column.asc(), Company.id.asc()
    return column.desc(), Company.id.desc()


def _scoped_company(principal: Principal, company_id: int) -> Company:
    scope = company_scope_for(principal)
    company = scope.apply(db.session.query(Company)).filter(Company.id == company_id).first()
    if not company:
        raise NotFoundError("Company not found")
    return company


def list_companies(
    principal: Principal,
    *,
    client_id: int | None = None,
    search: str | None = None,
    status: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Company], int]:
    """
    List companies visible to the principal.

    Raises:
        ForbiddenError: scope not allowed, or client_id outside the organization
    """
    scope = company_scope_for(principal, client_id)
    query = scope.apply(db.session.query(Company))

    if search:
        term = f"%{search}%"
        query = query.filter(
            db.or_(
                Company.name.ilike(term),
                Company.code.ilike(term),
                Company.domain.ilike(term),
            )
        )

    if status:
        query = query.filter(Company.status == status)

    total = query.count()
    companies = query.order_by(*_order_by(sort_by, sort_order)).offset(offset).limit(limit).all()
    return companies, total


def get_company(principal: Principal, company_id: int) -> Company:
    return _scoped_company(principal, company_id)


def _client_names(client_ids: list[int]) -> dict[int, str]:
    if not client_ids:
        return {}
    rows = db.session.query(Client.id, Client.name).filter(Client.id.in_(client_ids)).all()
    return {row.id: row.name for row in rows}


def get_company_stats(principal: Principal) -> dict:
    """
    Totals for the dashboard: all companies, active companies, and a
    per-client breakdown.
    """
    scope = company_scope_for(principal)
    base = scope.apply(db.session.query(Company))

    total_companies = base.count()
    active_companies = base.filter(Company.status == COMPANY_STATUS_ACTIVE).count()

    grouped = (
        scope.apply(db.session.query(Company.client_id, func.count(Company.id)))
        .group_by(Company.client_id)
        .all()
    )

    names = _client_names([client_id for client_id, _ in grouped])

    return {
        "total_companies": total_companies,
        "active_companies": active_companies,
        "companies_by_client": [
            {
                "client_id": client_id,
                "client_name": names.get(client_id, "Unknown"),
                "count": count,
            }
            for client_id, count in grouped
        ],
    }


def create_company(
    principal: Principal,
    *,
    name: str,
    client_id: int | None = None,
    domain: str | None = None,
    logo: str | None = None,
    timezone: str | None = None,
    currency: str | None = None,
) -> Company:
    """
    Create a company and its default site atomically.

    CLIENT principals always create under their own client; any client_id in
    the request is ignored.

    Raises:
        ForbiddenError: scope not allowed
        BadRequestError: missing name/client, or client outside the organization
    """
    require_admin_scope(principal)
    organization_id = resolve_organization_id(principal)

    target_client_id = principal.client_id if isinstance(principal, ClientPrincipal) else client_id
    if not target_client_id:
        raise BadRequestError("Client ID is required")

    client = find_client_in_organization(target_client_id, organization_id)
    if not client:
        raise BadRequestError("Client not found or does not belong to your organization")

    if isinstance(principal, ClientPrincipal) and client.id != principal.client_id:
        raise ForbiddenError("You can only create companies under your own client")

    name = (name or "").strip()
    if not name:
        raise BadRequestError("Company name is required")

    slug = slugify(name)
    timezone = timezone or "UTC"
    currency = (currency or "USD").upper()

    def _create() -> tuple[Company, Site, str]:
        code = generate_company_code(name, target_client_id)
        try:
            company = Company(
                client_id=target_client_id,
                name=name,
                slug=slug,
                code=code,
                domain=domain,
                logo=logo,
                timezone=timezone,
                currency=currency,
                status=COMPANY_STATUS_ACTIVE,
            )
            db.session.add(company)
            db.session.flush()

            site_name = f"{name} - Main Site"
            site = Site(
                company_id=company.id,
                name=site_name,
                slug=f"{slug}-main",
                code=generate_site_code(site_name, company.id),
                is_default=True,
                status="ACTIVE",
                timezone=company.timezone,
                currency=company.currency,
                locale="en",
            )
            db.session.add(site)
            db.session.flush()

            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return company, site, code

    company, site, code = run_with_retry(
        _create,
        attempts=current_app.config["CODE_RESERVE_ATTEMPTS"],
        retry_on=(IntegrityError,),
    )

    current_app.logger.info("Created company %s (%s) under client %s", company.id, code, target_client_id)

    audit_service.log_for(
        principal,
        audit_service.ACTION_CREATE,
        "Company",
        company.id,
        metadata={"name": name, "code": code, "client_id": target_client_id},
    )
    audit_service.log_for(
        principal,
        audit_service.ACTION_CREATE,
        "Site",
        site.id,
        metadata={
            "name": site.name,
            "code": site.code,
            "company_id": company.id,
            "autoCreated": True,
        },
    )

    return company


def update_company(principal: Principal, company_id: int, patch: dict) -> Company:
    """
    Update a company within the principal's scope.

    Raises:
        NotFoundError: company missing or out of scope
        BadRequestError: invalid status or empty name
    """
    company = _scoped_company(principal, company_id)
    before = {"name": company.name, "status": company.status}

    if "status" in patch and patch["status"] not in COMPANY_STATUSES:
        raise BadRequestError(f"Invalid company status: {patch['status']}")

    for key, value in patch.items():
        if key not in COMPANY_MUTABLE_FIELDS:
            continue
        if key == "name":
            value = (value or "").strip()
            if not value:
                raise BadRequestError("Company name cannot be empty")
            if value != company.name:
                company.slug = slugify(value)
        if key == "currency" and value:
            value = value.upper()
        setattr(company, key, value)

    db.session.commit()

    changes = {}
    for field in ("name", "status"):
        after = getattr(company, field)
        if after != before[field]:
            changes[field] = {"before": before[field], "after": after}

    audit_service.log_for(
        principal,
        audit_service.ACTION_UPDATE,
        "Company",
        company.id,
        changes=changes,
    )
    return company


def delete_company(principal: Principal, company_id: int) -> None:
    """Soft delete: stamps deleted_at/deleted_by, rows are never removed."""
    company = _scoped_company(principal, company_id)

    company.deleted_at = utcnow()
    company.deleted_by = actor_id(principal)
    name, client_id = company.name, company.client_id
    db.session.commit()

    audit_service.log_for(
        principal,
        audit_service.ACTION_SOFT_DELETE,
        "Company",
        company_id,
        metadata={"name": name, "client_id": client_id},
    )
