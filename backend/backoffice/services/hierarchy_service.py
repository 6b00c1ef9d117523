# Overview: Company-level access checks across the scope hierarchy.

"""
Hierarchy Service

WHY: Refund routes let ORGANIZATION and CLIENT admins name a company
explicitly. That id comes from the client and must be checked against the
caller's place in the hierarchy before any query uses it.

RULES:
- ORGANIZATION: company's client belongs to the organization
- CLIENT: company belongs to the client
- COMPANY / DEPARTMENT: only their own company
Soft-deleted companies are never accessible.
"""

from __future__ import annotations

from ..extensions import db
from ..errors import ForbiddenError
from ..models import Client, Company
from . import audit_service
from .scope_service import (
    ClientPrincipal,
    CompanyPrincipal,
    DepartmentPrincipal,
    OrganizationPrincipal,
    Principal,
)


def can_access_company(principal: Principal, company_id: int) -> bool:
    row = (
        db.session.query(Company.id, Company.client_id, Client.organization_id)
        .join(Client, Company.client_id == Client.id)
        .filter(Company.id == company_id, Company.deleted_at.is_(None))
        .first()
    )
    if row is None:
        return False

    if isinstance(principal, OrganizationPrincipal):
        return row.organization_id == principal.organization_id
    if isinstance(principal, ClientPrincipal):
        return row.client_id == principal.client_id
    if isinstance(principal, (CompanyPrincipal, DepartmentPrincipal)):
        return row.id == principal.company_id
    return False


def deny_access(
    principal: Principal,
    resource: str,
    entity_type: str,
    entity_id,
    message: str = "Access denied",
):
    """Record the denied attempt and raise ForbiddenError."""
    audit_service.log_for(
        principal,
        audit_service.ACTION_ACCESS_DENIED,
        entity_type,
        entity_id,
        metadata={
            "attempted_resource": resource,
            "user_scope_type": principal.scope_type,
            "user_scope_id": principal.scope_id,
            "reason": message,
        },
    )
    raise ForbiddenError(message)


def validate_company_access(principal: Principal, company_id: int, operation: str) -> None:
    if not can_access_company(principal, company_id):
        deny_access(
            principal,
            f"{operation} for company {company_id}",
            "Company",
            company_id,
            "Access denied to this company",
        )
