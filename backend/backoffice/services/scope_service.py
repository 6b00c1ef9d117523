# Overview: Service-layer helpers for principals and tenant scope resolution.

"""
Scope Resolution

WHY: Every query a principal issues is bounded by an organization. The
principal's scope decides how that organization is found, and CLIENT users
may not carry it at all (it is resolved through their client record).

SECURITY INVARIANTS:
1. resolve_organization_id() runs before any tenant-filtered query
2. CLIENT principals are always pinned to their own client
3. A client id supplied by an ORGANIZATION principal is applied only after
   it is verified to belong to the resolved organization

Principals are a closed set of frozen value types decided once at the
authentication boundary (principal_from_user); services match on the type
instead of re-reading loose attributes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Optional, Union

from ..extensions import db
from ..errors import ForbiddenError
from ..models import Client, Company, User
from ..models.auth import (
    SCOPE_ORGANIZATION,
    SCOPE_CLIENT,
    SCOPE_COMPANY,
    SCOPE_DEPARTMENT,
)


@dataclass(frozen=True)
class OrganizationPrincipal:
    user_id: int
    organization_id: int
    scope_type: ClassVar[str] = SCOPE_ORGANIZATION

    @property
    def scope_id(self) -> int:
        return self.organization_id


@dataclass(frozen=True)
class ClientPrincipal:
    user_id: int
    client_id: int
    organization_id: Optional[int] = None
    scope_type: ClassVar[str] = SCOPE_CLIENT

    @property
    def scope_id(self) -> int:
        return self.client_id


@dataclass(frozen=True)
class CompanyPrincipal:
    user_id: int
    company_id: int
    client_id: Optional[int] = None
    organization_id: Optional[int] = None
    scope_type: ClassVar[str] = SCOPE_COMPANY

    @property
    def scope_id(self) -> int:
        return self.company_id


@dataclass(frozen=True)
class DepartmentPrincipal:
    user_id: int
    department_id: int
    company_id: int
    client_id: Optional[int] = None
    organization_id: Optional[int] = None
    scope_type: ClassVar[str] = SCOPE_DEPARTMENT

    @property
    def scope_id(self) -> int:
        return self.department_id


Principal = Union[OrganizationPrincipal, ClientPrincipal, CompanyPrincipal, DepartmentPrincipal]

ADMIN_PRINCIPALS = (OrganizationPrincipal, ClientPrincipal)


def principal_from_user(user: User) -> Principal:
    """
    Build the principal for an authenticated user.

    Raises ForbiddenError when the id required by the user's scope is missing.
    """
    scope = user.scope_type
    if scope == SCOPE_ORGANIZATION and user.organization_id:
        return OrganizationPrincipal(user_id=user.id, organization_id=user.organization_id)
    if scope == SCOPE_CLIENT and user.client_id:
        return ClientPrincipal(
            user_id=user.id,
            client_id=user.client_id,
            organization_id=user.organization_id,
        )
    if scope == SCOPE_COMPANY and user.company_id:
        return CompanyPrincipal(
            user_id=user.id,
            company_id=user.company_id,
            client_id=user.client_id,
            organization_id=user.organization_id,
        )
    if scope == SCOPE_DEPARTMENT and user.department_id and user.company_id:
        return DepartmentPrincipal(
            user_id=user.id,
            department_id=user.department_id,
            company_id=user.company_id,
            client_id=user.client_id,
            organization_id=user.organization_id,
        )
    raise ForbiddenError(f"User {user.id} has no valid {scope} scope")


def actor_id(principal: Principal) -> str:
    """Actor identifier as stamped on deleted_by / approved_by columns."""
    return str(principal.user_id)


def require_admin_scope(principal: Principal) -> None:
    """Only ORGANIZATION and CLIENT principals may manage companies."""
    if not isinstance(principal, ADMIN_PRINCIPALS):
        raise ForbiddenError("Access denied")


def resolve_organization_id(principal: Principal) -> int:
    """
    Determine the organization that bounds the principal's queries.

    - principal carries organization_id -> use it
    - CLIENT principal -> organization of its client record
    - otherwise ForbiddenError
    """
    if principal.organization_id:
        return principal.organization_id

    if isinstance(principal, ClientPrincipal):
        organization_id = db.session.query(Client.organization_id).filter(
            Client.id == principal.client_id
        ).scalar()
        if organization_id:
            return organization_id

    raise ForbiddenError("Unable to determine organization")


@dataclass(frozen=True)
class CompanyScope:
    """
    Query specification for companies visible to a principal.

    Pure value: built from (principal, organization, filter) without touching
    the database, applied to a query later.
    """
    organization_id: int
    client_id: Optional[int] = None

    def apply(self, query):
        query = query.join(Client, Company.client_id == Client.id).filter(
            Client.organization_id == self.organization_id,
            Company.deleted_at.is_(None),
        )
        if self.client_id is not None:
            query = query.filter(Company.client_id == self.client_id)
        return query

    def company_ids_subquery(self):
        return self.apply(db.session.query(Company.id)).subquery()


def build_company_scope(
    principal: Principal,
    organization_id: int,
    client_id: int | None = None,
) -> CompanyScope:
    """
    CLIENT principals are pinned to their own client regardless of the
    requested filter; ORGANIZATION principals get the filter as given
    (callers verify it with require_client_in_organization first).
    """
    require_admin_scope(principal)
    if isinstance(principal, ClientPrincipal):
        return CompanyScope(organization_id=organization_id, client_id=principal.client_id)
    return CompanyScope(organization_id=organization_id, client_id=client_id)


def find_client_in_organization(client_id: int, organization_id: int) -> Client | None:
    return db.session.query(Client).filter(
        Client.id == client_id,
        Client.organization_id == organization_id,
        Client.deleted_at.is_(None),
    ).first()


def require_client_in_organization(client_id: int, organization_id: int) -> Client:
    client = find_client_in_organization(client_id, organization_id)
    if not client:
        raise ForbiddenError("Client not found or does not belong to your organization")
    return client


def company_scope_for(principal: Principal, client_id: int | None = None) -> CompanyScope:
    """Resolve the organization, verify any client filter, and build the scope."""
    require_admin_scope(principal)
    organization_id = resolve_organization_id(principal)
    if isinstance(principal, OrganizationPrincipal) and client_id is not None:
        require_client_in_organization(client_id, organization_id)
    return build_company_scope(principal, organization_id, client_id)
