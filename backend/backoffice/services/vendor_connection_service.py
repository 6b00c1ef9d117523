# Overview: Service-layer operations for vendor-to-buyer connections.

"""
Vendor Connection Service

A connection links a vendor company to a buyer company of the same
organization.

LIFECYCLE:
    PENDING --approve--> ACTIVE <--update--> SUSPENDED
    PENDING --reject---> TERMINATED
    ACTIVE / SUSPENDED --terminate--> TERMINATED

SECURITY:
- Requests (create/update/terminate) are organization-administrator actions
- Approval belongs to the buyer side: any principal that can access the
  buyer company may approve or reject; denied attempts are audited
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import BadRequestError, ConflictError, NotFoundError
from ..models import Client, Company, Vendor, VendorClientConnection, VendorCompany
from ..models.vendors import (
    CONNECTION_STATUS_ACTIVE,
    CONNECTION_STATUS_PENDING,
    CONNECTION_STATUS_SUSPENDED,
    CONNECTION_STATUS_TERMINATED,
)
from ..time_utils import utcnow
from . import audit_service
from .hierarchy_service import validate_company_access
from .scope_service import ClientPrincipal, Principal, actor_id, company_scope_for, resolve_organization_id
from .vendor_company_service import vendor_company_in_org
from .vendor_service import reader_organization_id, writer_organization_id


CONNECTION_STATUSES = {
    CONNECTION_STATUS_PENDING,
    CONNECTION_STATUS_ACTIVE,
    CONNECTION_STATUS_SUSPENDED,
    CONNECTION_STATUS_TERMINATED,
}

# update_connection may only toggle between these
TOGGLEABLE_STATUSES = {CONNECTION_STATUS_ACTIVE, CONNECTION_STATUS_SUSPENDED}


def _connections_in_org(organization_id: int):
    return (
        db.session.query(VendorClientConnection)
        .join(VendorCompany, VendorClientConnection.vendor_company_id == VendorCompany.id)
        .join(Vendor, VendorCompany.vendor_id == Vendor.id)
        .filter(Vendor.organization_id == organization_id)
    )


def _connection_in_org(connection_id: int, organization_id: int) -> VendorClientConnection:
    connection = _connections_in_org(organization_id).filter(
        VendorClientConnection.id == connection_id
    ).first()
    if not connection:
        raise NotFoundError("Vendor connection not found")
    return connection


def list_connections(
    principal: Principal,
    *,
    vendor_company_id: int | None = None,
    company_id: int | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[VendorClientConnection], int]:
    """CLIENT principals only see connections to their own client's companies."""
    organization_id = reader_organization_id(principal)
    query = _connections_in_org(organization_id)

    if isinstance(principal, ClientPrincipal):
        visible = company_scope_for(principal).company_ids_subquery()
        query = query.filter(VendorClientConnection.company_id.in_(db.select(visible.c.id)))

    if vendor_company_id is not None:
        query = query.filter(VendorClientConnection.vendor_company_id == vendor_company_id)
    if company_id is not None:
        query = query.filter(VendorClientConnection.company_id == company_id)
    if status:
        query = query.filter(VendorClientConnection.status == status)

    total = query.count()
    items = (
        query.order_by(VendorClientConnection.created_at.desc(), VendorClientConnection.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total


def get_connection(principal: Principal, connection_id: int) -> VendorClientConnection:
    return _connection_in_org(connection_id, reader_organization_id(principal))


def create_connection(
    principal: Principal,
    *,
    vendor_company_id: int,
    company_id: int,
    notes: str | None = None,
) -> VendorClientConnection:
    """
    Request a connection. Starts PENDING until the buyer side approves.

    Raises:
        NotFoundError: vendor company or buyer company not in the organization
        ConflictError: a connection for this pair already exists
    """
    organization_id = writer_organization_id(principal)
    vendor_company = vendor_company_in_org(vendor_company_id, organization_id)

    company = (
        db.session.query(Company)
        .join(Client, Company.client_id == Client.id)
        .filter(
            Company.id == company_id,
            Company.deleted_at.is_(None),
            Client.organization_id == organization_id,
        )
        .first()
    )
    if not company:
        raise NotFoundError("Company not found in this organization")

    existing = db.session.query(VendorClientConnection.id).filter(
        VendorClientConnection.vendor_company_id == vendor_company.id,
        VendorClientConnection.company_id == company.id,
    ).first()
    if existing:
        raise ConflictError("A connection between this vendor company and company already exists")

    connection = VendorClientConnection(
        vendor_company_id=vendor_company.id,
        company_id=company.id,
        status=CONNECTION_STATUS_PENDING,
        notes=notes,
        requested_by=actor_id(principal),
    )
    try:
        db.session.add(connection)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A connection between this vendor company and company already exists")

    audit_service.log_for(
        principal,
        audit_service.ACTION_CREATE,
        "VendorClientConnection",
        connection.id,
        metadata={"vendor_company_id": vendor_company.id, "company_id": company.id},
    )
    return connection


def approve_connection(
    principal: Principal,
    connection_id: int,
    *,
    approved: bool,
    rejection_reason: str | None = None,
) -> VendorClientConnection:
    """
    Decide a PENDING connection: approved -> ACTIVE, otherwise TERMINATED.

    Raises:
        NotFoundError: connection missing or outside the principal's organization
        ForbiddenError: principal cannot access the buyer company
        BadRequestError: connection is not PENDING
    """
    connection = _connection_in_org(connection_id, resolve_organization_id(principal))

    validate_company_access(principal, connection.company_id, "approve vendor connection")

    if connection.status != CONNECTION_STATUS_PENDING:
        raise BadRequestError(f"Cannot approve connection with status {connection.status}")

    now = utcnow()
    actor = actor_id(principal)
    if approved:
        connection.status = CONNECTION_STATUS_ACTIVE
        connection.approved_by = actor
        connection.approved_at = now
        action = audit_service.ACTION_APPROVE
    else:
        connection.status = CONNECTION_STATUS_TERMINATED
        connection.rejected_by = actor
        connection.rejected_at = now
        connection.rejection_reason = rejection_reason
        connection.terminated_at = now
        action = audit_service.ACTION_REJECT

    db.session.commit()

    current_app.logger.info("Vendor connection %s -> %s by user %s", connection.id, connection.status, principal.user_id)
    audit_service.log_for(
        principal,
        action,
        "VendorClientConnection",
        connection.id,
        changes={"status": {"before": CONNECTION_STATUS_PENDING, "after": connection.status}},
        metadata={"rejection_reason": rejection_reason} if not approved else None,
    )
    return connection


def update_connection(principal: Principal, connection_id: int, patch: dict) -> VendorClientConnection:
    """Toggle ACTIVE <-> SUSPENDED and edit notes."""
    organization_id = writer_organization_id(principal)
    connection = _connection_in_org(connection_id, organization_id)
    before_status = connection.status

    if "status" in patch and patch["status"] != connection.status:
        new_status = patch["status"]
        if new_status not in CONNECTION_STATUSES:
            raise BadRequestError(f"Invalid connection status: {new_status}")
        if connection.status not in TOGGLEABLE_STATUSES or new_status not in TOGGLEABLE_STATUSES:
            raise BadRequestError(
                f"Cannot change connection status from {connection.status} to {new_status}"
            )
        connection.status = new_status

    if "notes" in patch:
        connection.notes = patch["notes"]

    db.session.commit()

    changes = {}
    if connection.status != before_status:
        changes["status"] = {"before": before_status, "after": connection.status}
    audit_service.log_for(
        principal, audit_service.ACTION_UPDATE, "VendorClientConnection", connection.id, changes=changes
    )
    return connection


def terminate_connection(principal: Principal, connection_id: int) -> VendorClientConnection:
    organization_id = writer_organization_id(principal)
    connection = _connection_in_org(connection_id, organization_id)

    if connection.status == CONNECTION_STATUS_TERMINATED:
        raise BadRequestError("Connection is already terminated")

    before_status = connection.status
    connection.status = CONNECTION_STATUS_TERMINATED
    connection.terminated_at = utcnow()
    db.session.commit()

    audit_service.log_for(
        principal,
        audit_service.ACTION_UPDATE,
        "VendorClientConnection",
        connection.id,
        changes={"status": {"before": before_status, "after": CONNECTION_STATUS_TERMINATED}},
    )
    return connection
