from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


COMPANY_STATUS_ACTIVE = "ACTIVE"
COMPANY_STATUS_INACTIVE = "INACTIVE"
COMPANY_STATUS_SUSPENDED = "SUSPENDED"
COMPANY_STATUSES = {COMPANY_STATUS_ACTIVE, COMPANY_STATUS_INACTIVE, COMPANY_STATUS_SUSPENDED}


class Organization(db.Model):
    """
    Multi-tenant root: every tenant is an Organization.

    DESIGN:
    - Organizations are the outermost tenant boundary
    - Clients belong to organizations; companies belong to clients
    - Services never mutate organizations, they only filter by them
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Client(db.Model):
    """
    Client within an organization.

    MULTI-TENANT: Tenant boundary for CLIENT-scoped users and parent of companies.
    Client codes share the global 4-character code space with companies and vendors.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_org_deleted", "organization_id", "deleted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(16), nullable=False, unique=True, index=True)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE")

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("clients", lazy=True))

    def __repr__(self) -> str:
        return f"<Client id={self.id} code={self.code!r} organization_id={self.organization_id}>"

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "code": self.code}

    def to_dict(self) -> dict:
        return {
            **self.to_summary(),
            "organization_id": self.organization_id,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class Company(db.Model):
    """
    Company owned by a client.

    LIFECYCLE: ACTIVE / INACTIVE / SUSPENDED, plus soft delete
    (deleted_at + deleted_by). Soft-deleted companies never appear in reads.
    The slug always tracks the current name.
    """
    __tablename__ = "companies"
    __table_args__ = (
        db.Index("ix_companies_client_deleted", "client_id", "deleted_at"),
        db.Index("ix_companies_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=False, index=True)
    code = db.Column(db.String(16), nullable=False, unique=True, index=True)
    domain = db.Column(db.String(255), nullable=True)
    logo = db.Column(db.String(512), nullable=True)

    timezone = db.Column(db.String(64), nullable=False, default="UTC")
    currency = db.Column(db.String(3), nullable=False, default="USD")
    status = db.Column(db.String(16), nullable=False, default=COMPANY_STATUS_ACTIVE)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    deleted_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    client = db.relationship("Client", backref=db.backref("companies", lazy=True))

    def __repr__(self) -> str:
        return f"<Company id={self.id} code={self.code!r} client_id={self.client_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "client": self.client.to_summary() if self.client else None,
            "name": self.name,
            "slug": self.slug,
            "code": self.code,
            "domain": self.domain,
            "logo": self.logo,
            "timezone": self.timezone,
            "currency": self.currency,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Site(db.Model):
    """
    Storefront site of a company. Exactly one site per company is the default;
    it is created together with the company.
    """
    __tablename__ = "sites"
    __table_args__ = (
        db.UniqueConstraint("company_id", "code", name="uq_sites_company_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(16), nullable=False)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE")

    timezone = db.Column(db.String(64), nullable=False, default="UTC")
    currency = db.Column(db.String(3), nullable=False, default="USD")
    locale = db.Column(db.String(16), nullable=False, default="en")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    company = db.relationship("Company", backref=db.backref("sites", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "slug": self.slug,
            "code": self.code,
            "is_default": self.is_default,
            "status": self.status,
            "timezone": self.timezone,
            "currency": self.currency,
            "locale": self.locale,
            "created_at": to_utc_z(self.created_at),
        }


class Department(db.Model):
    __tablename__ = "departments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)

    company = db.relationship("Company", backref=db.backref("departments", lazy=True))
