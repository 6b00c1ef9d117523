from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


CONNECTION_STATUS_PENDING = "PENDING"
CONNECTION_STATUS_ACTIVE = "ACTIVE"
CONNECTION_STATUS_SUSPENDED = "SUSPENDED"
CONNECTION_STATUS_TERMINATED = "TERMINATED"


class Vendor(db.Model):
    """
    Supplier organization-level entity.

    MULTI-TENANT: Vendors are scoped to organizations via organization_id.
    Slugs are unique within an organization; codes share the global
    4-character code space with clients, companies and vendor companies.

    LIFECYCLE: PENDING_VERIFICATION -> VERIFIED (verify action) -> ACTIVE.
    Soft delete stamps deleted_at/deleted_by and a cascade_id that is also
    written to every dependent row removed with it.
    """
    __tablename__ = "vendors"
    __table_args__ = (
        db.Index("ix_vendors_org_deleted", "organization_id", "deleted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(16), nullable=False, unique=True, index=True)

    contact_name = db.Column(db.String(255), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(64), nullable=True)
    website = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(32), nullable=False, default="PENDING_VERIFICATION", index=True)
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    verified_by = db.Column(db.String(64), nullable=True)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_by = db.Column(db.String(64), nullable=True)
    cascade_id = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("vendors", lazy=True))

    def __repr__(self) -> str:
        return f"<Vendor id={self.id} code={self.code!r} organization_id={self.organization_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "slug": self.slug,
            "code": self.code,
            "contact_name": self.contact_name,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "website": self.website,
            "status": self.status,
            "is_verified": self.is_verified,
            "verified_at": to_utc_z(self.verified_at),
            "verified_by": self.verified_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class VendorCompany(db.Model):
    """Selling entity of a vendor. Slug unique within its vendor."""
    __tablename__ = "vendor_companies"
    __table_args__ = (
        db.Index("ix_vendor_companies_vendor_slug", "vendor_id", "slug"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(16), nullable=False, unique=True, index=True)
    domain = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE")

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_by = db.Column(db.String(64), nullable=True)
    cascade_id = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    vendor = db.relationship("Vendor", backref=db.backref("vendor_companies", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_id": self.vendor_id,
            "name": self.name,
            "slug": self.slug,
            "code": self.code,
            "domain": self.domain,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class VendorClientConnection(db.Model):
    """
    Supply relationship between a vendor company and a buyer company.

    LIFECYCLE: PENDING -> ACTIVE (approved) | TERMINATED (rejected);
    ACTIVE <-> SUSPENDED afterwards. One row per (vendor_company, company).
    """
    __tablename__ = "vendor_client_connections"
    __table_args__ = (
        db.UniqueConstraint("vendor_company_id", "company_id", name="uq_vendor_connections_pair"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vendor_company_id = db.Column(db.Integer, db.ForeignKey("vendor_companies.id"), nullable=False, index=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=CONNECTION_STATUS_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)

    requested_by = db.Column(db.String(64), nullable=True)
    approved_by = db.Column(db.String(64), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by = db.Column(db.String(64), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    terminated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cascade_id = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    vendor_company = db.relationship("VendorCompany", backref=db.backref("connections", lazy=True))
    company = db.relationship("Company", backref=db.backref("vendor_connections", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_company_id": self.vendor_company_id,
            "company_id": self.company_id,
            "status": self.status,
            "notes": self.notes,
            "requested_by": self.requested_by,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "rejected_by": self.rejected_by,
            "rejected_at": to_utc_z(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "terminated_at": to_utc_z(self.terminated_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class VendorProduct(db.Model):
    """
    Catalog item offered by a vendor company.

    SKU is unique within the vendor company. Products that were synced to a
    connection are deactivated instead of deleted.
    """
    __tablename__ = "vendor_products"
    __table_args__ = (
        db.UniqueConstraint("vendor_company_id", "sku", name="uq_vendor_products_company_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vendor_company_id = db.Column(db.Integer, db.ForeignKey("vendor_companies.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    categories = db.Column(db.JSON, nullable=False, default=list)

    wholesale_price_cents = db.Column(db.Integer, nullable=True)
    retail_price_cents = db.Column(db.Integer, nullable=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    cascade_id = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    vendor_company = db.relationship("VendorCompany", backref=db.backref("products", lazy=True))

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.low_stock_threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_company_id": self.vendor_company_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "categories": list(self.categories or []),
            "wholesale_price_cents": self.wholesale_price_cents,
            "retail_price_cents": self.retail_price_cents,
            "stock_quantity": self.stock_quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class VendorProductSync(db.Model):
    """Record of a vendor product pushed to a buyer over a connection."""
    __tablename__ = "vendor_product_syncs"
    __table_args__ = (
        db.UniqueConstraint("vendor_product_id", "connection_id", name="uq_vendor_product_syncs_pair"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vendor_product_id = db.Column(db.Integer, db.ForeignKey("vendor_products.id"), nullable=False, index=True)
    connection_id = db.Column(db.Integer, db.ForeignKey("vendor_client_connections.id"), nullable=False, index=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    synced_by = db.Column(db.String(64), nullable=True)

    vendor_product = db.relationship("VendorProduct", backref=db.backref("syncs", lazy=True))
    connection = db.relationship("VendorClientConnection", backref=db.backref("product_syncs", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendor_product_id": self.vendor_product_id,
            "connection_id": self.connection_id,
            "synced_at": to_utc_z(self.synced_at),
            "synced_by": self.synced_by,
        }
