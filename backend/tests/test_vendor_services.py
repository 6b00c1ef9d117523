"""
Vendor, vendor company and vendor connection service tests.

MULTI-TENANT: vendors of one organization are invisible to another, writes
are reserved for organization administrators, and connection approval is
decided by whoever can access the buyer company.
"""

import pytest

from backoffice.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from backoffice.models import AuditLog, Vendor, VendorClientConnection, VendorCompany, VendorProduct
from backoffice.services import (
    vendor_company_service,
    vendor_connection_service,
    vendor_product_service,
    vendor_service,
)


@pytest.fixture
def vendor_a(org_principal_a):
    return vendor_service.create_vendor(org_principal_a, name="Supply Co", contact_email="ops@supply.test")


@pytest.fixture
def vendor_company_a(org_principal_a, vendor_a):
    return vendor_company_service.create_vendor_company(org_principal_a, vendor_id=vendor_a.id, name="Supply East")


@pytest.fixture
def connection_a(org_principal_a, vendor_company_a, company_a):
    return vendor_connection_service.create_connection(
        org_principal_a, vendor_company_id=vendor_company_a.id, company_id=company_a.id, notes="Pilot"
    )


class TestVendors:

    def test_create_starts_pending_verification(self, org_principal_a, org_a, vendor_a):
        assert vendor_a.status == "PENDING_VERIFICATION"
        assert vendor_a.is_verified is False
        assert vendor_a.organization_id == org_a.id
        assert vendor_a.slug == "supply-co"
        assert vendor_a.code == "SUPP"

    def test_duplicate_slug_conflicts(self, org_principal_a, vendor_a):
        with pytest.raises(ConflictError):
            vendor_service.create_vendor(org_principal_a, name="Supply  Co!")

    def test_same_name_in_other_org_allowed(self, org_principal_b, vendor_a):
        other = vendor_service.create_vendor(org_principal_b, name="Supply Co")
        assert other.slug == vendor_a.slug
        assert other.code != vendor_a.code

    def test_client_reads_but_cannot_write(self, client_principal_a, vendor_a):
        vendors, total = vendor_service.list_vendors(client_principal_a)
        assert total == 1
        assert vendors[0].id == vendor_a.id

        with pytest.raises(ForbiddenError, match="Only organization administrators"):
            vendor_service.create_vendor(client_principal_a, name="Client Vendor")

    def test_other_org_cannot_see_vendor(self, org_principal_b, vendor_a):
        with pytest.raises(NotFoundError):
            vendor_service.get_vendor(org_principal_b, vendor_a.id)
        assert vendor_service.list_vendors(org_principal_b) == ([], 0)

    def test_list_filters(self, org_principal_a, vendor_a):
        vendor_service.create_vendor(org_principal_a, name="Other Goods")
        vendor_service.verify_vendor(org_principal_a, vendor_a.id)

        vendors, total = vendor_service.list_vendors(org_principal_a, is_verified=True)
        assert total == 1
        assert vendors[0].id == vendor_a.id

        vendors, total = vendor_service.list_vendors(org_principal_a, search="other")
        assert [v.name for v in vendors] == ["Other Goods"]

    def test_unknown_sort_order_rejected(self, org_principal_a, vendor_a):
        with pytest.raises(BadRequestError, match="sort_order"):
            vendor_service.list_vendors(org_principal_a, sort_order="sideways")

    def test_verify_then_activate(self, org_principal_a, vendor_a):
        with pytest.raises(BadRequestError, match="must be verified"):
            vendor_service.update_vendor(org_principal_a, vendor_a.id, {"status": "ACTIVE"})

        vendor = vendor_service.verify_vendor(org_principal_a, vendor_a.id)
        assert vendor.status == "VERIFIED"
        assert vendor.is_verified is True
        assert vendor.verified_by == str(org_principal_a.user_id)

        vendor = vendor_service.update_vendor(org_principal_a, vendor_a.id, {"status": "ACTIVE"})
        assert vendor.status == "ACTIVE"

        with pytest.raises(BadRequestError, match="Cannot verify vendor with status ACTIVE"):
            vendor_service.verify_vendor(org_principal_a, vendor_a.id)

    def test_rename_updates_slug(self, org_principal_a, vendor_a):
        vendor = vendor_service.update_vendor(org_principal_a, vendor_a.id, {"name": "Supply Company"})
        assert vendor.slug == "supply-company"


class TestVendorCompanies:

    def test_create_under_vendor(self, vendor_company_a, vendor_a):
        assert vendor_company_a.vendor_id == vendor_a.id
        assert vendor_company_a.slug == "supply-east"
        assert vendor_company_a.status == "ACTIVE"
        assert len(vendor_company_a.code) == 4

    def test_slug_unique_within_vendor(self, org_principal_a, vendor_a, vendor_company_a):
        with pytest.raises(ConflictError):
            vendor_company_service.create_vendor_company(org_principal_a, vendor_id=vendor_a.id, name="Supply East")

    def test_vendor_of_other_org_not_found(self, org_principal_b, vendor_a):
        with pytest.raises(NotFoundError):
            vendor_company_service.create_vendor_company(org_principal_b, vendor_id=vendor_a.id, name="Sneaky")

    def test_invalid_status_rejected(self, org_principal_a, vendor_company_a):
        with pytest.raises(BadRequestError):
            vendor_company_service.update_vendor_company(org_principal_a, vendor_company_a.id, {"status": "GONE"})


class TestConnections:

    def test_create_pending(self, org_principal_a, connection_a, vendor_company_a, company_a):
        assert connection_a.status == "PENDING"
        assert connection_a.requested_by == str(org_principal_a.user_id)
        assert connection_a.company_id == company_a.id

    def test_duplicate_pair_conflicts(self, org_principal_a, connection_a, vendor_company_a, company_a):
        with pytest.raises(ConflictError):
            vendor_connection_service.create_connection(
                org_principal_a, vendor_company_id=vendor_company_a.id, company_id=company_a.id
            )

    def test_company_outside_org_not_found(self, org_principal_a, vendor_company_a, company_b):
        with pytest.raises(NotFoundError, match="Company not found in this organization"):
            vendor_connection_service.create_connection(
                org_principal_a, vendor_company_id=vendor_company_a.id, company_id=company_b.id
            )

    def test_buyer_company_user_approves(self, company_principal_a, connection_a):
        connection = vendor_connection_service.approve_connection(
            company_principal_a, connection_a.id, approved=True
        )
        assert connection.status == "ACTIVE"
        assert connection.approved_by == str(company_principal_a.user_id)
        assert connection.approved_at is not None

    def test_rejection_terminates(self, org_principal_a, connection_a):
        connection = vendor_connection_service.approve_connection(
            org_principal_a, connection_a.id, approved=False, rejection_reason="Not needed"
        )
        assert connection.status == "TERMINATED"
        assert connection.rejection_reason == "Not needed"
        assert connection.terminated_at is not None

    def test_other_company_cannot_approve(self, db_session, company_principal_a2, connection_a):
        with pytest.raises(ForbiddenError):
            vendor_connection_service.approve_connection(company_principal_a2, connection_a.id, approved=True)

        assert db_session.query(AuditLog).filter_by(action="ACCESS_DENIED").count() == 1
        assert db_session.get(VendorClientConnection, connection_a.id).status == "PENDING"

    def test_other_org_connection_looks_missing(self, db_session, org_principal_b, connection_a):
        with pytest.raises(NotFoundError):
            vendor_connection_service.approve_connection(org_principal_b, connection_a.id, approved=True)
        with pytest.raises(NotFoundError):
            vendor_connection_service.approve_connection(org_principal_b, 999999, approved=True)

        assert db_session.query(AuditLog).filter_by(action="ACCESS_DENIED").count() == 0
        assert db_session.get(VendorClientConnection, connection_a.id).status == "PENDING"

    def test_only_pending_can_be_decided(self, org_principal_a, connection_a):
        vendor_connection_service.approve_connection(org_principal_a, connection_a.id, approved=True)
        with pytest.raises(BadRequestError, match="Cannot approve connection with status ACTIVE"):
            vendor_connection_service.approve_connection(org_principal_a, connection_a.id, approved=True)

    def test_suspend_and_resume(self, org_principal_a, connection_a):
        with pytest.raises(BadRequestError):
            vendor_connection_service.update_connection(org_principal_a, connection_a.id, {"status": "SUSPENDED"})

        vendor_connection_service.approve_connection(org_principal_a, connection_a.id, approved=True)
        connection = vendor_connection_service.update_connection(
            org_principal_a, connection_a.id, {"status": "SUSPENDED", "notes": "Paused"}
        )
        assert connection.status == "SUSPENDED"
        assert connection.notes == "Paused"

        connection = vendor_connection_service.update_connection(org_principal_a, connection_a.id, {"status": "ACTIVE"})
        assert connection.status == "ACTIVE"

    def test_terminate_once(self, org_principal_a, connection_a):
        connection = vendor_connection_service.terminate_connection(org_principal_a, connection_a.id)
        assert connection.status == "TERMINATED"
        with pytest.raises(BadRequestError, match="already terminated"):
            vendor_connection_service.terminate_connection(org_principal_a, connection_a.id)

    def test_client_list_limited_to_own_companies(self, org_principal_a, client_principal_a, vendor_company_a,
                                                  connection_a, company_a2):
        vendor_connection_service.create_connection(
            org_principal_a, vendor_company_id=vendor_company_a.id, company_id=company_a2.id
        )

        _, org_total = vendor_connection_service.list_connections(org_principal_a)
        connections, client_total = vendor_connection_service.list_connections(client_principal_a)
        assert org_total == 2
        assert client_total == 1
        assert connections[0].id == connection_a.id


class TestCascadeDelete:
    """One cascade_id ties together every row touched by a vendor delete."""

    def test_delete_vendor_cascades(self, db_session, org_principal_a, vendor_a, vendor_company_a, connection_a):
        product = vendor_product_service.create_product(
            org_principal_a, vendor_company_id=vendor_company_a.id, sku="SKU-1", name="Widget"
        )

        cascade_id = vendor_service.delete_vendor(org_principal_a, vendor_a.id)
        db_session.expire_all()

        vendor = db_session.get(Vendor, vendor_a.id)
        vendor_company = db_session.get(VendorCompany, vendor_company_a.id)
        product = db_session.get(VendorProduct, product.id)
        connection = db_session.get(VendorClientConnection, connection_a.id)

        assert vendor.deleted_at is not None
        assert vendor.cascade_id == cascade_id
        assert vendor_company.deleted_at is not None
        assert vendor_company.cascade_id == cascade_id
        assert product.is_active is False
        assert product.cascade_id == cascade_id
        assert connection.status == "TERMINATED"
        assert connection.cascade_id == cascade_id

        entry = db_session.query(AuditLog).filter_by(action="SOFT_DELETE", entity_type="Vendor").one()
        assert entry.metadata_json["cascade_id"] == cascade_id
        assert entry.metadata_json["products"] == 1
        assert entry.metadata_json["connections"] == 1

        with pytest.raises(NotFoundError):
            vendor_service.get_vendor(org_principal_a, vendor_a.id)

    def test_delete_vendor_company_leaves_vendor(self, db_session, org_principal_a, vendor_a, vendor_company_a):
        cascade_id = vendor_company_service.delete_vendor_company(org_principal_a, vendor_company_a.id)
        db_session.expire_all()

        assert db_session.get(VendorCompany, vendor_company_a.id).cascade_id == cascade_id
        assert db_session.get(Vendor, vendor_a.id).deleted_at is None
