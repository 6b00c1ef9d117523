"""
Vendor product catalog tests: SKU rules, filters, low stock, bulk stock
updates with partial success, and syncing products to connections.
"""

import pytest

from backoffice.errors import BadRequestError, ConflictError, NotFoundError
from backoffice.models import VendorProduct, VendorProductSync
from backoffice.services import (
    vendor_company_service,
    vendor_connection_service,
    vendor_product_service,
    vendor_service,
)


@pytest.fixture
def vendor_company_a(org_principal_a):
    vendor = vendor_service.create_vendor(org_principal_a, name="Parts Direct")
    return vendor_company_service.create_vendor_company(org_principal_a, vendor_id=vendor.id, name="Parts West")


@pytest.fixture
def make_product(org_principal_a, vendor_company_a):
    def _make(sku, **fields):
        fields.setdefault("name", f"Product {sku}")
        return vendor_product_service.create_product(
            org_principal_a, vendor_company_id=vendor_company_a.id, sku=sku, **fields
        )
    return _make


@pytest.fixture
def active_connection(org_principal_a, vendor_company_a, company_a):
    connection = vendor_connection_service.create_connection(
        org_principal_a, vendor_company_id=vendor_company_a.id, company_id=company_a.id
    )
    return vendor_connection_service.approve_connection(org_principal_a, connection.id, approved=True)


class TestCreateProduct:

    def test_defaults(self, make_product):
        product = make_product("SKU-1", retail_price_cents=1299)
        assert product.stock_quantity == 0
        assert product.low_stock_threshold == 10
        assert product.is_active is True
        assert product.categories == []
        assert product.retail_price_cents == 1299

    def test_sku_unique_per_vendor_company(self, make_product):
        make_product("SKU-1")
        with pytest.raises(ConflictError):
            make_product("SKU-1")

    def test_negative_stock_rejected(self, make_product):
        with pytest.raises(BadRequestError, match="cannot be negative"):
            make_product("SKU-1", stock_quantity=-1)

    def test_categories_normalized(self, make_product):
        assert make_product("SKU-1", categories="tools, garden ,").categories == ["tools", "garden"]
        with pytest.raises(BadRequestError):
            make_product("SKU-2", categories={"tools": True})

    def test_other_org_cannot_use_vendor_company(self, org_principal_b, vendor_company_a):
        with pytest.raises(NotFoundError):
            vendor_product_service.create_product(
                org_principal_b, vendor_company_id=vendor_company_a.id, sku="X", name="X"
            )


class TestListProducts:

    def test_filters(self, org_principal_a, make_product):
        make_product("SKU-1", name="Hammer", categories=["tools"], stock_quantity=50)
        make_product("SKU-2", name="Paint", categories=["decor", "paint"], stock_quantity=3)
        make_product("SKU-3", name="Ladder", categories=["tools"], stock_quantity=0, is_active=False)

        products, total = vendor_product_service.list_products(org_principal_a, categories=["paint"])
        assert [p.sku for p in products] == ["SKU-2"]

        products, total = vendor_product_service.list_products(org_principal_a, categories=["tools"], is_active=True)
        assert [p.sku for p in products] == ["SKU-1"]

        products, total = vendor_product_service.list_products(org_principal_a, search="lad")
        assert [p.sku for p in products] == ["SKU-3"]

        products, total = vendor_product_service.list_products(
            org_principal_a, sort_by="stock_quantity", sort_order="asc"
        )
        assert total == 3
        assert [p.sku for p in products] == ["SKU-3", "SKU-2", "SKU-1"]

    def test_low_stock_only_active(self, org_principal_a, make_product):
        make_product("SKU-1", stock_quantity=50)
        make_product("SKU-2", stock_quantity=10)
        make_product("SKU-3", stock_quantity=2)
        make_product("SKU-4", stock_quantity=0, is_active=False)

        low = vendor_product_service.list_low_stock(org_principal_a)
        assert [p.sku for p in low] == ["SKU-3", "SKU-2"]

    def test_unknown_sort_order_rejected(self, org_principal_a):
        with pytest.raises(BadRequestError, match="sort_order"):
            vendor_product_service.list_products(org_principal_a, sort_order="sideways")

    def test_client_can_read(self, client_principal_a, make_product):
        make_product("SKU-1")
        _, total = vendor_product_service.list_products(client_principal_a)
        assert total == 1


class TestBulkStock:

    def test_partial_success(self, db_session, org_principal_a, make_product):
        first = make_product("SKU-1", stock_quantity=5)
        second = make_product("SKU-2", stock_quantity=7)

        result = vendor_product_service.bulk_update_stock(org_principal_a, [
            {"product_id": first.id, "stock_quantity": 40},
            {"product_id": 999999, "stock_quantity": 1},
            {"product_id": second.id, "stock_quantity": -3},
            {"product_id": "abc", "stock_quantity": 1},
        ])

        assert result["updated"] == 1
        assert result["failed"] == [999999, second.id, "abc"]
        assert "not found" in result["errors"][0]["error"]

        db_session.expire_all()
        assert db_session.get(VendorProduct, first.id).stock_quantity == 40
        assert db_session.get(VendorProduct, second.id).stock_quantity == 7

    def test_missing_middle_id_reports_count_and_ids(self, db_session, org_principal_a, make_product):
        first = make_product("SKU-1")
        third = make_product("SKU-3")

        result = vendor_product_service.bulk_update_stock(org_principal_a, [
            {"product_id": first.id, "stock_quantity": 5},
            {"product_id": 424242, "stock_quantity": 5},
            {"product_id": third.id, "stock_quantity": 5},
        ])

        assert result["updated"] == 2
        assert result["failed"] == [424242]

        db_session.expire_all()
        assert db_session.get(VendorProduct, first.id).stock_quantity == 5
        assert db_session.get(VendorProduct, third.id).stock_quantity == 5


class TestSyncAndDelete:

    def test_sync_requires_active_connection(self, org_principal_a, vendor_company_a, company_a, make_product):
        product = make_product("SKU-1")
        pending = vendor_connection_service.create_connection(
            org_principal_a, vendor_company_id=vendor_company_a.id, company_id=company_a.id
        )
        with pytest.raises(BadRequestError, match="status PENDING"):
            vendor_product_service.sync_product(org_principal_a, product.id, pending.id)

    def test_sync_and_resync(self, db_session, org_principal_a, make_product, active_connection):
        product = make_product("SKU-1")

        first = vendor_product_service.sync_product(org_principal_a, product.id, active_connection.id)
        first_synced_at = first.synced_at
        second = vendor_product_service.sync_product(org_principal_a, product.id, active_connection.id)

        assert second.id == first.id
        assert second.synced_at >= first_synced_at
        assert db_session.query(VendorProductSync).count() == 1

    def test_inactive_product_cannot_sync(self, org_principal_a, make_product, active_connection):
        product = make_product("SKU-1", is_active=False)
        with pytest.raises(BadRequestError, match="inactive"):
            vendor_product_service.sync_product(org_principal_a, product.id, active_connection.id)

    def test_unknown_connection(self, org_principal_a, make_product):
        product = make_product("SKU-1")
        with pytest.raises(NotFoundError):
            vendor_product_service.sync_product(org_principal_a, product.id, 999999)

    def test_delete_unsynced_removes(self, db_session, org_principal_a, make_product):
        product = make_product("SKU-1")
        result = vendor_product_service.delete_product(org_principal_a, product.id)

        assert result == {"deleted": True, "deactivated": False}
        assert db_session.get(VendorProduct, product.id) is None

    def test_delete_synced_deactivates(self, db_session, org_principal_a, make_product, active_connection):
        product = make_product("SKU-1")
        vendor_product_service.sync_product(org_principal_a, product.id, active_connection.id)

        result = vendor_product_service.delete_product(org_principal_a, product.id)

        assert result == {"deleted": False, "deactivated": True}
        assert db_session.get(VendorProduct, product.id).is_active is False
