"""
HTTP tests for authentication, scope enforcement and the company routes.
"""

from backoffice.models import Site
from backoffice.services import session_service


class TestAuthentication:

    def test_missing_token_is_401(self, client, db_session):
        response = client.get('/api/companies')
        assert response.status_code == 401
        assert response.get_json()["error"] == "Authentication required"

    def test_unknown_token_is_401(self, client, db_session):
        response = client.get('/api/companies', headers={'Authorization': 'Bearer nope'})
        assert response.status_code == 401
        assert response.get_json()["error"] == "Invalid or expired token"

    def test_revoked_token_is_401(self, client, org_admin_a):
        _, token = session_service.create_session(org_admin_a.id)
        session_service.revoke_session(token)

        response = client.get('/api/companies', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 401

    def test_company_scope_is_403(self, client, auth_headers, company_user_a):
        response = client.get('/api/companies', headers=auth_headers(company_user_a))
        assert response.status_code == 403
        body = response.get_json()
        assert body["error"] == "Access denied"
        assert body["required_scopes"] == ["ORGANIZATION", "CLIENT"]


class TestHealth:

    def test_health_is_public(self, client, db_session, org_a):
        response = client.get('/api/health')
        assert response.status_code == 200
        body = response.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["details"]["organizations"] == 1
        assert body["checks"]["sessions"]["status"] == "healthy"


class TestCompanyRoutes:

    def test_create_and_fetch(self, client, db_session, auth_headers, org_admin_a, client_a):
        headers = auth_headers(org_admin_a)
        response = client.post('/api/companies', json={
            "name": "Route Store",
            "client_id": client_a.id,
            "currency": "gbp",
        }, headers=headers)

        assert response.status_code == 201
        company = response.get_json()["company"]
        assert company["slug"] == "route-store"
        assert company["currency"] == "GBP"
        assert company["client"]["id"] == client_a.id
        assert db_session.query(Site).filter_by(company_id=company["id"], is_default=True).count() == 1

        response = client.get(f'/api/companies/{company["id"]}', headers=headers)
        assert response.status_code == 200
        assert response.get_json()["company"]["name"] == "Route Store"

    def test_create_requires_client_for_org(self, client, auth_headers, org_admin_a):
        response = client.post('/api/companies', json={"name": "No Client"}, headers=auth_headers(org_admin_a))
        assert response.status_code == 400
        assert response.get_json()["error"] == "Client ID is required"

    def test_client_id_must_be_integer(self, client, auth_headers, org_admin_a):
        response = client.post(
            '/api/companies', json={"name": "X", "client_id": 1.5}, headers=auth_headers(org_admin_a)
        )
        assert response.status_code == 400

    def test_list_with_paging(self, client, auth_headers, org_admin_a, company_a, company_a2, company_b):
        response = client.get('/api/companies?limit=1&sort_by=name&sort_order=asc',
                              headers=auth_headers(org_admin_a))
        assert response.status_code == 200
        body = response.get_json()
        assert body["total"] == 2
        assert [c["name"] for c in body["companies"]] == ["Company A"]

    def test_bad_sort_field_is_400(self, client, auth_headers, org_admin_a):
        response = client.get('/api/companies?sort_by=secret', headers=auth_headers(org_admin_a))
        assert response.status_code == 400

    def test_client_admin_sees_own_companies(self, client, auth_headers, client_admin_a, company_a, company_a2):
        response = client.get('/api/companies', headers=auth_headers(client_admin_a))
        body = response.get_json()
        assert body["total"] == 1
        assert body["companies"][0]["id"] == company_a.id

    def test_foreign_company_is_404(self, client, auth_headers, org_admin_a, company_b):
        response = client.get(f'/api/companies/{company_b.id}', headers=auth_headers(org_admin_a))
        assert response.status_code == 404

    def test_stats(self, client, auth_headers, org_admin_a, company_a, company_a2):
        response = client.get('/api/companies/stats', headers=auth_headers(org_admin_a))
        assert response.status_code == 200
        body = response.get_json()
        assert body["total_companies"] == 2
        assert len(body["companies_by_client"]) == 2

    def test_update_and_delete(self, client, auth_headers, org_admin_a, company_a):
        headers = auth_headers(org_admin_a)

        response = client.patch(f'/api/companies/{company_a.id}', json={"status": "SUSPENDED"}, headers=headers)
        assert response.status_code == 200
        assert response.get_json()["company"]["status"] == "SUSPENDED"

        response = client.delete(f'/api/companies/{company_a.id}', headers=headers)
        assert response.status_code == 200
        assert response.get_json()["success"] is True

        response = client.get(f'/api/companies/{company_a.id}', headers=headers)
        assert response.status_code == 404


class TestVendorRoutes:

    def test_vendor_flow(self, client, auth_headers, org_admin_a, client_admin_a, company_a, company_user_a):
        org_headers = auth_headers(org_admin_a)

        response = client.post('/api/admin/vendors', json={"name": "Route Vendor"}, headers=org_headers)
        assert response.status_code == 201
        vendor = response.get_json()["vendor"]

        response = client.post('/api/admin/vendors', json={"name": "Nope"}, headers=auth_headers(client_admin_a))
        assert response.status_code == 403

        response = client.post('/api/admin/vendor-companies', json={
            "vendor_id": vendor["id"], "name": "Route Vendor East",
        }, headers=org_headers)
        assert response.status_code == 201
        vendor_company = response.get_json()["vendor_company"]

        response = client.post('/api/admin/vendor-connections', json={
            "vendor_company_id": vendor_company["id"], "company_id": company_a.id,
        }, headers=org_headers)
        assert response.status_code == 201
        connection = response.get_json()["connection"]
        assert connection["status"] == "PENDING"

        # Approval is decided by the buyer company itself
        response = client.post(f'/api/admin/vendor-connections/{connection["id"]}/approve',
                               json={"approved": True}, headers=auth_headers(company_user_a))
        assert response.status_code == 200
        assert response.get_json()["connection"]["status"] == "ACTIVE"

        response = client.post('/api/admin/vendor-products', json={
            "vendor_company_id": vendor_company["id"],
            "sku": "RV-1",
            "name": "Route Widget",
            "retail_price": "12.99",
            "stock_quantity": 3,
        }, headers=org_headers)
        assert response.status_code == 201
        product = response.get_json()["product"]
        assert product["retail_price_cents"] == 1299

        response = client.post(f'/api/admin/vendor-products/{product["id"]}/sync',
                               json={"connection_id": connection["id"]}, headers=org_headers)
        assert response.status_code == 200

        response = client.get('/api/admin/vendor-products/low-stock', headers=org_headers)
        assert [p["sku"] for p in response.get_json()["products"]] == ["RV-1"]

        response = client.delete(f'/api/admin/vendors/{vendor["id"]}', headers=org_headers)
        assert response.status_code == 200
        assert response.get_json()["cascade_id"]

        response = client.get(f'/api/admin/vendor-products/{product["id"]}', headers=org_headers)
        assert response.status_code == 404

    def test_price_with_three_decimals_is_400(self, client, auth_headers, org_admin_a):
        response = client.post('/api/admin/vendor-products', json={
            "vendor_company_id": 1, "sku": "X", "name": "X", "retail_price": "1.999",
        }, headers=auth_headers(org_admin_a))
        assert response.status_code == 400
        assert "two decimal places" in response.get_json()["error"]
