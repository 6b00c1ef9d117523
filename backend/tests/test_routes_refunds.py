"""
HTTP tests for the refund routes.

COMPANY CONTEXT: company users act on their own company; organization and
client admins must name a company they can access, and denied attempts are
audited.
"""

import base64
import json

from backoffice.models import AuditLog


def _create(client, headers, order, **extra):
    body = {
        "order_id": order.id,
        "customer_id": order.customer_id,
        "requested_amount_cents": 2500,
        "reason": "PRODUCT_DEFECT",
    }
    body.update(extra)
    return client.post('/api/refunds', json=body, headers=headers)


class TestCompanyContext:

    def test_company_user_creates_for_own_company(self, client, auth_headers, company_user_a, company_a, order_a):
        response = _create(client, auth_headers(company_user_a), order_a)
        assert response.status_code == 201
        refund = response.get_json()["refund"]
        assert refund["company_id"] == company_a.id
        assert refund["status"] == "PENDING"
        assert refund["refund_number"] == "RF-00001"

    def test_org_admin_needs_company_id(self, client, auth_headers, org_admin_a, order_a):
        response = _create(client, auth_headers(org_admin_a), order_a)
        assert response.status_code == 403
        assert "Company context required" in response.get_json()["error"]

    def test_org_admin_with_company_id(self, client, auth_headers, org_admin_a, company_a, order_a):
        response = _create(client, auth_headers(org_admin_a), order_a, company_id=company_a.id)
        assert response.status_code == 201

    def test_foreign_company_is_403_and_audited(self, client, db_session, auth_headers, org_admin_b,
                                                company_a, order_a):
        response = client.get(f'/api/refunds?company_id={company_a.id}', headers=auth_headers(org_admin_b))
        assert response.status_code == 403

        entry = db_session.query(AuditLog).filter_by(action="ACCESS_DENIED").one()
        assert entry.entity_id == str(company_a.id)

    def test_client_admin_cannot_reach_sibling_client(self, client, auth_headers, client_admin_a, company_a2):
        response = client.get(f'/api/refunds?company_id={company_a2.id}', headers=auth_headers(client_admin_a))
        assert response.status_code == 403

    def test_org_list_without_company_covers_visible(self, client, auth_headers, org_admin_a, org_admin_b,
                                                     company_user_a, order_a):
        _create(client, auth_headers(company_user_a), order_a)

        response = client.get('/api/refunds', headers=auth_headers(org_admin_a))
        assert response.get_json()["total"] == 1

        response = client.get('/api/refunds', headers=auth_headers(org_admin_b))
        assert response.get_json()["total"] == 0


class TestCreateValidation:

    def test_decimal_amount_accepted(self, client, auth_headers, company_user_a, order_a):
        response = _create(client, auth_headers(company_user_a), order_a,
                           requested_amount_cents=None, requested_amount="25.50")
        assert response.status_code == 201
        assert response.get_json()["refund"]["requested_amount_cents"] == 2550

    def test_float_cents_rejected(self, client, auth_headers, company_user_a, order_a):
        response = _create(client, auth_headers(company_user_a), order_a, requested_amount_cents=25.5)
        assert response.status_code == 400

    def test_missing_order_is_400(self, client, auth_headers, company_user_a, order_a):
        response = _create(client, auth_headers(company_user_a), order_a, order_id=None)
        assert response.status_code == 400
        assert response.get_json()["error"] == "order_id is required"

    def test_unknown_order_is_404(self, client, auth_headers, company_user_a, order_a):
        response = _create(client, auth_headers(company_user_a), order_a, order_id=999999)
        assert response.status_code == 404


class TestWorkflow:

    def test_approve_process_completes_with_stub(self, client, auth_headers, company_user_a, order_a):
        headers = auth_headers(company_user_a)
        refund_id = _create(client, headers, order_a, requested_amount_cents=20000).get_json()["refund"]["id"]

        response = client.post(f'/api/refunds/{refund_id}/approve', json={"approved_amount": "150.00"},
                                headers=headers)
        assert response.status_code == 200
        assert response.get_json()["refund"]["approved_amount_cents"] == 15000

        response = client.post(f'/api/refunds/{refund_id}/process', headers=headers)
        assert response.status_code == 200
        refund = response.get_json()["refund"]
        assert refund["status"] == "COMPLETED"
        assert refund["processor_transaction_id"].startswith("stub_")

        response = client.get(f'/api/refunds/{refund_id}', headers=headers)
        body = response.get_json()["refund"]
        assert body["order"]["order_number"] == order_a.order_number

    def test_invalid_transition_is_400(self, client, auth_headers, company_user_a, order_a):
        headers = auth_headers(company_user_a)
        refund_id = _create(client, headers, order_a).get_json()["refund"]["id"]

        assert client.delete(f'/api/refunds/{refund_id}', headers=headers).status_code == 200

        response = client.post(f'/api/refunds/{refund_id}/approve', json={}, headers=headers)
        assert response.status_code == 400
        assert response.get_json()["error"] == "Cannot approve refund with status CANCELLED"

    def test_reject_without_reason_is_400(self, client, auth_headers, company_user_a, order_a):
        headers = auth_headers(company_user_a)
        refund_id = _create(client, headers, order_a).get_json()["refund"]["id"]

        response = client.post(f'/api/refunds/{refund_id}/reject', json={}, headers=headers)
        assert response.status_code == 400

    def test_other_company_refund_is_404(self, client, auth_headers, company_user_a, company_user_a2, order_a):
        refund_id = _create(client, auth_headers(company_user_a), order_a).get_json()["refund"]["id"]

        response = client.get(f'/api/refunds/{refund_id}', headers=auth_headers(company_user_a2))
        assert response.status_code == 404


class TestSettingsAndStats:

    def test_enable_auto_approval(self, client, auth_headers, company_user_a, order_a):
        headers = auth_headers(company_user_a)

        response = client.get('/api/refunds/settings/current', headers=headers)
        assert response.status_code == 200
        assert response.get_json()["settings"]["auto_approval_enabled"] is False

        response = client.patch('/api/refunds/settings/current', json={
            "auto_approval_enabled": True,
            "auto_approval_max_amount": "50.00",
        }, headers=headers)
        assert response.status_code == 200
        settings = response.get_json()["settings"]
        assert settings["auto_approval_max_amount_cents"] == 5000

        refund = _create(client, headers, order_a, requested_amount_cents=5000).get_json()["refund"]
        assert refund["status"] == "APPROVED"
        assert refund["approved_by"] == "SYSTEM_AUTO_APPROVAL"

    def test_stats(self, client, auth_headers, company_user_a, order_a):
        headers = auth_headers(company_user_a)
        _create(client, headers, order_a)
        _create(client, headers, order_a)

        response = client.get('/api/refunds/stats', headers=headers)
        assert response.status_code == 200
        body = response.get_json()
        assert body["total_refunds"] == 2
        assert body["pending_refunds"] == 2

    def test_cursor_pagination(self, client, auth_headers, company_user_a, order_a):
        headers = auth_headers(company_user_a)
        for _ in range(3):
            _create(client, headers, order_a)

        first = client.get('/api/refunds?cursor=&limit=2', headers=headers).get_json()
        assert len(first["items"]) == 2
        assert first["has_more"] is True

        second = client.get(f'/api/refunds?cursor={first["next_cursor"]}&limit=2', headers=headers).get_json()
        assert len(second["items"]) == 1
        assert second["has_more"] is False
        assert second["next_cursor"] is None

    def test_bad_cursor_is_400(self, client, auth_headers, company_user_a):
        response = client.get('/api/refunds?cursor=bogus', headers=auth_headers(company_user_a))
        assert response.status_code == 400

    def test_cursor_with_non_string_timestamp_is_400(self, client, auth_headers, company_user_a):
        cursor = base64.urlsafe_b64encode(json.dumps({"created_at": 5, "id": 1}).encode()).decode()
        response = client.get(f'/api/refunds?cursor={cursor}', headers=auth_headers(company_user_a))
        assert response.status_code == 400
        assert response.get_json()["error"] == "Invalid cursor"
