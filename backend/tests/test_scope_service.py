"""
Scope resolution and hierarchy access tests.

Covers principal construction, organization resolution for CLIENT users
without an organization_id, CompanyScope containment and company-level
access checks (including the audit of denied attempts).
"""

import pytest

from backoffice.errors import ForbiddenError
from backoffice.models import AuditLog, Company, User
from backoffice.models.auth import SCOPE_COMPANY
from backoffice.services import audit_service
from backoffice.services.hierarchy_service import can_access_company, validate_company_access
from backoffice.services.scope_service import (
    ClientPrincipal,
    CompanyPrincipal,
    OrganizationPrincipal,
    company_scope_for,
    principal_from_user,
    resolve_organization_id,
)
from backoffice.time_utils import utcnow


class TestPrincipalFromUser:
    """The authentication boundary builds one principal type per scope."""

    def test_builds_each_scope(self, org_admin_a, client_admin_a, company_user_a, department_user_a):
        assert isinstance(principal_from_user(org_admin_a), OrganizationPrincipal)
        assert isinstance(principal_from_user(client_admin_a), ClientPrincipal)
        assert isinstance(principal_from_user(company_user_a), CompanyPrincipal)

        dept = principal_from_user(department_user_a)
        assert dept.scope_type == "DEPARTMENT"
        assert dept.company_id == department_user_a.company_id

    def test_missing_scope_id_is_forbidden(self, db_session):
        user = User(email="broken@example.com", scope_type=SCOPE_COMPANY)
        db_session.add(user)
        db_session.commit()

        with pytest.raises(ForbiddenError):
            principal_from_user(user)


class TestResolveOrganization:

    def test_client_principal_resolves_through_client(self, client_principal_a, org_a):
        assert client_principal_a.organization_id is None
        assert resolve_organization_id(client_principal_a) == org_a.id

    def test_company_principal_without_org_is_forbidden(self):
        principal = CompanyPrincipal(user_id=1, company_id=1)
        with pytest.raises(ForbiddenError):
            resolve_organization_id(principal)


class TestCompanyScope:
    """Visible companies never leave the caller's organization or client."""

    def _visible(self, db_session, scope):
        return {c.id for c in scope.apply(db_session.query(Company)).all()}

    def test_org_sees_all_clients_in_org(self, db_session, org_principal_a, company_a, company_a2, company_b):
        visible = self._visible(db_session, company_scope_for(org_principal_a))
        assert visible == {company_a.id, company_a2.id}

    def test_client_pinned_to_own_client(self, db_session, client_principal_a, client_a2,
                                         company_a, company_a2):
        # A different client filter is ignored for CLIENT principals
        scope = company_scope_for(client_principal_a, client_a2.id)
        assert self._visible(db_session, scope) == {company_a.id}

    def test_org_client_filter_outside_org_is_forbidden(self, org_principal_a, client_b):
        with pytest.raises(ForbiddenError):
            company_scope_for(org_principal_a, client_b.id)

    def test_soft_deleted_companies_hidden(self, db_session, org_principal_a, company_a, company_a2):
        company_a2.deleted_at = utcnow()
        db_session.commit()

        assert self._visible(db_session, company_scope_for(org_principal_a)) == {company_a.id}

    def test_company_principal_cannot_build_scope(self, company_principal_a):
        with pytest.raises(ForbiddenError):
            company_scope_for(company_principal_a)


class TestHierarchyAccess:

    def test_access_matrix(self, org_principal_a, client_principal_a, company_principal_a,
                           company_a, company_a2, company_b):
        assert can_access_company(org_principal_a, company_a.id)
        assert can_access_company(org_principal_a, company_a2.id)
        assert not can_access_company(org_principal_a, company_b.id)

        assert can_access_company(client_principal_a, company_a.id)
        assert not can_access_company(client_principal_a, company_a2.id)

        assert can_access_company(company_principal_a, company_a.id)
        assert not can_access_company(company_principal_a, company_a2.id)

    def test_missing_company_is_not_accessible(self, org_principal_a):
        assert not can_access_company(org_principal_a, 999999)

    def test_denied_access_is_audited(self, db_session, org_principal_a, company_b):
        with pytest.raises(ForbiddenError):
            validate_company_access(org_principal_a, company_b.id, "list refunds")

        entry = db_session.query(AuditLog).filter_by(action=audit_service.ACTION_ACCESS_DENIED).one()
        assert entry.entity_type == "Company"
        assert entry.entity_id == str(company_b.id)
        assert entry.user_id == str(org_principal_a.user_id)
        assert "list refunds" in entry.metadata_json["attempted_resource"]
