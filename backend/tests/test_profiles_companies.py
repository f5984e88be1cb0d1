# Overview: Pytest coverage for company, department and profile administration.

"""
Tenant Administration Tests

Verifies:
- Company creation seeds departments and can invite the first owner
- Deactivating a company cascades to its members without touching roles
- Department deletion detaches members
- Profile edits obey rank rules and department/company consistency
"""

import pytest

from stockroom.extensions import db
from stockroom.models import DEFAULT_DEPARTMENTS, Company, Department, Invite, Profile, SessionToken
from stockroom.services import company_service, ledger_service, profile_service
from stockroom.services.policy_service import PermissionDeniedError
from stockroom.services.session_service import validate_session
from stockroom.validation import ConflictError, ValidationError


class TestCompanies:

    def test_create_company_seeds_departments_and_invite(self, super_admin, as_principal):
        company, invite = company_service.create_company(
            as_principal(super_admin), {"name": "Gamma LLC", "industry": "Food"}, owner_email="boss@gamma.test"
        )
        names = sorted(d.name for d in db.session.query(Department).filter_by(company_id=company.id))
        assert names == sorted(name for name, _ in DEFAULT_DEPARTMENTS)
        assert invite.role == "company_owner"
        assert invite.company_id == company.id

    def test_owner_updates_own_company(self, owner_a, company_a, as_principal):
        company_service.update_company(as_principal(owner_a), company_a.id, {"phone": "555-0199"})
        assert db.session.get(Company, company_a.id).phone == "555-0199"

    def test_owner_cannot_change_plan(self, owner_a, company_a, as_principal):
        with pytest.raises(PermissionDeniedError):
            company_service.update_company(as_principal(owner_a), company_a.id, {"subscription_plan": "enterprise"})

    def test_deactivate_cascades_to_members(self, super_admin, company_a, owner_a, staff_a, as_principal, headers_for):
        headers_for(staff_a)
        company_service.deactivate_company(as_principal(super_admin), company_a.id)

        db.session.refresh(staff_a)
        db.session.refresh(owner_a)
        assert staff_a.is_active is False
        assert owner_a.is_active is False
        assert staff_a.role == "staff"
        assert db.session.query(SessionToken).filter_by(profile_id=staff_a.id, is_revoked=False).count() == 0

    def test_deactivated_company_blocks_sessions(self, company_a, owner_a):
        from stockroom.services.session_service import create_session

        _session, token = create_session(owner_a.id)
        company_a.is_active = False
        db.session.commit()
        assert validate_session(token) is None

    def test_list_includes_user_counts(self, client, super_admin, owner_a, staff_a, owner_b, headers_for):
        resp = client.get("/api/companies", headers=headers_for(super_admin))
        counts = {c["name"]: c["user_count"] for c in resp.get_json()["items"]}
        assert counts == {"Acme Corp": 2, "Beta Inc": 1}


class TestDepartments:

    def test_duplicate_name_conflicts(self, owner_a, as_principal):
        with pytest.raises(ConflictError):
            company_service.create_department(as_principal(owner_a), {"name": "warehouse"})

    def test_delete_detaches_members(self, owner_a, staff_a, warehouse_a, as_principal):
        company_service.delete_department(as_principal(owner_a), warehouse_a.id)
        db.session.refresh(staff_a)
        assert staff_a.department_id is None
        assert staff_a.role == "staff"
        assert staff_a.is_active is True

    def test_manager_cannot_delete_department(self, manager_a, warehouse_a, as_principal):
        with pytest.raises(PermissionDeniedError):
            company_service.delete_department(as_principal(manager_a), warehouse_a.id)


class TestProfiles:

    def test_owner_promotes_staff(self, owner_a, staff_a, as_principal):
        profile_service.update_profile(as_principal(owner_a), staff_a.id, {"role": "department_manager"})
        assert db.session.get(Profile, staff_a.id).role == "department_manager"

    def test_manager_cannot_promote_to_owner(self, manager_a, staff_a, as_principal):
        with pytest.raises(PermissionDeniedError):
            profile_service.update_profile(as_principal(manager_a), staff_a.id, {"role": "company_owner"})

    def test_self_role_change_denied(self, owner_a, as_principal):
        with pytest.raises(PermissionDeniedError):
            profile_service.update_profile(as_principal(owner_a), owner_a.id, {"role": "super_admin"})

    def test_self_rename_allowed_for_staff(self, staff_a, as_principal):
        profile_service.update_profile(as_principal(staff_a), staff_a.id, {"full_name": "Sam Stocker"})
        assert db.session.get(Profile, staff_a.id).full_name == "Sam Stocker"

    def test_department_must_match_company(self, owner_a, staff_a, company_b, as_principal):
        foreign = db.session.query(Department).filter_by(company_id=company_b.id).first()
        with pytest.raises(ValidationError):
            profile_service.update_profile(as_principal(owner_a), staff_a.id, {"department_id": foreign.id})

    def test_bulk_status_excludes_self(self, owner_a, staff_a, as_principal):
        with pytest.raises(PermissionDeniedError):
            profile_service.set_profiles_active(as_principal(owner_a), [staff_a.id, owner_a.id], False)
        db.session.refresh(staff_a)
        assert staff_a.is_active is True

    def test_bulk_deactivate_revokes_sessions(self, owner_a, staff_a, manager_a, as_principal, headers_for):
        headers_for(staff_a)
        profile_service.set_profiles_active(as_principal(owner_a), [staff_a.id, manager_a.id], False)
        assert db.session.query(Profile).filter_by(company_id=owner_a.company_id, is_active=False).count() == 2
        assert db.session.query(SessionToken).filter_by(profile_id=staff_a.id, is_revoked=False).count() == 0

    def test_profile_with_history_cannot_be_deleted(self, owner_a, staff_a, product_a, as_principal):
        ledger_service.apply_movement(as_principal(staff_a), product_id=product_a.id, movement_type="in", quantity=1)
        with pytest.raises(ConflictError):
            profile_service.delete_profile(as_principal(owner_a), staff_a.id)

    def test_delete_profile_without_history(self, owner_a, staff_a, as_principal):
        staff_id = staff_a.id
        profile_service.delete_profile(as_principal(owner_a), staff_id)
        assert db.session.get(Profile, staff_id) is None

    def test_accepted_invite_keeps_history_after_delete(self, owner_a, as_principal):
        from stockroom.services import invite_service

        invite = invite_service.create_invite(as_principal(owner_a), email="temp@acme.test", role="staff")
        profile = invite_service.accept_invite(invite.token)
        profile_service.delete_profile(as_principal(owner_a), profile.id)
        kept = db.session.get(Invite, invite.id)
        assert kept.status == "accepted"
        assert kept.accepted_profile_id is None
