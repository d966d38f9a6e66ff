"""
Tests for account activation, user listings, stats and the audit log
"""

import asyncio

import pytest

from afyalink.services.user_service import UserService
from afyalink.utils.error_handler import ValidationError

@pytest.fixture
def admin(make_user):
    return make_user("admin@example.com", roles=["admin"])

def activate(client, headers, user_id, role=None):
    body = {"role": role} if role else None
    return client.post(f"/api/v1/admin/users/{user_id}/activate", json=body, headers=headers)

class TestActivation:
    """Test cases for admins approving accounts"""

    def test_activate_with_role(self, client, headers_for, admin, make_user):
        """Test approving a role-less account as a patient"""
        pending = make_user("new@example.com", status="pending")

        response = activate(client, headers_for(admin), pending.id, role="patient")
        assert response.status_code == 200
        assert response.json()["status"] == "active"
        assert response.json()["role_names"] == ["patient"]

        dashboard = client.get("/api/v1/auth/dashboard", headers=headers_for(pending)).json()
        assert dashboard["state"] == "authorized"
        assert dashboard["dashboard"] == "patient"

    def test_role_required_for_role_less_account(self, client, headers_for, admin, make_user):
        """Test activation without a role when the user has none"""
        pending = make_user("new@example.com", status="pending")

        response = activate(client, headers_for(admin), pending.id)
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "role required"

        dashboard = client.get("/api/v1/auth/dashboard", headers=headers_for(pending)).json()
        assert dashboard["state"] == "pending_approval"

    def test_existing_role_is_kept(self, client, headers_for, admin, make_user):
        """Test a role supplied for a user who already holds one is ignored"""
        pending = make_user("coded@example.com", roles=["nurse"], status="pending")

        response = activate(client, headers_for(admin), pending.id, role="patient")
        assert response.status_code == 200
        assert response.json()["role_names"] == ["nurse"]

    def test_activate_then_redeem(self, client, headers_for, admin, make_user):
        """Test a code redeemed after activation adds a higher-priority role"""
        pending = make_user("upgrade@example.com", status="pending")
        activate(client, headers_for(admin), pending.id, role="patient")
        client.post(
            "/api/v1/admin/registration-codes", json={"code": "DOC1", "role": "doctor"}, headers=headers_for(admin)
        )

        response = client.post("/api/v1/auth/redeem-code", json={"code": "DOC1"}, headers=headers_for(pending))
        assert response.status_code == 200
        assert response.json()["role_names"] == ["doctor", "patient"]

        dashboard = client.get("/api/v1/auth/dashboard", headers=headers_for(pending)).json()
        assert dashboard["dashboard"] == "doctor"

    def test_already_active(self, client, headers_for, admin, make_user):
        """Test activating an active account"""
        active = make_user("active@example.com", roles=["patient"])
        response = activate(client, headers_for(admin), active.id)
        assert response.status_code == 409

    def test_unknown_user(self, client, headers_for, admin):
        """Test activating a user that does not exist"""
        response = activate(client, headers_for(admin), "missing", role="patient")
        assert response.status_code == 404

    def test_non_admin_cannot_activate(self, client, headers_for, make_user):
        """Test only admins approve accounts"""
        doctor = make_user("doctor@example.com", roles=["doctor"])
        pending = make_user("new@example.com", status="pending")
        response = activate(client, headers_for(doctor), pending.id, role="patient")
        assert response.status_code == 403

    def test_invalid_role(self, client, headers_for, admin, make_user):
        """Test activation with an unknown role"""
        pending = make_user("new@example.com", status="pending")
        response = activate(client, headers_for(admin), pending.id, role="janitor")
        assert response.status_code == 422

    def test_service_rejects_unknown_role(self, db_session, admin, make_user, decision_for):
        """Test an unknown role is a validation failure, not a storage error"""
        pending = make_user("new@example.com", status="pending")

        with pytest.raises(ValidationError):
            asyncio.run(UserService(db_session).activate_user(decision_for(admin), pending.id, role="janitor"))

        db_session.expire_all()
        assert decision_for(pending).state.value == "pending_approval"

class TestUserListings:
    """Test cases for the user directory"""

    def test_pending_queue(self, client, headers_for, admin, make_user):
        """Test listing accounts awaiting activation"""
        make_user("p1@example.com", status="pending")
        make_user("p2@example.com", status="pending")
        make_user("active@example.com", roles=["doctor"])

        users = client.get("/api/v1/admin/users/pending", headers=headers_for(admin)).json()
        assert {u["email"] for u in users} == {"p1@example.com", "p2@example.com"}

    def test_paginated_users(self, client, headers_for, admin, make_user):
        """Test pagination and role filter"""
        for i in range(3):
            make_user(f"doc{i}@example.com", roles=["doctor"])
        make_user("nurse@example.com", roles=["nurse"])

        data = client.get(
            "/api/v1/admin/users", params={"page_size": 2, "role": "doctor"}, headers=headers_for(admin)
        ).json()
        assert data["total"] == 3
        assert data["total_pages"] == 2
        assert len(data["users"]) == 2

    def test_search_users(self, client, headers_for, admin, make_user):
        """Test search by email"""
        make_user("wanjiku@example.com", roles=["nurse"])
        data = client.get("/api/v1/admin/users", params={"q": "wanj"}, headers=headers_for(admin)).json()
        assert [u["email"] for u in data["users"]] == ["wanjiku@example.com"]

class TestStats:
    """Test cases for the admin dashboard counters"""

    def test_counts(self, client, headers_for, admin, make_user):
        doctor = make_user("doctor@example.com", roles=["doctor"])
        make_user("patient@example.com", roles=["patient"])
        make_user("pending@example.com", status="pending")
        client.post(
            "/api/v1/referrals/",
            json={
                "patient_email": "patient@example.com",
                "facility_from": "A",
                "facility_to": "B",
                "reason": "Review",
            },
            headers=headers_for(doctor)
        )
        client.post(
            "/api/v1/admin/registration-codes", json={"code": "C1", "role": "nurse"}, headers=headers_for(admin)
        )

        stats = client.get("/api/v1/admin/stats", headers=headers_for(admin)).json()
        assert stats == {
            "total_users": 4,
            "total_referrals": 1,
            "total_codes": 1,
            "pending_referrals": 1,
            "pending_users": 1,
        }

    def test_stats_admin_only(self, client, headers_for, make_user):
        nurse = make_user("nurse@example.com", roles=["nurse"])
        assert client.get("/api/v1/admin/stats", headers=headers_for(nurse)).status_code == 403

class TestActivityLog:
    """Test cases for the audit trail"""

    def test_admin_actions_are_recorded(self, client, headers_for, admin, make_user):
        pending = make_user("new@example.com", status="pending")
        activate(client, headers_for(admin), pending.id, role="patient")

        entries = client.get("/api/v1/admin/activity", headers=headers_for(admin)).json()
        assert any(e["action"] == "activate_user" and e["user_id"] == admin.id for e in entries)

class TestBootstrapAdmin:
    """Test cases for the startup administrator"""

    def test_ensure_admin_is_idempotent(self, db_session, decision_for):
        service = UserService(db_session)
        first = service.ensure_admin("Root@Example.com", "RootPass123!")
        second = service.ensure_admin("root@example.com", "RootPass123!")

        assert first.id == second.id
        assert second.status == "active"
        assert second.role_names == ["admin"]
        assert decision_for(second).dashboard.value == "admin"
