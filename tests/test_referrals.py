"""
Tests for referral creation, nurse assignment, status transitions and visibility
"""

import asyncio
import pytest

from afyalink.models.content import Facility
from afyalink.models.referral import Referral
from afyalink.services.referral_service import ReferralService
from afyalink.utils.error_handler import Conflict

REFERRAL = {
    "patient_email": "patient@example.com",
    "facility_from": "Kisumu County Hospital",
    "facility_to": "Kenyatta National Hospital",
    "reason": "Specialist cardiology review",
    "diagnosis": "Suspected valve disease",
    "urgency": "high",
}

@pytest.fixture
def people(make_user):
    """One account per role plus a second nurse and a second patient"""
    return {
        "admin": make_user("admin@example.com", roles=["admin"]),
        "doctor": make_user("doctor@example.com", roles=["doctor"]),
        "nurse": make_user("nurse@example.com", roles=["nurse"]),
        "nurse2": make_user("nurse2@example.com", roles=["nurse"]),
        "patient": make_user("patient@example.com", roles=["patient"]),
        "patient2": make_user("patient2@example.com", roles=["patient"]),
    }

@pytest.fixture
def create_referral(client, headers_for, people):
    def _create(**overrides):
        payload = dict(REFERRAL, **overrides)
        response = client.post("/api/v1/referrals/", json=payload, headers=headers_for(people["doctor"]))
        assert response.status_code == 201, response.text
        return response.json()
    return _create

class TestCreateReferral:
    """Test cases for referral creation"""

    def test_doctor_creates_pending_referral(self, create_referral, people):
        """Test a new referral starts pending and unassigned"""
        referral = create_referral()

        assert referral["status"] == "pending"
        assert referral["urgency"] == "high"
        assert referral["patient_id"] == people["patient"].id
        assert referral["referring_doctor_id"] == people["doctor"].id
        assert referral["assigned_nurse_id"] is None
        assert referral["assigned_doctor_id"] is None
        assert referral["patient"]["email"] == "patient@example.com"

    def test_urgency_defaults_to_medium(self, client, headers_for, people):
        """Test omitted urgency"""
        payload = {k: v for k, v in REFERRAL.items() if k != "urgency"}
        response = client.post("/api/v1/referrals/", json=payload, headers=headers_for(people["doctor"]))
        assert response.status_code == 201
        assert response.json()["urgency"] == "medium"

    @pytest.mark.parametrize("role", ["nurse", "patient", "admin"])
    def test_non_doctor_cannot_create(self, client, headers_for, people, role):
        """Test only doctors may create referrals"""
        response = client.post("/api/v1/referrals/", json=REFERRAL, headers=headers_for(people[role]))
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "FORBIDDEN"

    def test_unknown_patient_email(self, client, headers_for, people):
        """Test referral for an email with no profile"""
        payload = dict(REFERRAL, patient_email="nobody@example.com")
        response = client.post("/api/v1/referrals/", json=payload, headers=headers_for(people["doctor"]))
        assert response.status_code == 404
        assert response.json()["error"]["message"] == "Patient not found with this email"

    def test_facilities_are_free_text(self, client, headers_for, people, db_session):
        """Test facility names need not exist in the facility directory"""
        db_session.add(Facility(name="Kenyatta National Hospital", type="hospital"))
        db_session.commit()

        payload = dict(REFERRAL, facility_to="Some Clinic Not In The Directory")
        response = client.post("/api/v1/referrals/", json=payload, headers=headers_for(people["doctor"]))
        assert response.status_code == 201
        assert response.json()["facility_to"] == "Some Clinic Not In The Directory"

    def test_invalid_urgency(self, client, headers_for, people):
        """Test urgency outside the allowed values"""
        payload = dict(REFERRAL, urgency="extreme")
        response = client.post("/api/v1/referrals/", json=payload, headers=headers_for(people["doctor"]))
        assert response.status_code == 422

    def test_blank_reason(self, client, headers_for, people):
        """Test a whitespace-only reason"""
        payload = dict(REFERRAL, reason="   ")
        response = client.post("/api/v1/referrals/", json=payload, headers=headers_for(people["doctor"]))
        assert response.status_code == 422

class TestNurseAssignment:
    """Test cases for nurses claiming referrals"""

    def test_nurse_claims_unassigned_referral(self, client, headers_for, people, create_referral):
        """Test assign-to-me"""
        referral = create_referral()

        response = client.post(f"/api/v1/referrals/{referral['id']}/assign", headers=headers_for(people["nurse"]))
        assert response.status_code == 200
        assert response.json()["assigned_nurse_id"] == people["nurse"].id
        assert response.json()["status"] == "pending"

    def test_second_claim_conflicts(self, client, headers_for, people, create_referral):
        """Test a claimed referral cannot be claimed again"""
        referral = create_referral()
        client.post(f"/api/v1/referrals/{referral['id']}/assign", headers=headers_for(people["nurse"]))

        response = client.post(f"/api/v1/referrals/{referral['id']}/assign", headers=headers_for(people["nurse2"]))
        assert response.status_code == 409

        # The first nurse keeps it
        data = client.get(f"/api/v1/referrals/{referral['id']}", headers=headers_for(people["nurse"])).json()
        assert data["assigned_nurse_id"] == people["nurse"].id

    def test_doctor_cannot_claim(self, client, headers_for, people, create_referral):
        """Test only nurses may self-assign"""
        referral = create_referral()
        response = client.post(f"/api/v1/referrals/{referral['id']}/assign", headers=headers_for(people["doctor"]))
        assert response.status_code == 403

    def test_claim_missing_referral(self, client, headers_for, people):
        """Test assigning a referral that does not exist"""
        response = client.post("/api/v1/referrals/missing/assign", headers=headers_for(people["nurse"]))
        assert response.status_code == 404

    def test_stale_claim_loses_at_the_database(
        self, db_session, session_factory, people, decision_for, create_referral
    ):
        """Test the conditional update rejects a claim based on a stale read"""
        referral_id = create_referral()["id"]
        first = decision_for(people["nurse"])
        second = decision_for(people["nurse2"])

        other_session = session_factory()
        try:
            # The second nurse has already read the referral as unassigned
            stale = other_session.query(Referral).filter(Referral.id == referral_id).one()
            assert stale.assigned_nurse_id is None

            asyncio.run(ReferralService(db_session).assign_nurse(first, referral_id))

            with pytest.raises(Conflict):
                asyncio.run(ReferralService(other_session).assign_nurse(second, referral_id))
        finally:
            other_session.close()

        db_session.expire_all()
        stored = db_session.query(Referral).filter(Referral.id == referral_id).one()
        assert stored.assigned_nurse_id == people["nurse"].id

class TestStatusTransitions:
    """Test cases for moving referrals through the lifecycle"""

    def claimed(self, client, headers_for, people, create_referral):
        referral = create_referral()
        client.post(f"/api/v1/referrals/{referral['id']}/assign", headers=headers_for(people["nurse"]))
        return referral["id"]

    def move(self, client, headers, referral_id, status):
        return client.post(f"/api/v1/referrals/{referral_id}/status", json={"status": status}, headers=headers)

    def test_full_lifecycle(self, client, headers_for, people, create_referral):
        """Test pending -> accepted -> in_progress -> completed"""
        referral_id = self.claimed(client, headers_for, people, create_referral)
        headers = headers_for(people["nurse"])

        for status in ("accepted", "in_progress", "completed"):
            response = self.move(client, headers, referral_id, status)
            assert response.status_code == 200, response.text
            assert response.json()["status"] == status

        response = self.move(client, headers, referral_id, "rejected")
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_TRANSITION"

    def test_reject_from_pending(self, client, headers_for, people, create_referral):
        """Test rejection is allowed before acceptance"""
        referral_id = self.claimed(client, headers_for, people, create_referral)
        response = self.move(client, headers_for(people["nurse"]), referral_id, "rejected")
        assert response.status_code == 200
        assert response.json()["status"] == "rejected"

    def test_cannot_skip_states(self, client, headers_for, people, create_referral):
        """Test pending -> completed is refused"""
        referral_id = self.claimed(client, headers_for, people, create_referral)
        response = self.move(client, headers_for(people["nurse"]), referral_id, "completed")
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_TRANSITION"

    def test_same_status_is_accepted_unchanged(self, client, headers_for, people, create_referral):
        """Test re-sending the current status"""
        referral_id = self.claimed(client, headers_for, people, create_referral)
        response = self.move(client, headers_for(people["nurse"]), referral_id, "pending")
        assert response.status_code == 200
        assert response.json()["status"] == "pending"

    def test_unassigned_nurse_cannot_transition(self, client, headers_for, people, create_referral):
        """Test only the assigned nurse may change status"""
        referral_id = self.claimed(client, headers_for, people, create_referral)
        response = self.move(client, headers_for(people["nurse2"]), referral_id, "accepted")
        assert response.status_code == 403

    def test_nurse_must_claim_first(self, client, headers_for, people, create_referral):
        """Test transition on an unassigned referral"""
        referral_id = create_referral()["id"]
        response = self.move(client, headers_for(people["nurse"]), referral_id, "accepted")
        assert response.status_code == 403

    def test_doctor_cannot_transition(self, client, headers_for, people, create_referral):
        """Test the referring doctor cannot change status"""
        referral_id = self.claimed(client, headers_for, people, create_referral)
        response = self.move(client, headers_for(people["doctor"]), referral_id, "accepted")
        assert response.status_code == 403

    def test_unknown_status(self, client, headers_for, people, create_referral):
        """Test a status outside the lifecycle"""
        referral_id = self.claimed(client, headers_for, people, create_referral)
        response = self.move(client, headers_for(people["nurse"]), referral_id, "archived")
        assert response.status_code == 422

class TestVisibility:
    """Test cases for who can read which referrals"""

    def test_patient_sees_only_own(self, client, headers_for, people, create_referral):
        """Test patient scoping"""
        mine = create_referral()
        other = create_referral(patient_email="patient2@example.com")

        data = client.get("/api/v1/referrals/", headers=headers_for(people["patient"])).json()
        assert [r["id"] for r in data["referrals"]] == [mine["id"]]

        response = client.get(f"/api/v1/referrals/{other['id']}", headers=headers_for(people["patient"]))
        assert response.status_code == 403

    def test_doctor_sees_referrals_they_made(self, client, headers_for, people, make_user, create_referral):
        """Test referring doctor scoping"""
        create_referral()
        other_doctor = make_user("doctor2@example.com", roles=["doctor"])

        assert client.get("/api/v1/referrals/", headers=headers_for(people["doctor"])).json()["total"] == 1
        assert client.get("/api/v1/referrals/", headers=headers_for(other_doctor)).json()["total"] == 0

    def test_nurse_sees_unassigned_and_own(self, client, headers_for, people, create_referral):
        """Test nurses see the claim queue plus their own referrals"""
        claimed = create_referral()
        unassigned = create_referral(patient_email="patient2@example.com")
        client.post(f"/api/v1/referrals/{claimed['id']}/assign", headers=headers_for(people["nurse"]))

        own = {r["id"] for r in client.get("/api/v1/referrals/", headers=headers_for(people["nurse"])).json()["referrals"]}
        assert own == {claimed["id"], unassigned["id"]}

        others = {r["id"] for r in client.get("/api/v1/referrals/", headers=headers_for(people["nurse2"])).json()["referrals"]}
        assert others == {unassigned["id"]}

        response = client.get(f"/api/v1/referrals/{claimed['id']}", headers=headers_for(people["nurse2"]))
        assert response.status_code == 403

    def test_admin_sees_everything(self, client, headers_for, people, create_referral):
        """Test admin visibility"""
        create_referral()
        create_referral(patient_email="patient2@example.com")

        data = client.get("/api/v1/referrals/", headers=headers_for(people["admin"])).json()
        assert data["total"] == 2

    def test_status_filter_and_search(self, client, headers_for, people, create_referral):
        """Test list filters"""
        first = create_referral(reason="Orthopaedic assessment")
        create_referral(reason="Renal follow-up")
        headers = headers_for(people["admin"])

        data = client.get("/api/v1/referrals/", params={"q": "renal"}, headers=headers).json()
        assert [r["reason"] for r in data["referrals"]] == ["Renal follow-up"]

        client.post(f"/api/v1/referrals/{first['id']}/assign", headers=headers_for(people["nurse"]))
        client.post(
            f"/api/v1/referrals/{first['id']}/status", json={"status": "accepted"}, headers=headers_for(people["nurse"])
        )
        data = client.get("/api/v1/referrals/", params={"status": "accepted"}, headers=headers).json()
        assert [r["id"] for r in data["referrals"]] == [first["id"]]

        assert client.get("/api/v1/referrals/", params={"status": "all"}, headers=headers).json()["total"] == 2

    def test_invalid_status_filter(self, client, headers_for, people):
        """Test an unknown status filter"""
        response = client.get("/api/v1/referrals/", params={"status": "archived"}, headers=headers_for(people["admin"]))
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_missing_referral(self, client, headers_for, people):
        """Test reading a referral that does not exist"""
        response = client.get("/api/v1/referrals/missing", headers=headers_for(people["admin"]))
        assert response.status_code == 404
