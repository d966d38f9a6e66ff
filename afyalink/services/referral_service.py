"""
Referral lifecycle engine
Creation, nurse self-assignment, status transitions and role-scoped reads
"""

from sqlalchemy.orm import Session
from sqlalchemy import or_
from datetime import datetime, date, timedelta
from typing import Optional
import logging

from afyalink.models.enums import ReferralStatus, Role
from afyalink.models.profile import Profile
from afyalink.models.referral import Referral
from afyalink.schemas.referral import ReferralCreate
from afyalink.services.access_gate import Action, ViewDecision
from afyalink.services.lifecycle import INITIAL_STATUS, check_transition
from afyalink.utils.error_handler import (
    DatabaseError, Conflict, Forbidden, NotFound, ValidationError
)

logger = logging.getLogger(__name__)

def can_view(referral: Referral, decision: ViewDecision) -> bool:
    """
    Read access: the patient, the referring doctor, the assigned doctor,
    the assigned nurse and admins. Nurses also see unassigned referrals
    so they can claim them.
    """
    if not decision.is_authorized:
        return False
    if decision.has_role(Role.ADMIN):
        return True
    me = decision.user_id
    if me in (
        referral.patient_id,
        referral.referring_doctor_id,
        referral.assigned_doctor_id,
        referral.assigned_nurse_id,
    ):
        return True
    return decision.has_role(Role.NURSE) and referral.assigned_nurse_id is None

def visibility_filter(decision: ViewDecision):
    """SQL counterpart of can_view(); None means no restriction"""
    if decision.has_role(Role.ADMIN):
        return None
    me = decision.user_id
    clauses = [
        Referral.patient_id == me,
        Referral.referring_doctor_id == me,
        Referral.assigned_doctor_id == me,
        Referral.assigned_nurse_id == me,
    ]
    if decision.has_role(Role.NURSE):
        clauses.append(Referral.assigned_nurse_id.is_(None))
    return or_(*clauses)

def _checked_status(status: Optional[str]) -> Optional[str]:
    if not status or status == "all":
        return None
    try:
        return ReferralStatus(status).value
    except ValueError:
        raise ValidationError(f"Unknown referral status '{status}'")

class ReferralService:
    """Service for referral operations"""

    def __init__(self, db: Session):
        self.db = db

    def _get(self, referral_id: str) -> Referral:
        referral = self.db.query(Referral).filter(Referral.id == referral_id).first()
        if not referral:
            raise NotFound("Referral not found")
        return referral

    async def create_referral(self, decision: ViewDecision, data: ReferralCreate) -> Referral:
        """Doctors only; the patient is resolved from their profile email"""
        decision.require(Action.CREATE_REFERRAL)

        patient = self.db.query(Profile).filter(Profile.email == data.patient_email.lower()).first()
        if not patient:
            raise NotFound("Patient not found with this email")

        try:
            referral = Referral(
                patient_id=patient.id,
                referring_doctor_id=decision.user_id,
                facility_from=data.facility_from,
                facility_to=data.facility_to,
                reason=data.reason,
                diagnosis=data.diagnosis,
                notes=data.notes,
                urgency=data.urgency,
                status=INITIAL_STATUS.value,
                assigned_doctor_id=None,
                assigned_nurse_id=None
            )
            self.db.add(referral)
            self.db.commit()
            self.db.refresh(referral)

            logger.info(f"Doctor {decision.user_id} created referral {referral.id} for patient {patient.id}")
            return referral

        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create referral: {e}")
            raise DatabaseError(f"Failed to create referral: {str(e)}", e)

    async def get_referral(self, decision: ViewDecision, referral_id: str) -> Referral:
        decision.require_active()
        referral = self._get(referral_id)
        if not can_view(referral, decision):
            logger.warning(f"User {decision.user_id} denied read of referral {referral_id}")
            raise Forbidden("You do not have access to this referral")
        return referral

    async def assign_nurse(self, decision: ViewDecision, referral_id: str) -> Referral:
        """
        Claim an unassigned referral for the calling nurse.

        The write is `UPDATE ... WHERE assigned_nurse_id IS NULL`; when two
        nurses race, the row count tells the loser it lost.
        """
        decision.require(Action.ASSIGN_NURSE)
        referral = self._get(referral_id)

        if referral.assigned_nurse_id is not None:
            raise Conflict("Referral is already assigned to a nurse")

        try:
            claimed = (
                self.db.query(Referral)
                .filter(Referral.id == referral_id, Referral.assigned_nurse_id.is_(None))
                .update({Referral.assigned_nurse_id: decision.user_id}, synchronize_session=False)
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to assign referral {referral_id}: {e}")
            raise DatabaseError(f"Failed to assign referral: {str(e)}", e)

        self.db.refresh(referral)
        if claimed == 0:
            logger.warning(f"Nurse {decision.user_id} lost the claim on referral {referral_id}")
            raise Conflict("Referral is already assigned to a nurse")

        logger.info(f"Nurse {decision.user_id} assigned referral {referral_id}")
        return referral

    async def transition(self, decision: ViewDecision, referral_id: str, new_status: str) -> Referral:
        """Move a referral along the lifecycle; only its assigned nurse may"""
        decision.require(Action.TRANSITION_REFERRAL)
        referral = self._get(referral_id)

        if referral.assigned_nurse_id != decision.user_id:
            raise Forbidden("Only the nurse assigned to this referral can change its status")

        current = referral.status
        if not check_transition(current, new_status):
            return referral

        target = ReferralStatus(new_status).value
        try:
            # Guard on the status we validated against
            changed = (
                self.db.query(Referral)
                .filter(Referral.id == referral_id, Referral.status == current)
                .update(
                    {Referral.status: target, Referral.updated_at: datetime.utcnow()},
                    synchronize_session=False
                )
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update referral {referral_id}: {e}")
            raise DatabaseError(f"Failed to update referral status: {str(e)}", e)

        self.db.refresh(referral)
        if changed == 0:
            raise Conflict("Referral status changed while processing the request; reload and try again")

        logger.info(f"Nurse {decision.user_id} moved referral {referral_id} from {current} to {target}")
        return referral

    async def list_visible(
        self,
        decision: ViewDecision,
        status: Optional[str] = None,
        search: Optional[str] = None
    ) -> list[Referral]:
        """Every referral the caller may view, newest first"""
        decision.require_active()
        status = _checked_status(status)
        try:
            query = self.db.query(Referral)

            scope = visibility_filter(decision)
            if scope is not None:
                query = query.filter(scope)
            if status:
                query = query.filter(Referral.status == status)
            if search:
                pattern = f"%{search.strip()}%"
                query = query.filter(
                    or_(
                        Referral.reason.ilike(pattern),
                        Referral.diagnosis.ilike(pattern),
                        Referral.facility_from.ilike(pattern),
                        Referral.facility_to.ilike(pattern)
                    )
                )

            return query.order_by(Referral.created_at.desc()).all()

        except Exception as e:
            logger.error(f"Failed to list referrals: {e}")
            raise DatabaseError(f"Failed to retrieve referrals: {str(e)}", e)

    async def list_in_range(
        self,
        decision: ViewDecision,
        start_date: date,
        end_date: date,
        status: Optional[str] = None
    ) -> list[Referral]:
        """Referrals created between two dates, both days included"""
        decision.require_active()
        if start_date > end_date:
            raise ValidationError("Start date must be on or before end date")
        status = _checked_status(status)

        start = datetime.combine(start_date, datetime.min.time())
        end = datetime.combine(end_date + timedelta(days=1), datetime.min.time())

        try:
            query = self.db.query(Referral).filter(
                Referral.created_at >= start,
                Referral.created_at < end
            )
            scope = visibility_filter(decision)
            if scope is not None:
                query = query.filter(scope)
            if status:
                query = query.filter(Referral.status == status)

            return query.order_by(Referral.created_at.asc()).all()

        except Exception as e:
            logger.error(f"Failed to query referrals for report: {e}")
            raise DatabaseError(f"Failed to retrieve referrals: {str(e)}", e)
