"""
Admin dashboard counters
"""

from sqlalchemy.orm import Session
from typing import Optional
import logging

from afyalink.models.enums import ProfileStatus, ReferralStatus
from afyalink.models.profile import Profile
from afyalink.models.referral import Referral
from afyalink.models.registration_code import RegistrationCode
from afyalink.services.access_gate import Action, ViewDecision

logger = logging.getLogger(__name__)

class StatsService:
    """Counts are best effort: a failing counter is logged and reported as None"""

    def __init__(self, db: Session):
        self.db = db

    def _count(self, name: str, query) -> Optional[int]:
        try:
            return query.count()
        except Exception as e:
            logger.error(f"Failed to count {name}: {e}")
            self.db.rollback()
            return None

    async def get_stats(self, decision: ViewDecision) -> dict:
        decision.require(Action.VIEW_STATS)
        return {
            "total_users": self._count("profiles", self.db.query(Profile)),
            "total_referrals": self._count("referrals", self.db.query(Referral)),
            "total_codes": self._count("registration codes", self.db.query(RegistrationCode)),
            "pending_referrals": self._count(
                "pending referrals",
                self.db.query(Referral).filter(Referral.status == ReferralStatus.PENDING.value)
            ),
            "pending_users": self._count(
                "pending users",
                self.db.query(Profile).filter(Profile.status == ProfileStatus.PENDING.value)
            ),
        }
