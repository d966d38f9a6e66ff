"""
Registration code issuer: creation, redemption and deactivation
"""

from sqlalchemy.orm import Session
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from datetime import datetime, timezone
from typing import Optional
import logging

from afyalink.models.enums import Role
from afyalink.models.profile import UserRole
from afyalink.models.registration_code import RegistrationCode
from afyalink.schemas.registration_code import RegistrationCodeCreate, to_naive_utc
from afyalink.services.access_gate import Action, ViewDecision
from afyalink.utils.error_handler import (
    DatabaseError, ReferralAppError, Conflict, NotFound
)

logger = logging.getLogger(__name__)

def _now_for(moment: datetime) -> datetime:
    """Current time comparable with `moment` (naive UTC or aware)"""
    if moment.tzinfo is None:
        return datetime.utcnow()
    return datetime.now(timezone.utc)

def is_expired(code: RegistrationCode, now: Optional[datetime] = None) -> bool:
    if code.expires_at is None:
        return False
    now = now or _now_for(code.expires_at)
    return now >= code.expires_at

def is_exhausted(code: RegistrationCode) -> bool:
    return code.max_uses is not None and code.uses_count >= code.max_uses

def check_redeemable(code: RegistrationCode, now: Optional[datetime] = None) -> None:
    """Raise Conflict unless the code is active, unexpired and within budget"""
    if not code.is_active:
        raise Conflict("Registration code is no longer active")
    if is_expired(code, now):
        raise Conflict("Registration code has expired")
    if is_exhausted(code):
        raise Conflict("Registration code has reached its maximum number of uses")

class RegistrationCodeService:
    """Service for registration code operations"""

    def __init__(self, db: Session):
        self.db = db

    async def create_code(self, decision: ViewDecision, data: RegistrationCodeCreate) -> RegistrationCode:
        decision.require(Action.CREATE_REGISTRATION_CODE)

        if self.db.query(RegistrationCode).filter(RegistrationCode.code == data.code).first():
            raise Conflict(f"Registration code '{data.code}' already exists")

        try:
            code = RegistrationCode(
                code=data.code,
                role=Role(data.role).value,
                max_uses=data.max_uses,
                expires_at=to_naive_utc(data.expires_at),
                is_active=True,
                uses_count=0
            )
            self.db.add(code)
            self.db.commit()
            self.db.refresh(code)

            logger.info(f"Admin {decision.user_id} created registration code {code.code} for role {code.role}")
            return code

        except IntegrityError:
            # Lost a race with another admin creating the same code
            self.db.rollback()
            raise Conflict(f"Registration code '{data.code}' already exists")
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create registration code: {e}")
            raise DatabaseError(f"Failed to create registration code: {str(e)}", e)

    async def redeem(self, code_value: str, user_id: str, commit: bool = True) -> UserRole:
        """
        Consume one use of a code and grant its role to `user_id`.

        The profile's status is left alone; activation is a separate
        admin action. The use counter only moves through a conditional
        UPDATE so two redemptions cannot both take the last use.
        """
        code = self.db.query(RegistrationCode).filter(RegistrationCode.code == code_value).first()
        if not code:
            raise NotFound("Invalid registration code")

        check_redeemable(code)

        already = self.db.query(UserRole).filter(
            UserRole.user_id == user_id,
            UserRole.role == code.role
        ).first()
        if already:
            raise Conflict(f"You already hold the {code.role} role")

        try:
            updated = (
                self.db.query(RegistrationCode)
                .filter(
                    RegistrationCode.id == code.id,
                    RegistrationCode.is_active.is_(True),
                    or_(
                        RegistrationCode.max_uses.is_(None),
                        RegistrationCode.uses_count < RegistrationCode.max_uses
                    )
                )
                .update(
                    {RegistrationCode.uses_count: RegistrationCode.uses_count + 1},
                    synchronize_session=False
                )
            )
            if updated == 0:
                raise Conflict("Registration code has reached its maximum number of uses")

            assignment = UserRole(user_id=user_id, role=code.role)
            self.db.add(assignment)
            self.db.flush()

            if commit:
                self.db.commit()
                self.db.refresh(assignment)

            logger.info(f"User {user_id} redeemed code {code.code} for role {code.role}")
            return assignment

        except ReferralAppError:
            if commit:
                self.db.rollback()
            raise
        except IntegrityError:
            if commit:
                self.db.rollback()
            raise Conflict(f"You already hold the {code.role} role")
        except Exception as e:
            if commit:
                self.db.rollback()
            logger.error(f"Failed to redeem registration code: {e}")
            raise DatabaseError(f"Failed to redeem registration code: {str(e)}", e)

    async def deactivate(self, decision: ViewDecision, code_id: str) -> RegistrationCode:
        """Codes are never deleted; they stop being redeemable"""
        decision.require(Action.DEACTIVATE_REGISTRATION_CODE)

        code = self.db.query(RegistrationCode).filter(RegistrationCode.id == code_id).first()
        if not code:
            raise NotFound("Registration code not found")

        if code.is_active:
            code.is_active = False
            self.db.commit()
            self.db.refresh(code)
            logger.info(f"Admin {decision.user_id} deactivated registration code {code.code}")

        return code

    async def list_codes(self, decision: ViewDecision, active_only: bool = False) -> list[RegistrationCode]:
        decision.require(Action.LIST_REGISTRATION_CODES)
        query = self.db.query(RegistrationCode)
        if active_only:
            query = query.filter(RegistrationCode.is_active.is_(True))
        return query.order_by(RegistrationCode.created_at.desc()).all()

    async def get_code(self, code_value: str) -> Optional[RegistrationCode]:
        return self.db.query(RegistrationCode).filter(RegistrationCode.code == code_value).first()
