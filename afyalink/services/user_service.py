"""
User service for signup, login and account administration
Handles profile and role business logic
"""

from sqlalchemy.orm import Session
from sqlalchemy import or_
from datetime import datetime
from typing import Optional
import logging

from afyalink.models.enums import ProfileStatus, Role
from afyalink.models.profile import Profile, UserRole
from afyalink.schemas.user import SignupRequest, LoginRequest
from afyalink.auth.auth_handler import AuthHandler
from afyalink.services.access_gate import Action, ViewDecision
from afyalink.services.registration_code_service import RegistrationCodeService
from afyalink.utils.error_handler import (
    DatabaseError, ReferralAppError, Conflict, NotFound, ValidationError
)

logger = logging.getLogger(__name__)

def _loaded(profile: Profile) -> Profile:
    # Load roles while the session is still open
    profile.roles
    return profile

class UserService:
    """Service for profile and role management operations"""

    def __init__(self, db: Session):
        self.db = db
        self.auth_handler = AuthHandler()

    async def create_user(self, signup: SignupRequest) -> Profile:
        """Create a pending profile, redeeming a registration code if one is given"""
        email = signup.email.lower()
        existing = self.db.query(Profile).filter(Profile.email == email).first()
        if existing:
            raise Conflict("Email already registered")

        try:
            profile = Profile(
                email=email,
                full_name=signup.full_name,
                phone=signup.phone,
                hashed_password=self.auth_handler.get_password_hash(signup.password),
                status=ProfileStatus.PENDING.value
            )
            self.db.add(profile)
            self.db.flush()

            if signup.registration_code:
                # Same transaction: a bad code rejects the whole signup
                await RegistrationCodeService(self.db).redeem(
                    signup.registration_code, profile.id, commit=False
                )

            self.db.commit()
            self.db.refresh(profile)

            logger.info(f"Created new profile: {profile.email} (pending approval)")
            return _loaded(profile)

        except ReferralAppError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create user: {e}")
            raise DatabaseError(f"Failed to create user account: {str(e)}", e)

    async def authenticate_user(self, login_data: LoginRequest) -> Optional[Profile]:
        """Check credentials; pending profiles may still sign in"""
        try:
            profile = self.db.query(Profile).filter(Profile.email == login_data.email.lower()).first()

            if not profile:
                logger.warning(f"Login attempt with non-existent user: {login_data.email}")
                return None

            if not self.auth_handler.verify_password(login_data.password, profile.hashed_password):
                logger.warning(f"Failed login attempt for user: {profile.email}")
                return None

            profile.last_login = datetime.utcnow()
            self.db.commit()
            self.db.refresh(profile)

            logger.info(f"Successful login for user: {profile.email}")
            return _loaded(profile)

        except Exception as e:
            self.db.rollback()
            logger.error(f"Authentication error: {e}")
            raise DatabaseError(f"Authentication failed: {str(e)}", e)

    async def get_user_by_id(self, user_id: str) -> Optional[Profile]:
        profile = self.db.query(Profile).filter(Profile.id == user_id).first()
        return _loaded(profile) if profile else None

    async def get_user_by_email(self, email: str) -> Optional[Profile]:
        profile = self.db.query(Profile).filter(Profile.email == email.lower()).first()
        return _loaded(profile) if profile else None

    async def activate_user(self, decision: ViewDecision, user_id: str, role: Optional[str] = None) -> Profile:
        """
        Flip a pending profile to active.

        A user who already holds a role keeps it and `role` is ignored;
        otherwise `role` is granted first and is mandatory.
        """
        decision.require(Action.ACTIVATE_USER)

        profile = self.db.query(Profile).filter(Profile.id == user_id).first()
        if not profile:
            raise NotFound("User not found")
        if profile.status != ProfileStatus.PENDING.value:
            raise Conflict(f"User is already {profile.status}")

        if role is not None:
            try:
                role = Role(role).value
            except ValueError:
                raise ValidationError(f"Unknown role '{role}'")

        has_role = self.db.query(UserRole).filter(UserRole.user_id == user_id).first() is not None

        try:
            if has_role:
                if role:
                    logger.info(f"Ignoring role '{role}' for {profile.email}: user already holds a role")
            else:
                if not role:
                    raise ValidationError("role required")
                self.db.add(UserRole(user_id=user_id, role=role))
                self.db.flush()

            profile.status = ProfileStatus.ACTIVE.value
            profile.updated_at = datetime.utcnow()
            self.db.commit()
            self.db.refresh(profile)

            logger.info(f"Admin {decision.user_id} activated user {profile.email}")
            return _loaded(profile)

        except ReferralAppError:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to activate user {user_id}: {e}")
            raise DatabaseError(f"Failed to activate user: {str(e)}", e)

    async def list_pending_users(self, decision: ViewDecision) -> list[Profile]:
        """Activation queue, oldest first"""
        decision.require(Action.LIST_USERS)
        profiles = (
            self.db.query(Profile)
            .filter(Profile.status == ProfileStatus.PENDING.value)
            .order_by(Profile.created_at.asc())
            .all()
        )
        return [_loaded(p) for p in profiles]

    async def get_users_paginated(
        self,
        decision: ViewDecision,
        page: int = 1,
        page_size: int = 10,
        role: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None
    ) -> tuple[list[Profile], int]:
        """Get paginated list of profiles with optional role/status filters and search"""
        decision.require(Action.LIST_USERS)
        try:
            query = self.db.query(Profile)

            if role:
                query = query.filter(Profile.roles.any(UserRole.role == role))
            if status:
                query = query.filter(Profile.status == status)
            if search:
                pattern = f"%{search.lower()}%"
                query = query.filter(
                    or_(
                        Profile.email.ilike(pattern),
                        Profile.full_name.ilike(pattern)
                    )
                )

            total = query.count()

            offset = (page - 1) * page_size
            profiles = query.order_by(Profile.created_at.desc()).offset(offset).limit(page_size).all()

            return [_loaded(p) for p in profiles], total

        except Exception as e:
            logger.error(f"Failed to get users: {e}")
            raise DatabaseError(f"Failed to retrieve users: {str(e)}", e)

    def ensure_admin(self, email: str, password: str, full_name: str = "Administrator") -> Profile:
        """Idempotently make `email` an active admin with the given password"""
        email = email.lower()
        profile = self.db.query(Profile).filter(Profile.email == email).first()
        if profile is None:
            profile = Profile(email=email, full_name=full_name)
            self.db.add(profile)

        profile.hashed_password = self.auth_handler.get_password_hash(password)
        profile.status = ProfileStatus.ACTIVE.value
        self.db.flush()

        has_admin = self.db.query(UserRole).filter(
            UserRole.user_id == profile.id,
            UserRole.role == Role.ADMIN.value
        ).first()
        if not has_admin:
            self.db.add(UserRole(user_id=profile.id, role=Role.ADMIN.value))

        self.db.commit()
        self.db.refresh(profile)
        logger.info(f"Ensured admin account {email}")
        return profile
