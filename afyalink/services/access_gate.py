"""
Access gate: the single place that decides what a session may do

resolve() turns a session into a ViewDecision, select_dashboard() picks the
dashboard for a role set and authorize() checks a role set against an
action. Only resolve() touches the database, and only to read the profile
and its roles.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional
import logging

from sqlalchemy.orm import Session

from afyalink.models.enums import Role, ProfileStatus
from afyalink.models.profile import Profile, UserRole
from afyalink.utils.error_handler import Unauthenticated, PendingApproval, Forbidden

logger = logging.getLogger(__name__)

class ViewState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    PENDING_APPROVAL = "pending_approval"
    AUTHORIZED = "authorized"

class DashboardKind(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    NURSE = "nurse"
    PATIENT = "patient"
    UNASSIGNED = "unassigned"

# A user holding several roles lands on the first entry that matches.
DASHBOARD_PRIORITY = (
    (Role.ADMIN, DashboardKind.ADMIN),
    (Role.DOCTOR, DashboardKind.DOCTOR),
    (Role.NURSE, DashboardKind.NURSE),
    (Role.PATIENT, DashboardKind.PATIENT),
)

class Action(str, Enum):
    CREATE_REFERRAL = "create_referral"
    ASSIGN_NURSE = "assign_nurse"
    TRANSITION_REFERRAL = "transition_referral"
    VIEW_ALL_REFERRALS = "view_all_referrals"
    CREATE_REGISTRATION_CODE = "create_registration_code"
    DEACTIVATE_REGISTRATION_CODE = "deactivate_registration_code"
    LIST_REGISTRATION_CODES = "list_registration_codes"
    ACTIVATE_USER = "activate_user"
    LIST_USERS = "list_users"
    VIEW_STATS = "view_stats"
    MANAGE_FAQS = "manage_faqs"
    VIEW_ALL_FEEDBACK = "view_all_feedback"
    EXPORT_ADMIN_REPORTS = "export_admin_reports"

ACTION_ROLES = {
    Action.CREATE_REFERRAL: frozenset({Role.DOCTOR}),
    Action.ASSIGN_NURSE: frozenset({Role.NURSE}),
    Action.TRANSITION_REFERRAL: frozenset({Role.NURSE}),
    Action.VIEW_ALL_REFERRALS: frozenset({Role.ADMIN}),
    Action.CREATE_REGISTRATION_CODE: frozenset({Role.ADMIN}),
    Action.DEACTIVATE_REGISTRATION_CODE: frozenset({Role.ADMIN}),
    Action.LIST_REGISTRATION_CODES: frozenset({Role.ADMIN}),
    Action.ACTIVATE_USER: frozenset({Role.ADMIN}),
    Action.LIST_USERS: frozenset({Role.ADMIN}),
    Action.VIEW_STATS: frozenset({Role.ADMIN}),
    Action.MANAGE_FAQS: frozenset({Role.ADMIN}),
    Action.VIEW_ALL_FEEDBACK: frozenset({Role.ADMIN}),
    Action.EXPORT_ADMIN_REPORTS: frozenset({Role.ADMIN}),
}

def _as_roles(roles: Iterable) -> frozenset:
    result = set()
    for role in roles:
        try:
            result.add(Role(role))
        except ValueError:
            logger.warning(f"Ignoring unknown role '{role}'")
    return frozenset(result)

def select_dashboard(roles: Iterable) -> DashboardKind:
    """First match in DASHBOARD_PRIORITY, or UNASSIGNED"""
    held = _as_roles(roles)
    for role, dashboard in DASHBOARD_PRIORITY:
        if role in held:
            return dashboard
    return DashboardKind.UNASSIGNED

def authorize(roles: Iterable, action: Action) -> bool:
    """Pure role check; ownership rules live with the resource"""
    return bool(_as_roles(roles) & ACTION_ROLES[Action(action)])

@dataclass(frozen=True)
class ViewDecision:
    """Outcome of resolving a session"""
    state: ViewState
    user_id: Optional[str] = None
    email: Optional[str] = None
    roles: frozenset = field(default_factory=frozenset)

    @property
    def is_authorized(self) -> bool:
        return self.state == ViewState.AUTHORIZED

    @property
    def dashboard(self) -> Optional[DashboardKind]:
        if not self.is_authorized:
            return None
        return select_dashboard(self.roles)

    def has_role(self, role: Role) -> bool:
        return self.is_authorized and Role(role) in self.roles

    def can(self, action: Action) -> bool:
        return self.is_authorized and authorize(self.roles, action)

    def require_active(self) -> "ViewDecision":
        """Raise the matching failure unless the account is usable"""
        if self.state == ViewState.UNAUTHENTICATED:
            raise Unauthenticated()
        if self.state == ViewState.PENDING_APPROVAL:
            raise PendingApproval(email=self.email)
        return self

    def require(self, action: Action) -> "ViewDecision":
        """require_active() plus a role check for `action`"""
        self.require_active()
        if not authorize(self.roles, action):
            logger.warning(f"User {self.user_id} denied {Action(action).value}")
            raise Forbidden(f"Your role does not permit this operation ({Action(action).value})")
        return self

UNAUTHENTICATED = ViewDecision(state=ViewState.UNAUTHENTICATED)

class AccessGate:
    """Resolves sessions against the profile and role tables"""

    def __init__(self, db: Session):
        self.db = db

    async def resolve(self, user_id: Optional[str]) -> ViewDecision:
        if not user_id:
            return UNAUTHENTICATED

        profile = self.db.query(Profile).filter(Profile.id == user_id).first()
        if profile is None:
            # Token outlived its profile
            logger.warning(f"Session for unknown user {user_id}")
            return UNAUTHENTICATED

        if profile.status != ProfileStatus.ACTIVE.value:
            return ViewDecision(
                state=ViewState.PENDING_APPROVAL,
                user_id=profile.id,
                email=profile.email
            )

        rows = self.db.query(UserRole.role).filter(UserRole.user_id == profile.id).all()
        return ViewDecision(
            state=ViewState.AUTHORIZED,
            user_id=profile.id,
            email=profile.email,
            roles=_as_roles(row.role for row in rows)
        )
