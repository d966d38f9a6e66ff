"""
Referral status state machine

    pending -> accepted -> in_progress -> completed
    pending | accepted | in_progress -> rejected

completed and rejected are terminal. Urgency plays no part here.
"""

from afyalink.models.enums import ReferralStatus
from afyalink.utils.error_handler import InvalidTransition

INITIAL_STATUS = ReferralStatus.PENDING

TERMINAL_STATES = frozenset({ReferralStatus.COMPLETED, ReferralStatus.REJECTED})

TRANSITIONS = {
    ReferralStatus.PENDING: frozenset({ReferralStatus.ACCEPTED, ReferralStatus.REJECTED}),
    ReferralStatus.ACCEPTED: frozenset({ReferralStatus.IN_PROGRESS, ReferralStatus.REJECTED}),
    ReferralStatus.IN_PROGRESS: frozenset({ReferralStatus.COMPLETED, ReferralStatus.REJECTED}),
    ReferralStatus.COMPLETED: frozenset(),
    ReferralStatus.REJECTED: frozenset(),
}

def is_terminal(status) -> bool:
    return ReferralStatus(status) in TERMINAL_STATES

def allowed_transitions(status) -> frozenset:
    """Target states reachable in one step from `status`"""
    return TRANSITIONS[ReferralStatus(status)]

def can_transition(current, target) -> bool:
    """True for a legal step or a same-status no-op"""
    current, target = ReferralStatus(current), ReferralStatus(target)
    if current == target:
        return True
    return target in TRANSITIONS[current]

def check_transition(current, target) -> bool:
    """
    Validate a status change.

    Returns True when the referral must be updated and False for a
    same-status no-op. Raises InvalidTransition for anything else.
    """
    current, target = ReferralStatus(current), ReferralStatus(target)
    if current == target:
        return False
    if current in TERMINAL_STATES:
        raise InvalidTransition(f"Referral is already {current.value}; no further status changes are allowed")
    if target not in TRANSITIONS[current]:
        raise InvalidTransition(f"Cannot move a referral from {current.value} to {target.value}")
    return True
