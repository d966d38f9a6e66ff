"""
Referral endpoints
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from slowapi import Limiter
from slowapi.util import get_remote_address
from typing import Optional
import logging

from afyalink.config import RATE_LIMIT_ENABLED
from afyalink.database import get_db
from afyalink.schemas.referral import ReferralCreate, StatusUpdate, ReferralResponse, ReferralListResponse
from afyalink.services.access_gate import ViewDecision
from afyalink.services.referral_service import ReferralService
from afyalink.auth.auth_handler import active_user_required

logger = logging.getLogger(__name__)
limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)

router = APIRouter()

@router.post("/", response_model=ReferralResponse, status_code=201)
@limiter.limit("10/minute")
async def create_referral(
    request: Request,
    referral: ReferralCreate,
    decision: ViewDecision = Depends(active_user_required),
    db: Session = Depends(get_db)
):
    """Create a referral (doctors only)"""
    return await ReferralService(db).create_referral(decision, referral)

@router.get("/", response_model=ReferralListResponse)
@limiter.limit("30/minute")
async def list_referrals(
    request: Request,
    status: Optional[str] = Query(None, description="Filter by status"),
    q: Optional[str] = Query(None, max_length=100, description="Search reason, diagnosis and facilities"),
    decision: ViewDecision = Depends(active_user_required),
    db: Session = Depends(get_db)
):
    """Referrals visible to the caller, newest first"""
    referrals = await ReferralService(db).list_visible(decision, status=status, search=q)
    return ReferralListResponse(
        referrals=[ReferralResponse.model_validate(r) for r in referrals],
        total=len(referrals)
    )

@router.get("/{referral_id}", response_model=ReferralResponse)
@limiter.limit("30/minute")
async def get_referral(
    request: Request,
    referral_id: str,
    decision: ViewDecision = Depends(active_user_required),
    db: Session = Depends(get_db)
):
    """Get a specific referral the caller may view"""
    return await ReferralService(db).get_referral(decision, referral_id)

@router.post("/{referral_id}/assign", response_model=ReferralResponse)
@limiter.limit("20/minute")
async def assign_to_me(
    request: Request,
    referral_id: str,
    decision: ViewDecision = Depends(active_user_required),
    db: Session = Depends(get_db)
):
    """Claim an unassigned referral (nurses only)"""
    return await ReferralService(db).assign_nurse(decision, referral_id)

@router.post("/{referral_id}/status", response_model=ReferralResponse)
@limiter.limit("20/minute")
async def update_status(
    request: Request,
    referral_id: str,
    update: StatusUpdate,
    decision: ViewDecision = Depends(active_user_required),
    db: Session = Depends(get_db)
):
    """Move a referral to a new status (assigned nurse only)"""
    return await ReferralService(db).transition(decision, referral_id, update.status)
