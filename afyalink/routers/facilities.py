"""
Facility directory endpoints (read only)
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from slowapi import Limiter
from slowapi.util import get_remote_address
from typing import Optional

from afyalink.config import RATE_LIMIT_ENABLED
from afyalink.database import get_db
from afyalink.models.content import Facility
from afyalink.schemas.content import FacilityResponse
from afyalink.services.access_gate import ViewDecision
from afyalink.auth.auth_handler import active_user_required

limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)

router = APIRouter()

@router.get("/", response_model=list[FacilityResponse])
@limiter.limit("30/minute")
async def list_facilities(
    request: Request,
    q: Optional[str] = Query(None, max_length=100, description="Search by name"),
    facility_type: Optional[str] = Query(None, alias="type", description="Filter by facility type"),
    decision: ViewDecision = Depends(active_user_required),
    db: Session = Depends(get_db)
):
    """Facility directory, for picking referral endpoints"""
    query = db.query(Facility)
    if q:
        query = query.filter(Facility.name.ilike(f"%{q.strip()}%"))
    if facility_type:
        query = query.filter(Facility.type == facility_type)
    return query.order_by(Facility.name.asc()).all()
