"""
Report export endpoint
"""

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session
from slowapi import Limiter
from slowapi.util import get_remote_address
from datetime import date
from typing import Optional
import logging

from afyalink.config import RATE_LIMIT_ENABLED
from afyalink.database import get_db
from afyalink.services.access_gate import ViewDecision
from afyalink.services.report_service import ReportService
from afyalink.auth.auth_handler import active_user_required

logger = logging.getLogger(__name__)
limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)

router = APIRouter()

@router.get("/download", response_class=PlainTextResponse)
@limiter.limit("10/minute")
async def download_report(
    request: Request,
    start_date: Optional[date] = Query(None, description="First day, YYYY-MM-DD"),
    end_date: Optional[date] = Query(None, description="Last day (inclusive), YYYY-MM-DD"),
    report_type: str = Query("referrals", description="referrals, facilities, staff or users"),
    status: str = Query("all", description="all or a referral status"),
    decision: ViewDecision = Depends(active_user_required),
    db: Session = Depends(get_db)
):
    """Generate a plain-text report of referrals created in the period"""
    filename, content = await ReportService(db).generate(
        decision, report_type, start_date, end_date, status
    )
    return PlainTextResponse(
        content,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )
