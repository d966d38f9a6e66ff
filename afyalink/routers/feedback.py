"""
Feedback endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session
from slowapi import Limiter
from slowapi.util import get_remote_address
from typing import Optional
import logging

from afyalink.config import RATE_LIMIT_ENABLED
from afyalink.database import get_db
from afyalink.models.content import Feedback
from afyalink.schemas.content import FeedbackCreate, FeedbackResponse
from afyalink.services.access_gate import Action, ViewDecision
from afyalink.auth.auth_handler import active_user_required

logger = logging.getLogger(__name__)
limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)

router = APIRouter()

@router.post("/", response_model=FeedbackResponse, status_code=201)
@limiter.limit("5/minute")
async def submit_feedback(
    request: Request,
    feedback: FeedbackCreate,
    decision: ViewDecision = Depends(active_user_required),
    db: Session = Depends(get_db)
):
    """Submit feedback, a bug report, a feature request or a complaint"""
    try:
        db_feedback = Feedback(user_id=decision.user_id, **feedback.dict())
        db.add(db_feedback)
        db.commit()
        db.refresh(db_feedback)

        logger.info(f"Feedback {db_feedback.id} submitted by {decision.user_id}")
        return db_feedback

    except Exception as e:
        db.rollback()
        logger.error(f"Failed to submit feedback: {e}")
        raise HTTPException(status_code=500, detail="Failed to submit feedback")

@router.get("/", response_model=list[FeedbackResponse])
@limiter.limit("30/minute")
async def list_feedback(
    request: Request,
    category: Optional[str] = Query(None, description="Filter by category"),
    decision: ViewDecision = Depends(active_user_required),
    db: Session = Depends(get_db)
):
    """Admins see all feedback; everyone else sees their own"""
    query = db.query(Feedback)
    if not decision.can(Action.VIEW_ALL_FEEDBACK):
        query = query.filter(Feedback.user_id == decision.user_id)
    if category:
        query = query.filter(Feedback.category == category)
    return query.order_by(Feedback.created_at.desc()).all()
