"""
FAQ endpoints; reading is public
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session
from sqlalchemy import or_
from slowapi import Limiter
from slowapi.util import get_remote_address
from typing import Optional
import logging

from afyalink.config import RATE_LIMIT_ENABLED
from afyalink.database import get_db
from afyalink.models.content import FAQ
from afyalink.schemas.content import FAQCreate, FAQResponse
from afyalink.services.access_gate import Action, ViewDecision
from afyalink.auth.auth_handler import RoleChecker

logger = logging.getLogger(__name__)
limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)

router = APIRouter()

@router.get("/", response_model=list[FAQResponse])
@limiter.limit("60/minute")
async def list_faqs(
    request: Request,
    category: Optional[str] = Query(None, description="Category, or 'all'"),
    q: Optional[str] = Query(None, max_length=100, description="Search questions and answers"),
    db: Session = Depends(get_db)
):
    """Published FAQs in display order"""
    query = db.query(FAQ).filter(FAQ.is_published.is_(True))
    if category and category != "all":
        query = query.filter(FAQ.category == category)
    if q and q.strip():
        pattern = f"%{q.strip()}%"
        query = query.filter(or_(FAQ.question.ilike(pattern), FAQ.answer.ilike(pattern)))
    return query.order_by(FAQ.order_index.asc()).all()

@router.post("/", response_model=FAQResponse, status_code=201)
@limiter.limit("10/minute")
async def create_faq(
    request: Request,
    faq: FAQCreate,
    decision: ViewDecision = Depends(RoleChecker(Action.MANAGE_FAQS)),
    db: Session = Depends(get_db)
):
    try:
        db_faq = FAQ(**faq.dict())
        db.add(db_faq)
        db.commit()
        db.refresh(db_faq)

        logger.info(f"Admin {decision.user_id} created FAQ {db_faq.id}")
        return db_faq

    except Exception as e:
        db.rollback()
        logger.error(f"Failed to create FAQ: {e}")
        raise HTTPException(status_code=500, detail="Failed to create FAQ")
