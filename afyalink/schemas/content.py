"""
Pydantic schemas for feedback, FAQs, facilities, stats and the audit log
"""

from pydantic import BaseModel, Field, validator
from typing import Optional
from datetime import datetime

from afyalink.models.enums import FeedbackCategory

FEEDBACK_CATEGORIES = [c.value for c in FeedbackCategory]

class FeedbackCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=200, description="Brief description of your feedback")
    message: str = Field(..., min_length=1, description="Details")
    category: str = Field("general", description="general, bug, feature or complaint")

    @validator('category')
    def validate_category(cls, v):
        if v not in FEEDBACK_CATEGORIES:
            raise ValueError(f'Category must be one of: {", ".join(FEEDBACK_CATEGORIES)}')
        return v

class FeedbackResponse(BaseModel):
    id: str
    user_id: str
    subject: str
    message: str
    category: Optional[str]
    status: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True

class FAQCreate(BaseModel):
    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)
    category: Optional[str] = Field(None, max_length=50)
    is_published: bool = True
    order_index: int = 0

class FAQResponse(BaseModel):
    id: str
    question: str
    answer: str
    category: Optional[str]
    is_published: Optional[bool]
    order_index: Optional[int]

    class Config:
        from_attributes = True

class FacilityResponse(BaseModel):
    id: str
    name: str
    type: str
    level_id: Optional[str]
    address: Optional[str]
    phone: Optional[str]
    email: Optional[str]
    rating: Optional[float]
    status: Optional[str]

    class Config:
        from_attributes = True

class StatsResponse(BaseModel):
    """Admin dashboard counters"""
    total_users: Optional[int]
    total_referrals: Optional[int]
    total_codes: Optional[int]
    pending_referrals: Optional[int]
    pending_users: Optional[int]

class ActivityResponse(BaseModel):
    id: int
    user_id: Optional[str]
    action: Optional[str]
    endpoint: str
    method: str
    status_code: int
    error_message: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True
