"""
Pydantic schemas for referral operations
"""

from pydantic import BaseModel, Field, validator, EmailStr
from typing import Optional
from datetime import datetime

from afyalink.models.enums import ReferralStatus, Urgency

STATUS_VALUES = [s.value for s in ReferralStatus]
URGENCY_VALUES = [u.value for u in Urgency]

class ReferralCreate(BaseModel):
    """Schema for creating a referral; the patient is looked up by email"""
    patient_email: EmailStr = Field(..., description="Email of the patient's profile")
    facility_from: str = Field(..., min_length=1, max_length=200, description="Referring facility")
    facility_to: str = Field(..., min_length=1, max_length=200, description="Receiving facility")
    reason: str = Field(..., min_length=1, description="Reason for referral")
    diagnosis: Optional[str] = Field(None, description="Working diagnosis")
    notes: Optional[str] = Field(None, description="Additional notes")
    urgency: str = Field("medium", description="low, medium, high or critical")

    @validator('facility_from', 'facility_to', 'reason')
    def strip_required(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Field cannot be blank')
        return v

    @validator('diagnosis', 'notes')
    def blank_to_none(cls, v):
        if v is None:
            return v
        return v.strip() or None

    @validator('urgency')
    def validate_urgency(cls, v):
        if v not in URGENCY_VALUES:
            raise ValueError(f'Urgency must be one of: {", ".join(URGENCY_VALUES)}')
        return v

class StatusUpdate(BaseModel):
    """Schema for a status transition"""
    status: str = Field(..., description="Target status")

    @validator('status')
    def validate_status(cls, v):
        if v not in STATUS_VALUES:
            raise ValueError(f'Status must be one of: {", ".join(STATUS_VALUES)}')
        return v

class PersonSummary(BaseModel):
    full_name: str
    email: str

    class Config:
        from_attributes = True

class ReferralResponse(BaseModel):
    """Schema for referral responses"""
    id: str
    patient_id: str
    referring_doctor_id: str
    assigned_doctor_id: Optional[str]
    assigned_nurse_id: Optional[str]
    facility_from: str
    facility_to: str
    reason: str
    diagnosis: Optional[str]
    notes: Optional[str]
    urgency: str
    status: str
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    patient: Optional[PersonSummary] = None
    referring_doctor: Optional[PersonSummary] = None

    class Config:
        from_attributes = True

class ReferralListResponse(BaseModel):
    """Schema for referral lists"""
    referrals: list[ReferralResponse]
    total: int
