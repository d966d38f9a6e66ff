"""
Pydantic schemas for registration codes
"""

from pydantic import BaseModel, Field, validator
from typing import Optional
from datetime import datetime, timezone
import re

from afyalink.models.enums import Role

ROLE_VALUES = [r.value for r in Role]

def to_naive_utc(v: Optional[datetime]) -> Optional[datetime]:
    """Expiry moments are stored as naive UTC"""
    if v is None or v.tzinfo is None:
        return v
    return v.astimezone(timezone.utc).replace(tzinfo=None)

class RegistrationCodeCreate(BaseModel):
    code: str = Field(..., min_length=3, max_length=50, description="Code string, e.g. DOCTOR2025")
    role: str = Field(..., description="Role granted on redemption")
    max_uses: Optional[int] = Field(None, ge=1, description="Redemption budget; unlimited when omitted")
    expires_at: Optional[datetime] = Field(None, description="Redeemable until this moment")

    @validator('code')
    def validate_code(cls, v):
        v = v.strip()
        if not re.match(r'^[A-Za-z0-9_-]+$', v):
            raise ValueError('Code can only contain letters, numbers, underscores, and hyphens')
        return v

    @validator('role')
    def validate_role(cls, v):
        if v not in ROLE_VALUES:
            raise ValueError(f'Role must be one of: {", ".join(ROLE_VALUES)}')
        return v

    @validator('expires_at')
    def normalize_expiry(cls, v):
        return to_naive_utc(v)

class RegistrationCodeResponse(BaseModel):
    id: str
    code: str
    role: str
    is_active: bool
    expires_at: Optional[datetime]
    max_uses: Optional[int]
    uses_count: int
    created_at: Optional[datetime]

    class Config:
        from_attributes = True
