"""
Pydantic schemas for signup, login, profiles and the access decision
"""

from pydantic import BaseModel, Field, validator, EmailStr
from typing import Optional
from datetime import datetime
import re

from afyalink.models.enums import Role

ROLE_VALUES = [r.value for r in Role]

def _check_password_strength(v: str) -> str:
    if len(v) < 8:
        raise ValueError('Password must be at least 8 characters long')

    # Check for at least one uppercase, one lowercase, one digit
    if not re.search(r'[A-Z]', v):
        raise ValueError('Password must contain at least one uppercase letter')
    if not re.search(r'[a-z]', v):
        raise ValueError('Password must contain at least one lowercase letter')
    if not re.search(r'\d', v):
        raise ValueError('Password must contain at least one digit')
    if not re.search(r'[!@#$%^&*(),.?":{}|<>]', v):
        raise ValueError('Password must contain at least one special character')

    return v

def _check_phone(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    # Remove all non-digit characters for validation
    digits_only = re.sub(r'\D', '', v)
    if len(digits_only) < 10 or len(digits_only) > 15:
        raise ValueError('Phone number must be between 10-15 digits')
    return v

class SignupRequest(BaseModel):
    """Schema for creating a new account"""
    email: EmailStr = Field(..., description="Valid email address")
    full_name: str = Field(..., min_length=1, max_length=100, description="Full name")
    phone: Optional[str] = Field(None, max_length=20, description="Phone number")
    password: str = Field(..., min_length=8, max_length=128, description="Password (minimum 8 characters)")
    confirm_password: str = Field(..., description="Password confirmation")
    registration_code: Optional[str] = Field(None, max_length=50, description="Code granting a role")

    @validator('full_name')
    def validate_full_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Full name is required')
        return v

    @validator('phone')
    def validate_phone(cls, v):
        return _check_phone(v)

    @validator('password')
    def validate_password(cls, v):
        return _check_password_strength(v)

    @validator('confirm_password')
    def passwords_match(cls, v, values, **kwargs):
        if 'password' in values and v != values['password']:
            raise ValueError('Passwords do not match')
        return v

    @validator('registration_code')
    def normalize_code(cls, v):
        if v is None:
            return v
        v = v.strip()
        return v or None

class LoginRequest(BaseModel):
    """Schema for user login"""
    email: str = Field(..., description="Email address")
    password: str = Field(..., description="Password")

    @validator('email')
    def validate_email(cls, v):
        v = v.strip().lower()
        if not v:
            raise ValueError('Email is required')
        return v

class ProfileResponse(BaseModel):
    """Schema for profile responses (excludes sensitive data)"""
    id: str
    email: str
    full_name: str
    phone: Optional[str]
    status: str
    role_names: list[str] = []
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class TokenResponse(BaseModel):
    """Schema for authentication token response"""
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: ProfileResponse

class DashboardResponse(BaseModel):
    """What the client should render for the current session"""
    state: str
    email: Optional[str] = None
    roles: list[str] = []
    dashboard: Optional[str] = None

class RedeemCodeRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=50, description="Registration code")

    @validator('code')
    def strip_code(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Code is required')
        return v

class ActivateUserRequest(BaseModel):
    """Role is required only when the user holds none yet"""
    role: Optional[str] = Field(None, description="Role to grant before activation")

    @validator('role')
    def validate_role(cls, v):
        if v is None:
            return v
        if v not in ROLE_VALUES:
            raise ValueError(f'Role must be one of: {", ".join(ROLE_VALUES)}')
        return v

class ProfileListResponse(BaseModel):
    """Schema for paginated profile lists"""
    users: list[ProfileResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
