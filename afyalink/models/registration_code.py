"""
Registration code model
"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.sql import func
from afyalink.database import Base
from afyalink.models.profile import generate_uuid

class RegistrationCode(Base):
    """A code that grants one role when redeemed at signup"""
    __tablename__ = "registration_codes"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    code = Column(String(50), unique=True, index=True, nullable=False)
    role = Column(String(30), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    max_uses = Column(Integer, nullable=True)
    uses_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<RegistrationCode(code='{self.code}', role='{self.role}', uses={self.uses_count}/{self.max_uses})>"
