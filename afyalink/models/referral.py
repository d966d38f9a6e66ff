"""
Referral model for database operations
"""

from sqlalchemy import Column, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from afyalink.database import Base
from afyalink.models.profile import generate_uuid

class Referral(Base):
    """Patient hand-off between facilities"""
    __tablename__ = "referrals"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    patient_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    referring_doctor_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    assigned_doctor_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=True)
    assigned_nurse_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=True)
    # Free text; not linked to the facilities table
    facility_from = Column(String(200), nullable=False)
    facility_to = Column(String(200), nullable=False)
    reason = Column(Text, nullable=False)
    diagnosis = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    urgency = Column(String(20), default="medium", nullable=False)
    status = Column(String(20), default="pending", nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    patient = relationship("Profile", foreign_keys=[patient_id], lazy="joined")
    referring_doctor = relationship("Profile", foreign_keys=[referring_doctor_id], lazy="joined")

    def __repr__(self):
        return f"<Referral(id={self.id}, status='{self.status}', urgency='{self.urgency}')>"
