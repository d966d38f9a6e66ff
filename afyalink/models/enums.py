"""
Enumerated values shared by models, schemas and services
"""

from enum import Enum

class Role(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    NURSE = "nurse"
    PATIENT = "patient"
    PHARMACIST = "pharmacist"
    LAB_TECHNICIAN = "lab_technician"

class ProfileStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    # Accepted by the column, not enforced anywhere yet
    SUSPENDED = "suspended"
    DEACTIVATED = "deactivated"

class ReferralStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"

class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

class FeedbackCategory(str, Enum):
    GENERAL = "general"
    BUG = "bug"
    FEATURE = "feature"
    COMPLAINT = "complaint"

class ReportType(str, Enum):
    REFERRALS = "referrals"
    FACILITIES = "facilities"
    STAFF = "staff"
    USERS = "users"
