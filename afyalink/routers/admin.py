"""
Administrator endpoints: registration codes, account activation, stats and audit log
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from slowapi import Limiter
from slowapi.util import get_remote_address
from typing import Optional
import logging
import math

from afyalink.config import RATE_LIMIT_ENABLED
from afyalink.database import get_db
from afyalink.schemas.user import ProfileResponse, ProfileListResponse, ActivateUserRequest
from afyalink.schemas.registration_code import RegistrationCodeCreate, RegistrationCodeResponse
from afyalink.schemas.content import StatsResponse, ActivityResponse
from afyalink.services.access_gate import Action, ViewDecision
from afyalink.services.user_service import UserService
from afyalink.services.registration_code_service import RegistrationCodeService
from afyalink.services.stats_service import StatsService
from afyalink.services.activity_logger import ActivityLogger
from afyalink.auth.auth_handler import RoleChecker

logger = logging.getLogger(__name__)
limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)

router = APIRouter()

@router.post("/registration-codes", response_model=RegistrationCodeResponse, status_code=201)
@limiter.limit("10/minute")
async def create_registration_code(
    request: Request,
    code_data: RegistrationCodeCreate,
    decision: ViewDecision = Depends(RoleChecker(Action.CREATE_REGISTRATION_CODE)),
    db: Session = Depends(get_db)
):
    """Issue a registration code bound to one role"""
    code = await RegistrationCodeService(db).create_code(decision, code_data)
    await ActivityLogger(db).log_request(
        request, 201, "create_registration_code", user_id=decision.user_id,
        details={"code": code.code, "role": code.role}
    )
    return code

@router.get("/registration-codes", response_model=list[RegistrationCodeResponse])
@limiter.limit("30/minute")
async def list_registration_codes(
    request: Request,
    active_only: bool = Query(False, description="Only codes that are still active"),
    decision: ViewDecision = Depends(RoleChecker(Action.LIST_REGISTRATION_CODES)),
    db: Session = Depends(get_db)
):
    return await RegistrationCodeService(db).list_codes(decision, active_only=active_only)

@router.post("/registration-codes/{code_id}/deactivate", response_model=RegistrationCodeResponse)
@limiter.limit("10/minute")
async def deactivate_registration_code(
    request: Request,
    code_id: str,
    decision: ViewDecision = Depends(RoleChecker(Action.DEACTIVATE_REGISTRATION_CODE)),
    db: Session = Depends(get_db)
):
    """Stop a code from being redeemed"""
    code = await RegistrationCodeService(db).deactivate(decision, code_id)
    await ActivityLogger(db).log_request(
        request, 200, "deactivate_registration_code", user_id=decision.user_id,
        details={"code": code.code}
    )
    return code

@router.get("/users", response_model=ProfileListResponse)
@limiter.limit("20/minute")
async def get_users(
    request: Request,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(10, ge=1, le=100, description="Items per page"),
    role: Optional[str] = Query(None, description="Filter by role"),
    status: Optional[str] = Query(None, description="Filter by account status"),
    q: Optional[str] = Query(None, min_length=2, description="Search name or email"),
    decision: ViewDecision = Depends(RoleChecker(Action.LIST_USERS)),
    db: Session = Depends(get_db)
):
    """Paginated list of profiles"""
    users, total = await UserService(db).get_users_paginated(
        decision, page, page_size, role=role, status=status, search=q
    )
    return ProfileListResponse(
        users=[ProfileResponse.model_validate(user) for user in users],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size)
    )

@router.get("/users/pending", response_model=list[ProfileResponse])
@limiter.limit("30/minute")
async def get_pending_users(
    request: Request,
    decision: ViewDecision = Depends(RoleChecker(Action.LIST_USERS)),
    db: Session = Depends(get_db)
):
    """Accounts awaiting activation"""
    return await UserService(db).list_pending_users(decision)

@router.post("/users/{user_id}/activate", response_model=ProfileResponse)
@limiter.limit("10/minute")
async def activate_user(
    request: Request,
    user_id: str,
    body: Optional[ActivateUserRequest] = None,
    decision: ViewDecision = Depends(RoleChecker(Action.ACTIVATE_USER)),
    db: Session = Depends(get_db)
):
    """Activate a pending account, granting a role if it has none"""
    role = body.role if body else None
    profile = await UserService(db).activate_user(decision, user_id, role)
    await ActivityLogger(db).log_request(
        request, 200, "activate_user", user_id=decision.user_id,
        details={"target": user_id, "role": role}
    )
    return profile

@router.get("/stats", response_model=StatsResponse)
@limiter.limit("30/minute")
async def get_stats(
    request: Request,
    decision: ViewDecision = Depends(RoleChecker(Action.VIEW_STATS)),
    db: Session = Depends(get_db)
):
    return await StatsService(db).get_stats(decision)

@router.get("/activity", response_model=list[ActivityResponse])
@limiter.limit("30/minute")
async def get_recent_activity(
    request: Request,
    limit: int = Query(100, ge=1, le=500),
    user_id: Optional[str] = Query(None, description="Only this user's actions"),
    decision: ViewDecision = Depends(RoleChecker(Action.VIEW_STATS)),
    db: Session = Depends(get_db)
):
    """Recent audit log entries"""
    return ActivityLogger(db).get_recent_activities(limit=limit, user_id=user_id)
