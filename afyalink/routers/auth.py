"""
Session endpoints: signup, login, logout, current profile and dashboard decision
"""

from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
from slowapi import Limiter
from slowapi.util import get_remote_address
from datetime import timedelta
import logging

from afyalink.config import ACCESS_TOKEN_EXPIRE_MINUTES, RATE_LIMIT_ENABLED
from afyalink.database import get_db
from afyalink.schemas.user import (
    SignupRequest, LoginRequest, RedeemCodeRequest,
    ProfileResponse, TokenResponse, DashboardResponse
)
from afyalink.services.access_gate import ViewDecision
from afyalink.services.user_service import UserService
from afyalink.services.registration_code_service import RegistrationCodeService
from afyalink.services.activity_logger import ActivityLogger
from afyalink.auth.auth_handler import AuthHandler, get_current_user, get_view_decision
from afyalink.utils.error_handler import ReferralAppError, Unauthenticated, NotFound

logger = logging.getLogger(__name__)
limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)

router = APIRouter()

@router.post("/signup", response_model=ProfileResponse, status_code=201)
@limiter.limit("5/minute")  # Strict limit to prevent spam registrations
async def signup(
    request: Request,
    signup_data: SignupRequest,
    db: Session = Depends(get_db)
):
    """Register a new account; it stays pending until an admin activates it"""
    try:
        user_service = UserService(db)
        profile = await user_service.create_user(signup_data)

        await ActivityLogger(db).log_request(
            request, 201, "signup", user_id=profile.id,
            details={"registration_code": bool(signup_data.registration_code)}
        )

        logger.info(f"New user registered: {profile.email}")
        return profile

    except (HTTPException, ReferralAppError):
        raise
    except Exception as e:
        logger.error(f"Signup failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create user account"
        )

@router.post("/login", response_model=TokenResponse)
@limiter.limit("10/minute")  # Prevent brute force attacks
async def login(
    request: Request,
    login_data: LoginRequest,
    db: Session = Depends(get_db)
):
    """Authenticate and return an access token"""
    try:
        user_service = UserService(db)
        auth_handler = AuthHandler()

        profile = await user_service.authenticate_user(login_data)

        if not profile:
            await ActivityLogger(db).log_request(
                request, 401, "login_failed",
                error_message=f"Failed login attempt for: {login_data.email}"
            )
            raise Unauthenticated("Invalid email or password")

        access_token_expires = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
        access_token = auth_handler.create_access_token(
            data={"sub": profile.id, "email": profile.email},
            expires_delta=access_token_expires
        )

        await ActivityLogger(db).log_request(request, 200, "login", user_id=profile.id)

        return TokenResponse(
            access_token=access_token,
            token_type="bearer",
            expires_in=int(access_token_expires.total_seconds()),
            user=ProfileResponse.model_validate(profile)
        )

    except (HTTPException, ReferralAppError):
        raise
    except Exception as e:
        logger.error(f"Login failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Login failed"
        )

@router.get("/me", response_model=ProfileResponse)
@limiter.limit("30/minute")
async def get_current_user_info(
    request: Request,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Current profile, whatever its status"""
    profile = await UserService(db).get_user_by_id(current_user["user_id"])
    if not profile:
        raise NotFound("User not found")
    return profile

@router.get("/dashboard", response_model=DashboardResponse)
@limiter.limit("30/minute")
async def get_dashboard(
    request: Request,
    decision: ViewDecision = Depends(get_view_decision)
):
    """Which view the client should render for this session"""
    dashboard = decision.dashboard
    return DashboardResponse(
        state=decision.state.value,
        email=decision.email,
        roles=sorted(r.value for r in decision.roles),
        dashboard=dashboard.value if dashboard else None
    )

@router.post("/redeem-code", response_model=ProfileResponse)
@limiter.limit("5/minute")
async def redeem_code(
    request: Request,
    body: RedeemCodeRequest,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Redeem a registration code after signup; does not activate the account"""
    user_id = current_user["user_id"]
    user_service = UserService(db)
    if not await user_service.get_user_by_id(user_id):
        raise Unauthenticated()

    assignment = await RegistrationCodeService(db).redeem(body.code, user_id)
    await ActivityLogger(db).log_request(
        request, 200, "redeem_code", user_id=user_id, details={"role": assignment.role}
    )
    return await user_service.get_user_by_id(user_id)

@router.post("/logout")
@limiter.limit("30/minute")
async def logout(
    request: Request,
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Logout user (client should discard token)"""
    try:
        await ActivityLogger(db).log_request(request, 200, "logout", user_id=current_user["user_id"])
        logger.info(f"User logged out: {current_user['email']}")
        return {"message": "Successfully logged out"}

    except Exception as e:
        logger.error(f"Logout failed: {e}")
        return {"message": "Logged out"}  # Always return success for logout
