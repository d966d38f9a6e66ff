"""
Authentication and authorization handler for AfyaLink
Issues the session tokens and wires the access gate into FastAPI dependencies
"""

from datetime import datetime, timedelta
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from passlib.context import CryptContext
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from afyalink.config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from afyalink.database import get_db
from afyalink.services.access_gate import AccessGate, Action, ViewDecision
from afyalink.utils.error_handler import Unauthenticated

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=4)
security = HTTPBearer(auto_error=False)

class AuthHandler:
    """Handles password hashing and session tokens"""

    def __init__(self):
        self.pwd_context = pwd_context

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        """Verify a password against its hash"""
        return self.pwd_context.verify(plain_password, hashed_password)

    def get_password_hash(self, password: str) -> str:
        """Hash a password"""
        return self.pwd_context.hash(password)

    def create_access_token(self, data: dict, expires_delta: Optional[timedelta] = None):
        """Create a JWT access token"""
        to_encode = data.copy()
        if expires_delta:
            expire = datetime.utcnow() + expires_delta
        else:
            expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

        to_encode.update({"exp": expire})
        encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
        return encoded_jwt

    def verify_token(self, token: str) -> dict:
        """Verify and decode a JWT token"""
        try:
            payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
            return payload
        except JWTError:
            raise Unauthenticated("Could not validate credentials")

auth_handler = AuthHandler()

def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)):
    """Dependency returning the session behind the bearer token"""
    if credentials is None:
        raise Unauthenticated()

    payload = auth_handler.verify_token(credentials.credentials)

    user_id: str = payload.get("sub")
    if user_id is None:
        raise Unauthenticated("Could not validate credentials")

    return {
        "user_id": user_id,
        "email": payload.get("email")
    }

async def get_view_decision(
    current_user: dict = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> ViewDecision:
    """Dependency resolving the session through the access gate"""
    return await AccessGate(db).resolve(current_user["user_id"])

async def active_user_required(decision: ViewDecision = Depends(get_view_decision)) -> ViewDecision:
    """Dependency rejecting missing sessions and accounts awaiting approval"""
    return decision.require_active()

# Role-based access control
class RoleChecker:
    """Check that the caller's roles permit an action"""

    def __init__(self, action: Action):
        self.action = action

    def __call__(self, decision: ViewDecision = Depends(get_view_decision)) -> ViewDecision:
        return decision.require(self.action)

