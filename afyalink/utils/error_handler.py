"""
Error taxonomy and rendering for the referral API

Services raise the typed failures below before touching storage; the
exception handlers registered in main.py turn them into JSON responses.
"""

import uuid
import traceback
import logging
from typing import Optional
from datetime import datetime
from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

class ErrorContext:
    """Request details attached to every error response"""

    def __init__(self, request: Request):
        self.request_id = str(uuid.uuid4())
        self.request = request
        self.endpoint = str(request.url.path)
        self.method = request.method
        self.client_ip = self._get_client_ip()
        self.user_agent = request.headers.get("user-agent")
        self.timestamp = datetime.utcnow()

    def _get_client_ip(self) -> Optional[str]:
        """Extract client IP from request headers"""
        if "x-forwarded-for" in self.request.headers:
            return self.request.headers["x-forwarded-for"].split(",")[0].strip()
        elif "x-real-ip" in self.request.headers:
            return self.request.headers["x-real-ip"]
        elif self.request.client:
            return self.request.client.host
        return None

class ReferralAppError(Exception):
    """Base class for per-operation failures; never fatal to the process"""
    status_code = 400
    error_code = "ERROR"
    default_message = "The request could not be completed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

class Unauthenticated(ReferralAppError):
    status_code = 401
    error_code = "UNAUTHENTICATED"
    default_message = "Authentication required"

class PendingApproval(ReferralAppError):
    status_code = 403
    error_code = "PENDING_APPROVAL"
    default_message = "Your account is awaiting administrator approval"

    def __init__(self, email: Optional[str] = None, message: Optional[str] = None):
        self.email = email
        super().__init__(message)

class Forbidden(ReferralAppError):
    status_code = 403
    error_code = "FORBIDDEN"
    default_message = "Operation not permitted"

class NotFound(ReferralAppError):
    status_code = 404
    error_code = "NOT_FOUND"
    default_message = "Resource not found"

class Conflict(ReferralAppError):
    status_code = 409
    error_code = "CONFLICT"
    default_message = "The resource is in a conflicting state"

class InvalidTransition(ReferralAppError):
    status_code = 409
    error_code = "INVALID_TRANSITION"
    default_message = "Status change not allowed"

class ValidationError(ReferralAppError):
    status_code = 400
    error_code = "VALIDATION_ERROR"
    default_message = "Invalid input provided"

class DatabaseError(Exception):
    """Custom exception for database-related errors"""
    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.message = message
        self.original_error = original_error
        super().__init__(self.message)

class ErrorHandler:
    """Centralized error handling service"""

    @staticmethod
    def create_error_response(
        error_context: ErrorContext,
        error: Exception,
        status_code: int = 500,
    ) -> JSONResponse:
        """Render `{"error": {...}}` and log the failure"""
        error_data = {
            "error": {
                "code": ErrorHandler._get_error_code(error),
                "message": ErrorHandler._get_user_friendly_message(error),
                "request_id": error_context.request_id,
                "timestamp": error_context.timestamp.isoformat(),
                "endpoint": error_context.endpoint,
                "method": error_context.method
            }
        }

        if isinstance(error, PendingApproval) and error.email:
            error_data["error"]["email"] = error.email

        ErrorHandler._log_error(error_context, error, status_code)

        headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
        return JSONResponse(
            status_code=status_code,
            content=error_data,
            headers=headers
        )

    @staticmethod
    def _get_error_code(error: Exception) -> str:
        if isinstance(error, ReferralAppError):
            return error.error_code
        elif isinstance(error, DatabaseError):
            return "DATABASE_ERROR"
        else:
            return "INTERNAL_ERROR"

    @staticmethod
    def _get_user_friendly_message(error: Exception) -> str:
        if isinstance(error, ReferralAppError):
            return error.message
        elif isinstance(error, DatabaseError):
            return "A database error occurred. Please try again later."
        else:
            return "An unexpected error occurred. Please try again later."

    @staticmethod
    def _log_error(error_context: ErrorContext, error: Exception, status_code: int):
        """Denials are warnings; everything else is logged with a stack trace"""
        message = f"Error {error_context.request_id}: {type(error).__name__} in {error_context.method} {error_context.endpoint}"
        extra = {
            "request_id": error_context.request_id,
            "endpoint": error_context.endpoint,
            "method": error_context.method,
            "status_code": status_code,
            "client_ip": error_context.client_ip,
            "user_agent": error_context.user_agent,
            "error_type": type(error).__name__,
            "error_message": str(error),
        }
        if status_code < 500:
            logger.warning(f"{message}: {error}", extra=extra)
        else:
            extra["stack_trace"] = traceback.format_exc()
            logger.error(message, extra=extra)

async def referral_app_error_handler(request: Request, exc: ReferralAppError) -> JSONResponse:
    """Exception handler for the typed failures"""
    return ErrorHandler.create_error_response(ErrorContext(request), exc, exc.status_code)

async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    """Exception handler for wrapped SQLAlchemy failures"""
    return ErrorHandler.create_error_response(ErrorContext(request), exc, 500)
