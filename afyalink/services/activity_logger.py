"""
Activity logging service for the audit trail
"""

from sqlalchemy.orm import Session
from fastapi import Request
from afyalink.models.activity_log import ActivityLog
import json
import logging
from typing import Optional

logger = logging.getLogger(__name__)

class ActivityLogger:
    """Records auth and admin actions to the activity_logs table"""

    def __init__(self, db: Session):
        self.db = db

    async def log_activity(
        self,
        endpoint: str,
        method: str,
        status_code: int,
        action: Optional[str] = None,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        details: Optional[dict] = None,
        error_message: Optional[str] = None
    ) -> Optional[ActivityLog]:
        """Write one audit row; failures are logged and never raised"""

        try:
            details_str = None
            if details:
                try:
                    details_str = json.dumps(details, default=str)
                except (TypeError, ValueError):
                    details_str = str(details)

            activity_log = ActivityLog(
                user_id=user_id,
                action=action,
                endpoint=endpoint,
                method=method,
                status_code=status_code,
                ip_address=ip_address,
                user_agent=user_agent,
                details=details_str,
                error_message=error_message
            )

            self.db.add(activity_log)
            self.db.commit()
            self.db.refresh(activity_log)

            return activity_log

        except Exception as e:
            logger.error(f"Failed to log activity: {e}")
            self.db.rollback()
            return None

    async def log_request(
        self,
        request: Request,
        status_code: int,
        action: str,
        user_id: Optional[str] = None,
        details: Optional[dict] = None,
        error_message: Optional[str] = None
    ) -> Optional[ActivityLog]:
        """Shortcut that pulls endpoint, method and client data from the request"""
        return await self.log_activity(
            endpoint=str(request.url.path),
            method=request.method,
            status_code=status_code,
            action=action,
            user_id=user_id,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            details=details,
            error_message=error_message
        )

    def get_recent_activities(self, limit: int = 100, user_id: Optional[str] = None) -> list[ActivityLog]:
        """Get recent activities, newest first"""
        query = self.db.query(ActivityLog)
        if user_id:
            query = query.filter(ActivityLog.user_id == user_id)
        return query.order_by(ActivityLog.id.desc()).limit(limit).all()
