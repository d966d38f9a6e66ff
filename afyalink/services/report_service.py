"""
Plain-text report export over the referral range query
"""

from sqlalchemy.orm import Session
from datetime import date, datetime
from typing import Optional
import logging

from afyalink.config import REPORT_TITLE
from afyalink.models.enums import ReportType
from afyalink.models.referral import Referral
from afyalink.services.access_gate import Action, ViewDecision
from afyalink.services.referral_service import ReferralService
from afyalink.utils.error_handler import ValidationError

logger = logging.getLogger(__name__)

ADMIN_ONLY_REPORTS = frozenset({ReportType.FACILITIES, ReportType.STAFF, ReportType.USERS})

def report_filename(report_type: str, today: Optional[date] = None) -> str:
    today = today or datetime.utcnow().date()
    return f"AFYALINK_Report_{report_type}_{today.isoformat()}.txt"

def render_report(
    records: list[Referral],
    report_type: str,
    start_date: date,
    end_date: date,
    status: str = "all",
    generated_at: Optional[datetime] = None
) -> str:
    """Flat text document: header, summary, then one block per referral"""
    generated_at = generated_at or datetime.utcnow()

    lines = [
        REPORT_TITLE,
        f"{report_type.upper()} REPORT",
        f"Generated: {generated_at.strftime('%Y-%m-%d %H:%M:%S')} UTC",
        f"Period: {start_date.isoformat()} to {end_date.isoformat()}",
        f"Status Filter: {status}",
        "",
        "=" * 60,
        "",
        "SUMMARY",
        f"Total Records: {len(records)}",
        "",
    ]

    if records:
        lines += ["DETAILED RECORDS", "=" * 60, ""]
        for index, record in enumerate(records, start=1):
            created = record.created_at.strftime('%Y-%m-%d %H:%M:%S') if record.created_at else "-"
            lines += [
                f"Record {index}",
                f"ID: {record.id}",
                f"Status: {record.status}",
                f"Facility From: {record.facility_from}",
                f"Facility To: {record.facility_to}",
                f"Urgency: {record.urgency}",
                f"Reason: {record.reason}",
                f"Created: {created}",
                "",
                "-" * 40,
                "",
            ]

    return "\n".join(lines)

class ReportService:
    """Builds report documents for the caller's visible referrals"""

    def __init__(self, db: Session):
        self.db = db

    async def generate(
        self,
        decision: ViewDecision,
        report_type: str,
        start_date: Optional[date],
        end_date: Optional[date],
        status: str = "all"
    ) -> tuple[str, str]:
        """Return (filename, content)"""
        decision.require_active()

        if not start_date or not end_date:
            raise ValidationError("Please select both start and end dates")
        try:
            kind = ReportType(report_type)
        except ValueError:
            raise ValidationError(f"Unknown report type '{report_type}'")
        if kind in ADMIN_ONLY_REPORTS:
            decision.require(Action.EXPORT_ADMIN_REPORTS)

        records = await ReferralService(self.db).list_in_range(decision, start_date, end_date, status)

        content = render_report(records, kind.value, start_date, end_date, status or "all")
        logger.info(f"User {decision.user_id} generated {kind.value} report with {len(records)} records")
        return report_filename(kind.value), content
