from typing import Optional, Dict, Any, List
from sqlalchemy.orm import Session

from ..models.audit import AuditLog
from ..schemas.check import CheckSummary


class AuditService:
    @staticmethod
    def log_event(
        db: Session,
        table_name: str,
        action: str,
        record_id: Optional[str] = None,
        performed_by: Optional[str] = None,
        changed_fields: Optional[List[str]] = None,
        new_data: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        event = AuditLog(
            table_name=table_name,
            record_id=record_id,
            action=action,
            performed_by=performed_by,
            changed_fields=changed_fields,
            new_data=new_data,
        )
        db.add(event)
        return event

    @staticmethod
    def log_receipt_check(
        db: Session,
        year_month: str,
        summary: CheckSummary,
        billing_ids: Optional[List[str]] = None,
        performed_by: Optional[str] = None,
    ) -> AuditLog:
        new_data: Dict[str, Any] = {
            "year_month": year_month,
            "summary": summary.model_dump(),
        }
        if billing_ids:
            new_data["billing_ids"] = billing_ids

        return AuditService.log_event(
            db=db,
            table_name="billing",
            action="RECEIPT_CHECK",
            performed_by=performed_by,
            new_data=new_data,
        )

    @staticmethod
    def log_ai_review(
        db: Session,
        billing_id: str,
        risk_level: str,
        findings: int,
        performed_by: Optional[str] = None,
    ) -> AuditLog:
        return AuditService.log_event(
            db=db,
            table_name="billing",
            action="AI_REVIEW",
            record_id=billing_id,
            performed_by=performed_by,
            new_data={"risk_level": risk_level, "findings": findings},
        )
