import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..config import get_settings
from ..models.billing import Billing
from ..models.patient import Patient, PatientDiagnosis
from ..models.reference import FeeMasterReceipt, DiagnosisRequirement
from ..models.rules import (
    FrequencyLimitRule,
    ExclusivePairRule,
    AdditionRule,
    ProcedureMaterialRule,
    AgeLimitRule,
    IncrementalFeeRule,
)
from ..schemas.billing import BillingRecord, DiagnosisRecord, PatientInfo
from ..schemas.check import ReceiptCheckResponse, YEAR_MONTH_PATTERN
from .ai_review import apply_review, generate_review
from .audit import AuditService
from .code_resolver import build_db_lookup
from .rule_book import RuleBook
from .validator import CheckContext, check_billings, summarize

logger = logging.getLogger(__name__)

NO_BILLINGS_MESSAGE = "該当月の精算済みデータがありません"

RULE_TABLES = (
    ("check_frequency_limits", FrequencyLimitRule),
    ("check_exclusive_pairs", ExclusivePairRule),
    ("check_addition_rules", AdditionRule),
    ("check_procedure_materials", ProcedureMaterialRule),
    ("check_age_limits", AgeLimitRule),
    ("check_incremental_fees", IncrementalFeeRule),
)


class InvalidYearMonthError(ValueError):
    pass


def parse_year_month(year_month: Optional[str]) -> Tuple[int, int]:
    if not year_month:
        raise InvalidYearMonthError("yearMonth (YYYY-MM) is required")
    if not YEAR_MONTH_PATTERN.match(year_month):
        raise InvalidYearMonthError(f"yearMonth must be YYYY-MM, got '{year_month}'")
    year, month = year_month.split("-")
    return int(year), int(month)


def shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def month_bounds(year: int, month: int) -> Tuple[datetime, datetime]:
    """First instant of the month and first instant of the next one."""
    start = datetime(year, month, 1)
    next_year, next_month = shift_month(year, month, 1)
    return start, datetime(next_year, next_month, 1)


class ReceiptCheckService:
    @staticmethod
    def load_rule_book(db: Session) -> Tuple[RuleBook, Dict[str, str]]:
        book = RuleBook.from_rows(
            frequency_limits=db.query(FrequencyLimitRule).all(),
            exclusive_pairs=db.query(ExclusivePairRule).all(),
            addition_rules=db.query(AdditionRule).all(),
            procedure_materials=db.query(ProcedureMaterialRule).all(),
            age_limits=db.query(AgeLimitRule).all(),
            incremental_fees=db.query(IncrementalFeeRule).all(),
            diagnosis_requirements=db.query(DiagnosisRequirement).filter(
                DiagnosisRequirement.is_active.is_(True)
            ).all(),
        )
        db_lookup = build_db_lookup(db.query(FeeMasterReceipt).all())
        return book, db_lookup

    @staticmethod
    def rule_counts(db: Session) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for table_name, model in RULE_TABLES:
            counts[table_name] = db.query(model).count()
        counts["diagnosis_requirements"] = db.query(DiagnosisRequirement).filter(
            DiagnosisRequirement.is_active.is_(True)
        ).count()
        counts["total"] = sum(counts.values())
        return counts

    @staticmethod
    def _load_billings(db: Session, year: int, month: int, billing_ids: Optional[List[str]]) -> List[Billing]:
        query = db.query(Billing)
        if billing_ids:
            query = query.filter(Billing.id.in_(billing_ids))
        else:
            start, end = month_bounds(year, month)
            query = query.filter(
                Billing.payment_status == get_settings().paid_payment_status,
                Billing.created_at >= start,
                Billing.created_at < end,
            )
        return query.order_by(Billing.created_at, Billing.id).all()

    @staticmethod
    def _load_history(
        db: Session,
        billings: Sequence[Billing],
        patient_ids: List[str],
        window_months: int,
    ) -> List[Billing]:
        earliest = min(b.created_at for b in billings)
        latest = max(b.created_at for b in billings)
        from_year, from_month = shift_month(earliest.year, earliest.month, -(window_months - 1))
        window_start, _ = month_bounds(from_year, from_month)
        _, window_end = month_bounds(latest.year, latest.month)
        checked_ids = [b.id for b in billings]

        return (
            db.query(Billing)
            .filter(
                Billing.patient_id.in_(patient_ids),
                Billing.payment_status == get_settings().paid_payment_status,
                Billing.created_at >= window_start,
                Billing.created_at < window_end,
                Billing.id.notin_(checked_ids),
            )
            .all()
        )

    @staticmethod
    def build_context(db: Session, patient_ids: List[str]) -> CheckContext:
        settings = get_settings()
        rule_book, db_lookup = ReceiptCheckService.load_rule_book(db)

        patients = {
            p.id: PatientInfo.model_validate(p)
            for p in db.query(Patient).filter(Patient.id.in_(patient_ids)).all()
        }
        diagnoses: Dict[str, List[DiagnosisRecord]] = {}
        for d in db.query(PatientDiagnosis).filter(PatientDiagnosis.patient_id.in_(patient_ids)).all():
            diagnoses.setdefault(d.patient_id, []).append(DiagnosisRecord.model_validate(d))

        return CheckContext(
            rule_book=rule_book,
            db_lookup=db_lookup,
            patients=patients,
            diagnoses=diagnoses,
            burden_tolerance_yen=settings.burden_tolerance_yen,
        )

    @staticmethod
    def _prepare(
        db: Session,
        year_month: Optional[str],
        billing_ids: Optional[List[str]],
    ) -> Tuple[List[BillingRecord], List[BillingRecord], Optional[CheckContext]]:
        year, month = parse_year_month(year_month)

        rows = ReceiptCheckService._load_billings(db, year, month, billing_ids)
        if not rows:
            return [], [], None

        patient_ids = sorted({b.patient_id for b in rows})
        ctx = ReceiptCheckService.build_context(db, patient_ids)
        history_rows = ReceiptCheckService._load_history(
            db, rows, patient_ids, ctx.rule_book.max_window_months
        )

        records = [BillingRecord.model_validate(b) for b in rows]
        history = [BillingRecord.model_validate(b) for b in history_rows]
        return records, history, ctx

    @staticmethod
    def run_check(
        db: Session,
        year_month: Optional[str],
        billing_ids: Optional[List[str]] = None,
        performed_by: Optional[str] = None,
    ) -> ReceiptCheckResponse:
        records, history, ctx = ReceiptCheckService._prepare(db, year_month, billing_ids)
        if ctx is None:
            logger.info("No billing rows to check for %s", year_month)
            return ReceiptCheckResponse(message=NO_BILLINGS_MESSAGE)

        results = check_billings(records, ctx, history)
        summary = summarize(results)

        AuditService.log_receipt_check(
            db, year_month, summary, billing_ids=billing_ids, performed_by=performed_by
        )
        db.commit()

        logger.info(
            "Receipt check %s: total=%d ok=%d warn=%d error=%d",
            year_month, summary.total, summary.ok, summary.warn, summary.error,
        )
        return ReceiptCheckResponse(
            results=results,
            summary=summary,
            rules_loaded=ctx.rule_book.counts(),
        )

    @staticmethod
    def run_ai_review(
        db: Session,
        year_month: Optional[str],
        billing_ids: List[str],
        performed_by: Optional[str] = None,
    ) -> ReceiptCheckResponse:
        records, history, ctx = ReceiptCheckService._prepare(db, year_month, billing_ids)
        if ctx is None:
            return ReceiptCheckResponse(message=NO_BILLINGS_MESSAGE)

        results = check_billings(records, ctx, history)
        by_id = {r.id: r for r in records}

        reviewed = []
        for result in results:
            billing = by_id[result.billing_id]
            review = generate_review(
                billing,
                ctx.patients.get(billing.patient_id),
                ctx.diagnoses.get(billing.patient_id, []),
                result,
            )
            AuditService.log_ai_review(
                db,
                billing.id,
                review.risk_level,
                len(review.ai_findings) + len(review.risk_areas),
                performed_by=performed_by,
            )
            reviewed.append(apply_review(result, review))

        db.commit()
        return ReceiptCheckResponse(
            results=reviewed,
            summary=summarize(reviewed),
            rules_loaded=ctx.rule_book.counts(),
        )
