from .billing import ProcedureLineItem, BillingRecord, PatientInfo, DiagnosisRecord
from .check import (
    ReceiptCheckRequest,
    CheckResult,
    CheckSummary,
    ReceiptCheckResponse,
    RuleCountsResponse,
    AIReviewRequest,
    AIReview,
)
from .receipt_file import (
    ReceiptFile,
    ReceiptPatient,
    ReceiptDiagnosis,
    ProcedureGroup,
    ReceiptComment,
    ReturnInfo,
)

__all__ = [
    "ProcedureLineItem",
    "BillingRecord",
    "PatientInfo",
    "DiagnosisRecord",
    "ReceiptCheckRequest",
    "CheckResult",
    "CheckSummary",
    "ReceiptCheckResponse",
    "RuleCountsResponse",
    "AIReviewRequest",
    "AIReview",
    "ReceiptFile",
    "ReceiptPatient",
    "ReceiptDiagnosis",
    "ProcedureGroup",
    "ReceiptComment",
    "ReturnInfo",
]
