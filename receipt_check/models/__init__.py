from .patient import Patient, PatientDiagnosis, DiagnosisOutcome
from .billing import Billing, PaymentStatus, ClaimStatus
from .rules import (
    FrequencyLimitRule,
    ExclusivePairRule,
    AdditionRule,
    ProcedureMaterialRule,
    AgeLimitRule,
    IncrementalFeeRule,
)
from .reference import FeeMasterReceipt, DiagnosisRequirement
from .audit import AuditLog

__all__ = [
    "Patient",
    "PatientDiagnosis",
    "DiagnosisOutcome",
    "Billing",
    "PaymentStatus",
    "ClaimStatus",
    "FrequencyLimitRule",
    "ExclusivePairRule",
    "AdditionRule",
    "ProcedureMaterialRule",
    "AgeLimitRule",
    "IncrementalFeeRule",
    "FeeMasterReceipt",
    "DiagnosisRequirement",
    "AuditLog",
]
