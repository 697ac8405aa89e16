import re
from typing import Optional, List, Dict
from pydantic import BaseModel, ConfigDict, Field, field_validator

YEAR_MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


class ReceiptCheckRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    year_month: Optional[str] = Field(None, alias="yearMonth")
    billing_ids: Optional[List[str]] = None

    @field_validator("billing_ids")
    @classmethod
    def billing_ids_strip(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return None
        cleaned = [bid.strip() for bid in v if bid and bid.strip()]
        return cleaned or None


class CheckResult(BaseModel):
    billing_id: str
    patient_id: str
    patient_name: str
    status: str
    errors: List[str] = []
    warnings: List[str] = []
    unresolved_codes: List[str] = []
    risk_level: Optional[str] = None


class CheckSummary(BaseModel):
    total: int = 0
    ok: int = 0
    warn: int = 0
    error: int = 0


class ReceiptCheckResponse(BaseModel):
    success: bool = True
    results: List[CheckResult] = []
    summary: CheckSummary = CheckSummary()
    rules_loaded: Dict[str, int] = {}
    message: Optional[str] = None


class RuleCountsResponse(BaseModel):
    status: str = "ready"
    rules: Dict[str, int]


class AIReviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    year_month: Optional[str] = Field(None, alias="yearMonth")
    billing_ids: List[str]

    @field_validator("billing_ids")
    @classmethod
    def billing_ids_not_empty(cls, v: List[str]) -> List[str]:
        cleaned = [bid.strip() for bid in v if bid and bid.strip()]
        if not cleaned:
            raise ValueError("billing_ids must contain at least one id")
        return cleaned


class AIReview(BaseModel):
    risk_level: str = "ok"
    ai_findings: List[str] = []
    risk_areas: List[str] = []
    suggestions: List[str] = []
