from datetime import datetime, date
from typing import Optional, List
from pydantic import BaseModel, field_validator


class ProcedureLineItem(BaseModel):
    code: str
    name: str = ""
    points: int = 0
    category: str = ""
    count: int = 1
    note: str = ""
    tooth_numbers: List[str] = []

    @field_validator("code")
    @classmethod
    def code_strip(cls, v: str) -> str:
        return v.strip()

    @field_validator("name", "category", "note", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    @field_validator("count", mode="before")
    @classmethod
    def count_default(cls, v):
        return 1 if v is None else v

    @field_validator("points", mode="before")
    @classmethod
    def points_default(cls, v):
        return 0 if v is None else v

    @field_validator("tooth_numbers", mode="before")
    @classmethod
    def tooth_numbers_default(cls, v):
        return [] if v is None else v


class BillingRecord(BaseModel):
    id: str
    record_id: Optional[str] = None
    patient_id: str
    total_points: int
    patient_burden: int
    insurance_claim: int = 0
    burden_ratio: float
    procedures_detail: List[ProcedureLineItem] = []
    ai_check_warnings: List[str] = []
    document_provided: bool = False
    claim_status: Optional[str] = None
    payment_status: Optional[str] = None
    created_at: datetime

    @field_validator("procedures_detail", "ai_check_warnings", mode="before")
    @classmethod
    def none_to_list(cls, v):
        return [] if v is None else v

    @property
    def billing_date(self) -> date:
        return self.created_at.date()

    class Config:
        from_attributes = True


class PatientInfo(BaseModel):
    id: str
    name_kanji: Optional[str] = None
    name_kana: Optional[str] = None
    insurance_type: Optional[str] = None
    date_of_birth: Optional[date] = None
    burden_ratio: Optional[float] = None

    class Config:
        from_attributes = True


class DiagnosisRecord(BaseModel):
    id: str
    patient_id: str
    diagnosis_code: str = ""
    diagnosis_name: str = ""
    tooth_number: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    outcome: str = "ongoing"

    @field_validator("diagnosis_code", "diagnosis_name", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    class Config:
        from_attributes = True
