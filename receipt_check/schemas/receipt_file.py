from typing import List
from pydantic import BaseModel


class ReceiptDiagnosis(BaseModel):
    code: str = ""
    name: str = ""
    start_date: str = ""
    outcome: str = ""


class ProcedureGroup(BaseModel):
    category: str = ""
    category_name: str = ""
    code: str = ""
    points: int = 0
    count: int = 1
    details: List[str] = []


class ReceiptComment(BaseModel):
    code: str = ""
    text: str = ""


class ReturnInfo(BaseModel):
    year_month: str = ""
    reason: str = ""


class ReceiptPatient(BaseModel):
    receipt_no: int = 0
    name: str = ""
    name_kana: str = ""
    sex: str = ""
    birth_date: str = ""
    insurance_type: str = ""
    first_visit_date: str = ""
    insurer_number: str = ""
    insured_symbol: str = ""
    insured_number: str = ""
    public_insurer: str = ""
    public_recipient: str = ""
    total_points: int = 0
    diagnoses: List[ReceiptDiagnosis] = []
    procedures: List[ProcedureGroup] = []
    tooth_chart: str = ""
    comments: List[ReceiptComment] = []
    returns: List[ReturnInfo] = []


class ReceiptFile(BaseModel):
    clinic_name: str = ""
    clinic_code: str = ""
    claim_year_month: str = ""
    phone: str = ""
    total_receipts: int = 0
    total_points: int = 0
    patients: List[ReceiptPatient] = []
