"""Parser for the dental electronic receipt export (レセ電, comma-delimited).

Each line is one record; the first field is a two-letter tag naming the
record kind. Lines whose tag is all digits are check records, of which only
the ``HR`` (return/rejection) sub-type is read.

Field positions are declared per tag in ``RECORD_LAYOUTS``. Patient-scoped
records attach to the patient opened by the most recent ``RE`` record.
"""
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..schemas.receipt_file import (
    ProcedureGroup,
    ReceiptComment,
    ReceiptDiagnosis,
    ReceiptFile,
    ReceiptPatient,
    ReturnInfo,
)

logger = logging.getLogger(__name__)


class ReceiptParseError(ValueError):
    pass


@dataclass(frozen=True)
class RecordLayout:
    tag: str
    fields: Dict[str, int]

    def extract(self, values: List[str]) -> Dict[str, str]:
        return {name: field_at(values, index) for name, index in self.fields.items()}


RECORD_LAYOUTS: Dict[str, RecordLayout] = {
    "IR": RecordLayout("IR", {
        "clinic_code": 4,
        "clinic_name": 6,
        "claim_year_month": 7,
        "phone": 8,
    }),
    "RE": RecordLayout("RE", {
        "receipt_no": 1,
        "receipt_type": 3,
        "name": 4,
        "sex": 5,
        "birth_date": 6,
        "first_visit_date": 9,
        "name_kana": 25,
    }),
    "HO": RecordLayout("HO", {
        "insurer_number": 1,
        "insured_symbol": 3,
        "insured_number": 4,
    }),
    "KO": RecordLayout("KO", {
        "public_insurer": 1,
        "public_recipient": 2,
    }),
    "SN": RecordLayout("SN", {
        "code": 1,
        "start_date": 2,
        "outcome": 3,
        "name": 4,
    }),
    "HS": RecordLayout("HS", {
        "tooth_chart": 2,
    }),
    "SS": RecordLayout("SS", {
        "category": 1,
        "code": 3,
        "points": 67,
        "count": 68,
    }),
    "CO": RecordLayout("CO", {
        "code": 3,
        "text": 4,
    }),
    "GO": RecordLayout("GO", {
        "total_receipts": 1,
        "total_points": 2,
    }),
}

CHECK_RECORD_LAYOUT = RecordLayout("HR", {
    "sub_type": 3,
    "year_month": 4,
    "reason": 8,
})

# SS fields 4..19 may carry detail codes (CA, CB, CE, CI, CM, DM, AE...)
SS_DETAIL_FIELDS = range(4, 20)
DETAIL_CODE_PATTERN = re.compile(r"^[A-Z]{2}[0-9]{3}")

CHECK_TAG_PATTERN = re.compile(r"^[0-9]+$")
LEADING_INT_PATTERN = re.compile(r"^\s*([+-]?[0-9]+)")

CATEGORY_NAMES = {
    "11": "初診", "12": "初診", "13": "再診",
    "21": "指導", "22": "指導", "23": "指導",
    "31": "検査", "32": "検査", "33": "画像診断",
    "40": "処置", "41": "処置", "42": "処置",
    "50": "手術", "51": "手術", "52": "手術", "53": "手術",
    "54": "麻酔",
    "60": "歯冠修復", "61": "歯冠修復", "62": "歯冠修復", "63": "歯冠修復",
    "70": "有床義歯", "71": "有床義歯", "72": "有床義歯",
    "80": "歯科矯正", "81": "歯科矯正",
}

INSURANCE_TYPES = {
    "1": "社保本人", "2": "社保家族",
    "3": "国保", "4": "退職",
    "6": "組合", "7": "後期高齢",
}

SEX_NAMES = {"1": "男", "2": "女"}


def field_at(values: List[str], index: int) -> str:
    return values[index] if index < len(values) else ""


def to_int(value: str, default: int = 0) -> int:
    match = LEADING_INT_PATTERN.match(value or "")
    return int(match.group(1)) if match else default


def to_half_width(text: str) -> str:
    """Full-width ASCII and ideographic spaces to their half-width forms."""
    converted = []
    for ch in text:
        code = ord(ch)
        if 0xFF01 <= code <= 0xFF5E:
            converted.append(chr(code - 0xFEE0))
        elif ch == "　":
            converted.append(" ")
        else:
            converted.append(ch)
    return "".join(converted)


def format_date(value: str) -> str:
    """``YYYYMMDD`` to ``YYYY/MM/DD``; anything shorter passes through."""
    if not value or len(value) < 8:
        return value or ""
    return f"{value[0:4]}/{value[4:6]}/{value[6:8]}"


def category_name(category: str) -> str:
    return CATEGORY_NAMES.get(category, f"その他({category})")


def insurance_type_name(code: str) -> str:
    return INSURANCE_TYPES.get(code, f"種別{code}")


def sex_name(code: str) -> str:
    return SEX_NAMES.get(code, "不明")


class ReceiptParser:
    def __init__(self) -> None:
        self.result = ReceiptFile()
        self.current: Optional[ReceiptPatient] = None
        self._handlers = {
            "UK": self._ignore,
            "IR": self._clinic,
            "RE": self._patient,
            "HO": self._insurer,
            "KO": self._public_expense,
            "SN": self._diagnosis,
            "HS": self._tooth_chart,
            "SS": self._procedure,
            "CO": self._comment,
            "GO": self._totals,
        }

    def parse(self, text: str) -> ReceiptFile:
        for line in re.split(r"\r?\n", text):
            if not line.strip():
                continue
            self.feed(line.split(","))
        self._flush()
        return self.result

    def feed(self, values: List[str]) -> None:
        tag = values[0]
        if CHECK_TAG_PATTERN.match(tag):
            self._check_record(values)
            return
        handler = self._handlers.get(tag)
        if handler is None:
            logger.debug("Ignoring unknown record tag %r", tag)
            return
        handler(values)

    def _flush(self) -> None:
        if self.current is not None:
            self.result.patients.append(self.current)
            self.current = None

    def _ignore(self, values: List[str]) -> None:
        pass

    def _clinic(self, values: List[str]) -> None:
        rec = RECORD_LAYOUTS["IR"].extract(values)
        self.result.clinic_code = rec["clinic_code"]
        self.result.clinic_name = to_half_width(rec["clinic_name"])
        self.result.claim_year_month = rec["claim_year_month"]
        self.result.phone = to_half_width(rec["phone"])

    def _patient(self, values: List[str]) -> None:
        self._flush()
        rec = RECORD_LAYOUTS["RE"].extract(values)
        self.current = ReceiptPatient(
            receipt_no=to_int(rec["receipt_no"]),
            name=rec["name"],
            name_kana=rec["name_kana"],
            sex=sex_name(rec["sex"]),
            birth_date=format_date(rec["birth_date"]),
            insurance_type=insurance_type_name(rec["receipt_type"][:1]),
            first_visit_date=format_date(rec["first_visit_date"]),
        )

    def _insurer(self, values: List[str]) -> None:
        if self.current is None:
            return
        rec = RECORD_LAYOUTS["HO"].extract(values)
        self.current.insurer_number = rec["insurer_number"].strip()
        self.current.insured_symbol = to_half_width(rec["insured_symbol"])
        self.current.insured_number = rec["insured_number"]

    def _public_expense(self, values: List[str]) -> None:
        if self.current is None:
            return
        rec = RECORD_LAYOUTS["KO"].extract(values)
        self.current.public_insurer = rec["public_insurer"]
        self.current.public_recipient = rec["public_recipient"]

    def _diagnosis(self, values: List[str]) -> None:
        if self.current is None:
            return
        rec = RECORD_LAYOUTS["SN"].extract(values)
        if not rec["code"] and not rec["name"]:
            return
        self.current.diagnoses.append(ReceiptDiagnosis(
            code=rec["code"],
            name=to_half_width(rec["name"]),
            start_date=format_date(rec["start_date"]),
            outcome=rec["outcome"],
        ))

    def _tooth_chart(self, values: List[str]) -> None:
        if self.current is None:
            return
        rec = RECORD_LAYOUTS["HS"].extract(values)
        if rec["tooth_chart"]:
            self.current.tooth_chart = rec["tooth_chart"]

    def _procedure(self, values: List[str]) -> None:
        if self.current is None:
            return
        rec = RECORD_LAYOUTS["SS"].extract(values)
        points = to_int(rec["points"])
        count = to_int(rec["count"])
        if count <= 0:
            count = 1

        details = [
            field_at(values, i)
            for i in SS_DETAIL_FIELDS
            if DETAIL_CODE_PATTERN.match(field_at(values, i))
        ]

        self.current.procedures.append(ProcedureGroup(
            category=rec["category"],
            category_name=category_name(rec["category"]),
            code=rec["code"],
            points=points,
            count=count,
            details=details,
        ))
        self.current.total_points += points * count

    def _comment(self, values: List[str]) -> None:
        if self.current is None:
            return
        rec = RECORD_LAYOUTS["CO"].extract(values)
        self.current.comments.append(ReceiptComment(code=rec["code"], text=to_half_width(rec["text"])))

    def _totals(self, values: List[str]) -> None:
        rec = RECORD_LAYOUTS["GO"].extract(values)
        self.result.total_receipts = to_int(rec["total_receipts"])
        self.result.total_points = to_int(rec["total_points"])

    def _check_record(self, values: List[str]) -> None:
        rec = CHECK_RECORD_LAYOUT.extract(values)
        if rec["sub_type"] != "HR" or self.current is None:
            return
        self.current.returns.append(ReturnInfo(
            year_month=rec["year_month"],
            reason=to_half_width(rec["reason"]),
        ))


def decode_receipt_bytes(data: bytes) -> str:
    """Decode an export as UTF-8, falling back to Shift_JIS (cp932)."""
    for encoding in ("utf-8-sig", "cp932"):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise ReceiptParseError("Receipt file is neither UTF-8 nor Shift_JIS encoded")


def parse_receipt_text(text: str) -> ReceiptFile:
    return ReceiptParser().parse(text)


def parse_receipt_file(data: bytes) -> ReceiptFile:
    return parse_receipt_text(decode_receipt_bytes(data))
