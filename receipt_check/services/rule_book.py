"""In-memory index of the claim-check reference tables.

The six official tables (frequency limits, exclusive pairs, addition rules,
procedure materials, age limits, incremental fees) plus the legacy diagnosis
requirements are normalized into frozen rule records keyed by official
receipt code, with enum kinds instead of free-form strings.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


class LimitKind(str, Enum):
    PER_DAY = "per_day"
    PER_MONTH = "per_month"
    PER_PERIOD = "per_period"


class ExclusionKind(str, Enum):
    SAME_DAY = "same_day"
    SAME_MONTH = "same_month"


class AgeUnit(str, Enum):
    YEARS = "years"
    MONTHS = "months"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class FrequencyLimit:
    code: str
    name: str
    kind: LimitKind
    max_count: int
    period_months: int = 1

    @property
    def window_months(self) -> int:
        if self.kind == LimitKind.PER_PERIOD:
            return max(self.period_months, 1)
        return 1

    def period_label(self) -> str:
        if self.kind == LimitKind.PER_DAY:
            return "1日"
        if self.kind == LimitKind.PER_MONTH:
            return "月"
        return f"{self.period_months}ヶ月"


@dataclass(frozen=True)
class ExclusivePair:
    code_a: str
    name_a: str
    code_b: str
    name_b: str
    kind: ExclusionKind

    def both_in(self, codes: set) -> bool:
        return self.code_a in codes and self.code_b in codes

    def split_across(self, these: set, others: set) -> bool:
        return (self.code_a in these and self.code_b in others) or (
            self.code_b in these and self.code_a in others
        )


@dataclass(frozen=True)
class AdditionRequirement:
    addition_code: str
    addition_name: str
    base_code: str
    base_name: str
    required_facility: Optional[str] = None


@dataclass(frozen=True)
class MaterialRequirement:
    procedure_code: str
    material_code: str
    material_name: str


@dataclass(frozen=True)
class AgeLimit:
    code: str
    name: str
    min_age: Optional[int]
    max_age: Optional[int]
    unit: AgeUnit = AgeUnit.YEARS

    @property
    def unit_label(self) -> str:
        return "ヶ月" if self.unit == AgeUnit.MONTHS else "歳"


@dataclass(frozen=True)
class IncrementalFee:
    code: str
    name: str
    base_points: int
    increment_points: int = 0
    base_count: int = 0
    max_count: Optional[int] = None


@dataclass(frozen=True)
class DiagnosisRequirementRule:
    pattern: str
    keywords: Tuple[str, ...]
    icd_prefixes: Tuple[str, ...]
    severity: Severity
    message: str
    legal_basis: Optional[str] = None

    def applies_to(self, code: str) -> bool:
        return code == self.pattern or code.startswith(self.pattern)

    def satisfied_by(self, diagnoses: Sequence) -> bool:
        for diag in diagnoses:
            if any(kw in diag.diagnosis_name for kw in self.keywords):
                return True
            if any(diag.diagnosis_code.startswith(prefix) for prefix in self.icd_prefixes):
                return True
        return False

    @property
    def full_message(self) -> str:
        if self.legal_basis:
            return f"{self.message}【{self.legal_basis}】"
        return self.message


@dataclass
class CodeRules:
    frequency_limits: List[FrequencyLimit] = field(default_factory=list)
    age_limits: List[AgeLimit] = field(default_factory=list)
    additions: List[AdditionRequirement] = field(default_factory=list)
    materials: List[MaterialRequirement] = field(default_factory=list)
    incremental_fee: Optional[IncrementalFee] = None


_EMPTY = CodeRules()


def _enum_or_none(enum_cls, value, table: str):
    try:
        return enum_cls(value)
    except ValueError:
        logger.warning("Skipping %s row with unknown kind %r", table, value)
        return None


class RuleBook:
    def __init__(self) -> None:
        self._by_code: Dict[str, CodeRules] = {}
        self.exclusive_pairs: List[ExclusivePair] = []
        self.diagnosis_requirements: List[DiagnosisRequirementRule] = []
        self._row_counts: Dict[str, int] = {
            "frequency_limits": 0,
            "exclusive_pairs": 0,
            "addition_rules": 0,
            "procedure_materials": 0,
            "age_limits": 0,
            "incremental_fees": 0,
            "diagnosis_requirements": 0,
        }

    def _rules(self, code: str) -> CodeRules:
        return self._by_code.setdefault(code, CodeRules())

    def for_code(self, code: str) -> CodeRules:
        return self._by_code.get(code, _EMPTY)

    def add_frequency_limit(self, limit: FrequencyLimit) -> None:
        self._rules(limit.code).frequency_limits.append(limit)

    def add_exclusive_pair(self, pair: ExclusivePair) -> None:
        self.exclusive_pairs.append(pair)

    def add_addition(self, rule: AdditionRequirement, also_for: Optional[str] = None) -> None:
        self._rules(rule.addition_code).additions.append(rule)
        if also_for and also_for != rule.addition_code:
            self._rules(also_for).additions.append(rule)

    def add_material(self, material: MaterialRequirement) -> None:
        self._rules(material.procedure_code).materials.append(material)

    def add_age_limit(self, limit: AgeLimit) -> None:
        self._rules(limit.code).age_limits.append(limit)

    def add_incremental_fee(self, fee: IncrementalFee) -> None:
        rules = self._rules(fee.code)
        if rules.incremental_fee is None:
            rules.incremental_fee = fee

    def add_diagnosis_requirement(self, rule: DiagnosisRequirementRule) -> None:
        self.diagnosis_requirements.append(rule)

    @property
    def max_window_months(self) -> int:
        windows = [
            limit.window_months
            for rules in self._by_code.values()
            for limit in rules.frequency_limits
        ]
        return max(windows, default=1)

    def counts(self) -> Dict[str, int]:
        return dict(self._row_counts)

    @classmethod
    def from_rows(
        cls,
        frequency_limits: Iterable = (),
        exclusive_pairs: Iterable = (),
        addition_rules: Iterable = (),
        procedure_materials: Iterable = (),
        age_limits: Iterable = (),
        incremental_fees: Iterable = (),
        diagnosis_requirements: Iterable = (),
    ) -> "RuleBook":
        book = cls()
        counts = book._row_counts

        for row in frequency_limits:
            counts["frequency_limits"] += 1
            kind = _enum_or_none(LimitKind, row.limit_type, "check_frequency_limits")
            if kind is None or row.max_count is None:
                continue
            book.add_frequency_limit(FrequencyLimit(
                code=row.shinryo_code,
                name=row.name or "",
                kind=kind,
                max_count=row.max_count,
                period_months=row.period_months or 1,
            ))

        for row in exclusive_pairs:
            counts["exclusive_pairs"] += 1
            kind = _enum_or_none(ExclusionKind, row.exclusion_type, "check_exclusive_pairs")
            if kind is None:
                continue
            book.add_exclusive_pair(ExclusivePair(
                code_a=row.code_a,
                name_a=row.name_a or "",
                code_b=row.code_b,
                name_b=row.name_b or "",
                kind=kind,
            ))

        for row in addition_rules:
            counts["addition_rules"] += 1
            conditions = row.conditions or {}
            book.add_addition(
                AdditionRequirement(
                    addition_code=row.addition_code,
                    addition_name=row.addition_name or "",
                    base_code=row.base_code,
                    base_name=row.base_name or "",
                    required_facility=row.required_facility or None,
                ),
                also_for=conditions.get("shinryo_code") if isinstance(conditions, dict) else None,
            )

        for row in procedure_materials:
            counts["procedure_materials"] += 1
            if not row.is_required:
                continue
            book.add_material(MaterialRequirement(
                procedure_code=row.procedure_code,
                material_code=row.material_code,
                material_name=row.material_name or "",
            ))

        for row in age_limits:
            counts["age_limits"] += 1
            unit = _enum_or_none(AgeUnit, row.age_type or AgeUnit.YEARS.value, "check_age_limits")
            if unit is None:
                continue
            book.add_age_limit(AgeLimit(
                code=row.shinryo_code,
                name=row.name or "",
                min_age=row.min_age,
                max_age=row.max_age,
                unit=unit,
            ))

        for row in incremental_fees:
            counts["incremental_fees"] += 1
            book.add_incremental_fee(IncrementalFee(
                code=row.shinryo_code,
                name=row.name or "",
                base_points=row.base_points or 0,
                increment_points=row.increment_points or 0,
                base_count=row.base_count or 0,
                max_count=row.max_count,
            ))

        for row in diagnosis_requirements:
            counts["diagnosis_requirements"] += 1
            level = row.error_level or Severity.ERROR.value
            severity = Severity.ERROR if level == Severity.ERROR.value else Severity.WARNING
            book.add_diagnosis_requirement(DiagnosisRequirementRule(
                pattern=row.procedure_code_pattern,
                keywords=tuple(row.required_diagnosis_keywords or ()),
                icd_prefixes=tuple(row.required_icd_prefixes or ()),
                severity=severity,
                message=row.message,
                legal_basis=row.legal_basis or None,
            ))

        return book
