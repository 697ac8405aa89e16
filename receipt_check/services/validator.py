"""Receipt compliance checks for billing records.

Every check appends human-readable messages to one errors list and one
warnings list; the verdict is ``error`` if any error was raised, ``warn`` if
only warnings, ``ok`` otherwise. Rule violations are data, never exceptions.

Cross-record checks (frequency limits, exclusive pairs split between visits)
look at the patient's billing rows ordered by ``(created_at, id)`` and only
count rows up to and including the one being checked, so a finding that
needs two visits lands on the later visit.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Set

from ..schemas.billing import BillingRecord, DiagnosisRecord, PatientInfo
from ..schemas.check import CheckResult, CheckSummary
from .code_resolver import is_official_code, resolve_receipt_code
from .rule_book import AgeUnit, ExclusionKind, LimitKind, FrequencyLimit, RuleBook, Severity

logger = logging.getLogger(__name__)

UNKNOWN_PATIENT_NAME = "不明"

CONSULTATION_CODE_PREFIX = "A0"
CONSULTATION_OFFICIAL_PREFIX = "301"
MATERIAL_CODE_PREFIX = "MAT-"
MATERIAL_CATEGORY = "特定器材"
MATERIAL_EXEMPT_CATEGORIES = frozenset({"加算", "投薬"})
MANAGEMENT_PLAN_KEYWORD = "管理計画書"
CURED_OUTCOME = "cured"


class CheckStatus:
    OK = "ok"
    WARN = "warn"
    ERROR = "error"


@dataclass
class CheckContext:
    rule_book: RuleBook
    db_lookup: Dict[str, str] = field(default_factory=dict)
    patients: Dict[str, PatientInfo] = field(default_factory=dict)
    diagnoses: Dict[str, List[DiagnosisRecord]] = field(default_factory=dict)
    burden_tolerance_yen: int = 10
    _resolved: Dict[str, Optional[str]] = field(default_factory=dict, repr=False)

    def resolve(self, code: str) -> Optional[str]:
        if code not in self._resolved:
            self._resolved[code] = resolve_receipt_code(code, self.db_lookup)
        return self._resolved[code]

    def resolved_counts(self, billing: BillingRecord) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for proc in billing.procedures_detail:
            rc = self.resolve(proc.code)
            if rc:
                counts[rc] = counts.get(rc, 0) + proc.count
        return counts


def js_round(value: float) -> int:
    """Round half up, matching the clinic's billing screen."""
    return int(math.floor(value + 0.5))


def expected_patient_burden(total_points: int, burden_ratio: float) -> int:
    """Expected burden in yen, rounded to the nearest 10 yen."""
    raw = js_round(total_points * 10 * burden_ratio)
    return js_round(raw / 10) * 10


def calc_age(date_of_birth: Optional[date], on: date) -> Optional[int]:
    if date_of_birth is None:
        return None
    age = on.year - date_of_birth.year
    if (on.month, on.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def calc_age_months(date_of_birth: Optional[date], on: date) -> Optional[int]:
    if date_of_birth is None:
        return None
    months = (on.year - date_of_birth.year) * 12 + (on.month - date_of_birth.month)
    if on.day < date_of_birth.day:
        months -= 1
    return months


def _month_index(d: date) -> int:
    return d.year * 12 + d.month - 1


def in_window(limit: FrequencyLimit, other: date, current: date) -> bool:
    if limit.kind == LimitKind.PER_DAY:
        return other == current
    if limit.kind == LimitKind.PER_MONTH:
        return _month_index(other) == _month_index(current)
    diff = _month_index(current) - _month_index(other)
    return 0 <= diff < limit.window_months


def resolve_status(errors: Sequence[str], warnings: Sequence[str]) -> str:
    if errors:
        return CheckStatus.ERROR
    if warnings:
        return CheckStatus.WARN
    return CheckStatus.OK


def summarize(results: Iterable[CheckResult]) -> CheckSummary:
    summary = CheckSummary()
    for r in results:
        summary.total += 1
        if r.status == CheckStatus.OK:
            summary.ok += 1
        elif r.status == CheckStatus.WARN:
            summary.warn += 1
        else:
            summary.error += 1
    return summary


def _check_basics(
    billing: BillingRecord,
    patient: Optional[PatientInfo],
    diagnoses: Sequence[DiagnosisRecord],
    ctx: CheckContext,
    errors: List[str],
    warnings: List[str],
) -> None:
    procs = billing.procedures_detail

    if billing.total_points <= 0:
        errors.append("合計点数が0以下です。処置が正しく入力されているか確認してください【算定要件】")

    if not diagnoses:
        errors.append("傷病名が1つも登録されていません。レセプトには傷病名が必須です【療担規則】")

    def _is_consultation(code: str) -> bool:
        if code.startswith(CONSULTATION_CODE_PREFIX):
            return True
        return is_official_code(code) and code.startswith(CONSULTATION_OFFICIAL_PREFIX)

    if procs and all(_is_consultation(p.code) for p in procs):
        warnings.append("初・再診料のみで処置がありません。処置内容の入力漏れがないか確認してください")

    cured = [d for d in diagnoses if d.outcome == CURED_OUTCOME]
    if cured and len(cured) == len(diagnoses) and procs:
        warnings.append(
            "全ての傷病名が「治癒」ですが処置が算定されています。転帰を「継続」に変更するか、処置を見直してください"
        )

    expected = expected_patient_burden(billing.total_points, billing.burden_ratio)
    if abs(billing.patient_burden - expected) > ctx.burden_tolerance_yen:
        errors.append(
            f"患者負担額が計算と不一致です（期待:¥{expected} / 実際:¥{billing.patient_burden}）【算定要件】"
        )

    if patient is None or not patient.insurance_type:
        errors.append("保険種別が未設定です。患者情報で保険種別を設定してください【請求要件】")


def _check_frequency_limits(
    billing: BillingRecord,
    preceding: Sequence[BillingRecord],
    ctx: CheckContext,
    errors: List[str],
) -> None:
    current_date = billing.billing_date
    current_counts = ctx.resolved_counts(billing)
    reported: Set[FrequencyLimit] = set()

    for proc in billing.procedures_detail:
        rc = ctx.resolve(proc.code)
        if not rc:
            continue
        for limit in ctx.rule_book.for_code(rc).frequency_limits:
            if limit in reported:
                continue
            total = current_counts.get(rc, 0)
            for other in preceding:
                if in_window(limit, other.billing_date, current_date):
                    total += ctx.resolved_counts(other).get(rc, 0)
            if total > limit.max_count:
                reported.add(limit)
                errors.append(
                    f"「{limit.name}」は{limit.period_label()}{limit.max_count}回までです"
                    f"（現在: {total}回）【算定回数限度】"
                )


def _check_exclusive_pairs(
    billing: BillingRecord,
    preceding: Sequence[BillingRecord],
    ctx: CheckContext,
    errors: List[str],
    warnings: List[str],
) -> None:
    these = set(ctx.resolved_counts(billing))
    current_date = billing.billing_date
    same_day_codes: Set[str] = set()
    same_month_codes: Set[str] = set()
    for other in preceding:
        other_date = other.billing_date
        if _month_index(other_date) != _month_index(current_date):
            continue
        codes = set(ctx.resolved_counts(other))
        same_month_codes |= codes
        if other_date == current_date:
            same_day_codes |= codes

    for pair in ctx.rule_book.exclusive_pairs:
        if pair.both_in(these):
            label = "同日" if pair.kind == ExclusionKind.SAME_DAY else "同月"
            errors.append(f"「{pair.name_a}」と「{pair.name_b}」は{label}に併算定できません【併算定不可】")
            continue
        if pair.kind == ExclusionKind.SAME_MONTH and pair.split_across(these, same_month_codes):
            warnings.append(
                f"「{pair.name_a}」と「{pair.name_b}」が同月の別会計で併算定されています【併算定不可・要確認】"
            )
        elif pair.kind == ExclusionKind.SAME_DAY and pair.split_across(these, same_day_codes):
            errors.append(
                f"「{pair.name_a}」と「{pair.name_b}」が同日の別会計で併算定されています【併算定不可】"
            )


def _check_age_limits(
    billing: BillingRecord,
    patient: Optional[PatientInfo],
    ctx: CheckContext,
    warnings: List[str],
) -> None:
    dob = patient.date_of_birth if patient else None
    on = billing.billing_date
    years = calc_age(dob, on)
    if years is None:
        return
    months = calc_age_months(dob, on)
    seen = set()

    for proc in billing.procedures_detail:
        rc = ctx.resolve(proc.code)
        if not rc:
            continue
        for rule in ctx.rule_book.for_code(rc).age_limits:
            if rule in seen:
                continue
            seen.add(rule)
            age = months if rule.unit == AgeUnit.MONTHS else years
            if rule.min_age is not None and age < rule.min_age:
                warnings.append(
                    f"「{rule.name}」は{rule.min_age}{rule.unit_label}以上が対象です"
                    f"（患者: {age}{rule.unit_label}）【年齢制限】"
                )
            if rule.max_age is not None and age > rule.max_age:
                warnings.append(
                    f"「{rule.name}」は{rule.max_age}{rule.unit_label}以下が対象です"
                    f"（患者: {age}{rule.unit_label}）【年齢制限】"
                )


def _check_additions(billing: BillingRecord, ctx: CheckContext, warnings: List[str]) -> None:
    official = set(ctx.resolved_counts(billing))
    raw = {p.code for p in billing.procedures_detail}
    seen = set()

    for proc in billing.procedures_detail:
        rc = ctx.resolve(proc.code)
        if not rc:
            continue
        for rule in ctx.rule_book.for_code(rc).additions:
            if rule in seen:
                continue
            seen.add(rule)
            if rule.base_code in official or rule.base_code in raw:
                continue
            if rule.required_facility:
                warnings.append(
                    f"「{rule.addition_name}」は「{rule.base_name}」の算定が前提です。"
                    f"また施設基準「{rule.required_facility}」が必要です【加算要件】"
                )
            else:
                warnings.append(f"「{rule.addition_name}」は「{rule.base_name}」の算定が前提です【加算要件】")


def _check_materials(billing: BillingRecord, ctx: CheckContext, warnings: List[str]) -> None:
    procs = billing.procedures_detail
    has_material = any(
        p.code.startswith(MATERIAL_CODE_PREFIX) or p.category == MATERIAL_CATEGORY for p in procs
    )
    if has_material:
        return

    warned = set()
    for proc in procs:
        rc = ctx.resolve(proc.code)
        if not rc or rc in warned:
            continue
        if proc.category in MATERIAL_EXEMPT_CATEGORIES:
            continue
        materials = ctx.rule_book.for_code(rc).materials
        if not materials:
            continue
        warned.add(rc)
        names = "、".join(m.material_name for m in materials[:3])
        warnings.append(f"「{proc.name}」には材料（{names}等）の算定が必要な場合があります【手技材料】")


def _check_incremental_fees(billing: BillingRecord, ctx: CheckContext, warnings: List[str]) -> None:
    for proc in billing.procedures_detail:
        rc = ctx.resolve(proc.code)
        if not rc:
            continue
        fee = ctx.rule_book.for_code(rc).incremental_fee
        if fee is None:
            continue
        if fee.base_points > 0 and proc.points < fee.base_points:
            warnings.append(
                f"「{fee.name}」の点数が基本点数（{fee.base_points}点）未満です"
                f"（現在: {proc.points}点）。きざみ計算を確認してください【きざみ】"
            )


def _check_diagnosis_requirements(
    billing: BillingRecord,
    diagnoses: Sequence[DiagnosisRecord],
    ctx: CheckContext,
    errors: List[str],
    warnings: List[str],
) -> None:
    codes = [p.code for p in billing.procedures_detail]
    for req in ctx.rule_book.diagnosis_requirements:
        if not any(req.applies_to(code) for code in codes):
            continue
        if req.satisfied_by(diagnoses):
            continue
        if req.severity == Severity.ERROR:
            errors.append(req.full_message)
        else:
            warnings.append(req.full_message)


def _carry_over_ai_warnings(billing: BillingRecord, warnings: List[str]) -> None:
    for w in billing.ai_check_warnings:
        if MANAGEMENT_PLAN_KEYWORD in w and billing.document_provided:
            continue
        warnings.append(w)


def check_billing(
    billing: BillingRecord,
    ctx: CheckContext,
    preceding: Sequence[BillingRecord] = (),
) -> CheckResult:
    """Run every check against one billing record.

    ``preceding`` holds the same patient's earlier billing rows; only they
    (plus ``billing`` itself) count toward cross-record findings.
    """
    errors: List[str] = []
    warnings: List[str] = []
    patient = ctx.patients.get(billing.patient_id)
    diagnoses = ctx.diagnoses.get(billing.patient_id, [])

    unresolved: List[str] = []
    for proc in billing.procedures_detail:
        if ctx.resolve(proc.code) is None and proc.code not in unresolved:
            unresolved.append(proc.code)

    _check_basics(billing, patient, diagnoses, ctx, errors, warnings)
    _check_frequency_limits(billing, preceding, ctx, errors)
    _check_exclusive_pairs(billing, preceding, ctx, errors, warnings)
    _check_age_limits(billing, patient, ctx, warnings)
    _check_additions(billing, ctx, warnings)
    _check_materials(billing, ctx, warnings)
    _check_incremental_fees(billing, ctx, warnings)
    _check_diagnosis_requirements(billing, diagnoses, ctx, errors, warnings)
    _carry_over_ai_warnings(billing, warnings)

    return CheckResult(
        billing_id=billing.id,
        patient_id=billing.patient_id,
        patient_name=(patient.name_kanji if patient and patient.name_kanji else UNKNOWN_PATIENT_NAME),
        status=resolve_status(errors, warnings),
        errors=errors,
        warnings=warnings,
        unresolved_codes=unresolved,
    )


def _timeline_key(b: BillingRecord):
    return (b.created_at, b.id)


def check_billings(
    billings: Sequence[BillingRecord],
    ctx: CheckContext,
    history: Sequence[BillingRecord] = (),
) -> List[CheckResult]:
    """Check ``billings`` in order; ``history`` only supplies context rows."""
    timelines: Dict[str, List[BillingRecord]] = {}
    seen_ids: Set[str] = set()
    for b in list(billings) + list(history):
        if b.id in seen_ids:
            continue
        seen_ids.add(b.id)
        timelines.setdefault(b.patient_id, []).append(b)
    for timeline in timelines.values():
        timeline.sort(key=_timeline_key)

    results = []
    for billing in billings:
        timeline = timelines[billing.patient_id]
        key = _timeline_key(billing)
        preceding = [b for b in timeline if _timeline_key(b) < key]
        results.append(check_billing(billing, ctx, preceding))

    logger.info(
        "Checked %d billing rows (%d history rows)",
        len(results),
        len(seen_ids) - len(results),
    )
    return results
