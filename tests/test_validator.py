"""Tests for the per-record and cross-record receipt checks."""
from datetime import date, datetime

from receipt_check.schemas.billing import BillingRecord, DiagnosisRecord, PatientInfo
from receipt_check.schemas.check import CheckResult
from receipt_check.services.rule_book import (
    AdditionRequirement,
    AgeLimit,
    AgeUnit,
    DiagnosisRequirementRule,
    ExclusionKind,
    ExclusivePair,
    FrequencyLimit,
    IncrementalFee,
    LimitKind,
    MaterialRequirement,
    RuleBook,
    Severity,
)
from receipt_check.services.validator import (
    CheckContext,
    calc_age,
    calc_age_months,
    check_billing,
    check_billings,
    expected_patient_burden,
    in_window,
    js_round,
    summarize,
)

PULPECTOMY = "309002110"   # I005-1
PULPECTOMY_2 = "309002210"  # I005-2


def _proc(code="I005-1", name="抜髄（単根管）", points=100, category="処置", count=1):
    return {"code": code, "name": name, "points": points, "category": category, "count": count}


def _billing(
    bid="b1",
    patient_id="p1",
    procs=None,
    created_at=datetime(2026, 5, 10, 10, 0),
    total_points=None,
    burden=None,
    ratio=0.3,
    ai_warnings=None,
    document_provided=False,
):
    procs = [_proc()] if procs is None else procs
    if total_points is None:
        total_points = sum(p["points"] * p["count"] for p in procs)
    if burden is None:
        burden = expected_patient_burden(total_points, ratio)
    return BillingRecord(
        id=bid,
        patient_id=patient_id,
        total_points=total_points,
        patient_burden=burden,
        burden_ratio=ratio,
        procedures_detail=procs,
        ai_check_warnings=ai_warnings or [],
        document_provided=document_provided,
        created_at=created_at,
    )


def _patient(dob=date(1990, 4, 1), insurance_type="社保本人"):
    return PatientInfo(id="p1", name_kanji="山田太郎", insurance_type=insurance_type, date_of_birth=dob)


def _diagnosis(name="Pul", code="K040", outcome="ongoing"):
    return DiagnosisRecord(id=f"d-{name}", patient_id="p1", diagnosis_code=code, diagnosis_name=name, outcome=outcome)


def _ctx(book=None, patient="default", diagnoses="default"):
    if patient == "default":
        patient = _patient()
    if diagnoses == "default":
        diagnoses = [_diagnosis()]
    return CheckContext(
        rule_book=book or RuleBook(),
        patients={"p1": patient} if patient else {},
        diagnoses={"p1": diagnoses},
    )


def _book_with(**kwargs):
    book = RuleBook()
    for limit in kwargs.get("frequency", []):
        book.add_frequency_limit(limit)
    for pair in kwargs.get("pairs", []):
        book.add_exclusive_pair(pair)
    for limit in kwargs.get("ages", []):
        book.add_age_limit(limit)
    for rule in kwargs.get("additions", []):
        book.add_addition(rule)
    for material in kwargs.get("materials", []):
        book.add_material(material)
    for fee in kwargs.get("fees", []):
        book.add_incremental_fee(fee)
    for req in kwargs.get("requirements", []):
        book.add_diagnosis_requirement(req)
    return book


class TestHelpers:
    def test_js_round_rounds_half_up(self):
        assert js_round(2.5) == 3
        assert js_round(2.4) == 2
        assert js_round(-2.5) == -2

    def test_expected_patient_burden_rounds_to_ten_yen(self):
        assert expected_patient_burden(100, 0.3) == 300
        assert expected_patient_burden(123, 0.3) == 370
        assert expected_patient_burden(0, 0.3) == 0

    def test_calc_age_birthday_not_reached(self):
        assert calc_age(date(2000, 5, 11), date(2026, 5, 10)) == 25
        assert calc_age(date(2000, 5, 10), date(2026, 5, 10)) == 26
        assert calc_age(None, date(2026, 5, 10)) is None

    def test_calc_age_months_counts_fully_elapsed_months(self):
        assert calc_age_months(date(2026, 1, 31), date(2026, 2, 28)) == 0
        assert calc_age_months(date(2026, 1, 15), date(2026, 2, 15)) == 1
        assert calc_age_months(date(2024, 5, 10), date(2026, 5, 9)) == 23

    def test_in_window(self):
        day = FrequencyLimit("x", "n", LimitKind.PER_DAY, 1)
        month = FrequencyLimit("x", "n", LimitKind.PER_MONTH, 1)
        period = FrequencyLimit("x", "n", LimitKind.PER_PERIOD, 1, 6)
        current = date(2026, 6, 15)
        assert in_window(day, date(2026, 6, 15), current)
        assert not in_window(day, date(2026, 6, 14), current)
        assert in_window(month, date(2026, 6, 1), current)
        assert not in_window(month, date(2026, 5, 31), current)
        assert in_window(period, date(2026, 1, 1), current)
        assert not in_window(period, date(2025, 12, 31), current)

    def test_summarize(self):
        results = [
            CheckResult(billing_id=str(i), patient_id="p1", patient_name="x", status=s)
            for i, s in enumerate(["ok", "warn", "error", "error"])
        ]
        summary = summarize(results)
        assert (summary.total, summary.ok, summary.warn, summary.error) == (4, 1, 1, 2)


class TestBasicChecks:
    def test_clean_record_is_ok(self):
        result = check_billing(_billing(), _ctx())
        assert result.status == "ok"
        assert result.errors == []
        assert result.warnings == []
        assert result.patient_name == "山田太郎"

    def test_zero_points_is_an_error(self):
        result = check_billing(_billing(total_points=0), _ctx())
        assert result.status == "error"
        assert any("合計点数が0以下" in e for e in result.errors)

    def test_negative_points_is_an_error(self):
        result = check_billing(_billing(total_points=-10), _ctx())
        assert any("合計点数が0以下" in e for e in result.errors)

    def test_missing_diagnoses_is_an_error(self):
        result = check_billing(_billing(), _ctx(diagnoses=[]))
        assert result.status == "error"
        assert any("傷病名が1つも登録されていません" in e for e in result.errors)

    def test_consultation_only_is_a_warning(self):
        billing = _billing(procs=[_proc(code="A000", name="初診料", points=264, category="初診")])
        result = check_billing(billing, _ctx())
        assert result.status == "warn"
        assert any("初・再診料のみ" in w for w in result.warnings)

    def test_consultation_only_by_official_code(self):
        billing = _billing(procs=[_proc(code="301000110", name="初診料", points=264)])
        result = check_billing(billing, _ctx())
        assert any("初・再診料のみ" in w for w in result.warnings)

    def test_all_cured_with_procedures_is_a_warning(self):
        result = check_billing(_billing(), _ctx(diagnoses=[_diagnosis(outcome="cured")]))
        assert any("全ての傷病名が「治癒」" in w for w in result.warnings)

    def test_one_ongoing_diagnosis_suppresses_cured_warning(self):
        diagnoses = [_diagnosis(outcome="cured"), _diagnosis(name="C2", code="K021")]
        result = check_billing(_billing(), _ctx(diagnoses=diagnoses))
        assert not any("治癒" in w for w in result.warnings)

    def test_burden_mismatch_is_an_error(self):
        result = check_billing(_billing(burden=500), _ctx())
        assert any("患者負担額が計算と不一致です（期待:¥300 / 実際:¥500）" in e for e in result.errors)

    def test_burden_within_tolerance_is_accepted(self):
        result = check_billing(_billing(burden=310), _ctx())
        assert result.status == "ok"

    def test_missing_insurance_type_is_an_error(self):
        result = check_billing(_billing(), _ctx(patient=_patient(insurance_type=None)))
        assert any("保険種別が未設定" in e for e in result.errors)

    def test_unknown_patient(self):
        result = check_billing(_billing(), _ctx(patient=None))
        assert result.patient_name == "不明"
        assert any("保険種別が未設定" in e for e in result.errors)


class TestUnresolvedCodes:
    def test_unresolved_codes_are_reported_not_flagged(self):
        procs = [_proc(), _proc(code="ZZZ-1", name="自費"), _proc(code="ZZZ-1", name="自費")]
        result = check_billing(_billing(procs=procs), _ctx())
        assert result.unresolved_codes == ["ZZZ-1"]
        assert result.status == "ok"


class TestFrequencyLimits:
    def test_two_same_day_records_flag_only_the_later_one(self):
        book = _book_with(frequency=[FrequencyLimit(PULPECTOMY, "抜髄", LimitKind.PER_DAY, 1)])
        first = _billing(bid="b1", created_at=datetime(2026, 5, 10, 10, 0))
        second = _billing(bid="b2", created_at=datetime(2026, 5, 10, 15, 0))

        results = check_billings([second, first], _ctx(book))
        by_id = {r.billing_id: r for r in results}

        assert by_id["b1"].errors == []
        assert by_id["b2"].errors == ["「抜髄」は1日1回までです（現在: 2回）【算定回数限度】"]

    def test_same_created_at_orders_by_id(self):
        book = _book_with(frequency=[FrequencyLimit(PULPECTOMY, "抜髄", LimitKind.PER_DAY, 1)])
        at = datetime(2026, 5, 10, 10, 0)
        results = check_billings([_billing(bid="b2", created_at=at), _billing(bid="b1", created_at=at)], _ctx(book))
        by_id = {r.billing_id: r for r in results}
        assert by_id["b1"].errors == []
        assert len(by_id["b2"].errors) == 1

    def test_count_within_one_record(self):
        book = _book_with(frequency=[FrequencyLimit(PULPECTOMY, "抜髄", LimitKind.PER_DAY, 1)])
        result = check_billing(_billing(procs=[_proc(count=2)]), _ctx(book))
        assert result.errors == ["「抜髄」は1日1回までです（現在: 2回）【算定回数限度】"]

    def test_repeated_lines_report_limit_once(self):
        book = _book_with(frequency=[FrequencyLimit(PULPECTOMY, "抜髄", LimitKind.PER_DAY, 1)])
        result = check_billing(_billing(procs=[_proc(), _proc()]), _ctx(book))
        assert len(result.errors) == 1

    def test_per_month_ignores_other_months(self):
        book = _book_with(frequency=[FrequencyLimit(PULPECTOMY, "抜髄", LimitKind.PER_MONTH, 1)])
        history = [_billing(bid="h1", created_at=datetime(2026, 4, 30, 10, 0))]
        current = _billing(bid="b1", created_at=datetime(2026, 5, 1, 10, 0))
        results = check_billings([current], _ctx(book), history)
        assert results[0].errors == []

    def test_per_period_counts_history_inside_window(self):
        book = _book_with(frequency=[FrequencyLimit(PULPECTOMY, "抜髄", LimitKind.PER_PERIOD, 1, 6)])
        current = _billing(bid="b1", created_at=datetime(2026, 6, 10, 10, 0))

        inside = [_billing(bid="h1", created_at=datetime(2026, 1, 5, 10, 0))]
        results = check_billings([current], _ctx(book), inside)
        assert len(results) == 1
        assert results[0].errors == ["「抜髄」は6ヶ月1回までです（現在: 2回）【算定回数限度】"]

        outside = [_billing(bid="h2", created_at=datetime(2025, 12, 28, 10, 0))]
        results = check_billings([current], _ctx(book), outside)
        assert results[0].errors == []

    def test_later_history_rows_do_not_count(self):
        book = _book_with(frequency=[FrequencyLimit(PULPECTOMY, "抜髄", LimitKind.PER_MONTH, 1)])
        current = _billing(bid="b1", created_at=datetime(2026, 5, 3, 10, 0))
        later = [_billing(bid="h1", created_at=datetime(2026, 5, 20, 10, 0))]
        results = check_billings([current], _ctx(book), later)
        assert results[0].errors == []

    def test_other_patients_do_not_count(self):
        book = _book_with(frequency=[FrequencyLimit(PULPECTOMY, "抜髄", LimitKind.PER_DAY, 1)])
        first = _billing(bid="b1", patient_id="p2", created_at=datetime(2026, 5, 10, 10, 0))
        second = _billing(bid="b2", created_at=datetime(2026, 5, 10, 15, 0))
        results = check_billings([first, second], _ctx(book))
        assert {r.billing_id: r for r in results}["b2"].errors == []


class TestExclusivePairs:
    def _book(self, kind):
        return _book_with(pairs=[ExclusivePair(PULPECTOMY, "抜髄(単根)", PULPECTOMY_2, "抜髄(2根)", kind)])

    def test_same_month_pair_split_across_records_warns_on_later(self):
        first = _billing(bid="b1", created_at=datetime(2026, 5, 3, 10, 0))
        second = _billing(
            bid="b2", created_at=datetime(2026, 5, 20, 10, 0),
            procs=[_proc(code="I005-2", name="抜髄（2根管）")],
        )
        results = check_billings([first, second], _ctx(self._book(ExclusionKind.SAME_MONTH)))
        by_id = {r.billing_id: r for r in results}

        assert by_id["b1"].warnings == []
        assert by_id["b2"].status == "warn"
        assert by_id["b2"].warnings == [
            "「抜髄(単根)」と「抜髄(2根)」が同月の別会計で併算定されています【併算定不可・要確認】"
        ]

    def test_pair_in_one_record_is_an_error(self):
        procs = [_proc(), _proc(code="I005-2", name="抜髄（2根管）")]
        result = check_billing(_billing(procs=procs), _ctx(self._book(ExclusionKind.SAME_MONTH)))
        assert result.errors == ["「抜髄(単根)」と「抜髄(2根)」は同月に併算定できません【併算定不可】"]

    def test_same_day_pair_in_one_record(self):
        procs = [_proc(), _proc(code="I005-2", name="抜髄（2根管）")]
        result = check_billing(_billing(procs=procs), _ctx(self._book(ExclusionKind.SAME_DAY)))
        assert result.errors == ["「抜髄(単根)」と「抜髄(2根)」は同日に併算定できません【併算定不可】"]

    def test_same_day_pair_split_across_records_errors_on_later(self):
        first = _billing(bid="b1", created_at=datetime(2026, 5, 10, 9, 0))
        second = _billing(
            bid="b2", created_at=datetime(2026, 5, 10, 16, 0),
            procs=[_proc(code="I005-2", name="抜髄（2根管）")],
        )
        results = check_billings([first, second], _ctx(self._book(ExclusionKind.SAME_DAY)))
        by_id = {r.billing_id: r for r in results}
        assert by_id["b1"].errors == []
        assert by_id["b2"].errors == ["「抜髄(単根)」と「抜髄(2根)」が同日の別会計で併算定されています【併算定不可】"]

    def test_same_day_pair_on_different_days_is_fine(self):
        first = _billing(bid="b1", created_at=datetime(2026, 5, 10, 9, 0))
        second = _billing(
            bid="b2", created_at=datetime(2026, 5, 11, 9, 0),
            procs=[_proc(code="I005-2", name="抜髄（2根管）")],
        )
        results = check_billings([first, second], _ctx(self._book(ExclusionKind.SAME_DAY)))
        assert all(r.status == "ok" for r in results)


class TestAgeLimits:
    def _book(self, min_age=None, max_age=None, unit=AgeUnit.YEARS):
        return _book_with(ages=[AgeLimit(PULPECTOMY, "小児処置", min_age, max_age, unit)])

    def test_turning_min_age_on_billing_date_is_not_flagged(self):
        ctx = _ctx(self._book(min_age=6), patient=_patient(dob=date(2020, 5, 10)))
        result = check_billing(_billing(created_at=datetime(2026, 5, 10, 10, 0)), ctx)
        assert result.warnings == []

    def test_one_day_short_of_min_age_is_flagged(self):
        ctx = _ctx(self._book(min_age=6), patient=_patient(dob=date(2020, 5, 11)))
        result = check_billing(_billing(created_at=datetime(2026, 5, 10, 10, 0)), ctx)
        assert result.warnings == ["「小児処置」は6歳以上が対象です（患者: 5歳）【年齢制限】"]

    def test_over_max_age_is_flagged(self):
        ctx = _ctx(self._book(max_age=15), patient=_patient(dob=date(2000, 1, 1)))
        result = check_billing(_billing(), ctx)
        assert result.warnings == ["「小児処置」は15歳以下が対象です（患者: 26歳）【年齢制限】"]

    def test_age_in_months(self):
        ctx = _ctx(self._book(max_age=18, unit=AgeUnit.MONTHS), patient=_patient(dob=date(2024, 10, 11)))
        result = check_billing(_billing(created_at=datetime(2026, 5, 10, 10, 0)), ctx)
        assert result.warnings == []
        ctx = _ctx(self._book(max_age=12, unit=AgeUnit.MONTHS), patient=_patient(dob=date(2024, 10, 11)))
        result = check_billing(_billing(created_at=datetime(2026, 5, 10, 10, 0)), ctx)
        assert result.warnings == ["「小児処置」は12ヶ月以下が対象です（患者: 18ヶ月）【年齢制限】"]

    def test_unknown_birth_date_skips_age_check(self):
        ctx = _ctx(self._book(min_age=6), patient=_patient(dob=None))
        assert check_billing(_billing(), ctx).warnings == []


class TestAdditions:
    def test_addition_without_base_is_a_warning(self):
        book = _book_with(additions=[AdditionRequirement(PULPECTOMY, "抜髄加算", "309009999", "基本処置")])
        result = check_billing(_billing(), _ctx(book))
        assert result.warnings == ["「抜髄加算」は「基本処置」の算定が前提です【加算要件】"]

    def test_addition_with_base_is_fine(self):
        book = _book_with(additions=[AdditionRequirement(PULPECTOMY, "抜髄加算", PULPECTOMY_2, "基本処置")])
        procs = [_proc(), _proc(code="I005-2", name="抜髄（2根管）")]
        assert check_billing(_billing(procs=procs), _ctx(book)).warnings == []

    def test_base_matched_by_raw_code(self):
        book = _book_with(additions=[AdditionRequirement(PULPECTOMY, "抜髄加算", "ZZZ-base", "基本処置")])
        procs = [_proc(), _proc(code="ZZZ-base", name="基本処置")]
        assert check_billing(_billing(procs=procs), _ctx(book)).warnings == []

    def test_required_facility_is_mentioned(self):
        book = _book_with(additions=[
            AdditionRequirement(PULPECTOMY, "抜髄加算", "309009999", "基本処置", required_facility="歯科外来診療環境体制")
        ])
        result = check_billing(_billing(), _ctx(book))
        assert result.warnings == [
            "「抜髄加算」は「基本処置」の算定が前提です。また施設基準「歯科外来診療環境体制」が必要です【加算要件】"
        ]


class TestMaterials:
    def _book(self):
        return _book_with(materials=[
            MaterialRequirement(PULPECTOMY, "710000001", "根管充填材"),
            MaterialRequirement(PULPECTOMY, "710000002", "貼薬"),
        ])

    def test_missing_material_is_a_warning(self):
        result = check_billing(_billing(), _ctx(self._book()))
        assert result.warnings == ["「抜髄（単根管）」には材料（根管充填材、貼薬等）の算定が必要な場合があります【手技材料】"]

    def test_warned_once_per_code(self):
        result = check_billing(_billing(procs=[_proc(), _proc()]), _ctx(self._book()))
        assert len(result.warnings) == 1

    def test_material_line_suppresses_warning(self):
        procs = [_proc(), _proc(code="MAT-001", name="根管充填材", points=10, category="特定器材")]
        assert check_billing(_billing(procs=procs), _ctx(self._book())).warnings == []

    def test_material_category_suppresses_warning(self):
        procs = [_proc(), _proc(code="ZZZ-mat", name="貼薬", points=10, category="特定器材")]
        assert check_billing(_billing(procs=procs), _ctx(self._book())).warnings == []

    def test_addition_category_is_exempt(self):
        result = check_billing(_billing(procs=[_proc(category="加算")]), _ctx(self._book()))
        assert result.warnings == []


class TestIncrementalFees:
    def test_points_below_base_is_a_warning(self):
        book = _book_with(fees=[IncrementalFee(PULPECTOMY, "抜髄", base_points=200)])
        result = check_billing(_billing(), _ctx(book))
        assert result.warnings == ["「抜髄」の点数が基本点数（200点）未満です（現在: 100点）。きざみ計算を確認してください【きざみ】"]

    def test_points_at_base_are_fine(self):
        book = _book_with(fees=[IncrementalFee(PULPECTOMY, "抜髄", base_points=100)])
        assert check_billing(_billing(), _ctx(book)).warnings == []


class TestDiagnosisRequirements:
    def _book(self, severity):
        return _book_with(requirements=[
            DiagnosisRequirementRule("I005", ("Pul",), ("K04",), severity, "抜髄には歯髄炎の傷病名が必要です", "療担規則")
        ])

    def test_missing_diagnosis_is_an_error(self):
        ctx = _ctx(self._book(Severity.ERROR), diagnoses=[_diagnosis(name="C2", code="K021")])
        result = check_billing(_billing(), ctx)
        assert result.errors == ["抜髄には歯髄炎の傷病名が必要です【療担規則】"]

    def test_warning_severity(self):
        ctx = _ctx(self._book(Severity.WARNING), diagnoses=[_diagnosis(name="C2", code="K021")])
        result = check_billing(_billing(), ctx)
        assert result.errors == []
        assert result.warnings == ["抜髄には歯髄炎の傷病名が必要です【療担規則】"]

    def test_matching_diagnosis_satisfies_requirement(self):
        assert check_billing(_billing(), _ctx(self._book(Severity.ERROR))).status == "ok"


class TestCarriedWarnings:
    def test_stored_warnings_are_carried_over(self):
        result = check_billing(_billing(ai_warnings=["歯式の確認が必要です"]), _ctx())
        assert result.warnings == ["歯式の確認が必要です"]
        assert result.status == "warn"

    def test_management_plan_warning_dropped_when_document_provided(self):
        billing = _billing(ai_warnings=["管理計画書の提供が必要です", "歯式の確認が必要です"], document_provided=True)
        result = check_billing(billing, _ctx())
        assert result.warnings == ["歯式の確認が必要です"]

    def test_management_plan_warning_kept_without_document(self):
        billing = _billing(ai_warnings=["管理計画書の提供が必要です"])
        assert check_billing(billing, _ctx()).warnings == ["管理計画書の提供が必要です"]
