import json
import logging
from typing import List, Optional, Sequence

import httpx
from pydantic import ValidationError

from ..config import get_settings
from ..schemas.billing import BillingRecord, DiagnosisRecord, PatientInfo
from ..schemas.check import AIReview, CheckResult
from .validator import resolve_status

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"

REVIEW_SCHEMA_KEYS = {"risk_level", "ai_findings", "risk_areas", "suggestions"}
RISK_LEVELS = ("high", "medium", "low", "ok")

SYSTEM_PROMPT = (
    "あなたは歯科レセプト審査の専門家です。社保・国保の審査基準に精通し、査定・返戻リスクを正確に判定します。"
    "ルールベースチェックで拾えないグレーゾーンの問題を指摘してください。"
)


class AIReviewError(Exception):
    pass


def build_prompt(
    billing: BillingRecord,
    patient: Optional[PatientInfo],
    diagnoses: Sequence[DiagnosisRecord],
    result: CheckResult,
) -> str:
    proc_lines = []
    for p in billing.procedures_detail:
        teeth = f" 歯:{','.join(p.tooth_numbers)}" if p.tooth_numbers else ""
        proc_lines.append(f"- {p.name}({p.code}) {p.points}点×{p.count}回{teeth}")

    diag_lines = [
        f"- {d.diagnosis_name}({d.diagnosis_code}) 歯:{d.tooth_number or ''} 転帰:{d.outcome}"
        for d in diagnoses
    ]

    name = patient.name_kanji if patient and patient.name_kanji else "不明"
    insurance = patient.insurance_type if patient and patient.insurance_type else "不明"

    return f"""歯科レセプトの査定・返戻リスクを判定してください。

【患者】{name}
【保険種別】{insurance}
【合計点数】{billing.total_points}点
【算定項目】
{chr(10).join(proc_lines)}

【傷病名】
{chr(10).join(diag_lines) or "なし"}

【ルールチェック結果】
エラー: {"; ".join(result.errors) or "なし"}
警告: {"; ".join(result.warnings) or "なし"}

以下をJSON形式で出力:
{{
  "risk_level": "high/medium/low/ok",
  "ai_findings": ["追加で発見した問題点（ルールで拾えなかったもの）"],
  "risk_areas": ["査定リスクが高い項目"],
  "suggestions": ["改善提案"]
}}
ルールチェックと重複する指摘は不要。ルールで拾えない微妙な問題のみ指摘。"""


def _validate_review(payload: dict) -> bool:
    if not isinstance(payload, dict):
        return False
    if not REVIEW_SCHEMA_KEYS.issubset(payload.keys()):
        return False
    for key in ("ai_findings", "risk_areas", "suggestions"):
        items = payload[key]
        if not isinstance(items, list) or not all(isinstance(item, str) for item in items):
            return False
    return isinstance(payload["risk_level"], str)


def _llm_review(api_key: str, prompt: str) -> AIReview:
    settings = get_settings()

    for attempt in range(2):
        resp = httpx.post(
            OPENAI_CHAT_URL,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            json={
                "model": settings.openai_model,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                "temperature": 0.1,
                "max_tokens": 1000,
                "response_format": {"type": "json_object"},
            },
            timeout=settings.openai_timeout_seconds,
        )
        resp.raise_for_status()
        content = resp.json()["choices"][0]["message"]["content"] or "{}"

        try:
            payload = json.loads(content)
        except json.JSONDecodeError:
            logger.warning("AI review attempt %d returned non-JSON content", attempt + 1)
            continue

        if _validate_review(payload):
            if payload["risk_level"] not in RISK_LEVELS:
                payload["risk_level"] = "medium"
            return AIReview(**{k: payload[k] for k in REVIEW_SCHEMA_KEYS})

    raise AIReviewError("LLM produced invalid review after retries")


def template_review(result: CheckResult) -> AIReview:
    if result.errors:
        risk = "high"
    elif result.warnings:
        risk = "medium"
    else:
        risk = "ok"
    return AIReview(risk_level=risk)


def generate_review(
    billing: BillingRecord,
    patient: Optional[PatientInfo],
    diagnoses: Sequence[DiagnosisRecord],
    result: CheckResult,
) -> AIReview:
    settings = get_settings()

    if settings.openai_api_key:
        try:
            return _llm_review(settings.openai_api_key, build_prompt(billing, patient, diagnoses, result))
        except (httpx.HTTPError, AIReviewError, ValidationError, ValueError, KeyError, IndexError) as e:
            logger.warning("AI review failed for billing %s, falling back to template: %s", billing.id, e)

    return template_review(result)


def apply_review(result: CheckResult, review: AIReview) -> CheckResult:
    warnings: List[str] = list(result.warnings)
    # suggestions alone are not worth surfacing
    if review.ai_findings or review.risk_areas:
        warnings.extend(f"🤖 AI: {f}" for f in review.ai_findings)
        warnings.extend(f"🤖 査定リスク: {r}" for r in review.risk_areas)
        warnings.extend(f"💡 AI提案: {s}" for s in review.suggestions)

    return result.model_copy(update={
        "warnings": warnings,
        "status": resolve_status(result.errors, warnings),
        "risk_level": review.risk_level,
    })
