import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.check import (
    AIReviewRequest,
    ReceiptCheckRequest,
    ReceiptCheckResponse,
    RuleCountsResponse,
)
from ..services.receipt_check import InvalidYearMonthError, ReceiptCheckService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/receipt-check", tags=["receipt-check"])


@router.post("", response_model=ReceiptCheckResponse)
def run_receipt_check(
    request: ReceiptCheckRequest,
    db: Session = Depends(get_db),
):
    try:
        return ReceiptCheckService.run_check(db, request.year_month, request.billing_ids)
    except InvalidYearMonthError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except (SQLAlchemyError, ValidationError):
        db.rollback()
        logger.exception("Receipt check failed for %s", request.year_month)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="receipt check failed")


@router.get("", response_model=RuleCountsResponse)
def get_rule_counts(db: Session = Depends(get_db)):
    try:
        return RuleCountsResponse(rules=ReceiptCheckService.rule_counts(db))
    except SQLAlchemyError:
        logger.exception("Failed to count receipt check rules")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="rule lookup failed")


@router.post("/ai-review", response_model=ReceiptCheckResponse)
def run_ai_review(
    request: AIReviewRequest,
    db: Session = Depends(get_db),
):
    try:
        return ReceiptCheckService.run_ai_review(db, request.year_month, request.billing_ids)
    except InvalidYearMonthError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except (SQLAlchemyError, ValidationError):
        db.rollback()
        logger.exception("AI review failed for %s", request.billing_ids)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="ai review failed")
