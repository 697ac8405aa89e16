import logging

from fastapi import APIRouter, HTTPException, UploadFile, File, status

from ..integrations.receipt_parser import ReceiptParseError, parse_receipt_file
from ..schemas.receipt_file import ReceiptFile

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/receipt-files", tags=["receipt-files"])


@router.post("/parse", response_model=ReceiptFile)
async def parse_receipt_upload(file: UploadFile = File(...)):
    content = await file.read()
    if not content.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Receipt file is empty")

    try:
        parsed = parse_receipt_file(content)
    except ReceiptParseError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info(
        "Parsed receipt file %s: %d patients, %d points",
        file.filename, len(parsed.patients), parsed.total_points,
    )
    return parsed
