import os
import tempfile
from typing import Annotated

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from receipt_scanner.api.dependencies import get_extractor
from receipt_scanner.core import settings
from receipt_scanner.errors import ConfigurationError, ImageReadError, ReceiptExtractionError
from receipt_scanner.extractor import ReceiptExtractor
from receipt_scanner.logger import get_logger
from receipt_scanner.models import ScannedExpense

logger = get_logger(__name__)

router = APIRouter(prefix="/api")


def _stage_upload(filename: str | None, image_bytes: bytes) -> str:
    suffix = os.path.splitext(filename or "")[1] or ".jpg"
    with tempfile.NamedTemporaryFile(
        dir=settings.get_upload_dir(),
        prefix="receipt-",
        suffix=suffix,
        delete=False,
    ) as handle:
        handle.write(image_bytes)
        return handle.name


@router.post("/scan-receipt", response_model=ScannedExpense)
def scan_receipt(
    receipt: Annotated[UploadFile, File()],
    extractor: Annotated[ReceiptExtractor, Depends(get_extractor)],
) -> ScannedExpense:
    image_bytes = receipt.file.read()
    if not image_bytes:
        raise HTTPException(status_code=400, detail="Empty file")

    path = _stage_upload(receipt.filename, image_bytes)
    try:
        return extractor.extract(path)
    except ConfigurationError as exc:
        logger.error("[SCAN] Receipt scanning is not configured: %s", exc)
        raise HTTPException(status_code=503, detail="Receipt scanning is not available") from exc
    except ImageReadError as exc:
        logger.error("[SCAN] Staged upload could not be read: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except ReceiptExtractionError as exc:
        logger.error("[SCAN] Receipt extraction failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    finally:
        os.remove(path)
