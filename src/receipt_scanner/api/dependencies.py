from fastapi import HTTPException, Request

from receipt_scanner.extractor import ReceiptExtractor


def get_extractor(request: Request) -> ReceiptExtractor:
    extractor = getattr(request.app.state, "extractor", None)
    if not extractor:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return extractor
