class ReceiptExtractionError(Exception):
    """Base class for failures while turning a receipt image into an expense."""

    step = "extract"

    def __init__(self, message: str):
        super().__init__(f"{self.step}: {message}")
        self.detail = message


class ConfigurationError(ReceiptExtractionError):
    step = "configure"


class ImageReadError(ReceiptExtractionError):
    step = "read image"


class SerializationError(ReceiptExtractionError):
    step = "serialize request"


class NetworkError(ReceiptExtractionError):
    step = "send request"


class APIError(ReceiptExtractionError):
    step = "call inference API"

    def __init__(self, status: str, body: str):
        super().__init__(f"{status} - {body}")
        self.status = status
        self.body = body


class DecodeError(ReceiptExtractionError):
    step = "decode response"


class EmptyResponseError(ReceiptExtractionError):
    step = "read candidates"


class ParseError(ReceiptExtractionError):
    step = "parse expense"
