import os
from time import perf_counter

from receipt_scanner.core.settings import ExtractorConfig, load_extractor_config
from receipt_scanner.domain.expenses import EXTRACTION_PROMPT, apply_defaults, parse_expense_text
from receipt_scanner.domain.timefmt import format_duration
from receipt_scanner.errors import ConfigurationError, ImageReadError, ReceiptExtractionError
from receipt_scanner.integration.gemini import GeminiClient
from receipt_scanner.logger import get_logger
from receipt_scanner.models import ScannedExpense

logger = get_logger(__name__)


class ReceiptExtractor:
    """
    Turns a receipt image on disk into a ScannedExpense with one Gemini call.

    No retries: the first failure is raised as a ReceiptExtractionError subclass.
    """

    def __init__(self, config: ExtractorConfig | None = None, client: GeminiClient | None = None):
        self.config = config or load_extractor_config()
        self.client = client or GeminiClient(
            api_key=self.config.api_key,
            api_url=self.config.api_url,
            timeout=self.config.timeout,
        )

    def close(self) -> None:
        self.client.close()

    def extract(self, image_path: str | os.PathLike[str]) -> ScannedExpense:
        if not self.config.api_key:
            raise ConfigurationError("GOOGLE_API_KEY is not set")

        started = perf_counter()
        try:
            image_data = self._read_image(image_path)
            logger.info("Scanning receipt '%s' (%d bytes).", os.fspath(image_path), len(image_data))

            request = GeminiClient.build_request(image_data, self.config.mime_type, EXTRACTION_PROMPT)
            text = self.client.generate(request)
            expense = apply_defaults(parse_expense_text(text))
        except ReceiptExtractionError as exc:
            logger.warning("Receipt extraction failed for '%s': %s", os.fspath(image_path), exc)
            raise

        logger.info(
            "Receipt scanned: merchant='%s' amount=%.2f items=%d in %s.",
            expense.merchant,
            expense.amount,
            len(expense.items),
            format_duration(perf_counter() - started),
        )
        return expense

    @staticmethod
    def _read_image(image_path: str | os.PathLike[str]) -> bytes:
        try:
            with open(image_path, "rb") as handle:
                return handle.read()
        except OSError as exc:
            raise ImageReadError(str(exc)) from exc
