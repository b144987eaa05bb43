import base64
import json
from time import monotonic
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from receipt_scanner.core.settings import DEFAULT_GEMINI_API_URL, DEFAULT_TIMEOUT_SECONDS
from receipt_scanner.errors import (
    APIError,
    ConfigurationError,
    DecodeError,
    EmptyResponseError,
    NetworkError,
    SerializationError,
)
from receipt_scanner.logger import get_logger
from receipt_scanner.models import drop_null_fields

logger = get_logger(__name__)


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        return drop_null_fields(data)


class InlineData(_WireModel):
    mime_type: str = Field(alias="mimeType")
    data: str


class Part(_WireModel):
    text: str | None = None
    inline_data: InlineData | None = Field(default=None, alias="inlineData")


class Content(_WireModel):
    parts: list[Part] = Field(default_factory=list)


class GenerateContentRequest(_WireModel):
    contents: list[Content]


class Candidate(_WireModel):
    content: Content = Field(default_factory=Content)


class GenerateContentResponse(_WireModel):
    candidates: list[Candidate] = Field(default_factory=list)


class GeminiClient:
    """Minimal client for the Gemini ``generateContent`` endpoint."""

    def __init__(
        self,
        api_key: str | None,
        api_url: str = DEFAULT_GEMINI_API_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json"}
        self._client = client
        self._owns_client = client is None

    def __enter__(self) -> "GeminiClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def _get_client(self) -> httpx.Client:
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client()
            self._owns_client = True
        return self._client

    @staticmethod
    def build_request(image_data: bytes, mime_type: str, prompt: str) -> GenerateContentRequest:
        encoded = base64.b64encode(image_data).decode("ascii")
        return GenerateContentRequest(
            contents=[
                Content(
                    parts=[
                        Part(inline_data=InlineData(mime_type=mime_type, data=encoded)),
                        Part(text=prompt),
                    ]
                )
            ]
        )

    def generate(self, request: GenerateContentRequest) -> str:
        """
        Send the request and return the text of the first part of the first candidate.
        """
        if not self.api_key:
            raise ConfigurationError("GOOGLE_API_KEY is not set")

        try:
            body = request.model_dump_json(by_alias=True, exclude_none=True)
        except (TypeError, ValueError) as exc:
            raise SerializationError(str(exc)) from exc

        response, content = self._send(body)

        if response.status_code != httpx.codes.OK:
            status = f"{response.status_code} {response.reason_phrase}".strip()
            logger.debug("[GEMINI] Non-success response %s.", status)
            raise APIError(status, content.decode(response.encoding or "utf-8", errors="replace"))

        try:
            payload = json.loads(content)
        except ValueError as exc:
            raise DecodeError(f"response is not valid JSON: {exc}") from exc
        try:
            envelope = GenerateContentResponse.model_validate(payload)
        except ValidationError as exc:
            raise DecodeError(f"unexpected response shape: {exc}") from exc

        if not envelope.candidates or not envelope.candidates[0].content.parts:
            raise EmptyResponseError("no valid response from Gemini")

        return envelope.candidates[0].content.parts[0].text or ""

    def _send(self, body: str) -> tuple[httpx.Response, bytes]:
        """
        POST the body and read the whole response within ``self.timeout``.

        httpx timeouts apply per connect/read/write, so a slow trickle of bytes
        would never trip them; the deadline covers the call as a whole.
        """
        deadline = monotonic() + self.timeout
        content = bytearray()
        try:
            with self._get_client().stream(
                "POST",
                self.api_url,
                params={"key": self.api_key},
                content=body,
                headers=self.headers,
                timeout=self.timeout,
            ) as response:
                for chunk in response.iter_bytes():
                    content.extend(chunk)
                    if monotonic() > deadline:
                        raise NetworkError(f"request did not complete within {self.timeout:g}s")
        except httpx.TimeoutException as exc:
            raise NetworkError(f"request timed out after {self.timeout:g}s") from exc
        except httpx.RequestError as exc:
            raise NetworkError(f"request failed: {exc}") from exc
        return response, bytes(content)
