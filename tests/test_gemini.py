import base64
import itertools
import json
from unittest.mock import patch

import httpx
import pytest

from receipt_scanner.errors import (
    APIError,
    ConfigurationError,
    DecodeError,
    EmptyResponseError,
    NetworkError,
)
from receipt_scanner.core import settings
from receipt_scanner.integration.gemini import GeminiClient

API_URL = "https://gemini.test/v1beta/models/test:generateContent"


def _client_for(handler) -> GeminiClient:
    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    return GeminiClient(api_key="test-key", api_url=API_URL, timeout=30, client=http_client)


def _candidates(*texts: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text} for text in texts]}}]}


def test_build_request_orders_image_then_prompt() -> None:
    request = GeminiClient.build_request(b"\xff\xd8raw", "image/jpeg", "describe")

    payload = json.loads(request.model_dump_json(by_alias=True, exclude_none=True))

    assert payload == {
        "contents": [
            {
                "parts": [
                    {
                        "inlineData": {
                            "mimeType": "image/jpeg",
                            "data": base64.b64encode(b"\xff\xd8raw").decode("ascii"),
                        }
                    },
                    {"text": "describe"},
                ]
            }
        ]
    }


def test_generate_posts_with_key_and_json_body() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_candidates('{"merchant": "Cafe X"}', "ignored"))

    client = _client_for(handler)
    text = client.generate(GeminiClient.build_request(b"img", "image/jpeg", "prompt"))

    assert text == '{"merchant": "Cafe X"}'
    assert len(seen) == 1
    request = seen[0]
    assert request.method == "POST"
    assert request.url.params["key"] == "test-key"
    assert request.url.path == "/v1beta/models/test:generateContent"
    assert request.headers["Content-Type"] == "application/json"
    body = json.loads(request.content)
    assert body["contents"][0]["parts"][1] == {"text": "prompt"}


def test_generate_requires_api_key() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client = GeminiClient(
        api_key=None,
        api_url=API_URL,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )

    with pytest.raises(ConfigurationError):
        client.generate(GeminiClient.build_request(b"img", "image/jpeg", "prompt"))


def test_generate_non_success_status_raises_api_error() -> None:
    client = _client_for(lambda request: httpx.Response(500, text="backend exploded"))

    with pytest.raises(APIError) as excinfo:
        client.generate(GeminiClient.build_request(b"img", "image/jpeg", "prompt"))

    assert excinfo.value.status == "500 Internal Server Error"
    assert excinfo.value.body == "backend exploded"
    assert "backend exploded" in str(excinfo.value)


def test_generate_invalid_envelope_raises_decode_error() -> None:
    client = _client_for(lambda request: httpx.Response(200, text="<html>nope</html>"))

    with pytest.raises(DecodeError):
        client.generate(GeminiClient.build_request(b"img", "image/jpeg", "prompt"))


def test_generate_wrong_envelope_shape_raises_decode_error() -> None:
    client = _client_for(lambda request: httpx.Response(200, json={"candidates": "many"}))

    with pytest.raises(DecodeError):
        client.generate(GeminiClient.build_request(b"img", "image/jpeg", "prompt"))


@pytest.mark.parametrize(
    "envelope",
    [
        {"candidates": []},
        {},
        {"candidates": [{"content": {"parts": []}}]},
        {"candidates": None},
        {"candidates": [{"content": {"parts": None}}]},
        {"candidates": [{"content": None}]},
    ],
)
def test_generate_without_usable_candidate_raises_empty_response(envelope: dict) -> None:
    client = _client_for(lambda request: httpx.Response(200, json=envelope))

    with pytest.raises(EmptyResponseError):
        client.generate(GeminiClient.build_request(b"img", "image/jpeg", "prompt"))


def test_generate_timeout_raises_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = _client_for(handler)

    with pytest.raises(NetworkError, match="timed out"):
        client.generate(GeminiClient.build_request(b"img", "image/jpeg", "prompt"))


def test_generate_connection_failure_raises_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client_for(handler)

    with pytest.raises(NetworkError, match="connection refused"):
        client.generate(GeminiClient.build_request(b"img", "image/jpeg", "prompt"))


def test_close_leaves_injected_client_open() -> None:
    http_client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200)))

    with GeminiClient(api_key="k", client=http_client):
        pass

    assert not http_client.is_closed
    http_client.close()


def test_generate_non_utf8_envelope_raises_decode_error() -> None:
    client = _client_for(lambda request: httpx.Response(200, content=b'{"candidates": "\xff\xfe"}'))

    with pytest.raises(DecodeError):
        client.generate(GeminiClient.build_request(b"img", "image/jpeg", "prompt"))


def test_generate_slow_response_exceeds_overall_deadline() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=iter([b'{"candidates"', b": []", b"}"]))

    client = _client_for(handler)

    # Each clock read advances 40s, so the first chunk already misses the 30s deadline
    with patch(
        "receipt_scanner.integration.gemini.monotonic",
        side_effect=itertools.count(0.0, 40.0),
    ):
        with pytest.raises(NetworkError, match="did not complete within 30s"):
            client.generate(GeminiClient.build_request(b"img", "image/jpeg", "prompt"))


def test_default_timeout_reaches_http_call(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GEMINI_TIMEOUT", raising=False)
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.extensions["timeout"])
        return httpx.Response(200, json=_candidates("{}"))

    config = settings.load_extractor_config()
    client = GeminiClient(
        api_key="test-key",
        api_url=API_URL,
        timeout=config.timeout,
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    client.generate(GeminiClient.build_request(b"img", "image/jpeg", "prompt"))

    assert config.timeout == 30.0
    assert seen == [{"connect": 30.0, "read": 30.0, "write": 30.0, "pool": 30.0}]
