import asyncio
import json

import httpx
import pytest

from backend.completion import (
    CompletionError,
    CompletionHTTPError,
    CompletionTimeout,
    MissingCredentialError,
    extract_completion_text,
    request_completion,
)
from backend.config import Settings
from backend.prompts import SYSTEM_INSTRUCTION

SETTINGS = Settings(
    openai_api_key="sk-test-1234567890abcdef",
    openai_org="org-fermoza",
    openai_project="proj-mika",
    openai_base_url="https://llm.test/v1",
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _complete(handler, settings: Settings = SETTINGS, **kwargs) -> str:
    async def go() -> str:
        async with _client(handler) as client:
            return await request_completion("PROMPT", settings, client=client, **kwargs)

    return asyncio.run(go())


def test_request_shape_and_text_extraction() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200, json={"choices": [{"message": {"content": '{"message": "hi"}'}}]}
        )

    assert _complete(handler) == '{"message": "hi"}'
    assert seen["url"] == "https://llm.test/v1/chat/completions"
    assert seen["headers"]["authorization"] == "Bearer sk-test-1234567890abcdef"
    assert seen["headers"]["openai-organization"] == "org-fermoza"
    assert seen["headers"]["openai-project"] == "proj-mika"
    body = seen["body"]
    assert body["model"] == "gpt-4.1-mini"
    assert body["temperature"] == 0.7
    assert body["max_tokens"] == 700
    assert body["messages"] == [
        {"role": "system", "content": SYSTEM_INSTRUCTION},
        {"role": "user", "content": "PROMPT"},
    ]


def test_optional_headers_omitted() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["headers"] = request.headers
        return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

    _complete(handler, Settings(openai_api_key="sk-x"))
    assert "openai-organization" not in seen["headers"]
    assert "openai-project" not in seen["headers"]


def test_missing_key_raises_before_network() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    with pytest.raises(MissingCredentialError):
        _complete(handler, Settings(openai_api_key=""))
    assert calls == []


def test_non_success_status_raises_with_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text='{"error": "invalid_api_key"}')

    with pytest.raises(CompletionHTTPError) as exc_info:
        _complete(handler)
    assert exc_info.value.status_code == 401
    assert "invalid_api_key" in exc_info.value.body


def test_deadline_cancels_slow_call() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json={})

    with pytest.raises(CompletionTimeout):
        _complete(handler, timeout_ms=20)


def test_transport_timeout_is_reported_as_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(CompletionTimeout):
        _complete(handler)


def test_transport_error_is_completion_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(CompletionError):
        _complete(handler)


def test_non_json_envelope_is_completion_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway</html>")

    with pytest.raises(CompletionError):
        _complete(handler)


@pytest.mark.parametrize(
    ("envelope", "expected"),
    [
        ({"choices": [{"message": {"content": "plain"}}]}, "plain"),
        ({"choices": [{"message": {"content": ["{\"a\"", ": 1}"]}}]}, '{"a": 1}'),
        (
            {"choices": [{"message": {"content": [{"type": "text", "text": "x"}, {"text": "y"}]}}]},
            "xy",
        ),
        ({"choices": [{"message": {"content": None}}]}, ""),
        ({"choices": []}, ""),
        ({"output_text": "not requested"}, ""),
        ({}, ""),
        ([], ""),
    ],
)
def test_extract_completion_text(envelope, expected) -> None:
    assert extract_completion_text(envelope) == expected
