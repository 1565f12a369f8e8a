"""OpenAI chat completions call: one POST, one deadline, raw text out."""

import asyncio
import logging
from typing import Any

import httpx

from backend.config import Settings
from backend.prompts import SYSTEM_INSTRUCTION

logger = logging.getLogger(__name__)


class CompletionError(RuntimeError):
    """The upstream model call did not produce a completion."""


class MissingCredentialError(CompletionError):
    pass


class CompletionTimeout(CompletionError):
    pass


class CompletionHTTPError(CompletionError):
    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"OpenAI HTTP {status_code}")
        self.status_code = status_code
        self.body = body


def build_headers(settings: Settings) -> dict[str, str]:
    headers = {
        "Authorization": f"Bearer {settings.openai_api_key}",
        "Content-Type": "application/json",
    }
    if settings.openai_org:
        headers["OpenAI-Organization"] = settings.openai_org
    if settings.openai_project:
        headers["OpenAI-Project"] = settings.openai_project
    return headers


def build_payload(prompt: str, settings: Settings) -> dict[str, Any]:
    return {
        "model": settings.openai_model,
        "messages": [
            {"role": "system", "content": SYSTEM_INSTRUCTION},
            {"role": "user", "content": prompt},
        ],
        "temperature": settings.temperature,
        "max_tokens": settings.max_tokens,
    }


def _join_fragments(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for fragment in content:
            if isinstance(fragment, str):
                parts.append(fragment)
            elif isinstance(fragment, dict) and isinstance(fragment.get("text"), str):
                parts.append(fragment["text"])
        return "".join(parts)
    return ""


def extract_completion_text(envelope: Any) -> str:
    """Pull the completion text out of a provider response envelope.

    Reads ``choices[0].message.content``; content delivered as a list of
    fragments is concatenated in order.
    """
    if not isinstance(envelope, dict):
        return ""

    choices = envelope.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0] if isinstance(choices[0], dict) else {}
    message = first.get("message") or {}
    if not isinstance(message, dict):
        return ""
    return _join_fragments(message.get("content"))


async def _post(
    client: httpx.AsyncClient, url: str, headers: dict[str, str], payload: dict
) -> httpx.Response:
    return await client.post(url, headers=headers, json=payload)


async def request_completion(
    prompt: str,
    settings: Settings,
    *,
    timeout_ms: int | None = None,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Send the prompt to the chat completions endpoint and return raw text.

    Raises MissingCredentialError before any network I/O when no API key is
    configured, CompletionTimeout when the deadline passes, and
    CompletionHTTPError on a non-2xx status. Never retries.
    """
    if not settings.openai_api_key:
        raise MissingCredentialError("OPENAI_API_KEY is missing (empty after trim).")

    timeout_s = (timeout_ms if timeout_ms is not None else settings.timeout_ms) / 1000
    url = f"{settings.openai_base_url}/chat/completions"
    headers = build_headers(settings)
    payload = build_payload(prompt, settings)

    try:
        if client is not None:
            resp = await asyncio.wait_for(_post(client, url, headers, payload), timeout_s)
        else:
            async with httpx.AsyncClient(timeout=timeout_s) as own_client:
                resp = await asyncio.wait_for(
                    _post(own_client, url, headers, payload), timeout_s
                )
    except (asyncio.TimeoutError, httpx.TimeoutException) as e:
        logger.error("OpenAI request timed out after %d ms", int(timeout_s * 1000))
        raise CompletionTimeout(f"OpenAI request timed out after {timeout_s:.1f}s") from e
    except httpx.HTTPError as e:
        logger.error("OpenAI transport error: %s", e)
        raise CompletionError(f"OpenAI transport error: {e}") from e

    if not resp.is_success:
        body = resp.text
        logger.error("OpenAI error HTTP %s %s", resp.status_code, body)
        raise CompletionHTTPError(resp.status_code, body)

    try:
        envelope = resp.json()
    except ValueError as e:
        raise CompletionError("OpenAI returned a non-JSON envelope") from e

    return extract_completion_text(envelope)
