"""Orchestration: compose prompt → call model → normalize reply."""

import logging

import httpx

from backend.completion import request_completion
from backend.config import Settings
from backend.models import ChatRequest, StylistResponse
from backend.normalizer import normalize_response
from backend.prompts import build_prompt

logger = logging.getLogger(__name__)


async def run_stylist_chat(
    request: ChatRequest,
    settings: Settings,
    *,
    client: httpx.AsyncClient | None = None,
) -> StylistResponse:
    """Answer one chat request. Upstream failures propagate to the caller."""
    prompt = build_prompt(request)
    logger.debug(
        "Prompt built: %d chars, %d catalog item(s)", len(prompt), len(request.catalog)
    )

    raw_text = await request_completion(
        prompt, settings, timeout_ms=settings.timeout_ms, client=client
    )

    result = normalize_response(raw_text, request.catalog)
    logger.info(
        "Stylist reply normalized: %d look(s), %d pick(s)",
        len(result.looks),
        len(result.picks),
    )
    return result
