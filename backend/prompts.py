"""Prompt rendering for the stylist: user intent, profile, catalog → one prompt."""

import json
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from backend.models import ChatMessage, ChatRequest, Product, ProfileAttributes

CATALOG_LIMIT = 120
CURRENCY_SYMBOL = "₱"
PLACEHOLDER = "(none)"

SYSTEM_INSTRUCTION = (
    "You are Mika, a structured JSON-only stylist. Always answer with a "
    "SINGLE valid JSON object and nothing else."
)

# (rendered key, attribute on ProfileAttributes)
PROFILE_FIELDS: tuple[tuple[str, str], ...] = (
    ("gender", "gender"),
    ("occasion", "occasion"),
    ("color", "color_pref"),
    ("budget", "budget"),
    ("bodyType", "body_type"),
    ("undertone", "undertone"),
    ("skinTone", "skin_tone"),
    ("size", "size"),
)

PERSONA = """You are "Mika", the AI stylist for Fermoza (Philippines). Speak in a warm, concise Taglish-boutique tone.
Prefer bags as the hero item; you may add other store items. Consider Filipino context (humid/rainy weather, commute, travel, office, church, party).
If "Baguio"/cold → suggest closed shoes/layers."""

RESPONSE_SHAPE = """Return JSON ONLY with this exact shape:

{
  "message": "short helpful reply (<= 2 sentences)",
  "looks": [
    {
      "title": "look name",
      "reason": "why it matches",
      "items": ["product-id-1","product-id-2"]
    }
  ],
  "picks": [
    { "productId": "id-here", "reason": "1 short reason" }
  ],
  "beauty": { "colors": ["..."], "makeup": "..." },
  "advice": { "fit": "...", "weather": "..." }
}"""

RULES = """Rules:
- NEVER invent products or prices. Use ONLY items from the CATALOG below.
- Every id in "items" and "productId" MUST be copied exactly from the CATALOG section.
- If there are only bags or few items, still create at least one look using the available items.
- ALWAYS give styling, fit and weather advice even if no clothing products are available.
- Prefer 2–3 items per look when possible (bag + optional clothing/shoes).
- Respect body type, occasion, budget, and colors when provided.
- Always return a SINGLE valid JSON object following the schema exactly, with no text before or after it.
- If unsure, still build a useful look + simple guidance based on the catalog."""

PROMPT_TEMPLATE = """{persona}

{shape}

{rules}

USER:
{user_text}

PROFILE: {profile_text}
CATALOG (id | title | price):
{catalog_text}"""


def extract_user_text(
    message: str | None,
    messages: Sequence[ChatMessage | Mapping[str, Any]] | None,
) -> str:
    """Pick the one utterance the model should answer.

    A direct message wins; otherwise the latest user turn of the conversation.
    If that turn is unusable the whole conversation is serialized so the model
    still gets context. Returns "" when there is nothing at all.
    """
    if isinstance(message, str) and message.strip():
        return message.strip()
    if not messages:
        return ""

    turns = [_as_turn(m) for m in messages]
    last_user = next(
        (t for t in reversed(turns) if t["role"].lower() == "user"), None
    )
    if last_user is not None:
        content = last_user["content"]
        if isinstance(content, str) and content.strip():
            return content.strip()
    return json.dumps(turns, ensure_ascii=False, separators=(",", ":"), default=str)


def _as_turn(entry: ChatMessage | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(entry, ChatMessage):
        return {"role": entry.role, "content": entry.content}
    if isinstance(entry, Mapping):
        role = entry.get("role")
        return {
            "role": role if isinstance(role, str) else "",
            "content": entry.get("content"),
        }
    return {"role": "", "content": entry}


def summarize_profile(profile: ProfileAttributes | Mapping[str, Any] | None) -> str:
    """Render present profile attributes as "key:value" pairs in a fixed order."""
    if profile is None:
        return ""
    if not isinstance(profile, ProfileAttributes):
        profile = ProfileAttributes.model_validate(dict(profile))
    fragments = []
    for key, attr in PROFILE_FIELDS:
        value = getattr(profile, attr)
        if value:
            fragments.append(f"{key}:{value}")
    return ", ".join(fragments)


def _format_price(price: Any) -> str:
    try:
        amount = float(price or 0)
    except (TypeError, ValueError):
        amount = 0.0
    return f"{CURRENCY_SYMBOL}{amount:.2f}"


def format_catalog_lines(catalog: Iterable[Product] | None) -> list[str]:
    """One "- id | title | ₱price" row per product, capped at CATALOG_LIMIT."""
    lines: list[str] = []
    for product in catalog or []:
        if len(lines) >= CATALOG_LIMIT:
            break
        lines.append(f"- {product.id} | {product.title} | {_format_price(product.price)}")
    return lines


def build_prompt(request: ChatRequest) -> str:
    """Compose the full stylist prompt. Pure; same request, same bytes."""
    user_text = extract_user_text(request.message, request.messages)
    profile_text = summarize_profile(request.profile)
    catalog_text = "\n".join(format_catalog_lines(request.catalog))

    return PROMPT_TEMPLATE.format(
        persona=PERSONA,
        shape=RESPONSE_SHAPE,
        rules=RULES,
        user_text=user_text or PLACEHOLDER,
        profile_text=profile_text or PLACEHOLDER,
        catalog_text=catalog_text,
    ).strip()
