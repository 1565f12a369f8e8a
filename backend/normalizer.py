"""Turn untrusted model text into a catalog-safe StylistResponse.

The model is treated as an unreliable text source: output may be non-JSON,
wrong-shaped, or reference products that don't exist. Every product id that
leaves this module is checked against the request catalog, and a non-empty
catalog always yields at least one look and one pick.
"""

import json
import logging
from collections.abc import Sequence
from typing import Any

from backend.models import Look, Pick, Product, StylistResponse

logger = logging.getLogger(__name__)

LOOK_TITLE_MAX = 80
LOOK_REASON_MAX = 200
PICK_REASON_MAX = 160
MAX_NESTING = 32

DEFAULT_MESSAGE = "Here are ideas for you."
DEFAULT_LOOK_TITLE = "Curated look"
DEFAULT_LOOK_REASON = "Put together from the available catalog pieces."
DEFAULT_PICK_REASON = "A good match for your request."
FALLBACK_LOOK_REASON = (
    "Using available Fermoza pieces to match the request as closely as possible."
)
FALLBACK_PICK_REASON = (
    "Best match from the current Fermoza catalog for this styling request."
)


def clean_text(value: str) -> str:
    """Replace lone surrogates so the text survives UTF-8 encoding."""
    return value.encode("utf-8", "replace").decode("utf-8")


def clean_tree(value: Any, depth: int = 0) -> Any:
    """clean_text applied to every string in a JSON value; deep branches are cut."""
    if depth > MAX_NESTING:
        return None
    if isinstance(value, str):
        return clean_text(value)
    if isinstance(value, dict):
        return {clean_text(str(k)): clean_tree(v, depth + 1) for k, v in value.items()}
    if isinstance(value, list):
        return [clean_tree(v, depth + 1) for v in value]
    return value


def clamp_text(value: Any, limit: int, default: str) -> str:
    """Trimmed string cut to `limit` chars; `default` when absent or blank."""
    if not isinstance(value, str) or not value.strip():
        return default
    return clean_text(value.strip()[:limit])


def _strip_code_fence(text: str) -> str:
    if text.startswith("```"):
        parts = text.split("\n", 1)
        body = parts[1] if len(parts) > 1 else ""
        return body.rsplit("```", 1)[0].strip()
    return text


def parse_reply(raw_text: str | None) -> dict[str, Any]:
    """Parse the model reply as a JSON object.

    Falls back to a recovery object carrying the raw text as the message
    when the reply is not JSON.
    """
    text = (raw_text or "").strip()
    for candidate in (text, _strip_code_fence(text)):
        try:
            parsed = json.loads(candidate)
        except (ValueError, RecursionError):
            continue
        return parsed if isinstance(parsed, dict) else {}

    logger.warning("Model reply was not valid JSON; using recovery object")
    return {
        "message": clean_text(text) or DEFAULT_MESSAGE,
        "looks": [],
        "picks": [],
        "beauty": {},
        "advice": {},
    }


def _coerce_looks(raw_looks: list, catalog_ids: set[str]) -> list[Look]:
    looks = []
    for entry in raw_looks:
        if not isinstance(entry, dict):
            continue
        raw_items = entry.get("items")
        if not isinstance(raw_items, list):
            continue
        items = [i for i in raw_items if isinstance(i, str) and i in catalog_ids]
        if not items:
            continue
        looks.append(
            Look(
                title=clamp_text(entry.get("title"), LOOK_TITLE_MAX, DEFAULT_LOOK_TITLE),
                reason=clamp_text(entry.get("reason"), LOOK_REASON_MAX, DEFAULT_LOOK_REASON),
                items=items,
            )
        )
    return looks


def _coerce_picks(raw_picks: list, catalog_ids: set[str]) -> list[Pick]:
    picks = []
    for entry in raw_picks:
        if not isinstance(entry, dict):
            continue
        product_id = entry.get("productId")
        if not isinstance(product_id, str) or product_id not in catalog_ids:
            continue
        picks.append(
            Pick(
                product_id=product_id,
                reason=clamp_text(entry.get("reason"), PICK_REASON_MAX, DEFAULT_PICK_REASON),
            )
        )
    return picks


def normalize_response(
    raw_text: str | None, catalog: Sequence[Product] | None
) -> StylistResponse:
    """Parse, coerce, catalog-filter and backfill a model reply."""
    catalog = list(catalog or [])
    catalog_ids = {p.id for p in catalog}
    parsed = parse_reply(raw_text)

    message = parsed.get("message")
    if isinstance(message, str) and message.strip():
        message = clean_text(message.strip())
    else:
        message = DEFAULT_MESSAGE
    raw_looks = parsed.get("looks") if isinstance(parsed.get("looks"), list) else []
    raw_picks = parsed.get("picks") if isinstance(parsed.get("picks"), list) else []
    beauty = clean_tree(parsed["beauty"]) if isinstance(parsed.get("beauty"), dict) else {}
    advice = clean_tree(parsed["advice"]) if isinstance(parsed.get("advice"), dict) else {}

    looks = _coerce_looks(raw_looks, catalog_ids)
    picks = _coerce_picks(raw_picks, catalog_ids)
    dropped = (len(raw_looks) - len(looks), len(raw_picks) - len(picks))
    if any(dropped):
        logger.info("Dropped %d look(s) and %d pick(s) not backed by the catalog", *dropped)

    # Look and pick backfill trigger independently.
    if catalog:
        hero = catalog[0]
        if not looks:
            looks = [
                Look(
                    title=clamp_text(f"Styled with {hero.title}", LOOK_TITLE_MAX, DEFAULT_LOOK_TITLE),
                    reason=FALLBACK_LOOK_REASON,
                    items=[hero.id],
                )
            ]
        if not picks:
            picks = [Pick(product_id=hero.id, reason=FALLBACK_PICK_REASON)]

    return StylistResponse(
        message=message,
        looks=looks,
        picks=picks,
        beauty=beauty,
        advice=advice,
    )
