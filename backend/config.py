import os
from collections.abc import Mapping
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

DEFAULT_OPENAI_BASE_URL: str = "https://api.openai.com/v1"
DEFAULT_OPENAI_MODEL: str = "gpt-4.1-mini"
DEFAULT_API_BASE: str = "/api/mika"
DEFAULT_PORT: int = 8787
DEFAULT_TIMEOUT_MS: int = 7000


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration, built once at startup and never mutated."""

    openai_api_key: str = ""
    openai_org: str = ""
    openai_project: str = ""
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    openai_model: str = DEFAULT_OPENAI_MODEL
    temperature: float = 0.7
    max_tokens: int = 700
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    api_base: str = DEFAULT_API_BASE
    log_level: str = "INFO"


def _normalize_api_base(value: str) -> str:
    value = value.strip().rstrip("/")
    if not value:
        return ""
    if not value.startswith("/"):
        value = "/" + value
    return value


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from environment variables (or an explicit mapping).

    Secrets are whitespace-trimmed so stray newlines from .env edits don't
    end up in the Authorization header. Malformed numbers raise ValueError.
    """
    source = os.environ if env is None else env

    def get(name: str, default: str = "") -> str:
        return (source.get(name) or default).strip()

    return Settings(
        openai_api_key=get("OPENAI_API_KEY"),
        openai_org=get("OPENAI_ORG"),
        openai_project=get("OPENAI_PROJECT"),
        openai_base_url=get("OPENAI_BASE_URL", DEFAULT_OPENAI_BASE_URL).rstrip("/"),
        openai_model=get("OPENAI_MODEL", DEFAULT_OPENAI_MODEL),
        temperature=float(get("OPENAI_TEMPERATURE", "0.7")),
        max_tokens=int(get("OPENAI_MAX_TOKENS", "700")),
        timeout_ms=int(get("OPENAI_TIMEOUT_MS", str(DEFAULT_TIMEOUT_MS))),
        host=get("HOST", "0.0.0.0"),
        port=int(get("PORT", str(DEFAULT_PORT))),
        api_base=_normalize_api_base(get("API_BASE", DEFAULT_API_BASE)),
        log_level=get("LOG_LEVEL", "INFO").upper(),
    )


def mask_secret(value: str | None) -> str:
    """Show only the edges of a credential, e.g. for startup logs."""
    if value and len(value) > 12:
        return f"{value[:8]}…{value[-6:]}"
    return "(none)"
