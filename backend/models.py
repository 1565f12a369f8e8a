import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChatMessage(BaseModel):
    role: str = ""
    content: Any = None

    @field_validator("role", mode="before")
    @classmethod
    def _role_as_text(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""


class Product(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    title: str = ""
    price: float = 0.0

    @field_validator("title", mode="before")
    @classmethod
    def _title_as_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return str(value)

    @field_validator("price", mode="before")
    @classmethod
    def _price_or_zero(cls, value: Any) -> float:
        """Missing or non-numeric prices count as zero; negatives clamp to zero."""
        if isinstance(value, bool):
            return 0.0
        try:
            price = float(value)
        except (TypeError, ValueError):
            return 0.0
        if not math.isfinite(price) or price < 0:
            return 0.0
        return price


class ProfileAttributes(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    gender: str | None = None
    occasion: str | None = None
    color_pref: str | None = Field(default=None, alias="colorPref")
    budget: str | None = None
    body_type: str | None = Field(default=None, alias="bodyType")
    undertone: str | None = None
    skin_tone: str | None = Field(default=None, alias="skinTone")
    size: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _blank_is_absent(cls, value: Any) -> str | None:
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            value = str(value)
        if not isinstance(value, str):
            return None
        value = value.strip()
        return value or None


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str | None = None
    messages: list[ChatMessage] | None = None
    profile: ProfileAttributes | None = None
    catalog: list[Product]


class Look(BaseModel):
    title: str
    reason: str
    items: list[str]


class Pick(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId")
    reason: str


class StylistResponse(BaseModel):
    message: str
    looks: list[Look] = Field(default_factory=list)
    picks: list[Pick] = Field(default_factory=list)
    beauty: dict[str, Any] = Field(default_factory=dict)
    advice: dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    provider: str = "openai"
    api_base: str = Field(alias="apiBase")
    time: str


class ErrorResponse(BaseModel):
    error: str
