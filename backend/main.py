import logging
from datetime import datetime, timezone
from typing import Any

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from backend.config import Settings, load_settings, mask_secret
from backend.models import ChatRequest, ErrorResponse, HealthResponse, StylistResponse
from backend.pipeline import run_stylist_chat

logger = logging.getLogger(__name__)

BAD_REQUEST_ERROR = "message or messages[] AND catalog[] are required"
INTERNAL_ERROR = "mika_failed"


class InvalidChatRequest(ValueError):
    pass


def configure_logging(level: str) -> None:
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=getattr(logging, level.upper(), logging.INFO),
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )


def parse_chat_request(body: Any) -> ChatRequest:
    """Validate the /chat body; raises InvalidChatRequest on any problem."""
    if not isinstance(body, dict):
        raise InvalidChatRequest("body must be a JSON object")
    if not body.get("message") and body.get("messages") is None:
        raise InvalidChatRequest("message or messages is required")
    if not isinstance(body.get("catalog"), list):
        raise InvalidChatRequest("catalog must be a list")
    try:
        return ChatRequest.model_validate(body)
    except ValidationError as e:
        raise InvalidChatRequest(str(e)) from e


def _error_response(status_code: int, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=error).model_dump())


def _utc_now_iso() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    configure_logging(settings.log_level)

    logger.info("OPENAI_API_KEY loaded: %s", mask_secret(settings.openai_api_key))
    if settings.openai_org:
        logger.info("OPENAI_ORG: %s", settings.openai_org)
    if settings.openai_project:
        logger.info("OPENAI_PROJECT: %s", settings.openai_project)

    app = FastAPI(title="Mika API")
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    router = APIRouter(prefix=settings.api_base)

    @router.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(api_base=settings.api_base, time=_utc_now_iso())

    @router.post(
        "/chat",
        response_model=StylistResponse,
        responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    )
    async def chat(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = None

        try:
            chat_request = parse_chat_request(body)
        except InvalidChatRequest as e:
            logger.info("Rejected chat request: %s", e)
            return _error_response(400, BAD_REQUEST_ERROR)

        try:
            result = await run_stylist_chat(chat_request, settings)
            # Rendered here so encoding failures still map to the 500 body.
            return JSONResponse(content=result.model_dump(mode="json", by_alias=True))
        except Exception:
            logger.exception(INTERNAL_ERROR)
            return _error_response(500, INTERNAL_ERROR)

    app.include_router(router)
    return app


app = create_app()


def run() -> None:
    settings: Settings = app.state.settings
    logger.info(
        "Mika API listening on http://localhost:%d%s", settings.port, settings.api_base
    )
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
