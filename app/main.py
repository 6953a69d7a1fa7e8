from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from app.config import Settings, get_settings
from app.handlers import studio_handler, tryon_handler
from app.handlers.error_handler import register_exception_handlers
from app.services.studio_store import StudioStore
from app.services.synthesis import ImageSynthesizer, build_synthesizer

logger = logging.getLogger(__name__)

# Chrome/Firefox extensions and localhost during development
EXTENSION_ORIGIN_REGEX = r"^(chrome-extension|moz-extension)://.+$|^https?://localhost(:\d+)?$"


def create_app(
    settings: Optional[Settings] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    synthesizer: Optional[ImageSynthesizer] = None,
    studio_store: Optional[StudioStore] = None,
) -> FastAPI:
    """Build the API with its immutable settings and shared services."""

    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    owns_client = http_client is None
    if http_client is None:
        http_client = httpx.AsyncClient(timeout=httpx.Timeout(settings.gemini_timeout_seconds))

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        logger.info("%s running on port %d (%s)", settings.service_name, settings.port, settings.app_env)
        if not settings.gemini_api_key:
            logger.error("GEMINI_API_KEY not configured!")
        yield
        if owns_client:
            await http_client.aclose()

    app = FastAPI(title="Looksy Try-On API", lifespan=lifespan)
    app.state.settings = settings
    app.state.http_client = http_client
    app.state.synthesizer = synthesizer or build_synthesizer(settings, http_client)
    app.state.studio_store = studio_store or StudioStore(
        settings.uploads_dir,
        ttl_seconds=settings.studio_ttl_seconds,
        jpeg_quality=settings.studio_jpeg_quality,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=EXTENSION_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request.state.request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        if request.url.path == "/api/extension/tryon":
            size = request.headers.get("content-length", "")
            logger.info(
                "Tryon request %s: %dKB", request.state.request_id, int(size) // 1024 if size.isdigit() else 0
            )
        response = await call_next(request)
        response.headers["X-Request-ID"] = request.state.request_id
        return response

    register_exception_handlers(app)
    app.include_router(tryon_handler.router)
    app.include_router(studio_handler.router)

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": settings.service_name,
        }

    return app


app = create_app()


if __name__ == "__main__":  # pragma: no cover
    uvicorn.run("app.main:app", host="0.0.0.0", port=get_settings().port)
