"""Try-on endpoint used by the browser extension."""
from __future__ import annotations

import logging
from typing import Any

import httpx
from fastapi import APIRouter, Depends, Header, Request
from pydantic import ValidationError

from app.config import Settings
from app.errors import InvalidRequest, InvalidUserImage, NoOverlayImages, RequestTooLarge, Unauthorized
from app.models import TryOnRequest, TryOnResponse
from app.services import overlay_resolver
from app.services.studio_store import StudioStore
from app.services.synthesis import ImageSynthesizer
from app.utils import data_uri

from .dependencies import (
    get_app_settings,
    get_http_client,
    get_request_id,
    get_studio_store,
    get_synthesizer,
)

router = APIRouter()
logger = logging.getLogger(__name__)

MAX_REQUEST_BYTES = 25 * 1024 * 1024  # 25 MiB total request size


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def check_extension(extension_id: str | None, settings: Settings) -> str:
    if not extension_id or extension_id not in settings.allowed_extension_ids:
        raise Unauthorized(detail=f"Unknown extension id: {extension_id!r}")
    return extension_id


def check_request_size(request: Request) -> None:
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > MAX_REQUEST_BYTES:
        raise RequestTooLarge(detail=f"Request body is {content_length} bytes")


async def read_json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as exc:
        raise InvalidRequest(detail="Request body is not valid JSON") from exc


def parse_body(raw: Any) -> TryOnRequest:
    try:
        return TryOnRequest.model_validate(raw)
    except ValidationError as exc:
        raise InvalidRequest(detail=str(exc.errors(include_url=False))) from exc


async def select_user_image(body: TryOnRequest, studio_store: StudioStore) -> Any:
    """Return the stored studio image when studio mode is requested, else ``userImage``."""

    if body.use_studio_mode and body.studio_id:
        studio_uri = await studio_store.load_data_uri(body.studio_id)
        if studio_uri is not None:
            logger.info("Using studio image: %s", body.studio_id)
            return studio_uri
        logger.warning("Studio image not found, falling back to regular mode: %s", body.studio_id)
    return body.user_image


# ---------------------------------------------------------------------------
# POST /api/extension/tryon
# ---------------------------------------------------------------------------


@router.post("/api/extension/tryon", response_model=TryOnResponse)
async def extension_tryon(
    request: Request,
    x_mm_extension_id: str | None = Header(None, alias="X-MM-Extension-Id"),
    settings: Settings = Depends(get_app_settings),
    client: httpx.AsyncClient = Depends(get_http_client),
    synthesizer: ImageSynthesizer = Depends(get_synthesizer),
    studio_store: StudioStore = Depends(get_studio_store),
    request_id: str = Depends(get_request_id),
):
    # Received -> Validated; the caller is checked before the body schema
    raw = await read_json_body(request)
    body_extension_id = raw.get("extensionId") if isinstance(raw, dict) else None
    if not isinstance(body_extension_id, str):
        body_extension_id = None
    extension_id = check_extension(body_extension_id or x_mm_extension_id, settings)
    check_request_size(request)
    body = parse_body(raw)

    user_image_uri = await select_user_image(body, studio_store)
    if not isinstance(user_image_uri, str) or not user_image_uri.startswith("data:"):
        raise InvalidUserImage()

    # Validated -> ImagesResolved
    user_image = data_uri.decode(user_image_uri)
    overlays = await overlay_resolver.resolve(
        body, client, fetch_timeout=settings.overlay_fetch_timeout_seconds
    )
    if not overlays:
        raise NoOverlayImages()

    # ImagesResolved -> Synthesizing -> Completed
    logger.info(
        "Try-on request_id=%s extension=%s mode=%s overlays=%d",
        request_id,
        extension_id,
        body.ai_mode,
        len(overlays),
    )
    result = await synthesizer.synthesize(
        user_image,
        overlays,
        product_context=body.product_context,
        mode=body.ai_mode,
    )
    usage = result.usage.model_dump(by_alias=True) if result.usage else {}
    return TryOnResponse(result=result.image_data_url, usage=usage)
