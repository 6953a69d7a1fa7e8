"""Studio portrait generation and stored-image serving."""
from __future__ import annotations

import base64
import binascii
import logging

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import FileResponse

from app.errors import (
    ConsentRequired,
    MissingImage,
    NotFound,
    PayloadTooLarge,
    SynthesisFailed,
    UnsupportedMediaType,
)
from app.models import ImagePayload, StudioResponse
from app.services.studio_store import StudioStore
from app.services.synthesis import ImageSynthesizer

from .dependencies import get_studio_store, get_synthesizer

router = APIRouter()
logger = logging.getLogger(__name__)

STUDIO_MIME_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/webp"})
MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10 MiB


def _decode_data_url(data_url: str) -> bytes:
    _, sep, encoded = data_url.partition(",")
    if not sep:
        raise SynthesisFailed(detail="Generated image is not a data URI")
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SynthesisFailed(detail="Generated image is not valid base64") from exc


@router.post("/api/studio/generate", response_model=StudioResponse)
async def generate_studio(
    request: Request,
    image: UploadFile | None = File(None),
    consent: str | None = Form(None),
    target_pose: str = Form("neutral"),
    background: str = Form("neutral"),
    synthesizer: ImageSynthesizer = Depends(get_synthesizer),
    studio_store: StudioStore = Depends(get_studio_store),
):
    logger.info("Studio image generation requested")
    if image is None:
        raise MissingImage()
    if consent != "true":
        raise ConsentRequired()

    mime_type = (image.content_type or "").lower()
    if mime_type not in STUDIO_MIME_TYPES:
        raise UnsupportedMediaType(detail=f"Unsupported mime type: {mime_type or 'unknown'}")

    raw = await image.read()
    if len(raw) > MAX_UPLOAD_BYTES:
        raise PayloadTooLarge(detail=f"Upload is {len(raw)} bytes")

    user_image = ImagePayload(mime_type=mime_type, data=base64.b64encode(raw).decode("ascii"))
    result = await synthesizer.generate_studio(user_image, target_pose=target_pose, background=background)

    stored = await studio_store.save(_decode_data_url(result.image_data_url))
    return StudioResponse(
        studio_id=stored.studio_id,
        cdn_url=str(request.url_for("get_upload", filename=stored.filename)),
        pose_id=target_pose,
        created_at=int(stored.created_at.timestamp() * 1000),
        ttl=studio_store.ttl_seconds,
    )


@router.get("/uploads/{filename}", name="get_upload")
async def get_upload(filename: str, studio_store: StudioStore = Depends(get_studio_store)):
    path = studio_store.path_for_filename(filename)
    if path is None:
        raise NotFound("Studio image not found")
    return FileResponse(path, media_type="image/jpeg")
