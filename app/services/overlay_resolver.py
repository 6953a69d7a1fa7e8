"""Resolve the product (overlay) images of a try-on request.

Inline data URIs are preferred. Remote URLs are only consulted when no inline
entries were sent, and are fetched concurrently. A single bad entry is logged
and dropped; the caller decides what an empty result means.
"""
from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any, List, Optional, Sequence

import httpx

from app.errors import TryOnError
from app.models import ALLOWED_MIME_TYPES, MAX_IMAGE_BYTES, ImagePayload, TryOnRequest
from app.utils import data_uri

logger = logging.getLogger(__name__)

MAX_OVERLAYS = 3
USER_AGENT = "LooksyAI/1.0"


async def resolve(
    request: TryOnRequest,
    client: httpx.AsyncClient,
    *,
    fetch_timeout: float = 15.0,
) -> List[ImagePayload]:
    if request.overlay_data:
        logger.info("Using %d overlay images from overlayData", len(request.overlay_data))
        return decode_inline(request.overlay_data)

    if request.overlay_urls:
        logger.info("Fallback: fetching %d overlay images from URLs", len(request.overlay_urls))
        return await fetch_remote(request.overlay_urls, client, timeout=fetch_timeout)

    return []


def decode_inline(entries: Sequence[Any]) -> List[ImagePayload]:
    payloads: List[ImagePayload] = []
    for entry in entries[:MAX_OVERLAYS]:
        try:
            payload = data_uri.decode(entry)
        except TryOnError as exc:
            logger.warning("Failed to parse overlay data URI: %s", exc)
            continue
        logger.debug("Overlay image: %s, ~%dKB", payload.mime_type, payload.approx_bytes // 1024)
        payloads.append(payload)
    return payloads


async def fetch_remote(
    urls: Sequence[Any],
    client: httpx.AsyncClient,
    *,
    timeout: float = 15.0,
) -> List[ImagePayload]:
    results = await asyncio.gather(*(_fetch_one(url, client, timeout) for url in urls[:MAX_OVERLAYS]))
    return [payload for payload in results if payload is not None]


async def _fetch_one(url: Any, client: httpx.AsyncClient, timeout: float) -> Optional[ImagePayload]:
    if not isinstance(url, str):
        logger.warning("Skipping overlay URL that is not a string: %r", url)
        return None
    try:
        return await asyncio.wait_for(_download(url, client), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Timed out fetching overlay image %s after %.0fs", url, timeout)
        return None
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.warning("Failed to fetch overlay image %s: %s", url, exc)
        return None


async def _download(url: str, client: httpx.AsyncClient) -> Optional[ImagePayload]:
    """Stream *url* into memory, giving up as soon as it exceeds the size limit."""

    async with client.stream("GET", url, headers={"User-Agent": USER_AGENT}, follow_redirects=True) as resp:
        if not resp.is_success:
            logger.warning("Failed to fetch overlay image %s: HTTP %d", url, resp.status_code)
            return None

        mime_type = resp.headers.get("content-type", "image/jpeg").split(";")[0].strip().lower()
        if mime_type not in ALLOWED_MIME_TYPES:
            logger.warning("Failed to fetch overlay image %s: unsupported mime %s", url, mime_type)
            return None

        declared = resp.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > MAX_IMAGE_BYTES:
            logger.warning("Failed to fetch overlay image %s: %s bytes exceeds limit", url, declared)
            return None

        content = bytearray()
        async for chunk in resp.aiter_bytes():
            content.extend(chunk)
            if len(content) > MAX_IMAGE_BYTES:
                logger.warning("Failed to fetch overlay image %s: body exceeds %d bytes", url, MAX_IMAGE_BYTES)
                return None

    logger.debug("Fetched overlay: %s, %dKB", mime_type, len(content) // 1024)
    return ImagePayload(mime_type=mime_type, data=base64.b64encode(bytes(content)).decode("ascii"))
