"""Data-URI parsing for inline images.

Only the ``data:<mime>;base64,<payload>`` shape is accepted. The payload is
returned untouched; its decoded size is estimated from the base64 length,
which is always an upper bound of the real byte count.
"""
from __future__ import annotations

import re
from typing import Any

from app.errors import MalformedInput, PayloadTooLarge, UnsupportedMediaType
from app.models import ALLOWED_MIME_TYPES, MAX_IMAGE_BYTES, ImagePayload

_DATA_URI_RE = re.compile(r"data:([^;]+);base64,(.*)")


def decode(uri: Any) -> ImagePayload:
    """Parse *uri* into an :class:`ImagePayload`.

    Raises
    ------
    MalformedInput
        *uri* is not a string of the form ``data:<mime>;base64,<payload>``.
    UnsupportedMediaType
        The mime type is not in the allow-list.
    PayloadTooLarge
        The estimated decoded size exceeds 8 MiB.
    """

    if not isinstance(uri, str):
        raise MalformedInput(detail="Invalid data URI format")

    match = _DATA_URI_RE.fullmatch(uri)
    if match is None:
        raise MalformedInput(detail="Invalid data URI format")

    mime_type = match.group(1).lower()
    payload = match.group(2)

    if mime_type not in ALLOWED_MIME_TYPES:
        raise UnsupportedMediaType(detail=f"Unsupported mime type: {mime_type}")

    if estimate_bytes(payload) > MAX_IMAGE_BYTES:
        raise PayloadTooLarge(detail="Image too large")

    return ImagePayload(mime_type=mime_type, data=payload)


def estimate_bytes(payload: str) -> int:
    return len(payload) * 3 // 4
