"""Disk store for generated studio portraits.

Images are stored under ``{uploads_dir}/studio_{uuid4}.jpg``. Each file is
written once under a fresh identifier, so writers never contend. A file
older than the configured TTL (by modification time) is treated as absent
and removed on the next lookup.
"""
from __future__ import annotations

import asyncio
import base64
import io
import logging
import re
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from PIL import Image

from app.errors import SynthesisFailed
from app.models import StudioImage

logger = logging.getLogger(__name__)

_STUDIO_ID_RE = re.compile(r"^studio_[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


class StudioStore:
    """Save, look up and expire studio images on the local filesystem."""

    _EXTENSION = ".jpg"

    def __init__(self, root: Path, *, ttl_seconds: int, jpeg_quality: int = 90) -> None:
        self._root = Path(root)
        self._ttl = ttl_seconds
        self._quality = jpeg_quality

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------

    async def save(self, image_bytes: bytes) -> StudioImage:
        """Re-encode *image_bytes* as JPEG and store it under a new studio id.

        Bytes that Pillow cannot decode are rejected with :class:`SynthesisFailed`,
        so every stored file is a real JPEG.
        """

        studio_id = f"studio_{uuid.uuid4()}"
        filename = f"{studio_id}{self._EXTENSION}"

        try:
            data = await asyncio.to_thread(_to_jpeg, image_bytes, quality=self._quality)
        except (OSError, ValueError) as exc:
            raise SynthesisFailed(detail=f"Generated studio image could not be decoded: {exc}") from exc

        self._root.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread((self._root / filename).write_bytes, data)
        logger.info("Studio image saved: %s", filename)
        return StudioImage(studio_id=studio_id, filename=filename, created_at=datetime.now(timezone.utc))

    async def load_data_uri(self, studio_id: str) -> Optional[str]:
        path = self.path_for(studio_id)
        if path is None:
            return None
        data = await asyncio.to_thread(path.read_bytes)
        return f"data:image/jpeg;base64,{base64.b64encode(data).decode('ascii')}"

    def path_for(self, studio_id: str) -> Optional[Path]:
        """Return the file of a live studio image, or None."""

        if not _STUDIO_ID_RE.match(studio_id):
            return None
        path = self._root / f"{studio_id}{self._EXTENSION}"
        if not path.is_file():
            return None
        if time.time() - path.stat().st_mtime > self._ttl:
            logger.info("Studio image expired: %s", path.name)
            path.unlink(missing_ok=True)
            return None
        return path

    def path_for_filename(self, filename: str) -> Optional[Path]:
        if not filename.endswith(self._EXTENSION):
            return None
        return self.path_for(filename[: -len(self._EXTENSION)])


# ------------------------------------------------------------------
# Helper functions
# ------------------------------------------------------------------

def _to_jpeg(image_bytes: bytes, *, quality: int) -> bytes:
    with Image.open(io.BytesIO(image_bytes)) as img:
        img = img.convert("RGB")  # ensure RGB for JPEG
        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=quality, optimize=True)
        return buffer.getvalue()
