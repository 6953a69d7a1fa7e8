from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

MimeType = Literal["image/jpeg", "image/jpg", "image/png", "image/webp", "image/avif"]

ALLOWED_MIME_TYPES: frozenset[str] = frozenset(
    {"image/jpeg", "image/jpg", "image/png", "image/webp", "image/avif"}
)
MAX_IMAGE_BYTES = 8 * 1024 * 1024  # 8 MiB per image


class ImagePayload(BaseModel):
    """One image ready to be sent to the generative API."""

    model_config = ConfigDict(frozen=True)

    mime_type: MimeType
    data: str = Field(..., description="Base64 payload, not decoded")

    @property
    def approx_bytes(self) -> int:
        return len(self.data) * 3 // 4

    def to_inline_part(self) -> dict:
        return {"inlineData": {"mimeType": self.mime_type, "data": self.data}}

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"
