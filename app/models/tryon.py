from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

AiMode = Literal["fast", "accurate"]


class ProductContext(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    hostname: Optional[str] = None


class TryOnRequest(BaseModel):
    """Body of ``POST /api/extension/tryon`` (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    extension_id: Optional[str] = None
    user_image: Optional[Any] = None
    overlay_data: Optional[list[Any]] = None
    overlay_urls: Optional[list[Any]] = None
    product_context: Optional[ProductContext] = None
    plan_type: Optional[str] = "standard"
    studio_id: Optional[str] = None
    use_studio_mode: bool = False

    @property
    def ai_mode(self) -> AiMode:
        return "accurate" if self.plan_type == "unlimited" else "fast"


class Usage(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    model: str
    mode: AiMode
    token_estimate: int = Field(..., ge=0)
    attempts: int = Field(..., ge=1)


class SynthesisResult(BaseModel):
    image_data_url: str
    usage: Optional[Usage] = None


class TryOnResponse(BaseModel):
    ok: bool = True
    result: str
    usage: dict[str, Any] = {}
