"""Gemini ``generateContent`` REST client for try-on image synthesis."""
from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Optional, Sequence

import httpx

from app.config import Settings
from app.errors import (
    NoImageProduced,
    RateLimited,
    ServiceMisconfigured,
    SynthesisFailed,
    TransientUpstreamError,
)
from app.models import AiMode, ImagePayload, ProductContext, SynthesisResult, Usage
from app.services.retry import RetryPolicy, RetryState, SleepFn

from .base import ImageSynthesizer
from .prompts import build_studio_prompt, build_tryon_prompt

logger = logging.getLogger(__name__)

INLINE_PNG_PREFIX = "data:image/png;base64,"
RETRYABLE_STATUSES = frozenset({500, 502, 503})
_TRAILING_PUNCTUATION = ")]}>\"'.,;:`"


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, TransientUpstreamError)


class GeminiSynthesizer(ImageSynthesizer):
    name = "gemini"

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient,
        *,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._api_key = settings.gemini_api_key
        self._model = settings.gemini_model
        self._endpoint = f"{settings.gemini_base_url.rstrip('/')}/models/{self._model}:generateContent"
        self._timeout = settings.gemini_timeout_seconds
        self._client = client
        self._retry = RetryPolicy(
            is_retryable=_is_transient,
            max_attempts=settings.gemini_max_attempts,
            base_delay=settings.gemini_retry_base_delay,
            sleep=sleep,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def synthesize(
        self,
        user_image: ImagePayload,
        overlay_images: Sequence[ImagePayload],
        *,
        product_context: ProductContext | None = None,
        mode: AiMode = "fast",
    ) -> SynthesisResult:
        prompt = build_tryon_prompt(product_context, mode)
        parts = [{"text": prompt}, user_image.to_inline_part()]
        parts.extend(image.to_inline_part() for image in overlay_images)
        logger.info("Generating %s overlay with %d product images", mode, len(overlay_images))
        return await self._generate(prompt, parts, mode)

    async def generate_studio(
        self,
        user_image: ImagePayload,
        *,
        target_pose: str = "neutral",
        background: str = "neutral",
    ) -> SynthesisResult:
        prompt = build_studio_prompt(target_pose, background)
        logger.info("Generating studio image: pose=%s, bg=%s", target_pose, background)
        return await self._generate(prompt, [{"text": prompt}, user_image.to_inline_part()], "fast")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _generate(self, prompt: str, parts: list[dict[str, Any]], mode: AiMode) -> SynthesisResult:
        if not self._api_key:
            raise ServiceMisconfigured(detail="Missing GEMINI_API_KEY")

        payload = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {"temperature": 0, "responseModalities": ["TEXT", "IMAGE"]},
        }

        async def attempt(state: RetryState) -> tuple[str, int]:
            body = await self._post(payload, state.attempt)
            return extract_image(body), state.attempt

        image_url, attempts = await self._retry.run(attempt)
        usage = Usage(model=self._model, mode=mode, token_estimate=estimate_tokens(prompt), attempts=attempts)
        return SynthesisResult(image_data_url=image_url, usage=usage)

    async def _post(self, payload: dict[str, Any], attempt: int) -> Any:
        logger.debug("POST %s (attempt %d)", self._endpoint, attempt)
        try:
            resp = await asyncio.wait_for(
                self._client.post(self._endpoint, json=payload, headers={"x-goog-api-key": self._api_key}),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise TransientUpstreamError(f"Gemini request timed out after {self._timeout:.0f}s") from exc
        except httpx.HTTPError as exc:
            raise SynthesisFailed(detail=f"Gemini request failed: {exc}") from exc

        if resp.status_code in RETRYABLE_STATUSES:
            raise TransientUpstreamError(f"Gemini API error {resp.status_code}", status=resp.status_code)
        if resp.status_code == 429:
            raise RateLimited(detail=f"Gemini API quota exceeded: {_error_message(resp)}")
        if not resp.is_success:
            raise SynthesisFailed(detail=f"Gemini API error {resp.status_code}: {_error_message(resp)}")

        try:
            return resp.json()
        except ValueError as exc:
            raise SynthesisFailed(detail="Gemini returned a non-JSON body") from exc


# ------------------------------------------------------------------
# Response parsing
# ------------------------------------------------------------------


def extract_image(body: Any) -> str:
    """Return the first image in a ``generateContent`` response as a data URI.

    Inline attachments (``inlineData`` or ``inline_data``) win over data URIs
    embedded in text parts. Raises :class:`NoImageProduced` when neither is
    present.
    """

    if not isinstance(body, dict):
        raise SynthesisFailed(detail=f"Unexpected Gemini response type: {type(body).__name__}")

    block_reason = _as_dict(body.get("promptFeedback")).get("blockReason")
    if block_reason:
        raise SynthesisFailed(
            "Content filtered by safety settings", detail=f"Prompt blocked: {block_reason}"
        )

    candidates = [c for c in _as_list(body.get("candidates")) if isinstance(c, dict)]
    parts = [
        part
        for candidate in candidates
        for part in _as_list(_as_dict(candidate.get("content")).get("parts"))
        if isinstance(part, dict)
    ]

    for part in parts:
        inline = _as_dict(part.get("inlineData") or part.get("inline_data"))
        if isinstance(inline.get("data"), str) and inline["data"]:
            mime_type = inline.get("mimeType") or inline.get("mime_type")
            if not isinstance(mime_type, str) or not mime_type:
                mime_type = "image/png"
            return f"data:{mime_type};base64,{inline['data']}"

    for part in parts:
        text = part.get("text")
        if isinstance(text, str):
            literal = find_inline_literal(text)
            if literal:
                return literal

    finish_reasons = [c.get("finishReason") for c in candidates if c.get("finishReason")]
    raise NoImageProduced(detail=f"No image in Gemini response (finishReason={finish_reasons or None})")


def find_inline_literal(text: str) -> Optional[str]:
    start = text.find(INLINE_PNG_PREFIX)
    if start < 0:
        return None
    literal = text[start:].split(maxsplit=1)[0].rstrip(_TRAILING_PUNCTUATION)
    if len(literal) <= len(INLINE_PNG_PREFIX):
        return None
    return literal


def estimate_tokens(text: str) -> int:
    # Rough estimation: ~4 characters per token
    return math.ceil(len(text) / 4) if text else 0


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        return data["error"].get("message") or resp.text
    return resp.text


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []
