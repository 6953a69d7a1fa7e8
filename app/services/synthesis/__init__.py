from __future__ import annotations

import httpx

from app.config import Settings

from .base import ImageSynthesizer
from .gemini_provider import GeminiSynthesizer

__all__ = [
    "GeminiSynthesizer",
    "ImageSynthesizer",
    "build_synthesizer",
]


def build_synthesizer(settings: Settings, client: httpx.AsyncClient) -> ImageSynthesizer:
    """Return the production synthesizer bound to the shared HTTP client."""

    return GeminiSynthesizer(settings, client)
