from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from app.models import AiMode, ImagePayload, ProductContext, SynthesisResult


class ImageSynthesizer(ABC):
    """Abstract interface for a generative image provider."""

    name: str = "abstract"

    @abstractmethod
    async def synthesize(
        self,
        user_image: ImagePayload,
        overlay_images: Sequence[ImagePayload],
        *,
        product_context: ProductContext | None = None,
        mode: AiMode = "fast",
    ) -> SynthesisResult:
        """Render the user wearing the overlay products.

        Returns
        -------
        SynthesisResult
            image as a data URI plus usage metadata
        """

    @abstractmethod
    async def generate_studio(
        self,
        user_image: ImagePayload,
        *,
        target_pose: str = "neutral",
        background: str = "neutral",
    ) -> SynthesisResult:
        """Turn a casual photo into a clean studio portrait."""
