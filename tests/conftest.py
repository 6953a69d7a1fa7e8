from __future__ import annotations

import base64
import io
from typing import Callable, Sequence

import httpx
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from app.config import Settings
from app.main import create_app
from app.models import AiMode, ImagePayload, ProductContext, SynthesisResult, Usage
from app.services.studio_store import StudioStore
from app.services.synthesis import GeminiSynthesizer, ImageSynthesizer

EXTENSION_ID = "ext-abc123"


def make_image_bytes(fmt: str = "PNG", color: tuple[int, int, int] = (200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), color).save(buffer, format=fmt)
    return buffer.getvalue()


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


PNG_B64 = b64(make_image_bytes("PNG"))
JPEG_B64 = b64(make_image_bytes("JPEG", (20, 120, 220)))
PNG_URI = f"data:image/png;base64,{PNG_B64}"
JPEG_URI = f"data:image/jpeg;base64,{JPEG_B64}"


def gemini_image_body(data: str = PNG_B64, mime_type: str = "image/png") -> dict:
    return {
        "candidates": [
            {
                "content": {
                    "role": "model",
                    "parts": [
                        {"text": "Here is the try-on result."},
                        {"inlineData": {"mimeType": mime_type, "data": data}},
                    ],
                },
                "finishReason": "STOP",
            }
        ]
    }


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records the requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeSynthesizer(ImageSynthesizer):
    name = "fake"

    def __init__(self, result: str = PNG_URI, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[dict] = []

    async def synthesize(
        self,
        user_image: ImagePayload,
        overlay_images: Sequence[ImagePayload],
        *,
        product_context: ProductContext | None = None,
        mode: AiMode = "fast",
    ) -> SynthesisResult:
        self.calls.append(
            {"user_image": user_image, "overlays": list(overlay_images), "context": product_context, "mode": mode}
        )
        if self.error is not None:
            raise self.error
        return SynthesisResult(
            image_data_url=self.result,
            usage=Usage(model="fake-model", mode=mode, token_estimate=10, attempts=1),
        )

    async def generate_studio(
        self,
        user_image: ImagePayload,
        *,
        target_pose: str = "neutral",
        background: str = "neutral",
    ) -> SynthesisResult:
        self.calls.append({"user_image": user_image, "pose": target_pose, "background": background})
        if self.error is not None:
            raise self.error
        return SynthesisResult(image_data_url=self.result)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        chrome_extension_ids=f"{EXTENSION_ID}, ext-other",
        gemini_api_key="test-key",
        gemini_model="gemini-test-image",
        gemini_base_url="https://gemini.test/v1beta",
        app_env="development",
        uploads_dir=tmp_path / "uploads",
    )


@pytest.fixture
def studio_store(settings) -> StudioStore:
    return StudioStore(settings.uploads_dir, ttl_seconds=settings.studio_ttl_seconds)


@pytest.fixture
def fake_synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()


@pytest.fixture
def make_client(settings, studio_store) -> Callable[..., TestClient]:
    """Build a TestClient around an app with injected collaborators."""

    def _make(
        *,
        synthesizer: ImageSynthesizer | None = None,
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
        sleep: SleepRecorder | None = None,
        app_settings: Settings | None = None,
    ) -> TestClient:
        app_settings = app_settings or settings
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler or _unexpected_request))
        if synthesizer is None:
            synthesizer = GeminiSynthesizer(app_settings, http_client, sleep=sleep or SleepRecorder())
        app = create_app(
            app_settings,
            http_client=http_client,
            synthesizer=synthesizer,
            studio_store=studio_store,
        )
        return TestClient(app)

    return _make


def _unexpected_request(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"Unexpected outbound request: {request.method} {request.url}")
