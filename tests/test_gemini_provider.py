from __future__ import annotations

import json

import httpx
import pytest

from app.errors import (
    NoImageProduced,
    RateLimited,
    ServiceMisconfigured,
    SynthesisFailed,
    TransientUpstreamError,
)
from app.models import ImagePayload, ProductContext
from app.services.synthesis import GeminiSynthesizer
from app.services.synthesis.gemini_provider import estimate_tokens, extract_image, find_inline_literal
from app.services.synthesis.prompts import build_tryon_prompt

from conftest import JPEG_B64, PNG_B64, SleepRecorder, gemini_image_body

USER = ImagePayload(mime_type="image/jpeg", data=JPEG_B64)
OVERLAY = ImagePayload(mime_type="image/png", data=PNG_B64)


class ScriptedGemini:
    """MockTransport handler replaying a list of responses or exceptions."""

    def __init__(self, *steps) -> None:
        self.steps = list(steps)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        return step


def _synth(settings, handler, sleep=None) -> GeminiSynthesizer:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiSynthesizer(settings, client, sleep=sleep or SleepRecorder())


async def test_request_shape_and_result(settings):
    gemini = ScriptedGemini(httpx.Response(200, json=gemini_image_body()))
    synth = _synth(settings, gemini)

    result = await synth.synthesize(
        USER, [OVERLAY], product_context=ProductContext(title="Linen shirt", hostname="shop.test"), mode="fast"
    )

    assert result.image_data_url == f"data:image/png;base64,{PNG_B64}"
    assert result.usage.model == "gemini-test-image"
    assert result.usage.attempts == 1

    (request,) = gemini.requests
    assert str(request.url) == "https://gemini.test/v1beta/models/gemini-test-image:generateContent"
    assert request.headers["x-goog-api-key"] == "test-key"
    body = json.loads(request.content)
    assert body["generationConfig"]["temperature"] == 0
    (content,) = body["contents"]
    assert content["role"] == "user"
    text_part, user_part, overlay_part = content["parts"]
    assert text_part["text"].startswith("Product: Linen shirt\nFrom: shop.test\n")
    assert user_part == {"inlineData": {"mimeType": "image/jpeg", "data": JPEG_B64}}
    assert overlay_part == {"inlineData": {"mimeType": "image/png", "data": PNG_B64}}
    assert result.usage.token_estimate == estimate_tokens(text_part["text"])


@pytest.mark.parametrize("status", [500, 502, 503])
async def test_transient_statuses_are_retried(settings, status):
    sleep = SleepRecorder()
    gemini = ScriptedGemini(
        httpx.Response(status), httpx.Response(status), httpx.Response(200, json=gemini_image_body())
    )
    result = await _synth(settings, gemini, sleep).synthesize(USER, [OVERLAY])

    assert len(gemini.requests) == 3
    assert sleep.delays == [1.0, 2.0]
    assert result.usage.attempts == 3


async def test_gives_up_after_three_attempts(settings):
    sleep = SleepRecorder()
    gemini = ScriptedGemini(*(httpx.Response(503) for _ in range(5)))

    with pytest.raises(TransientUpstreamError) as exc_info:
        await _synth(settings, gemini, sleep).synthesize(USER, [OVERLAY])

    assert exc_info.value.code == "GENERATION_FAILED"
    assert len(gemini.requests) == 3
    assert sleep.delays == [1.0, 2.0]


async def test_timeouts_are_retried(settings):
    sleep = SleepRecorder()
    request = httpx.Request("POST", "https://gemini.test")
    gemini = ScriptedGemini(
        httpx.ReadTimeout("read timed out", request=request),
        httpx.Response(200, json=gemini_image_body()),
    )
    result = await _synth(settings, gemini, sleep).synthesize(USER, [OVERLAY])
    assert result.usage.attempts == 2
    assert sleep.delays == [1.0]


@pytest.mark.parametrize("status", [400, 401, 403, 404, 504])
async def test_other_error_statuses_fail_without_retry(settings, status):
    sleep = SleepRecorder()
    gemini = ScriptedGemini(httpx.Response(status, json={"error": {"message": "bad request"}}))

    with pytest.raises(SynthesisFailed) as exc_info:
        await _synth(settings, gemini, sleep).synthesize(USER, [OVERLAY])

    assert not isinstance(exc_info.value, TransientUpstreamError)
    assert "bad request" in exc_info.value.detail
    assert len(gemini.requests) == 1
    assert sleep.delays == []


async def test_quota_errors_map_to_rate_limited(settings):
    gemini = ScriptedGemini(httpx.Response(429, json={"error": {"message": "Resource has been exhausted"}}))
    with pytest.raises(RateLimited):
        await _synth(settings, gemini).synthesize(USER, [OVERLAY])
    assert len(gemini.requests) == 1


async def test_empty_response_is_not_retried(settings):
    sleep = SleepRecorder()
    gemini = ScriptedGemini(
        httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "I cannot"}]}, "finishReason": "STOP"}]})
    )
    with pytest.raises(NoImageProduced):
        await _synth(settings, gemini, sleep).synthesize(USER, [OVERLAY])
    assert len(gemini.requests) == 1
    assert sleep.delays == []


async def test_missing_api_key_fails_before_any_call(settings):
    gemini = ScriptedGemini()
    synth = _synth(settings.model_copy(update={"gemini_api_key": None}), gemini)
    with pytest.raises(ServiceMisconfigured):
        await synth.synthesize(USER, [OVERLAY])
    assert gemini.requests == []


async def test_studio_generation_sends_single_image(settings):
    gemini = ScriptedGemini(httpx.Response(200, json=gemini_image_body(JPEG_B64, "image/jpeg")))
    result = await _synth(settings, gemini).generate_studio(USER, target_pose="arms-down", background="white")

    assert result.image_data_url == f"data:image/jpeg;base64,{JPEG_B64}"
    parts = json.loads(gemini.requests[0].content)["contents"][0]["parts"]
    assert len(parts) == 2
    assert "arms-down" in parts[0]["text"]
    assert "white" in parts[0]["text"]


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def test_extract_image_accepts_snake_case_fields():
    body = {"candidates": [{"content": {"parts": [{"inline_data": {"mime_type": "image/webp", "data": "AAAA"}}]}}]}
    assert extract_image(body) == "data:image/webp;base64,AAAA"


def test_extract_image_prefers_inline_part_over_text_literal():
    body = {
        "candidates": [
            {
                "content": {
                    "parts": [
                        {"text": "see data:image/png;base64,TEXTDATA"},
                        {"inlineData": {"mimeType": "image/png", "data": "INLINE"}},
                    ]
                }
            }
        ]
    }
    assert extract_image(body) == "data:image/png;base64,INLINE"


def test_extract_image_falls_back_to_text_literal():
    body = {"candidates": [{"content": {"parts": [{"text": 'Result: "data:image/png;base64,iVBORw0KGgo=").\nDone'}]}}]}
    assert extract_image(body) == "data:image/png;base64,iVBORw0KGgo="


def test_extract_image_reports_blocked_prompt():
    with pytest.raises(SynthesisFailed) as exc_info:
        extract_image({"promptFeedback": {"blockReason": "SAFETY"}})
    assert "SAFETY" in exc_info.value.detail


def test_extract_image_without_candidates():
    with pytest.raises(NoImageProduced):
        extract_image({})


def test_find_inline_literal_ignores_bare_prefix():
    assert find_inline_literal("data:image/png;base64,.") is None
    assert find_inline_literal("no image here") is None


def test_accurate_mode_extends_prompt():
    fast = build_tryon_prompt(None, "fast")
    accurate = build_tryon_prompt(None, "accurate")
    assert accurate.startswith(fast)
    assert len(accurate) > len(fast)
    assert estimate_tokens("abcde") == 2


@pytest.mark.parametrize(
    "part",
    [
        {"inlineData": "abc"},
        {"inlineData": {"mimeType": "image/png", "data": 12}},
        {"inline_data": ["AAAA"]},
        {"text": {"nested": "data:image/png;base64,AAAA"}},
    ],
)
def test_extract_image_tolerates_malformed_parts(part):
    with pytest.raises(NoImageProduced):
        extract_image({"candidates": [{"content": {"parts": [part]}}]})


@pytest.mark.parametrize(
    "body",
    [
        {"candidates": "oops"},
        {"candidates": ["oops", {"content": "oops"}, {"content": {"parts": "oops"}}]},
        {"promptFeedback": "oops"},
    ],
)
def test_extract_image_tolerates_malformed_containers(body):
    with pytest.raises(NoImageProduced):
        extract_image(body)


def test_extract_image_skips_malformed_parts_before_a_good_one():
    body = {
        "candidates": [
            "oops",
            {"content": {"parts": ["oops", {"inlineData": "abc"}, {"inlineData": {"data": "GOOD", "mimeType": 7}}]}},
        ]
    }
    assert extract_image(body) == "data:image/png;base64,GOOD"


@pytest.mark.parametrize("body", [[], "text", 42, None])
def test_extract_image_rejects_non_object_body(body):
    with pytest.raises(SynthesisFailed) as exc_info:
        extract_image(body)
    assert not isinstance(exc_info.value, NoImageProduced)


async def test_non_object_json_response_fails_without_retry(settings):
    sleep = SleepRecorder()
    gemini = ScriptedGemini(httpx.Response(200, json=["not", "an", "object"]))
    with pytest.raises(SynthesisFailed) as exc_info:
        await _synth(settings, gemini, sleep).synthesize(USER, [OVERLAY])
    assert exc_info.value.code == "GENERATION_FAILED"
    assert len(gemini.requests) == 1
    assert sleep.delays == []
