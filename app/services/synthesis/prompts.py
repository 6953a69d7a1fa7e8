"""Prompt templates for the generative image API."""
from __future__ import annotations

from app.models import AiMode, ProductContext

TRYON_PROMPT = """You are an expert virtual try-on renderer. You receive:
1. A photo of a person (first image)
2. One or more product images (clothing, accessories, etc.)

Task: generate ONE photorealistic image of the same person wearing the product(s).
- Preserve the person's face, hair, skin tone, body shape and pose exactly.
- Reproduce the product's color, pattern, texture and logos faithfully.
- Fit the product naturally with realistic folds, shadows and scale.
- Keep the original background and lighting.
Return the image only."""

ACCURATE_SUFFIX = (
    "\n\nTake extra care with garment fit, seams, fabric drape and occlusion by hair or arms; "
    "prefer fidelity over speed."
)

STUDIO_PROMPT = """Transform this photo into a clean studio portrait of the same person.
- Keep face, identity, body shape and clothing unchanged.
- Pose: {pose}.
- Background: {background} seamless studio backdrop with soft even lighting.
- Full body visible, camera at eye level.
Return the image only."""


def build_tryon_prompt(product_context: ProductContext | None, mode: AiMode) -> str:
    header = ""
    if product_context is not None:
        if product_context.title:
            header += f"Product: {product_context.title}\n"
        if product_context.hostname:
            header += f"From: {product_context.hostname}\n"
    prompt = f"{header}\n{TRYON_PROMPT}" if header else TRYON_PROMPT
    if mode == "accurate":
        prompt += ACCURATE_SUFFIX
    return prompt


def build_studio_prompt(target_pose: str, background: str) -> str:
    return STUDIO_PROMPT.format(pose=target_pose, background=background)
