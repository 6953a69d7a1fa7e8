from .image_payload import ALLOWED_MIME_TYPES, MAX_IMAGE_BYTES, ImagePayload, MimeType
from .studio import StudioImage, StudioResponse
from .tryon import AiMode, ProductContext, SynthesisResult, TryOnRequest, TryOnResponse, Usage

__all__ = [
    "ALLOWED_MIME_TYPES",
    "MAX_IMAGE_BYTES",
    "AiMode",
    "ImagePayload",
    "MimeType",
    "ProductContext",
    "StudioImage",
    "StudioResponse",
    "SynthesisResult",
    "TryOnRequest",
    "TryOnResponse",
    "Usage",
]
