"""Instruction builders and response parsers for transcription and image tasks."""

from .images import (
    AspectRatio,
    GeneratedImage,
    ImageModel,
    ImageSize,
    image_generation_config,
    image_instructions,
    image_options,
    image_work_item,
    output_filename,
    parse_generated_image,
    slugify,
)
from .transcription import (
    TRANSCRIPTION_PROMPT,
    Emotion,
    TranscriptResponse,
    TranscriptSegment,
    parse_transcript,
    transcription_instructions,
)

__all__ = [
    "AspectRatio",
    "GeneratedImage",
    "ImageModel",
    "ImageSize",
    "image_generation_config",
    "image_instructions",
    "image_options",
    "image_work_item",
    "output_filename",
    "parse_generated_image",
    "slugify",
    "TRANSCRIPTION_PROMPT",
    "Emotion",
    "TranscriptResponse",
    "TranscriptSegment",
    "parse_transcript",
    "transcription_instructions",
]
