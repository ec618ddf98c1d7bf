"""Helpers for reading generateContent responses."""

import base64
import binascii
from typing import Any

from .strategies.errors import InvalidResponseError


def _parts(response: dict[str, Any]) -> list[dict[str, Any]]:
    feedback = response.get("promptFeedback") or {}
    if feedback.get("blockReason"):
        raise InvalidResponseError(f"Prompt was blocked: {feedback['blockReason']}")

    candidates = response.get("candidates") or []
    if not candidates:
        raise InvalidResponseError("Response contains no candidates")

    candidate = candidates[0]
    parts = (candidate.get("content") or {}).get("parts")
    if not parts:
        reason = candidate.get("finishReason", "unknown")
        raise InvalidResponseError(f"Response candidate has no content parts (finishReason: {reason})")
    return parts


def extract_text(response: dict[str, Any]) -> str:
    """Concatenate the text parts of the first candidate."""
    texts = [part["text"] for part in _parts(response) if isinstance(part.get("text"), str)]
    if not texts:
        raise InvalidResponseError("Response contains no text parts")
    return "".join(texts)


def extract_inline_data(response: dict[str, Any]) -> tuple[str, bytes]:
    """Return (mime_type, bytes) of the first inline data part, e.g. a generated image."""
    for part in _parts(response):
        inline = part.get("inlineData") or part.get("inline_data")
        if not inline:
            continue
        mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
        try:
            data = base64.b64decode(inline.get("data", ""), validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidResponseError(f"Inline data is not valid base64: {e}") from e
        return mime_type, data
    raise InvalidResponseError("No image data in response")


def extract_usage(response: dict[str, Any]) -> dict[str, int]:
    """Token usage from usageMetadata, in input/output/total form."""
    usage = response.get("usageMetadata") or {}
    return {
        "input_tokens": usage.get("promptTokenCount", 0),
        "output_tokens": usage.get("candidatesTokenCount", 0),
        "total_tokens": usage.get("totalTokenCount", 0),
        "cached_input_tokens": usage.get("cachedContentTokenCount", 0),
    }
