"""Testing utilities for media_batch."""

from .mocks import (
    FakeClock,
    MockGeminiAPI,
    RecordedRequest,
    ScriptedProcessor,
    error_response,
    image_response,
    text_response,
)

__all__ = [
    "FakeClock",
    "MockGeminiAPI",
    "RecordedRequest",
    "ScriptedProcessor",
    "error_response",
    "image_response",
    "text_response",
]
