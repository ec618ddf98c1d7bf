"""Audio transcription instructions and transcript parsing."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from ..base import WorkItem
from ..client import GenerationInstructions, GenerationResult
from ..responses import extract_text

TRANSCRIPTION_PROMPT = """Process the audio file and generate a detailed transcription.

Requirements:
1. Identify distinct speakers (e.g., Speaker 1, Speaker 2, or names if context allows).
2. Provide accurate timestamps for each segment (Format: MM:SS).
3. Detect the primary language of each segment.
4. If the segment is in a language different than English, also provide the English translation.
5. Identify the primary emotion of the speaker in this segment. You MUST choose exactly one of the following: Happy, Sad, Angry, Neutral.
6. Provide a brief summary of the entire audio at the beginning."""

TRANSCRIPT_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "summary": {
            "type": "STRING",
            "description": "A concise summary of the audio content.",
        },
        "segments": {
            "type": "ARRAY",
            "description": "List of transcribed segments with speaker and timestamp.",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "speaker": {"type": "STRING"},
                    "timestamp": {"type": "STRING"},
                    "content": {"type": "STRING"},
                    "language": {"type": "STRING"},
                    "language_code": {"type": "STRING"},
                    "translation": {"type": "STRING"},
                    "emotion": {
                        "type": "STRING",
                        "enum": ["happy", "sad", "angry", "neutral"],
                    },
                },
                "required": ["speaker", "timestamp", "content", "language", "language_code", "emotion"],
            },
        },
    },
    "required": ["summary", "segments"],
}


class Emotion(str, Enum):
    HAPPY = "happy"
    SAD = "sad"
    ANGRY = "angry"
    NEUTRAL = "neutral"

    @classmethod
    def _missing_(cls, value: object) -> "Emotion | None":
        # The model occasionally capitalizes despite the schema enum
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper())
        return None


class TranscriptSegment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    speaker: str
    timestamp: str
    content: str
    language: str
    language_code: str
    translation: str | None = None
    emotion: Emotion


class TranscriptResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    summary: str
    segments: list[TranscriptSegment]


def transcription_instructions(item: WorkItem | None = None) -> GenerationInstructions:
    """Prompt and JSON response schema for a transcription request (same for every item)."""
    return GenerationInstructions(
        prompt=TRANSCRIPTION_PROMPT,
        generation_config={
            "responseMimeType": "application/json",
            "responseSchema": TRANSCRIPT_SCHEMA,
        },
    )


def parse_transcript(result: GenerationResult | dict[str, Any]) -> TranscriptResponse:
    """
    Parse the JSON transcript carried in the response text.

    Raises:
        InvalidResponseError: The response has no text part
        pydantic.ValidationError: The text is not a transcript matching the schema
    """
    response = result.response if isinstance(result, GenerationResult) else result
    return TranscriptResponse.model_validate_json(extract_text(response))
