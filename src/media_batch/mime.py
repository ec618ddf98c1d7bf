"""Static extension to MIME type mapping for media payloads."""

from pathlib import Path

# Audio extraction produces MP3, so unknown inputs are assumed to be MP3.
DEFAULT_MIME_TYPE = "audio/mpeg"
DEFAULT_IMAGE_EXTENSION = "png"

AUDIO_MIME_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "flac": "audio/flac",
    "m4a": "audio/mp4",
    "aac": "audio/aac",
    "wma": "audio/x-ms-wma",
    "webm": "audio/webm",
    "opus": "audio/opus",
    "aiff": "audio/aiff",
}

IMAGE_MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
    "gif": "image/gif",
    "heic": "image/heic",
    "heif": "image/heif",
}

MIME_TYPES = {**AUDIO_MIME_TYPES, **IMAGE_MIME_TYPES}

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/heic": "heic",
    "image/heif": "heif",
}


def mime_type_for_path(path: str | Path, default: str = DEFAULT_MIME_TYPE) -> str:
    """Return the MIME type for a file based on its extension (case-insensitive)."""
    extension = Path(path).suffix.lower().lstrip(".")
    return MIME_TYPES.get(extension, default)


def extension_for_mime_type(mime_type: str) -> str:
    """File extension for a generated artifact's MIME type; unknown types map to png."""
    return _EXTENSIONS.get(mime_type.lower().split(";")[0].strip(), DEFAULT_IMAGE_EXTENSION)
