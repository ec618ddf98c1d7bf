"""Inline vs. uploaded payloads and generateContent request assembly."""

import base64
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .core.config import DEFAULT_INLINE_THRESHOLD, DEFAULT_MAX_PAYLOAD_SIZE
from .strategies.errors import PayloadTooLargeError, ProtocolError
from .upload import RemoteFile


class TransferMode(Enum):
    """How a payload reaches the service."""

    INLINE = "inline"
    UPLOAD = "upload"


@dataclass(frozen=True)
class Inline:
    """Bytes embedded directly in the request body (base64 on the wire)."""

    mime_type: str
    data: bytes


@dataclass(frozen=True)
class RemoteReference:
    """Reference to an uploaded file. Only ACTIVE files can be referenced."""

    file: RemoteFile

    def __post_init__(self):
        if not self.file.is_active:
            raise ProtocolError(
                f"Cannot reference {self.file.name} while it is {self.file.state.value}; "
                f"wait until the file is ACTIVE."
            )

    @property
    def mime_type(self) -> str:
        return self.file.mime_type

    @property
    def uri(self) -> str:
        return self.file.uri


PayloadSource = Inline | RemoteReference


def choose_transfer_mode(
    size: int,
    *,
    threshold: int = DEFAULT_INLINE_THRESHOLD,
    force_upload: bool = False,
) -> TransferMode:
    """Upload when forced or when size is at or above the inline threshold."""
    if force_upload or size >= threshold:
        return TransferMode.UPLOAD
    return TransferMode.INLINE


def check_payload_size(size: int, limit: int = DEFAULT_MAX_PAYLOAD_SIZE) -> None:
    """Reject payloads over the service's hard limit before any network call."""
    if size > limit:
        raise PayloadTooLargeError(size, limit)


def payload_part(payload: PayloadSource) -> dict[str, Any]:
    """Render a payload as a request part; the two variants use different field names."""
    if isinstance(payload, Inline):
        return {
            "inline_data": {
                "mime_type": payload.mime_type,
                "data": base64.b64encode(payload.data).decode("ascii"),
            }
        }
    if isinstance(payload, RemoteReference):
        return {
            "file_data": {
                "mime_type": payload.mime_type,
                "file_uri": payload.uri,
            }
        }
    raise TypeError(f"Unsupported payload type: {type(payload).__name__}")


def build_generate_request(
    prompt: str,
    payload: PayloadSource | None = None,
    generation_config: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build a generateContent request body.

    The prompt comes first, followed by the payload part when there is one.
    Text-only requests (payload=None) are used for image generation.
    """
    parts: list[dict[str, Any]] = [{"text": prompt}]
    if payload is not None:
        parts.append(payload_part(payload))

    body: dict[str, Any] = {"contents": [{"parts": parts}]}
    if generation_config:
        body["generationConfig"] = generation_config
    return body
