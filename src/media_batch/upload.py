"""Resumable upload protocol for payloads too large to send inline."""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .core.config import UploadConfig
from .core.protocols import ClockFunc, SleepFunc
from .observers import ProcessingEvent, ProcessorObserver, notify_observers
from .retry import RetryPolicy
from .strategies.errors import (
    InvalidResponseError,
    MissingUploadURLError,
    PayloadTooLargeError,
    ProcessingTimeoutError,
    UploadFailedError,
)
from .transport import TransportClient

logger = logging.getLogger(__name__)

UPLOAD_PATH = "upload/v1beta/files"
FILES_PATH = "v1beta/files"
UPLOAD_URL_HEADER = "x-goog-upload-url"


class FileState(str, Enum):
    """Lifecycle state reported by the Files API."""

    STATE_UNSPECIFIED = "STATE_UNSPECIFIED"
    PROCESSING = "PROCESSING"
    ACTIVE = "ACTIVE"
    FAILED = "FAILED"
    DELETED = "DELETED"


class UploadPhase(Enum):
    """Client-side progress through the upload protocol."""

    INITIATED = "initiated"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    ACTIVE = "active"
    FAILED = "failed"


class RemoteFile(BaseModel):
    """File handle returned by the Files API."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    uri: str = ""
    mime_type: str = Field(default="", alias="mimeType")
    size_bytes: int = Field(default=0, alias="sizeBytes")
    state: FileState = FileState.STATE_UNSPECIFIED
    display_name: str | None = Field(default=None, alias="displayName")
    error: dict[str, Any] | None = None

    @field_validator("state", mode="before")
    @classmethod
    def _tolerate_unknown_state(cls, value: Any) -> Any:
        if isinstance(value, str) and value not in FileState.__members__:
            return FileState.STATE_UNSPECIFIED
        return value

    @property
    def file_id(self) -> str:
        """Resource id without the 'files/' prefix."""
        return self.name.removeprefix("files/")

    @property
    def is_active(self) -> bool:
        return self.state is FileState.ACTIVE


@dataclass
class UploadSession:
    """Tracks one run of the upload protocol."""

    display_name: str
    mime_type: str
    size: int
    phase: UploadPhase = UploadPhase.INITIATED
    session_url: str | None = None
    remote_file: RemoteFile | None = None

    def advance(self, phase: UploadPhase) -> None:
        logger.debug(f"Upload {self.display_name}: {self.phase.value} -> {phase.value}")
        self.phase = phase


class FileUploader:
    """
    Upload payloads with the two-phase resumable protocol and wait until usable.

    Each network call (initiate, bytes, poll, delete) runs under its own retry
    budget. Only ACTIVE handles are ever returned from upload().
    """

    def __init__(
        self,
        transport: TransportClient,
        retry_policy: RetryPolicy | None = None,
        config: UploadConfig | None = None,
        observers: Sequence[ProcessorObserver] | None = None,
        sleep: SleepFunc | None = None,
        clock: ClockFunc | None = None,
    ):
        self.transport = transport
        self.retry_policy = retry_policy or RetryPolicy()
        self.config = config or UploadConfig()
        self.config.validate()
        self.observers = list(observers or [])
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or time.monotonic

    async def start_upload(self, size: int, mime_type: str, display_name: str) -> str:
        """
        Initiate a resumable upload session.

        Returns:
            The session URL to send the bytes to

        Raises:
            MissingUploadURLError: The response carried no x-goog-upload-url header
        """

        async def initiate() -> str:
            response = await self.transport.request(
                "POST",
                UPLOAD_PATH,
                headers={
                    "X-Goog-Upload-Protocol": "resumable",
                    "X-Goog-Upload-Command": "start",
                    "X-Goog-Upload-Header-Content-Length": str(size),
                    "X-Goog-Upload-Header-Content-Type": mime_type,
                },
                json={"file": {"display_name": display_name}},
            )
            session_url = response.headers.get(UPLOAD_URL_HEADER)
            if not session_url:
                raise MissingUploadURLError()
            return session_url

        return await self.retry_policy.run(initiate, description=f"initiate upload of {display_name}")

    async def upload_bytes(self, session_url: str, data: bytes, display_name: str = "") -> RemoteFile:
        """Send the whole payload to the session URL in one finalized transfer."""

        async def send() -> RemoteFile:
            response = await self.transport.request(
                "POST",
                session_url,
                headers={
                    "X-Goog-Upload-Offset": "0",
                    "X-Goog-Upload-Command": "upload, finalize",
                },
                content=data,
            )
            payload = response.json()
            if not isinstance(payload, dict) or not isinstance(payload.get("file"), dict):
                raise InvalidResponseError(f"Upload response has no 'file' object: {response.text[:200]!r}")
            return RemoteFile.model_validate(payload["file"])

        return await self.retry_policy.run(send, description=f"upload bytes of {display_name or 'payload'}")

    async def get_file(self, name: str, time_budget: float | None = None) -> RemoteFile:
        """
        Fetch the current state of an uploaded file ('files/abc' or 'abc').

        time_budget caps the seconds spent backing off between retries.
        """
        file_id = name.removeprefix("files/")

        async def fetch() -> RemoteFile:
            response = await self.transport.request("GET", f"{FILES_PATH}/{file_id}")
            return RemoteFile.model_validate(response.json())

        return await self.retry_policy.run(fetch, description=f"get file {file_id}", time_budget=time_budget)

    async def wait_until_active(
        self,
        name: str,
        cancel_event: asyncio.Event | None = None,
    ) -> RemoteFile:
        """
        Poll a file until it is ACTIVE.

        Raises:
            UploadFailedError: The service reported the file as FAILED
            ProcessingTimeoutError: The file was not ACTIVE within processing_timeout
            asyncio.CancelledError: cancel_event was set while waiting
        """
        timeout = self.config.processing_timeout
        deadline = self._clock() + timeout
        polls = 0

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise asyncio.CancelledError(f"Cancelled while waiting for {name} to become ACTIVE")

            remote = await self.get_file(name, time_budget=max(deadline - self._clock(), 0.0))
            polls += 1

            if remote.is_active:
                logger.debug(f"{name} is ACTIVE after {polls} poll(s)")
                return remote

            if remote.state is FileState.FAILED:
                reason = (remote.error or {}).get("message", "no reason given")
                raise UploadFailedError(f"File {name} failed processing: {reason}")

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise ProcessingTimeoutError(name, timeout)

            logger.debug(f"{name} is {remote.state.value}, polling again in {self.config.poll_interval:.1f}s")
            await self._sleep(min(self.config.poll_interval, remaining))

    async def upload(
        self,
        data: bytes,
        mime_type: str,
        display_name: str,
        cancel_event: asyncio.Event | None = None,
        session: UploadSession | None = None,
    ) -> RemoteFile:
        """
        Run the full protocol and return an ACTIVE handle.

        Once the bytes are uploaded, any failure or cancellation while waiting
        for ACTIVE deletes the file best-effort before the error is re-raised.

        Args:
            data: Payload bytes
            mime_type: Declared MIME type
            display_name: Name shown in the Files API
            cancel_event: Stops polling when set
            session: Optional tracker that records the protocol phase

        Raises:
            PayloadTooLargeError: Before any network call, when data exceeds max_payload_size
            ProtocolError: The protocol could not complete
            APIError: A call failed after its retry budget
        """
        if len(data) > self.config.max_payload_size:
            raise PayloadTooLargeError(len(data), self.config.max_payload_size)

        session = session or UploadSession(display_name=display_name, mime_type=mime_type, size=len(data))
        start_time = self._clock()
        await notify_observers(
            self.observers,
            ProcessingEvent.UPLOAD_STARTED,
            {"display_name": display_name, "size_bytes": len(data), "mime_type": mime_type},
        )
        logger.info(f"ℹ️  Uploading {display_name} ({len(data) / (1024 * 1024):.1f} MiB, {mime_type})")

        try:
            session.session_url = await self.start_upload(len(data), mime_type, display_name)

            session.advance(UploadPhase.UPLOADING)
            remote = await self.upload_bytes(session.session_url, data, display_name)
            session.remote_file = remote

            if not remote.is_active:
                session.advance(UploadPhase.PROCESSING)
                try:
                    remote = await self.wait_until_active(remote.name, cancel_event)
                except asyncio.CancelledError:
                    await asyncio.shield(self.delete_quietly(remote.name))
                    raise
                except Exception:
                    await self.delete_quietly(remote.name)
                    raise
                session.remote_file = remote

            session.advance(UploadPhase.ACTIVE)
        except Exception:
            session.advance(UploadPhase.FAILED)
            raise

        duration = self._clock() - start_time
        logger.info(f"✓ Uploaded {display_name} as {remote.name} in {duration:.1f}s")
        await notify_observers(
            self.observers,
            ProcessingEvent.UPLOAD_COMPLETED,
            {"display_name": display_name, "name": remote.name, "size_bytes": len(data), "duration": duration},
        )
        return remote

    async def delete_file(self, name: str) -> None:
        """Delete an uploaded file."""
        file_id = name.removeprefix("files/")

        async def delete() -> None:
            await self.transport.request("DELETE", f"{FILES_PATH}/{file_id}")

        await self.retry_policy.run(delete, description=f"delete file {file_id}")

    async def delete_quietly(self, name: str) -> bool:
        """Best-effort delete: failures are logged, never raised."""
        try:
            await self.delete_file(name)
        except Exception as e:
            logger.warning(f"⚠️  Failed to delete remote file {name}: {type(e).__name__}: {str(e)[:200]}")
            return False
        logger.debug(f"Deleted remote file {name}")
        return True
