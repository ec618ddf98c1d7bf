"""Gemini generation client: payload strategy, upload, retry and transport for one request."""

import asyncio
import copy
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx

from .core.config import ClientConfig, GenerationOptions, load_api_key
from .core.protocols import ClockFunc, SleepFunc
from .mime import mime_type_for_path
from .observers import ProcessorObserver
from .payload import (
    Inline,
    PayloadSource,
    RemoteReference,
    TransferMode,
    build_generate_request,
    check_payload_size,
    choose_transfer_mode,
)
from .responses import extract_text, extract_usage
from .retry import RetryPolicy
from .strategies import ConfigError, ErrorClassifier, InvalidResponseError, RateLimitStrategy
from .transport import TransportClient
from .upload import FileUploader, RemoteFile

if TYPE_CHECKING:
    from .base import WorkItem

logger = logging.getLogger(__name__)


@dataclass
class GenerationInstructions:
    """
    Task-specific instructions placed into the request.

    Attributes:
        prompt: Text part sent ahead of the payload
        generation_config: generationConfig object (schema, modalities, image config)
    """

    prompt: str
    generation_config: dict[str, Any] | None = None


@dataclass
class GenerationResult:
    """
    Outcome of one successful generateContent call.

    Attributes:
        response: Decoded response body
        model: Model that produced it
        transfer_mode: How the payload was sent (None for text-only requests)
        remote_file: Uploaded file handle, when the payload was uploaded
        usage: Token usage (input_tokens, output_tokens, total_tokens, cached_input_tokens)
    """

    response: dict[str, Any]
    model: str
    transfer_mode: TransferMode | None = None
    remote_file: RemoteFile | None = None
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return extract_text(self.response)


def _model_path(model: str) -> str:
    return f"v1beta/models/{model.removeprefix('models/')}:generateContent"


def _merge_generation_config(
    base: dict[str, Any] | None, options: GenerationOptions
) -> dict[str, Any] | None:
    """Forward size/aspect options into generationConfig.imageConfig; explicit instructions win."""
    config = copy.deepcopy(base) if base else {}
    image_options = {}
    if options.image_size:
        image_options["imageSize"] = options.image_size
    if options.aspect_ratio:
        image_options["aspectRatio"] = options.aspect_ratio
    if image_options:
        image_config = config.setdefault("imageConfig", {})
        for key, value in image_options.items():
            image_config.setdefault(key, value)
    return config or None


class GeminiClient:
    """
    Client for the Gemini generateContent endpoint.

    Small payloads are embedded inline; large or forced payloads go through the
    resumable upload protocol and are referenced by URI. Uploaded files are
    deleted after the call unless the caller asks to keep them.

    Example:
        >>> async with GeminiClient.from_env() as client:
        ...     result = await client.generate(audio, "audio/mpeg", instructions)
        ...     print(result.text)
    """

    def __init__(
        self,
        api_key: str,
        config: ClientConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        observers: Sequence[ProcessorObserver] | None = None,
        error_classifier: ErrorClassifier | None = None,
        rate_limit_strategy: RateLimitStrategy | None = None,
        sleep: SleepFunc | None = None,
        clock: ClockFunc | None = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: Gemini API key
            config: Client configuration (default: ClientConfig())
            http_client: Shared httpx client (the caller keeps ownership)
            observers: Observers for retry and upload events
            error_classifier: Custom classifier for the retry policy
            rate_limit_strategy: Custom 429 delay schedule
            sleep: Awaitable sleep used for backoff and polling (tests inject a fake)
            clock: Monotonic clock used for polling deadlines (tests inject a fake)
        """
        self.config = config or ClientConfig()
        self.config.validate()

        self.transport = TransportClient(api_key, self.config.transport, http_client=http_client)
        self.retry_policy = RetryPolicy(
            self.config.retry,
            classifier=error_classifier,
            rate_limit_strategy=rate_limit_strategy,
            observers=observers,
            sleep=sleep,
        )
        self.uploader = FileUploader(
            self.transport,
            self.retry_policy,
            self.config.upload,
            observers=observers,
            sleep=sleep,
            clock=clock,
        )

    @classmethod
    def from_env(cls, config: ClientConfig | None = None, **kwargs: Any) -> "GeminiClient":
        """Build a client with the API key from GEMINI_API_KEY or GOOGLE_AI_KEY."""
        return cls(load_api_key(), config, **kwargs)

    async def _prepare_payload(
        self,
        data: bytes,
        mime_type: str,
        options: GenerationOptions,
        display_name: str,
        cancel_event: asyncio.Event | None,
    ) -> tuple[PayloadSource, TransferMode]:
        upload_config = self.config.upload
        check_payload_size(len(data), upload_config.max_payload_size)

        mode = choose_transfer_mode(
            len(data),
            threshold=upload_config.inline_threshold,
            force_upload=options.force_upload,
        )
        if mode is TransferMode.INLINE:
            return Inline(mime_type=mime_type, data=data), mode

        remote = await self.uploader.upload(data, mime_type, display_name, cancel_event=cancel_event)
        return RemoteReference(remote), mode

    async def generate(
        self,
        payload: bytes | None,
        mime_type: str | None,
        instructions: GenerationInstructions,
        options: GenerationOptions | None = None,
        *,
        display_name: str = "payload",
        cancel_event: asyncio.Event | None = None,
    ) -> GenerationResult:
        """
        Send one generation request.

        Args:
            payload: Media bytes, or None for a text-only request
            mime_type: MIME type of the payload
            instructions: Prompt and generationConfig for the task
            options: Per-request overrides
            display_name: Name for the uploaded file, when one is uploaded
            cancel_event: Stops upload polling when set

        Returns:
            GenerationResult with the decoded response

        Raises:
            PayloadTooLargeError: Before any network call, for oversize payloads
            ProtocolError: The upload protocol could not complete
            APIError: The request failed after its retry budget
        """
        options = options or GenerationOptions()
        model = options.model or self.config.model
        keep_remote = (
            options.keep_remote_file
            if options.keep_remote_file is not None
            else self.config.upload.keep_remote_file
        )

        source: PayloadSource | None = None
        mode: TransferMode | None = None
        remote_file: RemoteFile | None = None

        try:
            if payload is not None:
                if not mime_type:
                    raise ConfigError("mime_type is required when a payload is given")
                source, mode = await self._prepare_payload(
                    payload, mime_type, options, display_name, cancel_event
                )
                if isinstance(source, RemoteReference):
                    remote_file = source.file

            body = build_generate_request(
                instructions.prompt,
                source,
                _merge_generation_config(instructions.generation_config, options),
            )

            async def call() -> dict[str, Any]:
                response = await self.transport.request("POST", _model_path(model), json=body)
                decoded = response.json()
                if not isinstance(decoded, dict):
                    raise InvalidResponseError(f"Expected a JSON object from generateContent, got {type(decoded).__name__}")
                return decoded

            logger.debug(
                f"Generating with {model} for {display_name} "
                f"({mode.value if mode else 'text only'})"
            )
            response = await self.retry_policy.run(call, description=f"generate {display_name}")
        finally:
            # Shielded so a cancelled call still deletes its upload
            if remote_file is not None and not keep_remote:
                await asyncio.shield(self.uploader.delete_quietly(remote_file.name))

        return GenerationResult(
            response=response,
            model=model,
            transfer_mode=mode,
            remote_file=remote_file,
            usage=extract_usage(response),
        )

    async def generate_path(
        self,
        path: str | Path,
        instructions: GenerationInstructions,
        options: GenerationOptions | None = None,
        *,
        mime_type: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> GenerationResult:
        """Like generate(), reading the payload from a file after checking its size."""
        path = Path(path)
        check_payload_size(path.stat().st_size, self.config.upload.max_payload_size)
        data = await asyncio.to_thread(path.read_bytes)
        return await self.generate(
            data,
            mime_type or mime_type_for_path(path),
            instructions,
            options,
            display_name=path.name,
            cancel_event=cancel_event,
        )

    def work_item_processor(
        self,
        instructions_factory: Callable[["WorkItem"], GenerationInstructions] | None = None,
        parser: Callable[[GenerationResult], Any] | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Callable[["WorkItem"], Awaitable[Any]]:
        """
        Build a process function for BatchOrchestrator.run().

        Args:
            instructions_factory: Builds instructions per item (default: the item's prompt)
            parser: Turns a GenerationResult into the item's artifact (default: the result itself)
            cancel_event: Forwarded to upload polling

        Returns:
            Async function taking a WorkItem and returning its artifact
        """

        async def process(item: "WorkItem") -> Any:
            instructions = (
                instructions_factory(item)
                if instructions_factory is not None
                else GenerationInstructions(prompt=item.prompt)
            )
            if item.path is not None:
                result = await self.generate_path(
                    item.path,
                    instructions,
                    item.options,
                    mime_type=item.mime_type,
                    cancel_event=cancel_event,
                )
            else:
                result = await self.generate(
                    item.data,
                    item.mime_type,
                    instructions,
                    item.options,
                    display_name=item.item_id,
                    cancel_event=cancel_event,
                )
            return parser(result) if parser is not None else result

        return process

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> "GeminiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False
