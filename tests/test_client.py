"""Tests for GeminiClient: transfer mode selection, cleanup and retries end to end."""

import asyncio
import base64

import httpx
import pytest

from media_batch import (
    APIError,
    ClientConfig,
    ConfigError,
    GeminiClient,
    GenerationInstructions,
    GenerationOptions,
    MetricsObserver,
    PayloadTooLargeError,
    ProcessingTimeoutError,
    RetryConfig,
    TransferMode,
    UploadConfig,
    WorkItem,
)
from media_batch.testing import FakeClock, MockGeminiAPI, text_response

INSTRUCTIONS = GenerationInstructions(prompt="Transcribe this")


def small_upload_config(**kwargs) -> ClientConfig:
    """Threshold of 1 KiB so tests can exercise uploads with small payloads."""
    return ClientConfig(upload=UploadConfig(inline_threshold=1024, max_payload_size=4096, **kwargs))


@pytest.mark.asyncio
async def test_small_payload_sent_inline():
    """Test that a payload under the threshold is embedded, with no upload calls."""
    api = MockGeminiAPI(generate_response=text_response("hello"))
    async with api.client(small_upload_config()) as client:
        result = await client.generate(b"abc", "audio/mpeg", INSTRUCTIONS)

    assert result.text == "hello"
    assert result.transfer_mode is TransferMode.INLINE
    assert result.remote_file is None
    assert api.calls("initiate") == []

    body = api.calls("generate")[0].json()
    parts = body["contents"][0]["parts"]
    assert parts[0] == {"text": "Transcribe this"}
    assert base64.b64decode(parts[1]["inline_data"]["data"]) == b"abc"


@pytest.mark.asyncio
async def test_large_payload_uploaded_and_referenced():
    """Test that a payload at the threshold is uploaded, polled, referenced and then deleted."""
    api = MockGeminiAPI(file_states=["PROCESSING", "ACTIVE"])
    clock = FakeClock()
    async with api.client(small_upload_config(), clock=clock) as client:
        result = await client.generate(b"x" * 1024, "audio/wav", INSTRUCTIONS, display_name="talk.wav")

    assert result.transfer_mode is TransferMode.UPLOAD
    assert result.remote_file.name == "files/file-1"
    assert len(api.calls("get_file")) == 2

    parts = api.calls("generate")[0].json()["contents"][0]["parts"]
    assert parts[1] == {"file_data": {"mime_type": "audio/wav", "file_uri": result.remote_file.uri}}

    # generate happens strictly after the file is ACTIVE
    endpoints = [r.endpoint for r in api.requests]
    assert endpoints == ["initiate", "upload", "get_file", "get_file", "generate", "delete"]
    assert api.deleted == ["files/file-1"]


@pytest.mark.asyncio
async def test_force_upload_for_small_payload():
    """Test that the override uploads a payload that would fit inline."""
    api = MockGeminiAPI()
    async with api.client(small_upload_config()) as client:
        result = await client.generate(
            b"tiny", "audio/mpeg", INSTRUCTIONS, GenerationOptions(force_upload=True)
        )

    assert result.transfer_mode is TransferMode.UPLOAD
    assert len(api.calls("initiate")) == 1


@pytest.mark.asyncio
async def test_keep_remote_file_skips_delete():
    """Test that keep_remote_file leaves the uploaded file in place."""
    api = MockGeminiAPI()
    async with api.client(small_upload_config()) as client:
        await client.generate(
            b"tiny", "audio/mpeg", INSTRUCTIONS, GenerationOptions(force_upload=True, keep_remote_file=True)
        )
    assert api.deleted == []

    api = MockGeminiAPI()
    async with api.client(small_upload_config(keep_remote_file=True)) as client:
        await client.generate(b"x" * 2048, "audio/mpeg", INSTRUCTIONS)
    assert api.deleted == []


@pytest.mark.asyncio
async def test_remote_file_deleted_when_generate_fails():
    """Test that cleanup runs even if generation fails after the upload."""
    api = MockGeminiAPI()
    api.script("generate", 400)
    async with api.client(small_upload_config()) as client:
        with pytest.raises(APIError):
            await client.generate(b"x" * 2048, "audio/mpeg", INSTRUCTIONS)

    assert api.deleted == ["files/file-1"]


@pytest.mark.asyncio
async def test_remote_file_deleted_when_generate_cancelled():
    """Test that cancelling the caller mid-generate still deletes the uploaded file."""
    api = MockGeminiAPI(latency=0.05)
    async with api.client() as client:
        task = asyncio.ensure_future(
            client.generate(b"tiny", "audio/mpeg", INSTRUCTIONS, GenerationOptions(force_upload=True))
        )

        async def generate_started() -> None:
            while not api.calls("generate"):
                await asyncio.sleep(0.005)

        await asyncio.wait_for(generate_started(), timeout=5.0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    assert api.deleted == ["files/file-1"]


@pytest.mark.asyncio
async def test_oversize_payload_rejected_before_any_request():
    """Test that a payload over the hard limit never reaches the network."""
    api = MockGeminiAPI()
    async with api.client(small_upload_config()) as client:
        with pytest.raises(PayloadTooLargeError):
            await client.generate(b"x" * 4097, "audio/mpeg", INSTRUCTIONS)
    assert api.requests == []


@pytest.mark.asyncio
async def test_processing_timeout_means_no_generate_call():
    """Test that a file stuck in PROCESSING fails the item without calling generate."""
    api = MockGeminiAPI(file_states=["PROCESSING"])
    config = ClientConfig(
        upload=UploadConfig(inline_threshold=1024, max_payload_size=4096, poll_interval=1.0, processing_timeout=3.0)
    )
    async with api.client(config) as client:
        with pytest.raises(ProcessingTimeoutError):
            await client.generate(b"x" * 2048, "audio/mpeg", INSTRUCTIONS)

    assert api.calls("generate") == []
    assert api.deleted == ["files/file-1"]


@pytest.mark.asyncio
async def test_transient_generate_error_is_retried():
    """Test 503 then 200 on generate: success after one backoff sleep."""
    api = MockGeminiAPI(generate_response=text_response("done"))
    api.script("generate", 503)
    clock = FakeClock()
    metrics = MetricsObserver()
    config = ClientConfig(retry=RetryConfig(max_attempts=3, base_delay=1.0))

    async with api.client(config, clock=clock, observers=[metrics]) as client:
        result = await client.generate(b"abc", "audio/mpeg", INSTRUCTIONS)

    assert result.text == "done"
    assert len(api.calls("generate")) == 2
    assert clock.sleeps == [1.0]
    assert (await metrics.get_metrics())["retries_scheduled"] == 1


@pytest.mark.asyncio
async def test_connection_error_is_retried():
    """Test that a dropped connection is retried like any transient failure."""
    api = MockGeminiAPI()
    api.script("generate", httpx.ConnectError("connection reset"))
    clock = FakeClock()
    async with api.client(clock=clock) as client:
        result = await client.generate(b"abc", "audio/mpeg", INSTRUCTIONS)

    assert result.text == "ok"
    assert clock.sleeps == [1.0]


@pytest.mark.asyncio
async def test_rate_limited_generate_waits_escalating_delays():
    """Test that 429s on generate sleep 30 then 60 seconds."""
    api = MockGeminiAPI()
    api.script("generate", 429, 429)
    clock = FakeClock()
    async with api.client(clock=clock) as client:
        await client.generate(b"abc", "audio/mpeg", INSTRUCTIONS)

    assert clock.sleeps == [30.0, 60.0]


@pytest.mark.asyncio
async def test_model_selection_and_usage():
    """Test per-request model override and token usage extraction."""
    usage = {"promptTokenCount": 10, "candidatesTokenCount": 5, "totalTokenCount": 15}
    api = MockGeminiAPI(generate_response=text_response("hi", usage=usage))
    async with api.client() as client:
        result = await client.generate(
            None, None, GenerationInstructions(prompt="Say hi"), GenerationOptions(model="models/gemini-2.5-pro")
        )

    assert api.calls("generate")[0].url.endswith("/v1beta/models/gemini-2.5-pro:generateContent")
    assert result.model == "models/gemini-2.5-pro"
    assert result.transfer_mode is None
    assert result.usage == {"input_tokens": 10, "output_tokens": 5, "total_tokens": 15, "cached_input_tokens": 0}


@pytest.mark.asyncio
async def test_image_options_merge_into_generation_config():
    """Test that size and aspect options land in imageConfig without overriding instructions."""
    api = MockGeminiAPI()
    instructions = GenerationInstructions(
        prompt="A fox",
        generation_config={"responseModalities": ["TEXT", "IMAGE"], "imageConfig": {"imageSize": "2K"}},
    )
    async with api.client() as client:
        await client.generate(
            None, None, instructions, GenerationOptions(image_size="4K", aspect_ratio="16:9")
        )

    config = api.calls("generate")[0].json()["generationConfig"]
    assert config["imageConfig"] == {"imageSize": "2K", "aspectRatio": "16:9"}
    # Instructions are not mutated
    assert instructions.generation_config["imageConfig"] == {"imageSize": "2K"}


@pytest.mark.asyncio
async def test_payload_without_mime_type_rejected():
    """Test that bytes without a MIME type are a configuration error."""
    api = MockGeminiAPI()
    async with api.client() as client:
        with pytest.raises(ConfigError):
            await client.generate(b"abc", None, INSTRUCTIONS)
    assert api.requests == []


@pytest.mark.asyncio
async def test_generate_path_reads_file_and_maps_mime(tmp_path):
    """Test that generate_path detects the MIME type from the extension."""
    audio = tmp_path / "meeting.M4A"
    audio.write_bytes(b"audio-bytes")
    api = MockGeminiAPI()
    async with api.client() as client:
        await client.generate_path(audio, INSTRUCTIONS)

    part = api.calls("generate")[0].json()["contents"][0]["parts"][1]
    assert part["inline_data"]["mime_type"] == "audio/mp4"


@pytest.mark.asyncio
async def test_generate_path_checks_size_before_reading(tmp_path):
    """Test that an oversize file is rejected from its size alone."""
    audio = tmp_path / "huge.mp3"
    audio.write_bytes(b"x" * 5000)
    api = MockGeminiAPI()
    async with api.client(small_upload_config()) as client:
        with pytest.raises(PayloadTooLargeError):
            await client.generate_path(audio, INSTRUCTIONS)
    assert api.requests == []


@pytest.mark.asyncio
async def test_work_item_processor_uses_item_prompt_and_parser():
    """Test the process function built for the orchestrator."""
    api = MockGeminiAPI(generate_response=text_response("parsed"))
    async with api.client() as client:
        process = client.work_item_processor(parser=lambda result: result.text.upper())
        output = await process(WorkItem(item_id="a", data=b"abc", mime_type="audio/mpeg", prompt="Describe"))

    assert output == "PARSED"
    parts = api.calls("generate")[0].json()["contents"][0]["parts"]
    assert parts[0] == {"text": "Describe"}


def test_from_env_requires_key(monkeypatch):
    """Test that a missing credential fails at construction."""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_AI_KEY", raising=False)
    with pytest.raises(ConfigError):
        GeminiClient.from_env()


def test_invalid_config_rejected_at_construction():
    """Test that the client validates its configuration."""
    with pytest.raises(ConfigError):
        GeminiClient("key", ClientConfig(retry=RetryConfig(max_attempts=0)))
