"""Example usage of the media_batch module.

This demonstrates transcribing a directory of audio files through Gemini with
bounded concurrency, launch pacing and skip-if-done, plus a run against the
in-memory fake API that needs no API key.
"""

import asyncio
import json
import logging
import sys
from pathlib import Path

from media_batch import (
    BatchConfig,
    BatchOrchestrator,
    ClientConfig,
    GeminiClient,
    MetricsObserver,
    RetryConfig,
    WorkItem,
    setup_logging,
)
from media_batch.tasks import TranscriptResponse, parse_transcript, transcription_instructions
from media_batch.testing import MockGeminiAPI, text_response

AUDIO_EXTENSIONS = {".mp3", ".wav", ".m4a", ".flac", ".ogg", ".aac", ".webm", ".opus"}


def transcript_path(audio: Path) -> Path:
    return audio.with_suffix(".json")


def audio_work_items(directory: Path) -> list[WorkItem]:
    """One work item per audio file, writing <name>.json next to it."""
    return [
        WorkItem(item_id=path.name, path=path, output=transcript_path(path))
        for path in sorted(directory.iterdir())
        if path.suffix.lower() in AUDIO_EXTENSIONS
    ]


async def example_transcribe_directory(directory: Path):
    """
    Example 1: Transcribe every audio file in a directory.

    Requires GEMINI_API_KEY (or GOOGLE_AI_KEY). Files that already have a
    transcript are skipped, so the example can be re-run after a failure.
    """
    logging.info("=" * 80)
    logging.info("EXAMPLE 1: Transcribe a directory")
    logging.info("=" * 80)

    items = audio_work_items(directory)
    if not items:
        logging.warning(f"No audio files found in {directory}")
        return

    metrics = MetricsObserver()

    async with GeminiClient.from_env(observers=[metrics]) as client:
        process = client.work_item_processor(transcription_instructions, parse_transcript)

        async def transcribe_and_save(item: WorkItem) -> Path:
            transcript: TranscriptResponse = await process(item)
            item.output.write_text(transcript.model_dump_json(indent=2))
            return item.output

        orchestrator = BatchOrchestrator(
            BatchConfig(max_workers=2, launch_delay=5.0),
            observers=[metrics],
        )
        result = await orchestrator.run(
            items,
            transcribe_and_save,
            output_exists=lambda item: item.output.exists(),
        )

    print(result.summary())
    print(await metrics.export_json())


async def example_testing_with_mocks():
    """
    Example 2: Run a batch against MockGeminiAPI (no real API calls).

    The fake API fails the first generate call with a 503 and rate limits the
    second, so the retry schedule shows up in the metrics. Sleeps go through a
    fake clock, so the example finishes instantly.
    """
    logging.info("\n" + "=" * 80)
    logging.info("EXAMPLE 2: Testing with MockGeminiAPI")
    logging.info("=" * 80)

    transcript = {
        "summary": "A short greeting.",
        "segments": [
            {
                "speaker": "Speaker 1",
                "timestamp": "00:00",
                "content": "Hello there.",
                "language": "English",
                "language_code": "en",
                "emotion": "happy",
            }
        ],
    }
    api = MockGeminiAPI(generate_response=text_response(json.dumps(transcript)))
    api.script("generate", 503, 429)

    metrics = MetricsObserver()
    items = [
        WorkItem(item_id=f"clip_{i}.mp3", data=b"fake audio", mime_type="audio/mpeg")
        for i in range(5)
    ]

    config = ClientConfig(retry=RetryConfig(max_attempts=4, rate_limit_delays=(30.0, 60.0)))
    async with api.client(config, observers=[metrics]) as client:
        result = await BatchOrchestrator(
            BatchConfig(max_workers=2, launch_delay=0.1),
            observers=[metrics],
        ).run(items, client.work_item_processor(transcription_instructions, parse_transcript))

    print(result.summary())
    collected = await metrics.get_metrics()
    logging.info(f"Retries scheduled: {collected['retries_scheduled']}")
    logging.info(f"Rate limits hit: {collected['rate_limits_hit']}")
    logging.info(f"Simulated backoff: {collected['total_backoff_time']:.0f}s")
    logging.info(f"Generate calls: {len(api.calls('generate'))}")


async def main():
    """Run the examples."""
    setup_logging(verbosity=1)

    # This one can be run without an API key:
    await example_testing_with_mocks()

    if len(sys.argv) > 1:
        await example_transcribe_directory(Path(sys.argv[1]))
    else:
        logging.info("\nPass a directory of audio files to also run Example 1 against the real API.")


if __name__ == "__main__":
    asyncio.run(main())
