"""Example: batch image generation and editing with Gemini image models.

Prompts are read from a JSON file shaped like:

    [
        {"name": "Red Fox", "prompt": "A red fox in fresh snow"},
        {"name": "Fox Watercolor", "prompt": "Make it a watercolor", "source": "fox.png"}
    ]

Entries with a "source" edit that image; the others generate from the prompt.
Requires GEMINI_API_KEY (or GOOGLE_AI_KEY).

Usage:
    python example_images.py prompts.json output_dir [2.5-flash|3pro] [size] [aspect_ratio]
"""

import asyncio
import json
import logging
import sys
from pathlib import Path

from media_batch import BatchConfig, BatchOrchestrator, ConfigError, GeminiClient, WorkItem, setup_logging
from media_batch.tasks import image_instructions, image_work_item, parse_generated_image

logger = logging.getLogger(__name__)


def load_items(
    prompts_file: Path,
    output_dir: Path,
    model: str,
    size: str | None,
    aspect_ratio: str | None,
) -> list[WorkItem]:
    entries = json.loads(prompts_file.read_text())
    return [
        image_work_item(
            entry["name"],
            entry["prompt"],
            model=model,
            size=size,
            aspect_ratio=aspect_ratio,
            source=prompts_file.parent / entry["source"] if entry.get("source") else None,
            output_dir=output_dir,
        )
        for entry in entries
    ]


async def generate_images(items: list[WorkItem]) -> None:
    async with GeminiClient.from_env() as client:
        process = client.work_item_processor(image_instructions, parse_generated_image)

        async def generate_and_save(item: WorkItem) -> Path:
            image = await process(item)
            path = image.save(item.output)
            logger.info(f"✓ Saved {item.item_id} to {path}")
            return path

        result = await BatchOrchestrator(BatchConfig(max_workers=2, launch_delay=5.0)).run(
            items,
            generate_and_save,
            output_exists=lambda item: item.output.exists(),
        )

    print(result.summary())


def main():
    setup_logging(verbosity=1)

    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(1)

    prompts_file, output_dir = Path(sys.argv[1]), Path(sys.argv[2])
    model = sys.argv[3] if len(sys.argv) > 3 else "2.5-flash"
    size = sys.argv[4] if len(sys.argv) > 4 else None
    aspect_ratio = sys.argv[5] if len(sys.argv) > 5 else None

    try:
        items = load_items(prompts_file, output_dir, model, size, aspect_ratio)
    except ConfigError as e:
        logger.error(f"✗ {e}")
        sys.exit(2)

    asyncio.run(generate_images(items))


if __name__ == "__main__":
    main()
