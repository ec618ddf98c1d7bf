"""Image generation and editing: models, size and aspect options, output naming."""

import hashlib
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from ..base import WorkItem
from ..client import GenerationInstructions, GenerationResult
from ..core.config import GenerationOptions
from ..mime import extension_for_mime_type
from ..responses import extract_inline_data
from ..strategies.errors import ConfigError

DEFAULT_ASPECT_RATIO = "1:1"
DEFAULT_IMAGE_SIZE = "1K"


class ImageModel(Enum):
    """Gemini image models."""

    FLASH = "gemini-2.5-flash-image"
    PRO = "gemini-3-pro-image-preview"

    @classmethod
    def parse(cls, value: str) -> "ImageModel":
        """Parse a model name or alias, case-insensitively."""
        normalized = value.strip().lower()
        if normalized in ("2.5-flash", "flash", cls.FLASH.value):
            return cls.FLASH
        if normalized in ("3pro", "3-pro", "pro", cls.PRO.value):
            return cls.PRO
        raise ConfigError(f"Unknown image model: {value!r}. Use '2.5-flash' or '3pro'.")

    @property
    def supports_image_config(self) -> bool:
        """Only Gemini 3 Pro accepts size and aspect ratio."""
        return self is ImageModel.PRO


class ImageSize(Enum):
    K1 = "1K"
    K2 = "2K"
    K4 = "4K"

    @classmethod
    def parse(cls, value: str) -> "ImageSize":
        """Parse '1K', '2K' or '4K' (uppercase K required by the API)."""
        for size in cls:
            if size.value == value:
                return size
        raise ConfigError(f"Invalid image size: {value!r}. Use 1K, 2K, or 4K (uppercase K).")


class AspectRatio(Enum):
    SQUARE = "1:1"
    WIDE = "16:9"
    TALL = "9:16"
    STANDARD = "4:3"
    PORTRAIT = "3:4"

    @classmethod
    def parse(cls, value: str) -> "AspectRatio":
        """Parse a ratio ('16:9') or its name ('wide')."""
        for ratio in cls:
            if value in (ratio.value, ratio.name.lower()):
                return ratio
        raise ConfigError(f"Invalid aspect ratio: {value!r}. Use 1:1, 16:9, 9:16, 4:3, or 3:4.")


def image_generation_config(
    model: ImageModel,
    size: ImageSize | None = None,
    aspect_ratio: AspectRatio | None = None,
) -> dict[str, Any] | None:
    """
    generationConfig for an image request.

    Gemini 2.5 Flash Image takes no generationConfig and rejects size or aspect
    options. Gemini 3 Pro gets both modalities and an imageConfig with defaults
    1:1 and 1K.
    """
    if not model.supports_image_config:
        if size is not None or aspect_ratio is not None:
            raise ConfigError(
                f"{model.value} does not support image size or aspect ratio. Use the '3pro' model."
            )
        return None

    return {
        "responseModalities": ["TEXT", "IMAGE"],
        "imageConfig": {
            "aspectRatio": aspect_ratio.value if aspect_ratio else DEFAULT_ASPECT_RATIO,
            "imageSize": size.value if size else DEFAULT_IMAGE_SIZE,
        },
    }


def image_options(
    model: str = "2.5-flash",
    size: str | None = None,
    aspect_ratio: str | None = None,
) -> GenerationOptions:
    """Validate and normalize image options into a GenerationOptions bag."""
    image_model = ImageModel.parse(model)
    parsed_size = ImageSize.parse(size) if size else None
    parsed_ratio = AspectRatio.parse(aspect_ratio) if aspect_ratio else None
    # Raises for size/aspect on a model that does not support them
    image_generation_config(image_model, parsed_size, parsed_ratio)
    return GenerationOptions(
        model=image_model.value,
        image_size=parsed_size.value if parsed_size else None,
        aspect_ratio=parsed_ratio.value if parsed_ratio else None,
    )


def image_instructions(item: WorkItem) -> GenerationInstructions:
    """Instructions for an image item; the item's prompt drives generation or the edit."""
    if not item.prompt.strip():
        raise ConfigError(f"Image item {item.item_id} has an empty prompt.")
    if not item.options.model:
        raise ConfigError(
            f"Image item {item.item_id} has no model. Build its options with image_options()."
        )
    model = ImageModel.parse(item.options.model)
    size = ImageSize.parse(item.options.image_size) if item.options.image_size else None
    ratio = AspectRatio.parse(item.options.aspect_ratio) if item.options.aspect_ratio else None
    return GenerationInstructions(
        prompt=item.prompt,
        generation_config=image_generation_config(model, size, ratio),
    )


@dataclass
class GeneratedImage:
    """Image returned in a response's inline data."""

    mime_type: str
    data: bytes

    @property
    def extension(self) -> str:
        return extension_for_mime_type(self.mime_type)

    def save(self, path: str | Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.data)
        return path


def parse_generated_image(result: GenerationResult | dict[str, Any]) -> GeneratedImage:
    """Pull the first inline image out of a response."""
    response = result.response if isinstance(result, GenerationResult) else result
    mime_type, data = extract_inline_data(response)
    return GeneratedImage(mime_type=mime_type, data=data)


def slugify(name: str) -> str:
    """Lowercase, with runs of non-alphanumerics collapsed to single dashes. Empty becomes 'image'."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "image"


def output_filename(name: str, prompt: str, extension: str) -> str:
    """'<slug>-<6 hex>.<ext>', where the hash covers name and prompt so reruns are stable."""
    digest = hashlib.blake2b(f"{name}{prompt}".encode()).hexdigest()[:6]
    return f"{slugify(name)}-{digest}.{extension}"


def image_work_item(
    name: str,
    prompt: str,
    *,
    model: str = "2.5-flash",
    size: str | None = None,
    aspect_ratio: str | None = None,
    source: str | Path | None = None,
    output_dir: str | Path | None = None,
) -> WorkItem:
    """
    Build a work item for image generation, or an edit when source is given.

    The output path assumes a PNG result, which is what both models return
    by default.
    """
    output = Path(output_dir) / output_filename(name, prompt, "png") if output_dir is not None else None
    return WorkItem(
        item_id=name,
        path=Path(source) if source is not None else None,
        prompt=prompt,
        options=image_options(model, size, aspect_ratio),
        output=output,
    )
