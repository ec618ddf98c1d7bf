"""Configuration management for the Gemini client and batch orchestrator."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from ..strategies.errors import ConfigError
from ..strategies.rate_limit import DEFAULT_RATE_LIMIT_DELAYS

MiB = 1024 * 1024
GiB = 1024 * MiB

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"
DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_INLINE_THRESHOLD = 20 * MiB
DEFAULT_MAX_PAYLOAD_SIZE = 2 * GiB

API_KEY_ENV_VARS = ("GEMINI_API_KEY", "GOOGLE_AI_KEY")


def load_api_key(environ: Mapping[str, str] | None = None) -> str:
    """
    Read the API key from the environment.

    Checks GEMINI_API_KEY first, then GOOGLE_AI_KEY.

    Raises:
        ConfigError: If neither variable is set to a non-empty value
    """
    env = os.environ if environ is None else environ
    for name in API_KEY_ENV_VARS:
        value = env.get(name, "").strip()
        if value:
            return value
    raise ConfigError(
        f"{' or '.join(API_KEY_ENV_VARS)} environment variable is not set. "
        f"Export your Gemini API key before starting a run."
    )


@dataclass
class RetryConfig:
    """Configuration for retry behavior of individual API calls."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    rate_limit_delays: tuple[float, ...] = DEFAULT_RATE_LIMIT_DELAYS

    def validate(self) -> None:
        """Validate retry configuration."""
        if self.max_attempts < 1:
            raise ConfigError(
                f"max_attempts must be >= 1 (got {self.max_attempts}). "
                f"Set retry.max_attempts to a positive integer."
            )
        if self.base_delay < 0:
            raise ConfigError(
                f"base_delay must be >= 0 (got {self.base_delay}). "
                f"Set retry.base_delay to a non-negative number in seconds."
            )
        if self.max_delay < self.base_delay:
            raise ConfigError(
                f"max_delay must be >= base_delay (got max_delay={self.max_delay}, base_delay={self.base_delay}). "
                f"Set retry.max_delay to be at least as large as retry.base_delay."
            )
        if not self.rate_limit_delays:
            raise ConfigError(
                "rate_limit_delays must not be empty. "
                "Set retry.rate_limit_delays to an escalating sequence such as (30, 60, 90)."
            )
        if any(delay < 0 for delay in self.rate_limit_delays):
            raise ConfigError(
                f"rate_limit_delays must all be >= 0 (got {self.rate_limit_delays})."
            )


@dataclass
class TransportConfig:
    """Configuration for the shared HTTP transport."""

    base_url: str = DEFAULT_BASE_URL
    timeout: float = 600.0
    connect_timeout: float = 30.0

    def validate(self) -> None:
        """Validate transport configuration."""
        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigError(
                f"base_url must be an http(s) URL (got {self.base_url!r}). "
                f"Set transport.base_url to the Gemini API root."
            )
        if self.timeout <= 0:
            raise ConfigError(
                f"timeout must be > 0 (got {self.timeout}). "
                f"Set transport.timeout to a positive number in seconds (typical: 120-600)."
            )
        if self.connect_timeout <= 0:
            raise ConfigError(
                f"connect_timeout must be > 0 (got {self.connect_timeout}). "
                f"Set transport.connect_timeout to a positive number in seconds."
            )


@dataclass
class UploadConfig:
    """Configuration for choosing and running the resumable upload protocol."""

    inline_threshold: int = DEFAULT_INLINE_THRESHOLD
    max_payload_size: int = DEFAULT_MAX_PAYLOAD_SIZE
    poll_interval: float = 2.0
    processing_timeout: float = 300.0
    keep_remote_file: bool = False

    def validate(self) -> None:
        """Validate upload configuration."""
        if self.inline_threshold < 0:
            raise ConfigError(
                f"inline_threshold must be >= 0 (got {self.inline_threshold}). "
                f"Set upload.inline_threshold to a size in bytes (default: 20 MiB)."
            )
        if self.max_payload_size < self.inline_threshold:
            raise ConfigError(
                f"max_payload_size must be >= inline_threshold "
                f"(got max_payload_size={self.max_payload_size}, inline_threshold={self.inline_threshold})."
            )
        if self.poll_interval <= 0:
            raise ConfigError(
                f"poll_interval must be > 0 (got {self.poll_interval}). "
                f"Set upload.poll_interval to a positive number in seconds."
            )
        if self.processing_timeout <= 0:
            raise ConfigError(
                f"processing_timeout must be > 0 (got {self.processing_timeout}). "
                f"Set upload.processing_timeout to a positive number in seconds (default: 300)."
            )


@dataclass
class ClientConfig:
    """Complete configuration for a GeminiClient."""

    model: str = DEFAULT_MODEL

    transport: TransportConfig = field(default_factory=TransportConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    upload: UploadConfig = field(default_factory=UploadConfig)

    def validate(self) -> None:
        """Validate complete configuration."""
        if not self.model or not self.model.strip():
            raise ConfigError(
                "model must be a non-empty model identifier (e.g. 'gemini-2.5-flash')."
            )

        self.transport.validate()
        self.retry.validate()
        self.upload.validate()


@dataclass
class BatchConfig:
    """Configuration for the batch orchestrator."""

    max_workers: int = 2
    launch_delay: float = 5.0  # Minimum seconds between successive item launches

    # Progress reporting
    progress_interval: int = 1  # Report every N completed items

    def validate(self) -> None:
        """Validate batch configuration."""
        if self.max_workers < 1:
            raise ConfigError(
                f"max_workers must be >= 1 (got {self.max_workers}). "
                f"Set config.max_workers to a positive integer (typical: 2-8)."
            )
        if self.launch_delay < 0:
            raise ConfigError(
                f"launch_delay must be >= 0 (got {self.launch_delay}). "
                f"Set config.launch_delay to 0 to disable pacing or a positive number of seconds."
            )
        if self.progress_interval < 1:
            raise ConfigError(
                f"progress_interval must be >= 1 (got {self.progress_interval}). "
                f"Set config.progress_interval to a positive integer."
            )


@dataclass
class GenerationOptions:
    """
    Per-item overrides forwarded into a generation request.

    Attributes:
        model: Model identifier overriding ClientConfig.model
        image_size: Forwarded as generationConfig.imageConfig.imageSize
        aspect_ratio: Forwarded as generationConfig.imageConfig.aspectRatio
        force_upload: Use the resumable upload even for small payloads
        keep_remote_file: Keep the uploaded file on the server (None = client default)
    """

    model: str | None = None
    image_size: str | None = None
    aspect_ratio: str | None = None
    force_upload: bool = False
    keep_remote_file: bool | None = None
