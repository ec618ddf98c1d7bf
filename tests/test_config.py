"""Tests for configuration validation and credential loading."""

import pytest

from media_batch import (
    BatchConfig,
    ClientConfig,
    ConfigError,
    RetryConfig,
    TransportConfig,
    UploadConfig,
    load_api_key,
)
from media_batch.core.config import DEFAULT_INLINE_THRESHOLD, DEFAULT_MAX_PAYLOAD_SIZE
from media_batch.logging_utils import level_for_verbosity


def test_defaults_are_valid():
    """Test that default configs validate and carry the documented defaults."""
    config = ClientConfig()
    config.validate()

    assert config.model == "gemini-2.5-flash"
    assert config.retry.max_attempts == 3
    assert config.retry.rate_limit_delays == (30.0, 60.0, 90.0)
    assert config.transport.timeout == 600.0
    assert config.upload.inline_threshold == DEFAULT_INLINE_THRESHOLD == 20 * 1024 * 1024
    assert config.upload.max_payload_size == DEFAULT_MAX_PAYLOAD_SIZE == 2 * 1024**3
    assert config.upload.poll_interval == 2.0
    assert config.upload.processing_timeout == 300.0

    batch = BatchConfig()
    batch.validate()
    assert batch.max_workers == 2
    assert batch.launch_delay == 5.0


@pytest.mark.parametrize(
    "config",
    [
        RetryConfig(max_attempts=0),
        RetryConfig(base_delay=-1.0),
        RetryConfig(base_delay=10.0, max_delay=5.0),
        RetryConfig(rate_limit_delays=()),
        RetryConfig(rate_limit_delays=(30.0, -1.0)),
        TransportConfig(base_url="ftp://example.com"),
        TransportConfig(timeout=0),
        UploadConfig(inline_threshold=-1),
        UploadConfig(inline_threshold=100, max_payload_size=10),
        UploadConfig(poll_interval=0),
        UploadConfig(processing_timeout=0),
        BatchConfig(max_workers=0),
        BatchConfig(launch_delay=-0.5),
        BatchConfig(progress_interval=0),
    ],
)
def test_invalid_config_raises(config):
    """Test that each invalid setting raises ConfigError."""
    with pytest.raises(ConfigError):
        config.validate()


def test_config_error_is_value_error():
    """Test that ConfigError can be caught as ValueError."""
    with pytest.raises(ValueError, match="max_workers must be >= 1"):
        BatchConfig(max_workers=0).validate()


def test_client_config_validates_nested():
    """Test that ClientConfig.validate() checks nested configs."""
    config = ClientConfig(retry=RetryConfig(max_attempts=0))
    with pytest.raises(ConfigError, match="max_attempts"):
        config.validate()

    with pytest.raises(ConfigError, match="model"):
        ClientConfig(model="  ").validate()


def test_load_api_key_prefers_gemini_key():
    """Test that GEMINI_API_KEY wins over GOOGLE_AI_KEY."""
    env = {"GEMINI_API_KEY": "gemini", "GOOGLE_AI_KEY": "google"}
    assert load_api_key(env) == "gemini"


def test_load_api_key_falls_back_to_google_key():
    """Test the GOOGLE_AI_KEY fallback and whitespace trimming."""
    assert load_api_key({"GEMINI_API_KEY": "", "GOOGLE_AI_KEY": " google "}) == "google"


def test_load_api_key_missing_raises():
    """Test that a missing credential is a fatal config error."""
    with pytest.raises(ConfigError, match="GEMINI_API_KEY"):
        load_api_key({})


def test_load_api_key_reads_process_environment(monkeypatch):
    """Test that the process environment is used by default."""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.setenv("GOOGLE_AI_KEY", "from-env")
    assert load_api_key() == "from-env"


def test_level_for_verbosity():
    """Test verbosity to log level mapping."""
    import logging

    assert level_for_verbosity(0) == logging.WARNING
    assert level_for_verbosity(1) == logging.INFO
    assert level_for_verbosity(2) == logging.DEBUG
    assert level_for_verbosity(5) == logging.DEBUG
