"""Single HTTP calls against the Gemini REST API, classified into retry decisions."""

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from .core.config import TransportConfig
from .strategies.errors import APIError, ConfigError, InvalidResponseError, RetryDecision, classify_status

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-goog-api-key"
MAX_ERROR_TEXT = 500


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given either as delta-seconds or an HTTP date."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring unparseable Retry-After header: {value!r}")
        return None
    # HTTP dates are always GMT; a "-0000" zone parses as naive
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    return max(0.0, retry_at.timestamp() - time.time())


def _error_text(body: bytes) -> str:
    """Pull the human-readable message out of a Google error body, falling back to raw text."""
    text = body.decode("utf-8", errors="replace")
    try:
        payload = json.loads(text)
    except ValueError:
        return text[:MAX_ERROR_TEXT]
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        error = payload["error"]
        status = error.get("status")
        message = error.get("message") or text
        return (f"{status}: {message}" if status else str(message))[:MAX_ERROR_TEXT]
    return text[:MAX_ERROR_TEXT]


@dataclass
class TransportResponse:
    """
    Outcome of a single HTTP call.

    Attributes:
        method: HTTP method that was sent
        url: Target URL
        decision: Classification of the outcome
        status_code: HTTP status, or None when no response was received
        headers: Response headers (empty when no response was received)
        content: Raw response body
        retry_after: Server-provided retry hint in seconds (429 only)
        error: Diagnostic text for non-success outcomes
    """

    method: str
    url: str
    decision: RetryDecision
    status_code: int | None = None
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    content: bytes = b""
    retry_after: float | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.decision is RetryDecision.SUCCESS

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON, raising InvalidResponseError on a malformed body."""
        try:
            return json.loads(self.content)
        except ValueError as e:
            raise InvalidResponseError(
                f"{self.method} {self.url} returned a body that is not valid JSON: {self.text[:200]!r}"
            ) from e

    def raise_for_decision(self) -> "TransportResponse":
        """Return self on success, otherwise raise an APIError carrying the classification."""
        if self.ok:
            return self
        raise APIError(
            decision=self.decision,
            status_code=self.status_code,
            message=self.error or f"{self.method} {self.url} failed",
            retry_after=self.retry_after,
        )


class TransportClient:
    """
    Thin wrapper around a shared httpx.AsyncClient.

    send() never raises for HTTP or network failures; it returns a classified
    TransportResponse instead. The client keeps no per-request state and is safe
    to share between concurrent workers.
    """

    def __init__(
        self,
        api_key: str,
        config: TransportConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the transport.

        Args:
            api_key: Gemini API key, sent as the x-goog-api-key header
            config: Transport configuration (base URL and timeouts)
            http_client: Pre-built client to share (the caller keeps ownership)
        """
        if not api_key or not api_key.strip():
            raise ConfigError("api_key must be a non-empty string. Set GEMINI_API_KEY or GOOGLE_AI_KEY.")

        self.config = config or TransportConfig()
        self.config.validate()
        self._api_key = api_key.strip()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=self._timeout(self.config.timeout),
            follow_redirects=True,
        )

    def _timeout(self, seconds: float) -> httpx.Timeout:
        return httpx.Timeout(seconds, connect=min(seconds, self.config.connect_timeout))

    def url(self, path: str) -> str:
        """Resolve an API path against the base URL; absolute URLs pass through unchanged."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"

    async def send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        content: bytes | None = None,
        json: Any = None,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> TransportResponse:
        """
        Issue one HTTP request and classify the outcome.

        Args:
            method: HTTP method
            url: API path (joined with the base URL) or absolute URL
            headers: Extra request headers
            content: Raw request body
            json: JSON request body
            params: Query parameters
            timeout: Deadline for this call in seconds (default: TransportConfig.timeout)

        Returns:
            TransportResponse with the decision, status, headers and body
        """
        target = self.url(url)
        request_headers = {API_KEY_HEADER: self._api_key}
        if headers:
            request_headers.update(headers)

        logger.debug(f"{method} {target}")
        try:
            response = await self._client.request(
                method,
                target,
                headers=request_headers,
                content=content,
                json=json,
                params=params,
                timeout=self._timeout(timeout if timeout is not None else self.config.timeout),
            )
        except httpx.TimeoutException as e:
            logger.debug(f"⏱ {method} {target} timed out: {type(e).__name__}")
            return TransportResponse(
                method=method,
                url=target,
                decision=RetryDecision.RETRYABLE_TRANSIENT,
                error=f"Request timed out ({type(e).__name__})",
            )
        except httpx.TransportError as e:
            logger.debug(f"{method} {target} failed without a response: {type(e).__name__}: {e}")
            return TransportResponse(
                method=method,
                url=target,
                decision=RetryDecision.RETRYABLE_TRANSIENT,
                error=f"Connection failed ({type(e).__name__}: {e})",
            )

        decision = classify_status(response.status_code)
        result = TransportResponse(
            method=method,
            url=target,
            decision=decision,
            status_code=response.status_code,
            headers=response.headers,
            content=response.content,
        )
        if decision is RetryDecision.RETRYABLE_RATE_LIMITED:
            result.retry_after = parse_retry_after(response.headers.get("retry-after"))
        if decision is not RetryDecision.SUCCESS:
            result.error = _error_text(response.content) or response.reason_phrase
            logger.debug(f"{method} {target} -> HTTP {response.status_code}: {result.error[:200]}")
        return result

    async def request(self, method: str, url: str, **kwargs: Any) -> TransportResponse:
        """Like send(), but raise APIError for any non-success outcome."""
        response = await self.send(method, url, **kwargs)
        return response.raise_for_decision()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "TransportClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False
