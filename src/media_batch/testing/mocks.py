"""In-memory fake of the Gemini REST API, clock and process functions for testing."""

import asyncio
import base64
import json
from collections import defaultdict, deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

import httpx

from ..core.config import DEFAULT_BASE_URL, ClientConfig

UPLOAD_SESSION_BASE = "https://upload.test/session"

# Endpoint names accepted by MockGeminiAPI.script()
ENDPOINTS = ("initiate", "upload", "get_file", "delete", "generate")


def text_response(text: str, usage: dict[str, int] | None = None) -> dict[str, Any]:
    """generateContent body carrying one text part."""
    body: dict[str, Any] = {
        "candidates": [{"content": {"role": "model", "parts": [{"text": text}]}, "finishReason": "STOP"}]
    }
    if usage is not None:
        body["usageMetadata"] = usage
    return body


def image_response(data: bytes, mime_type: str = "image/png", text: str | None = None) -> dict[str, Any]:
    """generateContent body carrying an inline image (and optionally a text part first)."""
    parts: list[dict[str, Any]] = []
    if text is not None:
        parts.append({"text": text})
    parts.append({"inlineData": {"mimeType": mime_type, "data": base64.b64encode(data).decode("ascii")}})
    return {"candidates": [{"content": {"role": "model", "parts": parts}, "finishReason": "STOP"}]}


def error_response(status_code: int, message: str = "", headers: dict[str, str] | None = None) -> httpx.Response:
    """Google-style error response."""
    body = {"error": {"code": status_code, "message": message or f"HTTP {status_code}", "status": "ERROR"}}
    return httpx.Response(status_code, json=body, headers=headers)


class FakeClock:
    """
    Monotonic clock whose sleep() advances time instantly and records each delay.

    Pass clock.sleep as the sleep function and the clock itself as the clock function.
    """

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)

    @property
    def total_slept(self) -> float:
        return sum(self.sleeps)


@dataclass
class RecordedRequest:
    """One request seen by MockGeminiAPI."""

    endpoint: str
    method: str
    url: str
    headers: httpx.Headers
    body: bytes

    def json(self) -> Any:
        return json.loads(self.body)


class MockGeminiAPI:
    """
    Scriptable fake of the generateContent and Files endpoints, served via httpx.MockTransport.

    Each endpoint first consumes responses queued with script(); once its queue
    is empty it falls back to default behavior: initiate returns a session URL,
    upload returns a file in upload_state, each get_file poll walks through
    file_states (repeating the last one), delete succeeds, and generate returns
    generate_response.

    Scripted entries can be an int (error status), a dict (200 JSON body), an
    httpx.Response, or an exception instance to raise (e.g. httpx.ConnectError).

    Example:
        >>> api = MockGeminiAPI(file_states=["PROCESSING", "PROCESSING", "ACTIVE"])
        >>> api.script("generate", 503, 503)
        >>> async with api.client() as client:
        ...     result = await client.generate(b"...", "audio/mpeg", instructions)
    """

    def __init__(
        self,
        generate_response: dict[str, Any] | Callable[[dict[str, Any]], Any] | None = None,
        file_states: Iterable[str] = ("ACTIVE",),
        upload_state: str = "PROCESSING",
        latency: float = 0.0,
        include_upload_url: bool = True,
    ):
        """
        Initialize the fake API.

        Args:
            generate_response: Default generate body, or a function of the request JSON
            file_states: State reported by the first, second, ... poll of an uploaded file
            upload_state: State carried by the upload response itself
            latency: Seconds to await before answering each request
            include_upload_url: When False, initiate omits the x-goog-upload-url header
        """
        self.generate_response = generate_response or text_response("ok")
        self.file_states = list(file_states) or ["ACTIVE"]
        self.upload_state = upload_state
        self.latency = latency
        self.include_upload_url = include_upload_url
        self.requests: list[RecordedRequest] = []
        self.files: dict[str, dict[str, Any]] = {}
        self.deleted: list[str] = []
        self._scripted: dict[str, deque] = defaultdict(deque)
        self._polls: dict[str, int] = defaultdict(int)
        self._sessions: dict[str, dict[str, str]] = {}
        self._file_counter = 0

    def script(self, endpoint: str, *responses: Any) -> "MockGeminiAPI":
        """Queue responses for an endpoint, consumed before its default behavior."""
        if endpoint not in ENDPOINTS:
            raise ValueError(f"Unknown endpoint {endpoint!r}; expected one of {ENDPOINTS}")
        self._scripted[endpoint].extend(responses)
        return self

    def calls(self, endpoint: str) -> list[RecordedRequest]:
        return [r for r in self.requests if r.endpoint == endpoint]

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def client(self, config: ClientConfig | None = None, clock: FakeClock | None = None, **kwargs: Any):
        """GeminiClient wired to this fake; sleeps and the clock go through clock (a FakeClock)."""
        from ..client import GeminiClient

        clock = clock or FakeClock()
        return GeminiClient(
            "test-key",
            config,
            http_client=self.http_client(),
            sleep=clock.sleep,
            clock=clock,
            **kwargs,
        )

    def _route(self, request: httpx.Request) -> str:
        path = request.url.path
        if str(request.url).startswith(UPLOAD_SESSION_BASE):
            return "upload"
        if request.method == "POST" and path.endswith("/upload/v1beta/files"):
            return "initiate"
        if request.method == "POST" and path.endswith(":generateContent"):
            return "generate"
        if path.startswith("/v1beta/files/"):
            return "get_file" if request.method == "GET" else "delete"
        raise AssertionError(f"Unexpected request: {request.method} {request.url}")

    def _to_response(self, entry: Any) -> httpx.Response:
        if isinstance(entry, BaseException):
            raise entry
        if isinstance(entry, httpx.Response):
            return entry
        if isinstance(entry, int):
            return error_response(entry)
        return httpx.Response(200, json=entry)

    def _poll_state(self, poll: int) -> str:
        return self.file_states[min(poll, len(self.file_states)) - 1]

    def _default(self, endpoint: str, request: httpx.Request) -> httpx.Response:
        if endpoint == "initiate":
            self._file_counter += 1
            metadata = json.loads(request.content or b"{}").get("file", {})
            self._sessions[str(self._file_counter)] = {
                "mime_type": request.headers.get("x-goog-upload-header-content-type", ""),
                "display_name": metadata.get("display_name", ""),
            }
            headers = {}
            if self.include_upload_url:
                headers["x-goog-upload-url"] = f"{UPLOAD_SESSION_BASE}/{self._file_counter}"
            return httpx.Response(200, headers=headers)

        if endpoint == "upload":
            session_id = request.url.path.rsplit("/", 1)[-1]
            session = self._sessions.get(session_id, {})
            name = f"files/file-{session_id}"
            self.files[name] = {
                "name": name,
                "uri": f"{DEFAULT_BASE_URL}/v1beta/{name}",
                "mimeType": session.get("mime_type", "application/octet-stream"),
                "displayName": session.get("display_name", ""),
                "sizeBytes": str(len(request.content)),
                "state": self.upload_state,
            }
            return httpx.Response(200, json={"file": dict(self.files[name])})

        if endpoint == "get_file":
            name = "files/" + request.url.path.rsplit("/", 1)[-1]
            if name not in self.files:
                return error_response(404, f"File {name} not found")
            self._polls[name] += 1
            self.files[name]["state"] = self._poll_state(self._polls[name])
            return httpx.Response(200, json=dict(self.files[name]))

        if endpoint == "delete":
            name = "files/" + request.url.path.rsplit("/", 1)[-1]
            self.deleted.append(name)
            self.files.pop(name, None)
            return httpx.Response(200, json={})

        body = json.loads(request.content)
        response = self.generate_response(body) if callable(self.generate_response) else self.generate_response
        return self._to_response(response)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        endpoint = self._route(request)
        self.requests.append(
            RecordedRequest(
                endpoint=endpoint,
                method=request.method,
                url=str(request.url),
                headers=request.headers,
                body=request.content,
            )
        )
        if self.latency:
            await asyncio.sleep(self.latency)
        if self._scripted[endpoint]:
            return self._to_response(self._scripted[endpoint].popleft())
        return self._default(endpoint, request)


class ScriptedProcessor:
    """
    Process function for orchestrator tests.

    Tracks how many calls run at once. Items listed in failures raise the
    given exception; everything else returns "output-<item_id>" after latency.
    """

    def __init__(
        self,
        failures: dict[str, Exception] | None = None,
        latency: float = 0.01,
        sleep: Callable[[float], Any] | None = None,
    ):
        self.failures = failures or {}
        self.latency = latency
        self._sleep = sleep or asyncio.sleep
        self.calls: list[str] = []
        self.running = 0
        self.max_running = 0

    async def __call__(self, item) -> str:
        self.calls.append(item.item_id)
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            await self._sleep(self.latency)
            if item.item_id in self.failures:
                raise self.failures[item.item_id]
            return f"output-{item.item_id}"
        finally:
            self.running -= 1
