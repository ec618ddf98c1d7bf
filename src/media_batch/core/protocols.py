"""Time protocols shared by the client and orchestrator."""

from typing import Protocol


class SleepFunc(Protocol):
    """Awaitable sleep; asyncio.sleep in production, a fake clock in tests."""

    async def __call__(self, seconds: float) -> None:
        ...


class ClockFunc(Protocol):
    """Monotonic clock in seconds."""

    def __call__(self) -> float:
        ...
