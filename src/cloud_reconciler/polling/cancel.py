"""Cancel token shared between a caller and a running poll."""

from __future__ import annotations

import asyncio


class CancelToken:
    """One-shot, awaitable cancellation signal.

    Firing the token interrupts a poller's sleep and any in-flight fetch.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason = ""

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    async def wait(self) -> None:
        await self._event.wait()

    def __repr__(self) -> str:
        state = f"cancelled: {self._reason}" if self.cancelled else "active"
        return f"CancelToken({state})"
