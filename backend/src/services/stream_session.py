"""Session tokens and token-stamped stream channels.

Every request captures a token from ``StreamSessionController.begin_session()``.
Before writing anything back it checks ``is_current(token)``; once a newer
session has started (or ``invalidate()`` was called) the check fails and the
stale work drops its result.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionChunk:
    """A piece of streamed text stamped with the session that produced it."""

    token: int
    text: str


@dataclass(frozen=True)
class _StreamFailure:
    error: Exception


_END = object()


class StreamSessionController:
    """Monotonic session counter; exactly one token is current at a time."""

    def __init__(self) -> None:
        self._current = 0

    @property
    def current(self) -> int:
        return self._current

    def begin_session(self) -> int:
        """Start a new session, superseding every outstanding token."""
        self._current += 1
        logger.debug(f"Began chat session {self._current}")
        return self._current

    def is_current(self, token: int) -> bool:
        return token == self._current

    def invalidate(self) -> None:
        """Make all outstanding tokens stale without starting a request."""
        self._current += 1
        logger.debug(f"Invalidated chat sessions up to {self._current - 1}")

    def open_channel(self, token: int, source: AsyncIterator[str]) -> "SessionChannel":
        return SessionChannel(token, source)


class SessionChannel:
    """Consumes a text stream on a producer task and hands out stamped chunks.

    Use as an async context manager; leaving the block cancels the producer
    task, so abandoning a stale stream also stops reading from the network.

        async with controller.open_channel(token, transport.stream(...)) as channel:
            async for chunk in channel:
                if not controller.is_current(chunk.token):
                    break
    """

    def __init__(self, token: int, source: AsyncIterator[str]) -> None:
        self.token = token
        self._source = source
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    async def _pump(self) -> None:
        try:
            async for text in self._source:
                await self._queue.put(SessionChunk(self.token, text))
        except Exception as e:
            await self._queue.put(_StreamFailure(e))
        else:
            await self._queue.put(_END)

    def _ensure_started(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._pump())

    def __aiter__(self) -> "SessionChannel":
        self._ensure_started()
        return self

    async def __anext__(self) -> SessionChunk:
        self._ensure_started()
        item = await self._queue.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, _StreamFailure):
            raise item.error
        return item

    async def aclose(self) -> None:
        """Cancel the producer and close the underlying stream."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        closer = getattr(self._source, "aclose", None)
        if closer is not None:
            await closer()

    async def __aenter__(self) -> "SessionChannel":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


__all__ = ["StreamSessionController", "SessionChannel", "SessionChunk"]
