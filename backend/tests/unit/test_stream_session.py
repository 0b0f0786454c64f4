"""Unit tests for session tokens and SessionChannel."""

import asyncio

import pytest

from backend.src.services.stream_session import SessionChunk, StreamSessionController


async def chunks(*parts, fail_with=None):
    for part in parts:
        await asyncio.sleep(0)
        yield part
    if fail_with is not None:
        raise fail_with


class TestStreamSessionController:
    def test_begin_session_is_monotonic(self) -> None:
        controller = StreamSessionController()

        first = controller.begin_session()
        second = controller.begin_session()

        assert second > first
        assert controller.is_current(second)
        assert not controller.is_current(first)

    def test_invalidate_makes_token_stale(self) -> None:
        controller = StreamSessionController()
        token = controller.begin_session()

        controller.invalidate()

        assert not controller.is_current(token)

    def test_independent_controllers(self) -> None:
        a = StreamSessionController()
        b = StreamSessionController()
        token = a.begin_session()

        b.begin_session()
        b.invalidate()

        assert a.is_current(token)


class TestSessionChannel:
    @pytest.mark.asyncio
    async def test_chunks_are_stamped_with_token(self) -> None:
        controller = StreamSessionController()
        token = controller.begin_session()

        async with controller.open_channel(token, chunks("a", "b")) as channel:
            received = [chunk async for chunk in channel]

        assert received == [SessionChunk(token, "a"), SessionChunk(token, "b")]

    @pytest.mark.asyncio
    async def test_source_failure_is_reraised(self) -> None:
        controller = StreamSessionController()
        token = controller.begin_session()
        received = []

        with pytest.raises(RuntimeError, match="boom"):
            async with controller.open_channel(
                token, chunks("partial", fail_with=RuntimeError("boom"))
            ) as channel:
                async for chunk in channel:
                    received.append(chunk.text)

        assert received == ["partial"]

    @pytest.mark.asyncio
    async def test_aclose_cancels_producer(self) -> None:
        controller = StreamSessionController()
        token = controller.begin_session()
        closed = asyncio.Event()

        async def endless():
            try:
                while True:
                    await asyncio.sleep(0)
                    yield "x"
            finally:
                closed.set()

        channel = controller.open_channel(token, endless())
        async for chunk in channel:
            assert chunk.text == "x"
            break
        await channel.aclose()

        assert closed.is_set()
        assert channel._task.done()
