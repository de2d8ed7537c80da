"""Tests for sitecrew.core.chat_locks."""

import asyncio

import pytest

from sitecrew.core.chat_locks import ChatLocks


class TestChatLocks:
    @pytest.mark.asyncio
    async def test_same_chat_serialized(self):
        locks = ChatLocks()
        order = []

        async def worker(name):
            async with locks.hold("1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_different_chats_overlap(self):
        locks = ChatLocks()
        inside = asyncio.Event()
        both = []

        async def first():
            async with locks.hold("1"):
                inside.set()
                await asyncio.sleep(0.01)
                both.append(len(locks))

        async def second():
            await inside.wait()
            async with locks.hold("2"):
                both.append(len(locks))

        await asyncio.gather(first(), second())
        assert max(both) == 2

    @pytest.mark.asyncio
    async def test_lock_released_after_use(self):
        locks = ChatLocks()
        async with locks.hold("1"):
            assert len(locks) == 1
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        locks = ChatLocks()
        with pytest.raises(ValueError):
            async with locks.hold("1"):
                raise ValueError("boom")
        assert len(locks) == 0
