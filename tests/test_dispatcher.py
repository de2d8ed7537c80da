"""Tests for sitecrew.core.dispatcher — NotificationDispatcher."""

from unittest.mock import AsyncMock, patch

import pytest

from sitecrew.core.dispatcher import NotificationDispatcher


class TestSend:
    @pytest.mark.asyncio
    async def test_success_returns_message_id(self, transport):
        transport.send_message = AsyncMock(return_value=42)
        result = await NotificationDispatcher(transport).send("1001", "hello")
        assert result.success is True
        assert result.message_id == 42
        transport.send_message.assert_awaited_once_with("1001", "hello", parse_mode="Markdown")

    @pytest.mark.asyncio
    async def test_transport_error_is_captured(self, transport):
        transport.send_message = AsyncMock(side_effect=RuntimeError("chat not found"))
        result = await NotificationDispatcher(transport).send("1001", "hello")
        assert result.success is False
        assert result.error == "chat not found"

    @pytest.mark.asyncio
    async def test_missing_recipient(self, transport):
        result = await NotificationDispatcher(transport).send(None, "hello")
        assert result.success is False
        assert result.error == "missing recipient"
        transport.send_message.assert_not_called()


class TestSendBatch:
    @pytest.mark.asyncio
    async def test_one_result_per_item_in_order(self, transport):
        transport.send_message = AsyncMock(side_effect=[1, RuntimeError("blocked"), 3])
        dispatcher = NotificationDispatcher(transport)

        results = await dispatcher.send_batch([("a", "1"), ("b", "2"), ("c", "3")], delay=0)

        assert [r.success for r in results] == [True, False, True]
        assert results[2].message_id == 3

    @pytest.mark.asyncio
    async def test_paces_between_items(self, transport):
        dispatcher = NotificationDispatcher(transport)
        with patch("sitecrew.core.dispatcher.asyncio.sleep", new=AsyncMock()) as sleep:
            await dispatcher.send_batch([("a", "1"), ("b", "2"), ("c", "3")], delay=0.5)
        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.5)

    @pytest.mark.asyncio
    async def test_empty_batch(self, transport):
        assert await NotificationDispatcher(transport).send_batch([], delay=0) == []
