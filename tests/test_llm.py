"""Tests for sitecrew.core.llm — provider selection, timeouts and JSON replies."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from sitecrew.config import settings
from sitecrew.core import llm
from sitecrew.core.llm import LLMError, Provider, clean_llm_response, complete_json


@pytest.fixture
def fake_provider(monkeypatch):
    """Install a fake provider and return its call mock."""
    call = AsyncMock(return_value='{"category": "jobs"}')
    monkeypatch.setattr(llm, "_selected", (Provider("fake", call, "fake-1"), "fake-1"))
    return call


class TestCleanLlmResponse:
    def test_strips_json_fence(self):
        assert clean_llm_response('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_strips_bare_fence(self):
        assert clean_llm_response('```\n[]\n```') == "[]"

    def test_plain_text_unchanged(self):
        assert clean_llm_response('  {"a": 1} ') == '{"a": 1}'


class TestProviderSelection:
    def test_unknown_provider_raises(self, monkeypatch):
        monkeypatch.setattr(settings, "LLM_PROVIDER", "parrot")
        with pytest.raises(ValueError, match="Unknown LLM_PROVIDER"):
            llm.select_provider()

    def test_default_model_per_provider(self, monkeypatch):
        monkeypatch.setattr(settings, "LLM_PROVIDER", "Anthropic")
        monkeypatch.setattr(settings, "LLM_MODEL", "")
        provider, model = llm.select_provider()
        assert provider.call is llm._complete_anthropic
        assert model == "claude-haiku-4-5-20251001"

    def test_model_override(self, monkeypatch):
        monkeypatch.setattr(settings, "LLM_PROVIDER", "openai")
        monkeypatch.setattr(settings, "LLM_MODEL", "gpt-4.1")
        assert llm.select_provider()[1] == "gpt-4.1"


class TestCompleteJson:
    @pytest.mark.asyncio
    async def test_returns_parsed_object(self, fake_provider):
        assert await complete_json("sys", "ping", max_tokens=10) == {"category": "jobs"}
        fake_provider.assert_awaited_once_with(settings.LLM_API_KEY, "fake-1", "sys", "ping", 10)

    @pytest.mark.asyncio
    async def test_fenced_reply_is_parsed(self, fake_provider):
        fake_provider.return_value = '```json\n{"category": "check_ins", "entities": ["Rudy"]}\n```'
        assert await complete_json("sys", "who checked in") == {
            "category": "check_ins", "entities": ["Rudy"],
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", ""])
    async def test_non_object_reply_raises(self, fake_provider, raw):
        fake_provider.return_value = raw
        with pytest.raises(LLMError):
            await complete_json("sys", "hi")

    @pytest.mark.asyncio
    async def test_provider_failure_wrapped(self, fake_provider):
        fake_provider.side_effect = RuntimeError("quota")
        with pytest.raises(LLMError, match="quota"):
            await complete_json("sys", "hi")

    @pytest.mark.asyncio
    async def test_timeout(self, fake_provider):
        async def _slow(*args):
            await asyncio.sleep(5)

        fake_provider.side_effect = _slow
        with pytest.raises(LLMError, match="did not answer"):
            await complete_json("sys", "hi", timeout=0.05)

    @pytest.mark.asyncio
    async def test_provider_selected_once(self, monkeypatch):
        call = AsyncMock(return_value="{}")
        select = MagicMock(return_value=(Provider("fake", call, "m"), "m"))
        monkeypatch.setattr(llm, "_selected", None)
        monkeypatch.setattr(llm, "select_provider", select)

        await complete_json("sys", "a")
        await complete_json("sys", "b")

        assert call.await_count == 2
        select.assert_called_once()
