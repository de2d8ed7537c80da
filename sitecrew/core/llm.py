"""
SiteCrew Assistant — LLM access for query classification.

The bot only ever asks the model one kind of question: "sort this message
into a QueryIntent and answer in JSON". This module hides which provider
answers it (gemini by default, or anthropic, openai or cohere via
LLM_PROVIDER), bounds each call by LLM_TIMEOUT_SECONDS and turns every
provider-side failure into LLMError so callers have a single thing to catch.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from sitecrew.config import settings

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """The model could not be reached, timed out, or returned unusable output."""


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


async def _complete_gemini(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    gm = genai.GenerativeModel(model_name=model, system_instruction=system)
    response = await gm.generate_content_async(
        user_message,
        generation_config=genai.types.GenerationConfig(
            max_output_tokens=max_tokens,
            response_mime_type="application/json",
        ),
    )
    return response.text


async def _complete_anthropic(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=api_key)
    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens,
        system=system,
        messages=[{"role": "user", "content": user_message}],
    )
    return response.content[0].text


async def _complete_openai(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=api_key)
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens,
        response_format={"type": "json_object"},
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ],
    )
    return response.choices[0].message.content or ""


async def _complete_cohere(api_key: str, model: str, system: str, user_message: str, max_tokens: int) -> str:
    import cohere

    client = cohere.AsyncClientV2(api_key=api_key)
    response = await client.chat(
        model=model,
        max_tokens=max_tokens,
        response_format={"type": "json_object"},
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ],
    )
    return response.message.content[0].text


@dataclass(frozen=True)
class Provider:
    name: str
    call: Callable[[str, str, str, str, int], Awaitable[str]]
    default_model: str


PROVIDERS: dict[str, Provider] = {
    p.name: p
    for p in (
        Provider("gemini", _complete_gemini, "gemini-2.0-flash"),
        Provider("anthropic", _complete_anthropic, "claude-haiku-4-5-20251001"),
        Provider("openai", _complete_openai, "gpt-4o-mini"),
        Provider("cohere", _complete_cohere, "command-a-03-2025"),
    )
}


def select_provider() -> tuple[Provider, str]:
    """Resolve LLM_PROVIDER / LLM_MODEL into (provider, model)."""
    name = settings.LLM_PROVIDER.lower()
    if name not in PROVIDERS:
        raise ValueError(f"Unknown LLM_PROVIDER={name!r}. Supported: {', '.join(PROVIDERS)}")

    provider = PROVIDERS[name]
    model = settings.LLM_MODEL or provider.default_model
    logger.info("LLM provider: %s, model: %s", name, model)
    return provider, model


_selected: tuple[Provider, str] | None = None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def clean_llm_response(raw_text: str) -> str:
    """Remove markdown code fences some models wrap around JSON."""
    cleaned_text = raw_text.strip()
    if cleaned_text.startswith("```json"):
        cleaned_text = cleaned_text.removeprefix("```json")
    elif cleaned_text.startswith("```"):
        cleaned_text = cleaned_text.removeprefix("```")
    if cleaned_text.endswith("```"):
        cleaned_text = cleaned_text.removesuffix("```")
    return cleaned_text.strip()


async def complete_json(
    system: str,
    user_message: str,
    max_tokens: int = 256,
    timeout: float | None = None,
) -> dict[str, Any]:
    """Ask the configured model for a JSON object and return it parsed.

    Raises LLMError on timeout, provider failure, or a reply that is not a
    JSON object.
    """
    global _selected

    if _selected is None:
        _selected = select_provider()
    provider, model = _selected
    timeout = timeout if timeout is not None else settings.LLM_TIMEOUT_SECONDS

    try:
        raw = await asyncio.wait_for(
            provider.call(settings.LLM_API_KEY, model, system, user_message, max_tokens),
            timeout=timeout,
        )
    except asyncio.TimeoutError as exc:
        raise LLMError(f"{provider.name} did not answer within {timeout:g}s") from exc
    except Exception as exc:
        raise LLMError(f"{provider.name} request failed: {exc}") from exc

    cleaned = clean_llm_response(raw or "")
    logger.debug("LLM response: %s", cleaned)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise LLMError(f"{provider.name} returned non-JSON output") from exc
    if not isinstance(data, dict):
        raise LLMError(f"{provider.name} returned {type(data).__name__}, expected an object")
    return data
