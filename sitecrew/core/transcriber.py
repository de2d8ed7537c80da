"""
SiteCrew Assistant — Audio Transcriber.

Voice replies from site are common (gloves on, hands busy). The chat
platform hands us a file URL; we download the audio and send it to OpenAI
Whisper. The transcript then flows through the router exactly like typed
text.

This is the only module that talks to OpenAI directly; query
classification goes through core.llm.
"""

from __future__ import annotations

import logging
from pathlib import PurePosixPath
from urllib.parse import urlparse

import httpx
from openai import AsyncOpenAI

from sitecrew.config import settings
from sitecrew.ports.transcription_port import TranscriptionError, TranscriptionResult

logger = logging.getLogger(__name__)

MAX_AUDIO_BYTES = 16 * 1024 * 1024
_DOWNLOAD_TIMEOUT_SECONDS = 15
_WHISPER_MODEL = "whisper-1"


def _file_name(audio_url: str) -> str:
    name = PurePosixPath(urlparse(audio_url).path).name
    return name or "voice.ogg"


class WhisperTranscriber:
    """TranscriptionPort backed by OpenAI Whisper."""

    def __init__(self, api_key: str | None = None, client: AsyncOpenAI | None = None) -> None:
        self._client = client or AsyncOpenAI(api_key=api_key or settings.OPENAI_API_KEY)

    async def _download(self, audio_url: str) -> bytes:
        try:
            async with httpx.AsyncClient(timeout=_DOWNLOAD_TIMEOUT_SECONDS) as client:
                resp = await client.get(audio_url)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise TranscriptionError(f"Could not download audio: {exc}") from exc

        if len(resp.content) > MAX_AUDIO_BYTES:
            raise TranscriptionError(
                f"Audio is {len(resp.content)} bytes (limit {MAX_AUDIO_BYTES})"
            )
        if not resp.content:
            raise TranscriptionError("Downloaded audio is empty")
        return resp.content

    async def transcribe(
        self, audio_url: str, language_hint: str | None = None,
    ) -> TranscriptionResult:
        """Download `audio_url` and transcribe it.

        Raises:
            TranscriptionError: download failed, audio too large, the Whisper
                call failed, or the transcript came back empty.
        """
        audio = await self._download(audio_url)
        language = language_hint or settings.TRANSCRIPTION_LANGUAGE or None

        kwargs = {"language": language} if language else {}
        try:
            response = await self._client.audio.transcriptions.create(
                model=_WHISPER_MODEL,
                file=(_file_name(audio_url), audio),
                response_format="verbose_json",
                **kwargs,
            )
        except Exception as exc:
            logger.error("Whisper transcription failed for %s: %s", _file_name(audio_url), exc)
            raise TranscriptionError(str(exc)) from exc

        text = (response.text or "").strip()
        if not text:
            raise TranscriptionError("Transcription returned no text")

        logger.info("Transcribed %d chars from %s", len(text), _file_name(audio_url))
        return TranscriptionResult(
            text=text, detected_language=getattr(response, "language", None),
        )
