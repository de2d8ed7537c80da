"""Tests for sitecrew.core.transcriber — WhisperTranscriber."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from sitecrew.core.transcriber import MAX_AUDIO_BYTES, WhisperTranscriber
from sitecrew.ports.transcription_port import TranscriptionError

URL = "https://api.telegram.org/file/botTOKEN/voice/file_7.oga"


def _http_client(content=b"OggS audio", status=200):
    """Patch target for httpx.AsyncClient returning a canned response."""
    request = httpx.Request("GET", URL)
    response = httpx.Response(status, content=content, request=request)
    client = AsyncMock()
    client.get = AsyncMock(return_value=response)
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=client)


def _openai(text="Fixed the boiler", language="english"):
    client = MagicMock()
    client.audio.transcriptions.create = AsyncMock(
        return_value=MagicMock(text=text, language=language),
    )
    return client


class TestTranscribe:
    @pytest.mark.asyncio
    async def test_success(self):
        openai_client = _openai()
        with patch("sitecrew.core.transcriber.httpx.AsyncClient", _http_client()):
            result = await WhisperTranscriber(client=openai_client).transcribe(URL, "en")

        assert result.text == "Fixed the boiler"
        assert result.detected_language == "english"
        kwargs = openai_client.audio.transcriptions.create.call_args.kwargs
        assert kwargs["model"] == "whisper-1"
        assert kwargs["response_format"] == "verbose_json"
        assert kwargs["language"] == "en"
        assert kwargs["file"] == ("file_7.oga", b"OggS audio")

    @pytest.mark.asyncio
    async def test_download_error(self):
        with patch("sitecrew.core.transcriber.httpx.AsyncClient", _http_client(status=404)):
            with pytest.raises(TranscriptionError):
                await WhisperTranscriber(client=_openai()).transcribe(URL)

    @pytest.mark.asyncio
    async def test_too_large(self):
        big = b"0" * (MAX_AUDIO_BYTES + 1)
        openai_client = _openai()
        with patch("sitecrew.core.transcriber.httpx.AsyncClient", _http_client(content=big)):
            with pytest.raises(TranscriptionError):
                await WhisperTranscriber(client=openai_client).transcribe(URL)
        openai_client.audio.transcriptions.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self):
        openai_client = _openai()
        openai_client.audio.transcriptions.create = AsyncMock(side_effect=RuntimeError("rate limited"))
        with patch("sitecrew.core.transcriber.httpx.AsyncClient", _http_client()):
            with pytest.raises(TranscriptionError, match="rate limited"):
                await WhisperTranscriber(client=openai_client).transcribe(URL)

    @pytest.mark.asyncio
    async def test_empty_transcript(self):
        with patch("sitecrew.core.transcriber.httpx.AsyncClient", _http_client()):
            with pytest.raises(TranscriptionError):
                await WhisperTranscriber(client=_openai(text="  ")).transcribe(URL)
