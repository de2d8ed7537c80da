"""Transcription port — speech-to-text collaborator used for voice replies."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


class TranscriptionError(Exception):
    """Raised when audio cannot be turned into text."""


@dataclass
class TranscriptionResult:
    text: str
    detected_language: str | None = None


class TranscriptionPort(Protocol):
    async def transcribe(
        self, audio_url: str, language_hint: str | None = None,
    ) -> TranscriptionResult: ...
