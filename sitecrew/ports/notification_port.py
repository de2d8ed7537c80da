"""Chat transport port — abstract interface for talking to contractors.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from typing import Protocol


class ChatTransport(Protocol):
    """Abstract chat transport used by core modules."""

    async def send_message(
        self, chat_id: str, text: str, parse_mode: str | None = None,
    ) -> int | None:
        """Deliver `text` and return the transport's message id. Raises on rejection."""
        ...

    async def get_file_url(self, file_ref: str) -> str:
        """Resolve an attachment reference (e.g. a voice note) to a download URL."""
        ...
