"""Query port — free-text question answering over job-tracker records."""

from __future__ import annotations

from typing import Protocol

from sitecrew.data.models import CallerScope


class QueryPort(Protocol):
    async def answer(self, message: str, scope: CallerScope) -> str: ...
