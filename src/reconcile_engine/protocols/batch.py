"""Protocol for the optional batch LLM facility."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol


@dataclass
class BatchRequest:
    custom_id: str
    messages: list[dict[str, str]]


@dataclass
class BatchResult:
    custom_id: str
    content: str | None = None
    error: str | None = None


ProgressCallback = Callable[[int, int, int], None]  # completed, total, failed


class BatchLLMService(Protocol):
    async def is_available(self) -> bool: ...

    async def submit_and_wait(
        self,
        requests: list[BatchRequest],
        on_progress: ProgressCallback | None = None,
    ) -> list[BatchResult]: ...
