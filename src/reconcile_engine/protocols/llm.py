"""Protocol for LLM clients."""

from __future__ import annotations

from enum import Enum
from typing import Protocol


class TaskType(str, Enum):
    INFERENCE = "inference"
    NAMING = "naming"
    QUALITY = "quality"


class LLMClient(Protocol):
    async def invoke(
        self,
        messages: list[dict[str, str]],
        task_type: TaskType,
        prompt_caching: bool = False,
    ) -> str:
        """Send ``[{"role": ..., "content": ...}]`` messages and return raw text."""
        ...
