"""Protocol for the optional tool registry."""

from __future__ import annotations

from typing import Any, Protocol


class ToolRegistry(Protocol):
    def has_tool(self, name: str) -> bool: ...

    async def execute_tool(self, name: str, args: dict[str, Any]) -> dict[str, Any]: ...
