"""Tool registry — the catalogue of tools offered to the model.

Provides registration, lookup, model-facing declarations and dispatch.
A registry is built once at startup and passed to every conversation
run; it is only read while runs are in flight.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from quill.core.errors import UnknownToolError
from quill.tools.base import ToolResult

if TYPE_CHECKING:
    from collections.abc import Iterable

    from quill.tools.base import DocumentStore, ToolDefinition

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry for managing available tools.

    Args:
        context: Default document store handed to handlers. ``execute``
            can override it per call.
    """

    def __init__(self, context: DocumentStore | None = None) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self._context = context

    @property
    def context(self) -> DocumentStore | None:
        return self._context

    def register(self, definition: ToolDefinition) -> None:
        """Register a tool, replacing any tool with the same name."""
        if definition.name in self._tools:
            logger.debug("Replacing tool registration: %s", definition.name)
        self._tools[definition.name] = definition

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def has(self, name: str) -> bool:
        return name in self._tools

    def get(self, name: str) -> ToolDefinition:
        """Get a tool by name.

        Raises:
            UnknownToolError: If the tool is not registered.
        """
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(name) from None

    def declarations(self, names: Iterable[str] | None = None) -> list[dict[str, Any]]:
        """Return ``{name, description, parameters}`` for registered tools.

        With ``names``, only those tools are included; names that are not
        registered are skipped. Order follows registration order.
        """
        wanted = None if names is None else set(names)
        return [
            definition.declaration()
            for name, definition in self._tools.items()
            if wanted is None or name in wanted
        ]

    async def execute(
        self,
        name: str,
        args: dict[str, Any],
        *,
        context: DocumentStore | None = None,
    ) -> ToolResult:
        """Dispatch a call and return its result.

        Unknown tools and handler exceptions both come back as failed
        results; nothing but task cancellation propagates. Parameter
        schemas are not enforced here: a missing ``required`` argument
        reaches the handler, which reports its own error.
        """
        try:
            definition = self.get(name)
        except UnknownToolError as exc:
            return ToolResult.failure(str(exc))

        try:
            result = await definition.handler(args, context or self._context)
        except Exception as exc:
            logger.warning("Tool %s raised: %s", name, exc)
            return ToolResult.failure(f"Tool execution error: {exc}")

        if not isinstance(result, ToolResult):
            return ToolResult.success(result)
        return result

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def list_names(self) -> list[str]:
        """Return names of all registered tools."""
        return list(self._tools.keys())
