"""Default registry wiring for the built-in tools."""

from __future__ import annotations

from typing import TYPE_CHECKING

from quill.config.schema import DEFAULT_TOOLS
from quill.tools.base import ToolDefinition
from quill.tools.documents import ListDocumentsTool, ReadDocumentTool, WriteDocumentTool
from quill.tools.math_eval import MathEvalTool
from quill.tools.registry import ToolRegistry
from quill.tools.sandbox import RunPythonTool, SandboxExecutor

if TYPE_CHECKING:
    from quill.config.schema import QuillConfig
    from quill.tools.base import DocumentStore, Tool


def builtin_tools(config: QuillConfig | None = None) -> list[Tool]:
    """Instantiate every built-in tool, sandbox limits taken from config."""
    executor = (
        SandboxExecutor.from_config(config.sandbox) if config else SandboxExecutor()
    )
    return [
        MathEvalTool(),
        RunPythonTool(executor),
        ListDocumentsTool(),
        ReadDocumentTool(),
        WriteDocumentTool(),
    ]


def create_default_registry(
    config: QuillConfig | None = None,
    *,
    documents: DocumentStore | None = None,
) -> ToolRegistry:
    """Build a registry holding the built-in tools enabled in config.

    Without config all five built-ins are registered.
    """
    enabled = set(config.tools.enabled if config else DEFAULT_TOOLS)
    registry = ToolRegistry(context=documents)
    for tool in builtin_tools(config):
        if tool.name in enabled:
            registry.register(ToolDefinition.from_tool(tool))
    return registry
