"""Tool framework for the conversation engine.

Provides the tool protocol, registry, and the built-in tools: a math
evaluator, a Python sandbox, and document-store accessors.
"""

from quill.tools.base import (
    DocumentRef,
    DocumentStore,
    Tool,
    ToolCall,
    ToolDefinition,
    ToolResult,
)
from quill.tools.defaults import create_default_registry
from quill.tools.registry import ToolRegistry

__all__ = [
    "DocumentRef",
    "DocumentStore",
    "Tool",
    "ToolCall",
    "ToolDefinition",
    "ToolRegistry",
    "ToolResult",
    "create_default_registry",
]
