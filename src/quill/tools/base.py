"""Tool protocol and data types.

Defines the ``Tool`` protocol that built-in tool implementations satisfy,
the ``DocumentStore`` protocol the host application injects, and data
classes for tool definitions, calls and results.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

WriteMode = Literal["replace", "append"]


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Outcome of a tool call: ``ok`` with a result, or an error string.

    ``stdout`` carries captured print output for sandbox-backed tools and
    is kept on failures too.
    """

    ok: bool
    result: Any = None
    error: str | None = None
    stdout: str | None = None

    @classmethod
    def success(cls, result: Any, stdout: str | None = None) -> ToolResult:
        return cls(ok=True, result=result, stdout=stdout)

    @classmethod
    def failure(cls, error: str, stdout: str | None = None) -> ToolResult:
        return cls(ok=False, error=error, stdout=stdout)

    def to_payload(self) -> dict[str, Any]:
        """Mapping sent back to the model in a function response part."""
        payload: dict[str, Any] = {"ok": self.ok}
        if self.ok:
            payload["result"] = self.result
        else:
            payload["error"] = self.error
        if self.stdout is not None:
            payload["stdout"] = self.stdout
        return payload


@dataclass(frozen=True, slots=True)
class DocumentRef:
    """A document known to the host store."""

    name: str
    locator: str


@runtime_checkable
class DocumentStore(Protocol):
    """Read/write primitives provided by the host application.

    quill never touches storage itself; document tools only call these.
    """

    async def list_documents(self, query: str = "") -> list[DocumentRef]: ...

    async def read_document(self, locator: str) -> str: ...

    async def write_document(
        self, locator: str, content: str, mode: WriteMode = "replace"
    ) -> None: ...


ToolHandler = Callable[[dict[str, Any], DocumentStore | None], Awaitable[ToolResult]]


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """A registered tool: model-facing description plus its handler."""

    name: str
    description: str
    parameters_schema: dict[str, Any]
    handler: ToolHandler = field(repr=False, compare=False)

    @classmethod
    def from_tool(cls, tool: Tool) -> ToolDefinition:
        return cls(
            name=tool.name,
            description=tool.description,
            parameters_schema=tool.parameters_schema,
            handler=tool.execute,
        )

    def declaration(self) -> dict[str, Any]:
        """Function declaration in the shape the model client expects."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters_schema,
        }


@dataclass(frozen=True, slots=True)
class ToolCall:
    """One dispatched call and its outcome, as kept in the run trace."""

    name: str
    args: dict[str, Any]
    response: ToolResult


@runtime_checkable
class Tool(Protocol):
    """Protocol that all built-in tool implementations satisfy."""

    @property
    def name(self) -> str:
        """Unique name for this tool."""
        ...

    @property
    def description(self) -> str:
        """Human-readable description surfaced to the model."""
        ...

    @property
    def parameters_schema(self) -> dict[str, Any]:
        """JSON Schema for the tool's parameters."""
        ...

    async def execute(
        self, args: dict[str, Any], context: DocumentStore | None
    ) -> ToolResult:
        """Run the tool.

        May raise; the registry converts exceptions to failed results.
        """
        ...
