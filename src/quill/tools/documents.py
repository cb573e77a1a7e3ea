"""Document tools — list, read and write through the host's store.

These tools never perform I/O themselves. Every operation goes through
the :class:`~quill.tools.base.DocumentStore` passed as the call context,
and writes happen only after the arguments have been validated.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from quill.core.errors import InvalidInputError
from quill.tools.base import ToolResult

if TYPE_CHECKING:
    from quill.tools.base import DocumentStore

MAX_READ_CHARS = 50_000
WRITE_MODES = ("replace", "append")

_NO_STORE = "Document store is not available"


def _require_str(args: dict[str, Any], key: str) -> str:
    value = args.get(key, "")
    if not value or not isinstance(value, str):
        msg = f"Parameter '{key}' is required and must be a non-empty string."
        raise InvalidInputError(msg)
    return value


def strip_code_fences(text: str) -> str:
    """Remove a Markdown code fence wrapped around the whole text.

    Models asked for raw document content often answer inside
    ```` ```markdown ... ``` ````.
    """
    out = text.strip()
    if out.startswith("```"):
        first_nl = out.find("\n")
        if first_nl != -1:
            out = out[first_nl + 1 :]
            if out.endswith("```"):
                out = out[:-3].strip()
    return out


class ListDocumentsTool:
    """Implements the :class:`Tool` protocol."""

    @property
    def name(self) -> str:
        return "list_documents"

    @property
    def description(self) -> str:
        return "List documents in the user's store, optionally filtered by a query."

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Text to match against document names (optional).",
                },
            },
            "required": [],
        }

    async def execute(
        self, args: dict[str, Any], context: DocumentStore | None
    ) -> ToolResult:
        if context is None:
            return ToolResult.failure(_NO_STORE)
        query = args.get("query") or ""
        if not isinstance(query, str):
            query = str(query)
        docs = await context.list_documents(query)
        return ToolResult.success(
            [{"name": d.name, "locator": d.locator} for d in docs]
        )


class ReadDocumentTool:
    """Implements the :class:`Tool` protocol."""

    @property
    def name(self) -> str:
        return "read_document"

    @property
    def description(self) -> str:
        return "Read the full text of a document by its locator."

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "locator": {
                    "type": "string",
                    "description": "Locator returned by list_documents.",
                },
            },
            "required": ["locator"],
        }

    async def execute(
        self, args: dict[str, Any], context: DocumentStore | None
    ) -> ToolResult:
        if context is None:
            return ToolResult.failure(_NO_STORE)
        try:
            locator = _require_str(args, "locator")
        except InvalidInputError as exc:
            return ToolResult.failure(str(exc))

        content = await context.read_document(locator)
        if len(content) > MAX_READ_CHARS:
            omitted = len(content) - MAX_READ_CHARS
            content = content[:MAX_READ_CHARS] + f"\n\n... [truncated {omitted} chars]"
        return ToolResult.success(content)


class WriteDocumentTool:
    """Implements the :class:`Tool` protocol."""

    @property
    def name(self) -> str:
        return "write_document"

    @property
    def description(self) -> str:
        return (
            "Write Markdown to a document. mode='replace' overwrites it, "
            "mode='append' adds to the end."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "locator": {
                    "type": "string",
                    "description": "Locator of the document to write.",
                },
                "content": {
                    "type": "string",
                    "description": "Markdown content, without code fences.",
                },
                "mode": {
                    "type": "string",
                    "enum": list(WRITE_MODES),
                    "description": "replace (default) or append.",
                },
            },
            "required": ["locator", "content"],
        }

    async def execute(
        self, args: dict[str, Any], context: DocumentStore | None
    ) -> ToolResult:
        if context is None:
            return ToolResult.failure(_NO_STORE)
        try:
            locator = _require_str(args, "locator")
            content = args.get("content")
            if not isinstance(content, str):
                msg = "Parameter 'content' is required and must be a string."
                raise InvalidInputError(msg)
            mode = args.get("mode") or "replace"
            if mode not in WRITE_MODES:
                msg = f"Invalid mode: {mode!r} (expected 'replace' or 'append')"
                raise InvalidInputError(msg)
        except InvalidInputError as exc:
            return ToolResult.failure(str(exc))

        clean = strip_code_fences(content)
        await context.write_document(locator, clean, mode)
        return ToolResult.success(
            {"locator": locator, "mode": mode, "chars": len(clean)}
        )
