"""Shared test fixtures for quill."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from quill.tools.base import ToolDefinition, ToolResult
from quill.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from tests.fixtures.documents import InMemoryDocumentStore


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> None:
    """Keep user and project config files out of every test."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.delenv("QUILL_CONFIG", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def document_store() -> InMemoryDocumentStore:
    from tests.fixtures.documents import InMemoryDocumentStore

    return InMemoryDocumentStore(
        {
            "notes/plan.md": "# Plan\n\nShip it.",
            "notes/ideas.md": "- more tools",
        }
    )


@pytest.fixture
def make_definition() -> Any:
    """Factory fixture for ToolDefinition with a recording handler."""

    def _make(
        name: str = "echo",
        *,
        result: Any = None,
        error: str | None = None,
        raises: Exception | None = None,
        required: list[str] | None = None,
    ) -> ToolDefinition:
        calls: list[dict[str, Any]] = []

        async def handler(args: dict[str, Any], context: Any) -> ToolResult:
            calls.append({"args": args, "context": context})
            if raises is not None:
                raise raises
            if error is not None:
                return ToolResult.failure(error)
            return ToolResult.success(args if result is None else result)

        definition = ToolDefinition(
            name=name,
            description=f"The {name} tool",
            parameters_schema={
                "type": "object",
                "properties": {"value": {"type": "string"}},
                "required": required or [],
            },
            handler=handler,
        )
        handler.calls = calls  # type: ignore[attr-defined]
        return definition

    return _make


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry()
