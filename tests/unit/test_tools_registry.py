"""Tests for tool registry and tool data types."""

from __future__ import annotations

from typing import Any

import pytest

from quill.config.schema import QuillConfig, ToolsConfig
from quill.core.errors import UnknownToolError
from quill.tools.base import Tool, ToolDefinition, ToolResult
from quill.tools.defaults import create_default_registry
from quill.tools.math_eval import MathEvalTool
from quill.tools.registry import ToolRegistry

# ── ToolResult ──────────────────────────────────────────────────────


class TestToolResult:
    def test_success_payload(self) -> None:
        assert ToolResult.success(3).to_payload() == {"ok": True, "result": 3}

    def test_failure_payload(self) -> None:
        assert ToolResult.failure("boom").to_payload() == {
            "ok": False,
            "error": "boom",
        }

    def test_stdout_included_when_present(self) -> None:
        result = ToolResult.failure("Execution timed out", stdout="partial")
        payload = result.to_payload()
        assert payload["stdout"] == "partial"

    def test_frozen(self) -> None:
        with pytest.raises(AttributeError):
            ToolResult.success(1).ok = False  # type: ignore[misc]


# ── Registration ────────────────────────────────────────────────────


class TestRegistration:
    def test_register_and_get(
        self, registry: ToolRegistry, make_definition: Any
    ) -> None:
        definition = make_definition("echo")
        registry.register(definition)
        assert registry.get("echo") is definition
        assert registry.has("echo")
        assert "echo" in registry
        assert len(registry) == 1

    def test_register_replaces_existing(
        self, registry: ToolRegistry, make_definition: Any
    ) -> None:
        first = make_definition("echo")
        second = make_definition("echo", result="new")
        registry.register(first)
        registry.register(second)
        assert len(registry) == 1
        assert registry.get("echo") is second

    def test_unregister(self, registry: ToolRegistry, make_definition: Any) -> None:
        registry.register(make_definition("echo"))
        registry.unregister("echo")
        assert not registry.has("echo")

    def test_unregister_missing_is_noop(self, registry: ToolRegistry) -> None:
        registry.unregister("nope")
        assert len(registry) == 0

    def test_get_unknown_raises(self, registry: ToolRegistry) -> None:
        with pytest.raises(UnknownToolError, match="Unknown tool: nope"):
            registry.get("nope")

    def test_list_names_in_registration_order(
        self, registry: ToolRegistry, make_definition: Any
    ) -> None:
        for name in ("b", "a", "c"):
            registry.register(make_definition(name))
        assert registry.list_names() == ["b", "a", "c"]


# ── Declarations ────────────────────────────────────────────────────


class TestDeclarations:
    def test_shape(self, registry: ToolRegistry, make_definition: Any) -> None:
        registry.register(make_definition("echo", required=["value"]))
        (decl,) = registry.declarations()
        assert decl == {
            "name": "echo",
            "description": "The echo tool",
            "parameters": {
                "type": "object",
                "properties": {"value": {"type": "string"}},
                "required": ["value"],
            },
        }

    def test_filter_by_names(
        self, registry: ToolRegistry, make_definition: Any
    ) -> None:
        for name in ("a", "b", "c"):
            registry.register(make_definition(name))
        names = [d["name"] for d in registry.declarations(["c", "a", "missing"])]
        assert names == ["a", "c"]

    def test_empty_filter_offers_nothing(
        self, registry: ToolRegistry, make_definition: Any
    ) -> None:
        registry.register(make_definition("a"))
        assert registry.declarations([]) == []

    def test_from_tool(self) -> None:
        tool = MathEvalTool()
        assert isinstance(tool, Tool)
        definition = ToolDefinition.from_tool(tool)
        assert definition.declaration()["name"] == "math_eval"
        assert definition.declaration()["parameters"] == tool.parameters_schema


# ── Execution ───────────────────────────────────────────────────────


class TestExecute:
    async def test_dispatches_args_and_context(
        self, make_definition: Any, document_store: Any
    ) -> None:
        registry = ToolRegistry(context=document_store)
        definition = make_definition("echo")
        registry.register(definition)

        result = await registry.execute("echo", {"value": "hi"})

        assert result.ok
        assert result.result == {"value": "hi"}
        (call,) = definition.handler.calls
        assert call["context"] is document_store

    async def test_context_override(
        self, registry: ToolRegistry, make_definition: Any, document_store: Any
    ) -> None:
        definition = make_definition("echo")
        registry.register(definition)
        await registry.execute("echo", {}, context=document_store)
        assert definition.handler.calls[0]["context"] is document_store

    async def test_unknown_tool(self, registry: ToolRegistry) -> None:
        result = await registry.execute("nonexistent", {})
        assert not result.ok
        assert result.error == "Unknown tool: nonexistent"

    async def test_handler_exception_becomes_failure(
        self, registry: ToolRegistry, make_definition: Any
    ) -> None:
        registry.register(make_definition("bad", raises=RuntimeError("kaput")))
        result = await registry.execute("bad", {})
        assert not result.ok
        assert result.error == "Tool execution error: kaput"

    async def test_missing_required_param_still_dispatched(
        self, registry: ToolRegistry, make_definition: Any
    ) -> None:
        definition = make_definition("echo", required=["value"])
        registry.register(definition)
        result = await registry.execute("echo", {})
        assert result.ok
        assert definition.handler.calls == [{"args": {}, "context": None}]

    async def test_plain_return_value_is_wrapped(self, registry: ToolRegistry) -> None:
        async def handler(args: dict[str, Any], context: Any) -> Any:
            return 7

        registry.register(
            ToolDefinition(
                name="raw", description="", parameters_schema={}, handler=handler
            )
        )
        result = await registry.execute("raw", {})
        assert result == ToolResult.success(7)


# ── Default registry ────────────────────────────────────────────────


class TestDefaultRegistry:
    def test_all_builtins(self) -> None:
        registry = create_default_registry()
        assert registry.list_names() == [
            "math_eval",
            "run_python",
            "list_documents",
            "read_document",
            "write_document",
        ]

    def test_enabled_subset(self) -> None:
        config = QuillConfig(tools=ToolsConfig(enabled=["math_eval"]))
        assert create_default_registry(config).list_names() == ["math_eval"]

    def test_documents_become_context(self, document_store: Any) -> None:
        registry = create_default_registry(documents=document_store)
        assert registry.context is document_store

    async def test_math_through_registry(self) -> None:
        result = await create_default_registry().execute(
            "math_eval", {"expression": "2^10"}
        )
        assert result.result == 1024
