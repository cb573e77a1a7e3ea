"""Rich display for conversation results.

Renders the final answer and the trace of tool calls with styled
panels. Used by the ``ask`` and ``run`` commands.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from collections.abc import Sequence

    from quill.tools.base import ToolCall, ToolResult

_TRUNCATE_LEN = 200


def _truncate(text: str, limit: int = _TRUNCATE_LEN) -> str:
    """Truncate text to *limit* characters with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + " ..."


def _compact(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False, default=repr)
    except ValueError:
        return repr(value)


class ConversationDisplay:
    """Rich display for conversation output.

    Accepts an optional :class:`~rich.console.Console` for dependency
    injection in tests.
    """

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()

    def show_tool_calls(self, tool_calls: Sequence[ToolCall]) -> None:
        """Display a summary of tool calls made during the run."""
        if not tool_calls:
            return

        lines: list[str] = []
        for call in tool_calls:
            status = "[green]ok[/green]" if call.response.ok else "[red]failed[/red]"
            outcome = (
                _compact(call.response.result)
                if call.response.ok
                else str(call.response.error)
            )
            args = escape(_truncate(_compact(call.args), 80))
            lines.append(
                f"  {escape(call.name)}({args}) {status}: "
                f"{escape(_truncate(outcome))}"
            )

        self._console.print(
            Panel(
                "\n".join(lines),
                title=f"[bold cyan]TOOLS[/bold cyan] ({len(tool_calls)} calls)",
                border_style="cyan",
            )
        )

    def show_answer(self, text: str) -> None:
        """Display the final answer (full, untruncated)."""
        self._console.print()
        self._console.print(
            Panel(
                Text(text),
                title="[bold bright_white]Answer[/bold bright_white]",
                border_style="bright_white",
            )
        )

    def show_declarations(self, declarations: Sequence[dict[str, Any]]) -> None:
        table = Table(title="Tools", show_lines=False)
        table.add_column("Name", style="bold")
        table.add_column("Parameters")
        table.add_column("Description")
        for decl in declarations:
            props = decl.get("parameters", {}).get("properties", {})
            required = set(decl.get("parameters", {}).get("required", []))
            params = ", ".join(f"{p}*" if p in required else p for p in props)
            table.add_row(decl["name"], params, decl.get("description", ""))
        self._console.print(table)

    def show_run_result(self, result: ToolResult) -> None:
        """Display captured output and the outcome of a sandbox run."""
        if result.stdout:
            self._console.print(
                Panel(
                    Text(result.stdout.rstrip("\n")),
                    title="stdout",
                    border_style="dim",
                )
            )
        if result.ok:
            self._console.print(
                Panel(
                    Text(_compact(result.result)),
                    title="[bold green]Result[/bold green]",
                    border_style="green",
                )
            )
        else:
            self._console.print(
                Panel(
                    Text(str(result.error)),
                    title="[bold red]Error[/bold red]",
                    border_style="red",
                )
            )
