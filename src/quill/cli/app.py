"""Main CLI application.

Click commands for the quill conversation engine: ask, tools, calc, run.
"""

from __future__ import annotations

import asyncio
import contextlib
import json as json_mod
import logging
import signal
import sys
from pathlib import Path
from typing import IO, TYPE_CHECKING

import click

from quill import __version__
from quill.config.loader import load_config
from quill.core.errors import AuthenticationError, ConfigError, QuillError

if TYPE_CHECKING:
    from quill.config.schema import LoggingConfig, QuillConfig
    from quill.conversation.types import ConversationResult
    from quill.tools.base import DocumentStore

_STRUCTURED_FORMAT = (
    '{"time": "%(asctime)s", "level": "%(levelname)s", '
    '"logger": "%(name)s", "message": "%(message)s"}'
)
_PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


# ── Helpers ──────────────────────────────────────────────────────


def _error(msg: str) -> None:
    """Print an error message to stderr and exit."""
    click.echo(f"Error: {msg}", err=True)
    sys.exit(1)


def _configure_logging(config: LoggingConfig) -> None:
    level = getattr(logging, config.level.upper(), logging.WARNING)
    handlers: list[logging.Handler] = [
        logging.FileHandler(Path(config.file).expanduser())
        if config.file
        else logging.StreamHandler(sys.stderr)
    ]
    logging.basicConfig(
        level=level,
        format=_STRUCTURED_FORMAT if config.structured else _PLAIN_FORMAT,
        handlers=handlers,
        force=True,
    )


def _load_config(config_path: str | None) -> QuillConfig:
    """Load config with user-friendly error handling."""
    try:
        config = load_config(path=config_path)
    except ConfigError as e:
        _error(str(e))
        raise  # unreachable, keeps mypy happy
    _configure_logging(config.logging)
    return config


def _setup_documents(config: QuillConfig, docs: str | None) -> DocumentStore | None:
    """Directory store from ``--docs`` or ``documents.root``, if either is set."""
    root = docs or config.documents.root
    if not root:
        return None

    from quill.cli.store import DirectoryDocumentStore

    return DirectoryDocumentStore(root, extension=config.documents.extension)


# ── Group ────────────────────────────────────────────────────────


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="quill")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True),
    default=None,
    help="Path to config file.",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None) -> None:
    """quill - Tool-augmented conversations with Gemini.

    The model can evaluate math, run sandboxed Python and work with a
    directory of documents.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ── ask ──────────────────────────────────────────────────────────


@cli.command()
@click.argument("question")
@click.option(
    "--tools/--no-tools",
    default=True,
    help="Offer tools to the model (default: on).",
)
@click.option(
    "--tool",
    "tool_names",
    multiple=True,
    help="Offer only this tool; repeatable.",
)
@click.option(
    "--docs",
    type=click.Path(file_okay=False),
    default=None,
    help="Document directory (overrides documents.root).",
)
@click.option(
    "--max-iterations",
    type=int,
    default=None,
    help="Max model round-trips (overrides config).",
)
@click.pass_context
def ask(
    ctx: click.Context,
    question: str,
    tools: bool,
    tool_names: tuple[str, ...],
    docs: str | None,
    max_iterations: int | None,
) -> None:
    """Ask a question, letting the model call tools.

    Sends QUESTION to the configured Gemini model and prints the final
    answer with a summary of the tool calls it made.
    """
    config = _load_config(ctx.obj["config_path"])
    if max_iterations is not None:
        if max_iterations < 1:
            _error("--max-iterations must be at least 1")
        config.conversation.max_iterations = max_iterations
    if not config.model.api_key:
        _error(
            f"No API key configured. Set {config.model.api_key_env or 'GOOGLE_API_KEY'}"
            " or model.api_key in the config file."
        )

    allowed: list[str] | None = None
    if not tools:
        allowed = []
    elif tool_names:
        allowed = list(tool_names)

    try:
        result = asyncio.run(_ask_async(question, config, docs, allowed))
    except AuthenticationError as e:
        _error(
            f"{e}\nCheck your API key "
            f"({config.model.api_key_env or 'model.api_key'}) and try again."
        )
        return  # unreachable
    except QuillError as e:
        _error(str(e))
        return  # unreachable

    from quill.cli.display import ConversationDisplay

    display = ConversationDisplay()
    display.show_tool_calls(result.tool_calls)
    display.show_answer(result.text)


async def _ask_async(
    question: str,
    config: QuillConfig,
    docs: str | None,
    allowed: list[str] | None,
) -> ConversationResult:
    """Async implementation for the ask command."""
    from quill.conversation.cancel import CancelToken
    from quill.conversation.orchestrator import ConversationOrchestrator
    from quill.conversation.types import ConversationTurn
    from quill.providers.gemini import GeminiModelClient
    from quill.tools.defaults import create_default_registry

    documents = _setup_documents(config, docs)
    registry = create_default_registry(config, documents=documents)
    if allowed:
        unknown = [name for name in allowed if not registry.has(name)]
        if unknown:
            msg = f"Unknown or disabled tool(s): {', '.join(unknown)}"
            raise ConfigError(msg)

    client = GeminiModelClient.from_config(config.model)
    orchestrator = ConversationOrchestrator.from_config(config, client, registry)

    token = CancelToken()
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    try:
        return await orchestrator.run(
            [ConversationTurn.user(question)],
            allowed_tools=allowed,
            cancel_token=token,
        )
    finally:
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.remove_signal_handler(signal.SIGINT)


# ── tools ────────────────────────────────────────────────────────


@cli.command("tools")
@click.option("--json", "as_json", is_flag=True, help="Print raw declarations.")
@click.pass_context
def tools_cmd(ctx: click.Context, as_json: bool) -> None:
    """List the tools offered to the model."""
    config = _load_config(ctx.obj["config_path"])

    from quill.tools.defaults import create_default_registry

    declarations = create_default_registry(config).declarations()
    if not declarations:
        click.echo("No tools enabled.")
        return
    if as_json:
        click.echo(json_mod.dumps(declarations, indent=2))
        return

    from quill.cli.display import ConversationDisplay

    ConversationDisplay().show_declarations(declarations)


# ── calc ─────────────────────────────────────────────────────────


@cli.command()
@click.argument("expression")
def calc(expression: str) -> None:
    """Evaluate a math expression, e.g. ``quill calc "log(2, 8)"``."""
    from quill.tools.math_eval import evaluate

    result = evaluate(expression)
    if not result.ok:
        _error(str(result.error))
    click.echo(str(result.result))


# ── run ──────────────────────────────────────────────────────────


@cli.command()
@click.argument("script", type=click.File("r"))
@click.option(
    "--input",
    "input_json",
    default=None,
    help="JSON value bound to `input` inside the script.",
)
@click.pass_context
def run(ctx: click.Context, script: IO[str], input_json: str | None) -> None:
    """Run SCRIPT in the Python sandbox ('-' reads stdin)."""
    config = _load_config(ctx.obj["config_path"])

    value = None
    if input_json is not None:
        try:
            value = json_mod.loads(input_json)
        except json_mod.JSONDecodeError as e:
            _error(f"--input is not valid JSON: {e}")

    from quill.tools.sandbox import SandboxExecutor

    executor = SandboxExecutor.from_config(config.sandbox)
    result = asyncio.run(executor.run(script.read(), value))

    from quill.cli.display import ConversationDisplay

    ConversationDisplay().show_run_result(result)
    if not result.ok:
        sys.exit(1)
