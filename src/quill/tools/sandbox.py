"""Script sandbox — runs short untrusted Python snippets in a subprocess.

Each call gets a fresh isolated interpreter (``python -I -S``) with an
empty environment and a throwaway working directory. The snippet runs as
the body of an ``async def`` with a restricted builtins table, a few safe
namespaces and a capturing ``print``; the caller's value is bound as
``input``.

Two deadlines apply:

1. ``sync_timeout_ms`` — from the moment the child is ready until the body
   reaches its first suspension point. A tight loop never yields, so the
   process is killed at this boundary.
2. ``async_timeout_ms`` — the remaining coroutine raced against a timer
   with :func:`asyncio.wait_for`.

Before anything runs the code is length-checked, scanned for a denylist
of escalation tokens and parsed to reject private, frame and code-object
attribute access. The child repeats the attribute check before compiling.
Both are pre-filters; isolation comes from the subprocess.
"""

from __future__ import annotations

import ast
import asyncio
import contextlib
import json
import logging
import math
import re
import sys
import tempfile
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from quill.core.errors import InvalidInputError, SandboxTimeoutError
from quill.tools.base import ToolResult

if TYPE_CHECKING:
    from quill.config.schema import SandboxConfig
    from quill.tools.base import DocumentStore

logger = logging.getLogger(__name__)

MAX_CODE_LENGTH = 4000

DENYLIST: frozenset[str] = frozenset(
    {
        # module loading and dynamic code
        "import", "importlib", "__import__", "exec", "eval", "compile",
        "builtins", "globals", "locals", "vars",
        # introspection
        "getattr", "setattr", "delattr", "inspect", "gc", "memoryview",
        "breakpoint", "help",
        # process, filesystem, network
        "os", "sys", "subprocess", "shutil", "pathlib", "io", "open",
        "socket", "urllib", "http", "requests", "ctypes", "signal",
        "resource", "pickle", "marshal", "exit", "quit",
        # threads, workers, timers
        "threading", "multiprocessing", "concurrent", "asyncio", "time",
    }
)

# Attribute names refused on top of anything starting with "_". Frames
# and code objects lead back to real module globals; str.format and
# format_map can walk attributes by name from inside a format string.
BLOCKED_ATTRIBUTES: frozenset[str] = frozenset(
    {
        "cr_frame", "gi_frame", "ag_frame", "tb_frame", "tb_next",
        "f_globals", "f_locals", "f_builtins", "f_back", "f_code",
        "cr_code", "gi_code", "ag_code", "cr_await", "ag_await",
        "gi_yieldfrom", "format", "format_map", "mro",
    }
)

_WORD = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_DUNDER = re.compile(r"^__\w+__$")
_ENTRY = "_quill_main"

_CHILD_SOURCE = Path(__file__).with_name("_sandbox_child.py").read_text(
    encoding="utf-8"
)
_STREAM_LIMIT = 4 * 1024 * 1024


def check_code(code: object, max_length: int = MAX_CODE_LENGTH) -> str:
    """Validate snippet length and scan it for blocked tokens.

    Raises:
        InvalidInputError: If the code is missing, too long, or contains
            a denylisted identifier, any dunder name, or a refused
            attribute access.
    """
    if not isinstance(code, str) or not code.strip() or len(code) > max_length:
        msg = "Code is missing or too long"
        raise InvalidInputError(msg)
    for token in _WORD.findall(code):
        if token in DENYLIST or _DUNDER.match(token):
            msg = f"Blocked token in code: {token}"
            raise InvalidInputError(msg)
    _check_attributes(code)
    return code


def blocked_attribute(tree: ast.AST) -> str | None:
    """Return the first refused attribute name used anywhere in *tree*."""
    for node in ast.walk(tree):
        if isinstance(node, ast.Attribute):
            names: list[str] = [node.attr]
        elif isinstance(node, ast.MatchClass):
            names = list(node.kwd_attrs)
        else:
            continue
        for name in names:
            if name.startswith("_") or name in BLOCKED_ATTRIBUTES:
                return name
    return None


def _check_attributes(code: str) -> None:
    # Parsed the way the child wraps it, so top-level await and return work.
    source = f"async def {_ENTRY}(input):\n" + textwrap.indent(code, "    ")
    try:
        tree = ast.parse(source + "\n")
    except SyntaxError:
        # The child reports syntax errors with a line number.
        return
    name = blocked_attribute(tree)
    if name is not None:
        msg = f"Blocked attribute in code: {name}"
        raise InvalidInputError(msg)


@dataclass(frozen=True, slots=True)
class SandboxRequest:
    """One invocation; discarded once the result is returned."""

    code: str
    input: Any = None
    sync_timeout_ms: int = 2000
    async_timeout_ms: int = 3000


class _ChildExitedError(Exception):
    pass


class _Session:
    """Reads the child's event stream and collects its print output."""

    def __init__(self, proc: asyncio.subprocess.Process, max_output: int) -> None:
        self._proc = proc
        self._max_output = max_output
        self._used = 0
        self.lines: list[str] = []

    @property
    def stdout(self) -> str:
        return "\n".join(self.lines)

    def _collect(self, line: str) -> None:
        if self._used > self._max_output:
            return
        self._used += len(line)
        if self._used > self._max_output:
            self.lines.append("... [output truncated]")
        else:
            self.lines.append(line)

    async def next_event(self, wanted: frozenset[str]) -> dict[str, Any]:
        assert self._proc.stdout is not None
        while True:
            raw = await self._proc.stdout.readline()
            if not raw:
                raise _ChildExitedError
            try:
                event = json.loads(raw)
            except json.JSONDecodeError:
                self._collect(raw.decode(errors="replace").rstrip("\n"))
                continue
            kind = event.get("event")
            if kind == "log":
                self._collect(str(event.get("line", "")))
            elif kind in wanted:
                return event

    async def stderr_tail(self, limit: int = 500) -> str:
        assert self._proc.stderr is not None
        data = await self._proc.stderr.read()
        return data.decode(errors="replace").strip()[-limit:]


class SandboxExecutor:
    """Runs snippets in a fresh subprocess under two deadlines."""

    def __init__(
        self,
        *,
        sync_timeout_ms: int = 2000,
        async_timeout_ms: int = 3000,
        max_code_length: int = MAX_CODE_LENGTH,
        max_output: int = 10_000,
        startup_timeout_ms: int = 10_000,
        python: str | None = None,
    ) -> None:
        self.sync_timeout_ms = sync_timeout_ms
        self.async_timeout_ms = async_timeout_ms
        self.max_code_length = max_code_length
        self.max_output = max_output
        self.startup_timeout_ms = startup_timeout_ms
        self._python = python or sys.executable

    @classmethod
    def from_config(cls, config: SandboxConfig) -> SandboxExecutor:
        return cls(
            sync_timeout_ms=config.sync_timeout_ms,
            async_timeout_ms=config.async_timeout_ms,
            max_code_length=config.max_code_length,
            max_output=config.max_output,
            startup_timeout_ms=config.startup_timeout_ms,
        )

    async def run(
        self,
        code: object,
        input: Any = None,  # noqa: A002
        *,
        sync_timeout_ms: int | None = None,
        async_timeout_ms: int | None = None,
    ) -> ToolResult:
        """Execute a snippet and return its result and captured output.

        Never raises for script problems: validation errors, exceptions
        inside the script and timeouts all come back as failed results
        carrying whatever output was printed.
        """
        try:
            checked = check_code(code, self.max_code_length)
        except InvalidInputError as exc:
            return ToolResult.failure(str(exc))

        request = SandboxRequest(
            code=checked,
            input=input,
            sync_timeout_ms=sync_timeout_ms or self.sync_timeout_ms,
            async_timeout_ms=async_timeout_ms or self.async_timeout_ms,
        )
        return await self._execute(request)

    async def _execute(self, request: SandboxRequest) -> ToolResult:
        total_s = (request.sync_timeout_ms + request.async_timeout_ms) / 1000
        payload = json.dumps(
            {
                "code": request.code,
                "input": request.input,
                "max_output": self.max_output,
                "cpu_limit_s": math.ceil(total_s) + 1,
                "blocked_attributes": sorted(BLOCKED_ATTRIBUTES),
            },
            default=repr,
        ).encode()

        with tempfile.TemporaryDirectory(prefix="quill-sandbox-") as workdir:
            try:
                proc = await asyncio.create_subprocess_exec(
                    self._python,
                    "-I",
                    "-S",
                    "-c",
                    _CHILD_SOURCE,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=workdir,
                    env={},
                    limit=_STREAM_LIMIT,
                )
            except OSError as exc:
                return ToolResult.failure(f"Failed to start sandbox: {exc}")

            session = _Session(proc, self.max_output)
            try:
                return await self._drive(proc, session, request, payload)
            except SandboxTimeoutError as exc:
                logger.info(
                    "Sandbox %s stage exceeded %dms", exc.stage, exc.timeout_ms
                )
                return ToolResult.failure(str(exc), stdout=session.stdout)
            finally:
                if proc.returncode is None:
                    proc.kill()
                    await proc.wait()

    async def _drive(
        self,
        proc: asyncio.subprocess.Process,
        session: _Session,
        request: SandboxRequest,
        payload: bytes,
    ) -> ToolResult:
        assert proc.stdin is not None
        # A child that died on startup is reported via its exit below.
        with contextlib.suppress(BrokenPipeError, ConnectionResetError):
            proc.stdin.write(payload)
            await proc.stdin.drain()
            proc.stdin.close()

        try:
            await asyncio.wait_for(
                session.next_event(frozenset({"ready"})),
                timeout=self.startup_timeout_ms / 1000,
            )

            # Stage 1: body runs until it first suspends, or finishes.
            try:
                event = await asyncio.wait_for(
                    session.next_event(frozenset({"started", "result"})),
                    timeout=request.sync_timeout_ms / 1000,
                )
            except TimeoutError:
                raise SandboxTimeoutError("sync", request.sync_timeout_ms) from None

            # Stage 2: the pending coroutine races the async deadline.
            if event["event"] == "started":
                try:
                    event = await asyncio.wait_for(
                        session.next_event(frozenset({"result"})),
                        timeout=request.async_timeout_ms / 1000,
                    )
                except TimeoutError:
                    raise SandboxTimeoutError(
                        "async", request.async_timeout_ms
                    ) from None
        except _ChildExitedError:
            await proc.wait()
            detail = await session.stderr_tail()
            msg = f"Sandbox exited unexpectedly (code {proc.returncode})"
            if detail:
                msg += f": {detail}"
            return ToolResult.failure(msg, stdout=session.stdout)
        except TimeoutError:
            return ToolResult.failure("Sandbox failed to start", stdout=session.stdout)
        except ValueError:
            # StreamReader refuses lines over its limit.
            return ToolResult.failure("Sandbox output too large", stdout=session.stdout)

        if event.get("ok"):
            return ToolResult.success(event.get("result"), stdout=session.stdout)
        return ToolResult.failure(
            str(event.get("error", "Unknown error")), stdout=session.stdout
        )


class RunPythonTool:
    """Sandboxed Python execution exposed to the model.

    Implements the :class:`Tool` protocol.
    """

    def __init__(self, executor: SandboxExecutor | None = None) -> None:
        self._executor = executor or SandboxExecutor()

    @property
    def name(self) -> str:
        return "run_python"

    @property
    def description(self) -> str:
        return (
            "Run a short Python snippet in a sandbox and return its result. "
            "The code is the body of an async function: use `return` to give "
            "a result and `print` to log. No imports; available names are "
            "basic builtins, math, json, statistics, datetime, collections, "
            "`await sleep(seconds)` and `input` (the optional input value)."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "code": {
                    "type": "string",
                    "description": (
                        f"Python function body, at most "
                        f"{self._executor.max_code_length} characters."
                    ),
                },
                "input": {
                    "type": "string",
                    "description": "Optional JSON text, parsed and bound as `input`.",
                },
            },
            "required": ["code"],
        }

    async def execute(
        self, args: dict[str, Any], context: DocumentStore | None
    ) -> ToolResult:
        code = args.get("code")
        try:
            check_code(code, self._executor.max_code_length)
        except InvalidInputError as exc:
            return ToolResult.failure(str(exc))
        return await self._executor.run(code, _parse_input(args.get("input")))


def _parse_input(raw: Any) -> Any:
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw
