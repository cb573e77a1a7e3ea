"""Child-side bootstrap for the script sandbox.

Run as ``python -I -S -c <source of this file>`` by
:class:`quill.tools.sandbox.SandboxExecutor`, one fresh process per
call. Reads one JSON request from stdin and reports progress as JSON
lines on stdout:

    {"event": "ready"}                      request parsed, about to run
    {"event": "log", "line": "..."}         one print() call
    {"event": "started"}                    ran up to its first await
    {"event": "result", "ok": ..., ...}     final outcome

Stdlib only: this file must run under an isolated interpreter.
"""

import ast
import asyncio
import collections
import datetime
import json
import math
import statistics
import sys
import textwrap
from types import SimpleNamespace

_ENTRY = "_quill_main"

_OUT = sys.stdout


def _emit(event, **fields):
    fields["event"] = event
    try:
        line = json.dumps(fields, default=repr)
    except ValueError:
        fields["result"] = repr(fields.get("result"))
        line = json.dumps(fields, default=repr)
    _OUT.write(line + "\n")
    _OUT.flush()


def _make_print(max_output):
    state = {"used": 0, "truncated": False}

    def sandbox_print(*args, sep=" ", end="\n"):
        if state["truncated"]:
            return
        text = (" " if sep is None else str(sep)).join(str(a) for a in args)
        state["used"] += len(text)
        if state["used"] > max_output:
            state["truncated"] = True
            text = "... [output truncated]"
        _emit("log", line=text)

    return sandbox_print


async def _sleep(seconds):
    await asyncio.sleep(seconds)


_BUILTIN_NAMES = (
    "abs", "all", "any", "bin", "bool", "callable", "chr", "dict", "divmod",
    "enumerate", "filter", "float", "format", "frozenset", "hash", "hex",
    "int", "isinstance", "issubclass", "iter", "len", "list", "map", "max",
    "min", "next", "oct", "ord", "pow", "range", "repr", "reversed", "round",
    "set", "slice", "sorted", "str", "sum", "tuple", "zip",
    "ArithmeticError", "AssertionError", "Exception", "IndexError",
    "KeyError", "LookupError", "NotImplementedError", "RuntimeError",
    "StopIteration", "TypeError", "ValueError", "ZeroDivisionError",
)


def _build_scope(max_output):
    import builtins

    safe_builtins = {name: getattr(builtins, name) for name in _BUILTIN_NAMES}
    # Needed by the compiler for ``class`` statements.
    safe_builtins["__build_class__"] = builtins.__build_class__
    safe_builtins["print"] = _make_print(max_output)

    return {
        "__builtins__": safe_builtins,
        "__name__": "sandbox",
        "math": SimpleNamespace(
            **{n: getattr(math, n) for n in dir(math) if not n.startswith("_")}
        ),
        "json": SimpleNamespace(dumps=json.dumps, loads=json.loads),
        "statistics": SimpleNamespace(
            mean=statistics.mean,
            fmean=statistics.fmean,
            median=statistics.median,
            mode=statistics.mode,
            pstdev=statistics.pstdev,
            stdev=statistics.stdev,
            variance=statistics.variance,
        ),
        "datetime": SimpleNamespace(
            date=datetime.date,
            datetime=datetime.datetime,
            timedelta=datetime.timedelta,
            timezone=datetime.timezone,
        ),
        "collections": SimpleNamespace(
            Counter=collections.Counter,
            OrderedDict=collections.OrderedDict,
            defaultdict=collections.defaultdict,
            deque=collections.deque,
            namedtuple=collections.namedtuple,
        ),
        "sleep": _sleep,
    }


def _limit_cpu(seconds):
    if sys.platform == "win32":
        return
    import resource

    _, hard = resource.getrlimit(resource.RLIMIT_CPU)
    if hard == resource.RLIM_INFINITY or seconds <= hard:
        resource.setrlimit(resource.RLIMIT_CPU, (seconds, hard))


def _refused_attribute(tree, blocked):
    for node in ast.walk(tree):
        if isinstance(node, ast.Attribute):
            names = [node.attr]
        elif isinstance(node, ast.MatchClass):
            names = node.kwd_attrs
        else:
            continue
        for name in names:
            if name.startswith("_") or name in blocked:
                return name
    return None


def _describe(exc):
    return f"{type(exc).__name__}: {exc}"


def main():
    request = json.loads(sys.stdin.read())
    _limit_cpu(int(request["cpu_limit_s"]))
    scope = _build_scope(int(request["max_output"]))
    source = f"async def {_ENTRY}(input):\n" + textwrap.indent(request["code"], "    ")

    _emit("ready")

    try:
        tree = ast.parse(source + "\n", "<sandbox>")
        refused = _refused_attribute(tree, frozenset(request["blocked_attributes"]))
        if refused is not None:
            _emit("result", ok=False, error=f"Blocked attribute in code: {refused}")
            return
        exec(compile(tree, "<sandbox>", "exec"), scope)
    except SyntaxError as exc:
        line = (exc.lineno or 1) - 1
        _emit("result", ok=False, error=f"SyntaxError: {exc.msg} (line {line})")
        return
    except Exception as exc:
        _emit("result", ok=False, error=_describe(exc))
        return

    loop = asyncio.new_event_loop()
    task = loop.create_task(scope[_ENTRY](request.get("input")))
    # One loop pass runs the body until its first suspension point.
    loop.run_until_complete(asyncio.sleep(0))
    if not task.done():
        _emit("started")

    try:
        value = loop.run_until_complete(task)
    except Exception as exc:
        _emit("result", ok=False, error=_describe(exc))
    else:
        _emit("result", ok=True, result=value)
    finally:
        loop.close()


if __name__ == "__main__":
    main()
