"""Conversation orchestrator: the tool-use loop around a model client.

Each iteration sends the history plus tool declarations to the model. A
function call in the reply is dispatched through the registry and its
result appended as a ``function`` turn; a text reply ends the run.

Failures degrade rather than abort wherever some progress was made:

* tool errors are collected and reported in the final text;
* a tool failure on the last permitted iteration triggers one extra,
  tool-free request asking the model to answer anyway;
* transport errors propagate only while no tool error has been seen,
  otherwise they fold into a degraded answer.

A run ends without text only by raising: on cancellation, on a transport
failure before any tool error, or when iterations run out with nothing
to report.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from quill.conversation.cancel import CancelToken
from quill.conversation.types import (
    ConversationResult,
    ConversationTurn,
    FunctionCallPart,
    FunctionResponsePart,
    Role,
)
from quill.core.errors import (
    ExceededMaxIterationsError,
    ToolExecutionError,
    TransportError,
)
from quill.tools.base import ToolCall, ToolResult

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from quill.config.schema import QuillConfig
    from quill.providers.base import ModelClient, ModelResponse
    from quill.tools.base import DocumentStore
    from quill.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 6

_MENTIONS_TOOLS = re.compile(r"\btools?\b", re.IGNORECASE)


def parse_function_args(raw: Any) -> dict[str, Any]:
    """Normalize function-call arguments to a mapping.

    Models send either a mapping or a JSON string. Strings that do not
    decode to a JSON object are wrapped as ``{"value": raw}`` so dispatch
    never fails on malformed arguments.
    """
    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return dict(raw)
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return {"value": raw}
        if isinstance(parsed, dict):
            return parsed
    return {"value": raw}


def _bullets(errors: Sequence[ToolExecutionError]) -> str:
    return "\n".join(f"- {e}" for e in errors)


def _apology(errors: Sequence[ToolExecutionError]) -> str:
    return (
        "Sorry, I couldn't produce an answer because the tools I tried failed:\n"
        + _bullets(errors)
    )


def _degraded(errors: Sequence[ToolExecutionError], exc: Exception) -> str:
    return (
        "Sorry, I couldn't finish this request. The tools I tried failed:\n"
        f"{_bullets(errors)}\n"
        f"The follow-up model request also failed: {exc}"
    )


def _fallback_prompt(errors: Sequence[ToolExecutionError]) -> str:
    return (
        "The tool calls made while answering failed with these errors:\n"
        f"{_bullets(errors)}\n\n"
        "Answer the previous request as well as you can without using any "
        "tools, and say briefly that a tool could not be used."
    )


class ConversationOrchestrator:
    """Runs the request/dispatch loop for one conversation at a time.

    The orchestrator holds only configuration; every ``run`` call keeps
    its own history, error list and trace, so one instance can serve
    concurrent runs.

    Args:
        client: Model client used for every round-trip.
        registry: Tools available for dispatch.
        max_iterations: Model round-trips allowed before giving up. The
            fallback request after a last-iteration tool failure is not
            counted.
        system_instruction: Optional system prompt sent with each request.
        max_history_turns: Keep only this many trailing turns of caller
            history.
        context: Document store for tool handlers; defaults to the
            registry's own.
    """

    def __init__(
        self,
        client: ModelClient,
        registry: ToolRegistry,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        system_instruction: str | None = None,
        max_history_turns: int | None = None,
        context: DocumentStore | None = None,
    ) -> None:
        if max_iterations < 1:
            msg = "max_iterations must be at least 1"
            raise ValueError(msg)
        self._client = client
        self._registry = registry
        self._max_iterations = max_iterations
        self._system_instruction = system_instruction or None
        self._max_history_turns = max_history_turns
        self._context = context

    @classmethod
    def from_config(
        cls,
        config: QuillConfig,
        client: ModelClient,
        registry: ToolRegistry,
        *,
        context: DocumentStore | None = None,
    ) -> ConversationOrchestrator:
        return cls(
            client,
            registry,
            max_iterations=config.conversation.max_iterations,
            system_instruction=config.model.system_prompt,
            max_history_turns=config.conversation.max_history_turns,
            context=context,
        )

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    def _window(self, contents: Sequence[ConversationTurn]) -> list[ConversationTurn]:
        history = list(contents)
        if self._max_history_turns is None or len(history) <= self._max_history_turns:
            return history
        window = history[-self._max_history_turns :]
        # Never start on a model or function turn cut off from its request.
        while len(window) > 1 and window[0].role != Role.USER:
            window.pop(0)
        return window

    async def _generate(
        self,
        history: Sequence[ConversationTurn],
        tools: list[dict[str, Any]] | None,
        token: CancelToken,
    ) -> ModelResponse:
        return await token.race(
            self._client.generate(
                list(history),
                tools=tools,
                system_instruction=self._system_instruction,
            )
        )

    async def run(
        self,
        contents: Sequence[ConversationTurn],
        allowed_tools: Iterable[str] | None = None,
        cancel_token: CancelToken | None = None,
    ) -> ConversationResult:
        """Drive the conversation to a final answer.

        Args:
            contents: Caller history; not modified.
            allowed_tools: Names of tools to offer. ``None`` offers every
                registered tool; an empty collection offers none.
            cancel_token: Aborts the run when fired.

        Returns:
            The final text and the ordered trace of tool calls.

        Raises:
            GenerationCancelledError: The token fired.
            TransportError: The model call failed before any tool error.
            ExceededMaxIterationsError: No answer and nothing to report.
        """
        token = cancel_token or CancelToken()
        history = self._window(contents)
        declarations = self._registry.declarations(allowed_tools)
        offered = {d["name"] for d in declarations}
        tool_errors: list[ToolExecutionError] = []
        tool_calls: list[ToolCall] = []
        iteration = 0

        while iteration < self._max_iterations:
            logger.debug(
                "Round %d/%d (%d turns)",
                iteration + 1,
                self._max_iterations,
                len(history),
            )
            try:
                response = await self._generate(history, declarations or None, token)
            except TransportError as exc:
                if not tool_errors:
                    raise
                logger.warning("Model request failed after tool errors: %s", exc)
                return ConversationResult(_degraded(tool_errors, exc), tool_calls)

            calls = response.function_calls
            if calls and declarations:
                call = calls[0]
                if len(calls) > 1:
                    logger.debug("Ignoring %d extra function calls", len(calls) - 1)
                args = parse_function_args(call.args)

                token.raise_if_cancelled()
                if call.name in offered:
                    result = await self._registry.execute(
                        call.name, args, context=self._context
                    )
                else:
                    result = ToolResult.failure(f"Unknown tool: {call.name}")
                tool_calls.append(ToolCall(name=call.name, args=args, response=result))

                if not result.ok:
                    logger.warning("Tool %s failed: %s", call.name, result.error)
                    tool_errors.append(ToolExecutionError(call.name, str(result.error)))
                    if iteration == self._max_iterations - 1:
                        return await self._fallback(
                            history, tool_errors, tool_calls, token
                        )

                # The dispatched call is echoed with its parsed args; other
                # calls are dropped.
                model_parts = tuple(
                    FunctionCallPart(call.name, args) if p is call else p
                    for p in response.parts
                    if not isinstance(p, FunctionCallPart) or p is call
                )
                history.append(ConversationTurn(role=Role.MODEL, parts=model_parts))
                history.append(
                    ConversationTurn(
                        role=Role.FUNCTION,
                        parts=(FunctionResponsePart(call.name, result.to_payload()),),
                    )
                )
                iteration += 1
                continue

            text = response.text
            if text:
                return ConversationResult(text, tool_calls)
            if tool_errors:
                return ConversationResult(_apology(tool_errors), tool_calls)
            return ConversationResult(json.dumps(response.to_dict()), tool_calls)

        if tool_errors:
            return ConversationResult(_apology(tool_errors), tool_calls)
        raise ExceededMaxIterationsError(self._max_iterations)

    async def _fallback(
        self,
        history: list[ConversationTurn],
        tool_errors: list[ToolExecutionError],
        tool_calls: list[ToolCall],
        token: CancelToken,
    ) -> ConversationResult:
        """One extra tool-free request after a last-iteration failure."""
        logger.info("Tool failed on final iteration; requesting answer without tools")
        request = [*history, ConversationTurn.user(_fallback_prompt(tool_errors))]
        try:
            response = await self._generate(request, None, token)
        except TransportError as exc:
            logger.warning("Fallback request failed: %s", exc)
            return ConversationResult(_degraded(tool_errors, exc), tool_calls)

        text = response.text
        if not text:
            return ConversationResult(_apology(tool_errors), tool_calls)
        if not _MENTIONS_TOOLS.search(text):
            text = f"Note: a tool call failed ({tool_errors[-1]}).\n\n{text}"
        return ConversationResult(text, tool_calls)
