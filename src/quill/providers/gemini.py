"""Google Gemini model client."""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Any

import httpx
from google import genai
from google.genai import errors as genai_errors

from quill.conversation.types import (
    FunctionCallPart,
    FunctionResponsePart,
    Role,
    TextPart,
)
from quill.core.errors import (
    AuthenticationError,
    ModelNotFoundError,
    OverloadedError,
    RateLimitError,
    TransportError,
    TransportTimeoutError,
)
from quill.core.retry import RetryConfig, retry_with_backoff
from quill.providers.base import ModelResponse

if TYPE_CHECKING:
    from collections.abc import Sequence

    from quill.config.schema import ModelConfig
    from quill.conversation.types import ConversationTurn, Part

logger = logging.getLogger(__name__)

PROVIDER_ID = "gemini"
DEFAULT_MODEL = "gemini-2.5-flash"


def _map_error(e: Exception) -> TransportError:
    """Map google-genai and httpx errors to the quill hierarchy."""
    if isinstance(e, genai_errors.APIError):
        code = getattr(e, "code", None)
        msg = getattr(e, "message", None) or str(e)
        if code in (401, 403):
            return AuthenticationError(PROVIDER_ID, msg)
        if code == 404:
            return ModelNotFoundError(PROVIDER_ID, msg)
        if code == 429:
            return RateLimitError(PROVIDER_ID)
        if isinstance(e, genai_errors.ServerError):
            return OverloadedError(PROVIDER_ID, msg)
        return TransportError(PROVIDER_ID, msg)
    if isinstance(e, (httpx.TimeoutException, TimeoutError)):
        return TransportTimeoutError(PROVIDER_ID, str(e) or "Request timed out")
    return TransportError(PROVIDER_ID, str(e) or type(e).__name__)


def _part_to_wire(part: Part) -> dict[str, Any]:
    if isinstance(part, TextPart):
        return {"text": part.text}
    if isinstance(part, FunctionCallPart):
        args = part.args if isinstance(part.args, dict) else {}
        return {"function_call": {"name": part.name, "args": args}}
    return {"function_response": {"name": part.name, "response": part.response}}


def _build_contents(turns: Sequence[ConversationTurn]) -> list[dict[str, Any]]:
    """Convert turns to the SDK's content dicts.

    Gemini has no ``function`` role; tool results travel as ``user`` turns
    carrying function-response parts.
    """
    contents: list[dict[str, Any]] = []
    for turn in turns:
        role = "model" if turn.role == Role.MODEL else "user"
        contents.append(
            {"role": role, "parts": [_part_to_wire(p) for p in turn.parts]}
        )
    return contents


def _parse_parts(raw_parts: Any) -> tuple[Part, ...]:
    parts: list[Part] = []
    for part in raw_parts or ():
        if getattr(part, "thought", None):
            continue
        fc = getattr(part, "function_call", None)
        if fc is not None and fc.name:
            args = dict(fc.args) if fc.args else None
            parts.append(FunctionCallPart(name=str(fc.name), args=args))
            continue
        fr = getattr(part, "function_response", None)
        if fr is not None and fr.name:
            parts.append(FunctionResponsePart(str(fr.name), dict(fr.response or {})))
            continue
        text = getattr(part, "text", None)
        if isinstance(text, str) and text:
            parts.append(TextPart(text))
    return tuple(parts)


def _finish_reason(candidate: Any) -> str:
    reason = getattr(candidate, "finish_reason", None)
    if reason is None:
        return ""
    if isinstance(reason, enum.Enum):
        return str(reason.name)
    return str(reason)


class GeminiModelClient:
    """Model client for Google Gemini through the google-genai SDK.

    Transient failures (rate limits, timeouts, 5xx) are retried with
    exponential backoff before the mapped error is raised.
    """

    def __init__(
        self,
        api_key: str | None = None,
        *,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.7,
        max_output_tokens: int = 8192,
        retry: RetryConfig | None = None,
        client: genai.Client | None = None,
    ) -> None:
        self._client = client or genai.Client(api_key=api_key)
        self._model = model
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._retry = retry or RetryConfig()

    @classmethod
    def from_config(
        cls,
        config: ModelConfig,
        *,
        client: genai.Client | None = None,
    ) -> GeminiModelClient:
        return cls(
            config.api_key,
            model=config.model,
            temperature=config.temperature,
            max_output_tokens=config.max_output_tokens,
            retry=RetryConfig.from_model_config(config),
            client=client,
        )

    @property
    def provider_id(self) -> str:
        return PROVIDER_ID

    @property
    def model(self) -> str:
        return self._model

    async def generate(
        self,
        contents: Sequence[ConversationTurn],
        *,
        tools: list[dict[str, Any]] | None = None,
        system_instruction: str | None = None,
    ) -> ModelResponse:
        config_kwargs: dict[str, Any] = {
            "temperature": self._temperature,
            "max_output_tokens": self._max_output_tokens,
        }
        if system_instruction:
            config_kwargs["system_instruction"] = system_instruction
        if tools:
            config_kwargs["tools"] = [{"function_declarations": tools}]
        config = genai.types.GenerateContentConfig(**config_kwargs)
        wire = _build_contents(contents)

        async def _send() -> Any:
            try:
                return await self._client.aio.models.generate_content(
                    model=self._model,
                    contents=wire,
                    config=config,
                )
            except (genai_errors.APIError, httpx.HTTPError, TimeoutError) as e:
                raise _map_error(e) from e

        def _on_retry(attempt: int, delay: float, error: Exception) -> None:
            logger.warning(
                "Gemini request failed (%s); retry %d in %.1fs", error, attempt, delay
            )

        response = await retry_with_backoff(_send, self._retry, _on_retry)

        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return ModelResponse(parts=(), raw=response)
        candidate = candidates[0]
        content = getattr(candidate, "content", None)
        return ModelResponse(
            parts=_parse_parts(getattr(content, "parts", None)),
            finish_reason=_finish_reason(candidate),
            raw=response,
        )
