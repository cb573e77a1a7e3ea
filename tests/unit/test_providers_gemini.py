"""Tests for the Gemini model client."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from google.genai import errors as genai_errors
from google.genai import types

from quill.config.schema import ModelConfig
from quill.conversation.types import (
    ConversationTurn,
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
from quill.core.retry import RetryConfig
from quill.providers.base import ModelClient
from quill.providers.gemini import (
    PROVIDER_ID,
    GeminiModelClient,
    _build_contents,
    _map_error,
)

# ── Helpers ─────────────────────────────────────────────────────


def _api_error(cls_name: str, code: int, message: str) -> Exception:
    cls = getattr(genai_errors, cls_name)
    return cls(code, {"error": {"code": code, "message": message, "status": "ERR"}})


def _response(*parts: types.Part) -> types.GenerateContentResponse:
    return types.GenerateContentResponse(
        candidates=[
            types.Candidate(
                content=types.Content(role="model", parts=list(parts)),
                finish_reason=types.FinishReason.STOP,
            )
        ]
    )


def _make_client(response: Any = None, **kwargs: Any) -> MagicMock:
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(
        return_value=response or _response(types.Part(text="Hello")), **kwargs
    )
    return client


def _gemini(client: MagicMock, **kwargs: Any) -> GeminiModelClient:
    return GeminiModelClient(
        client=client, retry=RetryConfig(max_retries=0), **kwargs
    )


# ── Identity ────────────────────────────────────────────────────


def test_provider_id():
    gemini = _gemini(_make_client())
    assert gemini.provider_id == PROVIDER_ID == "gemini"
    assert isinstance(gemini, ModelClient)


def test_from_config():
    gemini = GeminiModelClient.from_config(
        ModelConfig(api_key="k", model="gemini-2.5-pro"), client=_make_client()
    )
    assert gemini.model == "gemini-2.5-pro"


# ── _build_contents ─────────────────────────────────────────────


class TestBuildContents:
    def test_roles(self):
        turns = [ConversationTurn.user("Hi"), ConversationTurn.model("Hello")]
        contents = _build_contents(turns)
        assert contents == [
            {"role": "user", "parts": [{"text": "Hi"}]},
            {"role": "model", "parts": [{"text": "Hello"}]},
        ]

    def test_function_turns_sent_as_user(self):
        turns = [
            ConversationTurn(
                role=Role.MODEL,
                parts=(FunctionCallPart("math_eval", {"expression": "1+1"}),),
            ),
            ConversationTurn(
                role=Role.FUNCTION,
                parts=(FunctionResponsePart("math_eval", {"ok": True, "result": 2}),),
            ),
        ]
        model_turn, function_turn = _build_contents(turns)
        assert model_turn["parts"] == [
            {"function_call": {"name": "math_eval", "args": {"expression": "1+1"}}}
        ]
        assert function_turn["role"] == "user"
        assert function_turn["parts"] == [
            {
                "function_response": {
                    "name": "math_eval",
                    "response": {"ok": True, "result": 2},
                }
            }
        ]

    def test_string_args_not_sent_raw(self):
        turn = ConversationTurn(role=Role.MODEL, parts=(FunctionCallPart("f", "{bad"),))
        (content,) = _build_contents([turn])
        assert content["parts"][0]["function_call"]["args"] == {}


# ── generate ────────────────────────────────────────────────────


class TestGenerate:
    async def test_text_response(self):
        gemini = _gemini(_make_client())
        response = await gemini.generate([ConversationTurn.user("Hi")])
        assert response.parts == (TextPart("Hello"),)
        assert response.text == "Hello"
        assert response.finish_reason == "STOP"

    async def test_function_call_response(self):
        client = _make_client(
            _response(
                types.Part(
                    function_call=types.FunctionCall(
                        name="math_eval", args={"expression": "2^10"}
                    )
                )
            )
        )
        response = await _gemini(client).generate([ConversationTurn.user("2^10?")])
        assert response.function_calls == [
            FunctionCallPart("math_eval", {"expression": "2^10"})
        ]

    async def test_no_candidates(self):
        client = _make_client(types.GenerateContentResponse(candidates=[]))
        response = await _gemini(client).generate([ConversationTurn.user("Hi")])
        assert response.parts == ()

    async def test_request_shape(self):
        client = _make_client()
        gemini = _gemini(client, model="gemini-2.5-pro", temperature=0.2)
        tools = [
            {
                "name": "math_eval",
                "description": "Evaluate",
                "parameters": {
                    "type": "object",
                    "properties": {"expression": {"type": "string"}},
                    "required": ["expression"],
                },
            }
        ]
        await gemini.generate(
            [ConversationTurn.user("Hi")],
            tools=tools,
            system_instruction="Be brief.",
        )

        kwargs = client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-pro"
        assert kwargs["contents"] == [{"role": "user", "parts": [{"text": "Hi"}]}]
        config = kwargs["config"]
        assert config.temperature == 0.2
        assert config.system_instruction == "Be brief."
        assert config.tools[0].function_declarations[0].name == "math_eval"

    async def test_no_tools_omits_tool_config(self):
        client = _make_client()
        await _gemini(client).generate([ConversationTurn.user("Hi")])
        config = client.aio.models.generate_content.call_args.kwargs["config"]
        assert not config.tools
        assert config.system_instruction is None


# ── Error mapping ───────────────────────────────────────────────


class TestErrorMapping:
    @pytest.mark.parametrize(
        ("cls_name", "code", "expected"),
        [
            ("ClientError", 401, AuthenticationError),
            ("ClientError", 403, AuthenticationError),
            ("ClientError", 404, ModelNotFoundError),
            ("ClientError", 429, RateLimitError),
            ("ServerError", 503, OverloadedError),
        ],
    )
    def test_status_codes(self, cls_name: str, code: int, expected: type) -> None:
        mapped = _map_error(_api_error(cls_name, code, "boom"))
        assert type(mapped) is expected
        assert mapped.provider_id == "gemini"

    def test_other_client_error_is_transport_error(self):
        mapped = _map_error(_api_error("ClientError", 400, "bad request"))
        assert type(mapped) is TransportError
        assert "bad request" in str(mapped)

    def test_httpx_timeout(self):
        assert isinstance(_map_error(httpx.ReadTimeout("slow")), TransportTimeoutError)

    def test_httpx_connect_error(self):
        mapped = _map_error(httpx.ConnectError("refused"))
        assert type(mapped) is TransportError

    async def test_generate_raises_mapped_error(self):
        client = _make_client(side_effect=_api_error("ClientError", 401, "bad key"))
        with pytest.raises(AuthenticationError, match="bad key"):
            await _gemini(client).generate([ConversationTurn.user("Hi")])

    async def test_transient_error_retried(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr("quill.core.retry.asyncio.sleep", AsyncMock())
        client = _make_client()
        client.aio.models.generate_content.side_effect = [
            _api_error("ServerError", 503, "busy"),
            _response(types.Part(text="recovered")),
        ]
        gemini = GeminiModelClient(client=client, retry=RetryConfig(max_retries=2))
        response = await gemini.generate([ConversationTurn.user("Hi")])
        assert response.text == "recovered"
        assert client.aio.models.generate_content.await_count == 2

    async def test_auth_error_not_retried(self):
        client = _make_client(side_effect=_api_error("ClientError", 403, "denied"))
        gemini = GeminiModelClient(client=client, retry=RetryConfig(max_retries=2))
        with pytest.raises(AuthenticationError):
            await gemini.generate([ConversationTurn.user("Hi")])
        assert client.aio.models.generate_content.await_count == 1
