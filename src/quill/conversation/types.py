"""Conversation turns and their parts.

A conversation is an append-only sequence of :class:`ConversationTurn`.
All types are frozen; the orchestrator copies caller history and only
ever appends new turns.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from quill.tools.base import ToolCall


class Role(enum.StrEnum):
    """Who produced a turn."""

    USER = "user"
    MODEL = "model"
    FUNCTION = "function"


@dataclass(frozen=True, slots=True)
class TextPart:
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text}


@dataclass(frozen=True, slots=True)
class FunctionCallPart:
    """A tool request from the model.

    ``args`` is whatever the model sent: usually a mapping, sometimes a
    JSON string.
    """

    name: str
    args: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"functionCall": {"name": self.name, "args": self.args}}


@dataclass(frozen=True, slots=True)
class FunctionResponsePart:
    """A tool's result, sent back in a ``function`` turn."""

    name: str
    response: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"functionResponse": {"name": self.name, "response": self.response}}


Part = TextPart | FunctionCallPart | FunctionResponsePart


@dataclass(frozen=True, slots=True)
class ConversationTurn:
    """One message in the dialogue."""

    role: Role
    parts: tuple[Part, ...]

    @classmethod
    def user(cls, text: str) -> ConversationTurn:
        return cls(role=Role.USER, parts=(TextPart(text),))

    @classmethod
    def model(cls, text: str) -> ConversationTurn:
        return cls(role=Role.MODEL, parts=(TextPart(text),))

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, TextPart))

    def to_dict(self) -> dict[str, Any]:
        return {"role": str(self.role), "parts": [p.to_dict() for p in self.parts]}


@dataclass(frozen=True, slots=True)
class ConversationResult:
    """Final answer of a run plus the trace of dispatched tool calls."""

    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)
