"""Model client interface and response type.

A model client turns conversation history plus tool declarations into one
model response. Clients are stateless between calls; the orchestrator
owns all conversation state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from quill.conversation.types import FunctionCallPart, TextPart

if TYPE_CHECKING:
    from collections.abc import Sequence

    from quill.conversation.types import ConversationTurn, Part


@dataclass(frozen=True, slots=True)
class ModelResponse:
    """Parts of the first candidate returned by the model."""

    parts: tuple[Part, ...]
    finish_reason: str = ""
    raw: object = field(default=None, repr=False, compare=False)

    @property
    def text(self) -> str:
        """Concatenated text of all text parts, stripped."""
        return "".join(p.text for p in self.parts if isinstance(p, TextPart)).strip()

    @property
    def function_calls(self) -> list[FunctionCallPart]:
        return [p for p in self.parts if isinstance(p, FunctionCallPart)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "parts": [p.to_dict() for p in self.parts],
            "finish_reason": self.finish_reason,
        }


@runtime_checkable
class ModelClient(Protocol):
    """Protocol that all model clients satisfy."""

    @property
    def provider_id(self) -> str:
        """Short identifier used in error messages (e.g. 'gemini')."""
        ...

    async def generate(
        self,
        contents: Sequence[ConversationTurn],
        *,
        tools: list[dict[str, Any]] | None = None,
        system_instruction: str | None = None,
    ) -> ModelResponse:
        """Send the conversation and return the model's next turn.

        Args:
            contents: Full turn history, oldest first.
            tools: Declarations as ``{name, description, parameters}``.
            system_instruction: Optional system-level prompt.

        Raises:
            AuthenticationError: Credentials rejected (401/403).
            TransportError: Any other transport or HTTP failure.
        """
        ...
