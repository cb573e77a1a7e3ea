"""Conversation engine: turn types, cancellation and the tool-use loop."""

from quill.conversation.cancel import CancelToken
from quill.conversation.orchestrator import ConversationOrchestrator
from quill.conversation.types import (
    ConversationResult,
    ConversationTurn,
    FunctionCallPart,
    FunctionResponsePart,
    Part,
    Role,
    TextPart,
)

__all__ = [
    "CancelToken",
    "ConversationOrchestrator",
    "ConversationResult",
    "ConversationTurn",
    "FunctionCallPart",
    "FunctionResponsePart",
    "Part",
    "Role",
    "TextPart",
]
