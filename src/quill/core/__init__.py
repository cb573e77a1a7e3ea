"""Core errors and shared utilities."""

from quill.core.errors import (
    AuthenticationError,
    ConfigError,
    ConversationError,
    ExceededMaxIterationsError,
    GenerationCancelledError,
    InvalidInputError,
    ModelNotFoundError,
    OverloadedError,
    QuillError,
    RateLimitError,
    SandboxTimeoutError,
    ToolError,
    ToolExecutionError,
    TransportError,
    TransportTimeoutError,
    UnknownToolError,
)
from quill.core.retry import RetryConfig, is_retryable, retry_with_backoff

__all__ = [
    "AuthenticationError",
    "ConfigError",
    "ConversationError",
    "ExceededMaxIterationsError",
    "GenerationCancelledError",
    "InvalidInputError",
    "ModelNotFoundError",
    "OverloadedError",
    "QuillError",
    "RateLimitError",
    "RetryConfig",
    "SandboxTimeoutError",
    "ToolError",
    "ToolExecutionError",
    "TransportError",
    "TransportTimeoutError",
    "UnknownToolError",
    "is_retryable",
    "retry_with_backoff",
]
