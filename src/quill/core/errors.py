"""Exception hierarchy for quill.

Every module imports from here. The hierarchy is:

    QuillError
    ├── InvalidInputError
    ├── ToolError
    │   ├── UnknownToolError(name)
    │   ├── ToolExecutionError(name)
    │   └── SandboxTimeoutError(stage, timeout_ms)
    ├── TransportError(provider_id)
    │   ├── AuthenticationError
    │   ├── RateLimitError(retry_after)
    │   ├── TransportTimeoutError
    │   ├── OverloadedError
    │   └── ModelNotFoundError
    ├── ConversationError
    │   ├── GenerationCancelledError
    │   └── ExceededMaxIterationsError(max_iterations)
    └── ConfigError

Tool-side errors never escape the registry; they are converted to failed
``ToolResult`` values. Transport and conversation errors reach the caller.
"""

from __future__ import annotations


class QuillError(Exception):
    """Base exception for all quill errors."""


class InvalidInputError(QuillError):
    """Input rejected before any execution (shape, length, characters)."""


# ─── Tool Errors ──────────────────────────────────────────────


class ToolError(QuillError):
    """Base for tool dispatch and execution errors."""


class UnknownToolError(ToolError):
    """No tool is registered under the requested name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class ToolExecutionError(ToolError):
    """A tool handler raised or reported failure."""

    def __init__(self, name: str, message: str) -> None:
        self.name = name
        super().__init__(f"{name}: {message}")


class SandboxTimeoutError(ToolError):
    """Sandboxed code exceeded its sync or async deadline."""

    def __init__(self, stage: str, timeout_ms: int) -> None:
        self.stage = stage
        self.timeout_ms = timeout_ms
        super().__init__("Execution timed out")


# ─── Transport Errors ─────────────────────────────────────────


class TransportError(QuillError):
    """Base for model transport failures."""

    def __init__(self, provider_id: str, message: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"[{provider_id}] {message}")


class AuthenticationError(TransportError):
    """Credentials rejected (HTTP 401/403)."""


class RateLimitError(TransportError):
    """Rate limit exceeded. Includes retry_after if available."""

    def __init__(self, provider_id: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        msg = "Rate limited"
        if retry_after is not None:
            msg += f" (retry after {retry_after}s)"
        super().__init__(provider_id, msg)


class TransportTimeoutError(TransportError):
    """Model call timed out."""


class OverloadedError(TransportError):
    """Provider is overloaded (5xx)."""


class ModelNotFoundError(TransportError):
    """Requested model not available from this provider."""


# ─── Conversation Errors ──────────────────────────────────────


class ConversationError(QuillError):
    """Base for conversation protocol errors."""


class GenerationCancelledError(ConversationError):
    """The run's cancel token fired."""

    def __init__(self, message: str = "Generation stopped by user") -> None:
        super().__init__(message)


class ExceededMaxIterationsError(ConversationError):
    """The loop ran out of iterations without any tool error to report."""

    def __init__(self, max_iterations: int) -> None:
        self.max_iterations = max_iterations
        super().__init__(
            f"Exceeded maximum of {max_iterations} model round-trips "
            "without a final answer"
        )


# ─── Configuration Errors ─────────────────────────────────────


class ConfigError(QuillError):
    """Invalid configuration."""
