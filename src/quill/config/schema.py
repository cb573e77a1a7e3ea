"""Pydantic models for quill configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field

DEFAULT_TOOLS = [
    "math_eval",
    "run_python",
    "list_documents",
    "read_document",
    "write_document",
]


class ModelConfig(BaseModel):
    """Remote model settings."""

    api_key: str | None = None
    api_key_env: str | None = "GOOGLE_API_KEY"
    model: str = "gemini-2.5-flash"
    system_prompt: str = ""
    temperature: float = 0.7
    max_output_tokens: int = 8192
    max_retries: int = Field(default=2, ge=0)
    retry_base_delay: float = Field(default=1.0, gt=0)
    retry_max_delay: float = Field(default=30.0, gt=0)


class ConversationConfig(BaseModel):
    """Tool-use loop settings."""

    max_iterations: int = Field(default=6, ge=1)
    max_history_turns: int | None = Field(default=12, ge=1)


class SandboxConfig(BaseModel):
    """Script sandbox limits."""

    sync_timeout_ms: int = Field(default=2000, gt=0)
    async_timeout_ms: int = Field(default=3000, gt=0)
    startup_timeout_ms: int = Field(default=10_000, gt=0)
    max_code_length: int = Field(default=4000, gt=0)
    max_output: int = Field(default=10_000, gt=0)


class ToolsConfig(BaseModel):
    """Which built-in tools are offered to the model."""

    enabled: list[str] = Field(default_factory=lambda: list(DEFAULT_TOOLS))


class DocumentsConfig(BaseModel):
    """Host document store used by the CLI."""

    root: str = ""
    extension: str = ".md"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    file: str = ""
    structured: bool = False


class QuillConfig(BaseModel):
    """Top-level configuration for quill."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    conversation: ConversationConfig = Field(default_factory=ConversationConfig)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    documents: DocumentsConfig = Field(default_factory=DocumentsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
