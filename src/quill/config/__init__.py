"""Configuration loading and validation."""

from quill.config.loader import load_config
from quill.config.schema import (
    ConversationConfig,
    DocumentsConfig,
    LoggingConfig,
    ModelConfig,
    QuillConfig,
    SandboxConfig,
    ToolsConfig,
)

__all__ = [
    "ConversationConfig",
    "DocumentsConfig",
    "LoggingConfig",
    "ModelConfig",
    "QuillConfig",
    "SandboxConfig",
    "ToolsConfig",
    "load_config",
]
