"""Model client contract and adapters."""

from quill.providers.base import ModelClient, ModelResponse

__all__ = ["ModelClient", "ModelResponse"]
