"""LLM integration helpers."""

from __future__ import annotations


from .client import (
    ChatCompletionResponse,
    ChatMessage,
    Choice,
    LLMClient,
    LLMClientError,
    RateLimitError,
    Usage,
)


__all__ = [
    "ChatCompletionResponse",
    "ChatMessage",
    "Choice",
    "LLMClient",
    "LLMClientError",
    "RateLimitError",
    "Usage",
]
