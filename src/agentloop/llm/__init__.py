"""LLM client boundary."""

from agentloop.llm.base import (
    FinalText,
    LLMClient,
    LLMResponse,
    TokenUsage,
    ToolCallRequests,
)

__all__ = [
    "FinalText",
    "LLMClient",
    "LLMResponse",
    "TokenUsage",
    "ToolCallRequests",
]
