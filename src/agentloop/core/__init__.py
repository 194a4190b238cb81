"""Core errors, retry policy, and shared utilities."""

from agentloop.core.errors import (
    AgentLoopError,
    ConfigError,
    DuplicateCallIdError,
    InvalidArgumentsError,
    LLMAuthError,
    LLMError,
    LLMOverloadedError,
    LLMRateLimitError,
    LLMRequestError,
    LLMTimeoutError,
    LLMTransportError,
    SchemaError,
    SessionError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    TurnLimitExceededError,
)
from agentloop.core.retry import RetryConfig, is_retryable, retry_with_backoff

__all__ = [
    "AgentLoopError",
    "ConfigError",
    "DuplicateCallIdError",
    "InvalidArgumentsError",
    "LLMAuthError",
    "LLMError",
    "LLMOverloadedError",
    "LLMRateLimitError",
    "LLMRequestError",
    "LLMTimeoutError",
    "LLMTransportError",
    "RetryConfig",
    "SchemaError",
    "SessionError",
    "ToolError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "TurnLimitExceededError",
    "is_retryable",
    "retry_with_backoff",
]
