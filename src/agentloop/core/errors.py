"""Exception hierarchy for agentloop.

Every module imports from here. The hierarchy is:

    AgentLoopError
    ├── ConfigError
    ├── SchemaError
    ├── ToolError(tool_name)              reported back to the model
    │   ├── ToolNotFoundError
    │   ├── InvalidArgumentsError(problems)
    │   └── ToolExecutionError
    ├── LLMError(client_id)
    │   ├── LLMTransportError             retryable
    │   │   ├── LLMRateLimitError(retry_after)
    │   │   ├── LLMTimeoutError
    │   │   └── LLMOverloadedError
    │   ├── LLMAuthError
    │   └── LLMRequestError
    └── SessionError                      fatal to the session
        ├── TurnLimitExceededError(max_turns)
        └── DuplicateCallIdError(call_id)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from agentloop.agent.transcript import Transcript


class AgentLoopError(Exception):
    """Base exception for all agentloop errors.

    When a session fails, the orchestrator attaches the transcript
    accumulated so far as ``transcript``.
    """

    transcript: Transcript | None = None


# ─── Configuration / Registration ─────────────────────────────


class ConfigError(AgentLoopError):
    """Invalid configuration."""


class SchemaError(AgentLoopError):
    """Malformed parameter schema or invalid tool registration."""


# ─── Tool Errors ──────────────────────────────────────────────


class ToolError(AgentLoopError):
    """Base for errors that become tool-results instead of failures."""

    kind = "tool_error"

    def __init__(self, tool_name: str, message: str) -> None:
        self.tool_name = tool_name
        super().__init__(message)


class ToolNotFoundError(ToolError):
    """The model asked for a tool that is not registered."""

    kind = "tool_not_found"

    def __init__(self, tool_name: str) -> None:
        super().__init__(tool_name, f"Tool not found: {tool_name}")


class InvalidArgumentsError(ToolError):
    """Arguments could not be decoded or do not match the schema."""

    kind = "invalid_arguments"

    def __init__(self, tool_name: str, problems: Sequence[str]) -> None:
        self.problems = tuple(problems)
        detail = "; ".join(self.problems) or "invalid arguments"
        super().__init__(tool_name, f"Invalid arguments for tool '{tool_name}': {detail}")


class ToolExecutionError(ToolError):
    """Tool invocation raised or timed out."""

    kind = "tool_execution_error"


# ─── LLM Client Errors ────────────────────────────────────────


class LLMError(AgentLoopError):
    """Base for LLM client errors."""

    def __init__(self, client_id: str, message: str) -> None:
        self.client_id = client_id
        super().__init__(f"[{client_id}] {message}")


class LLMTransportError(LLMError):
    """Transient provider or network failure. Safe to retry."""


class LLMRateLimitError(LLMTransportError):
    """Rate limit exceeded. Includes retry_after if available."""

    def __init__(self, client_id: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        msg = "Rate limited"
        if retry_after is not None:
            msg += f" (retry after {retry_after}s)"
        super().__init__(client_id, msg)


class LLMTimeoutError(LLMTransportError):
    """Model call timed out."""


class LLMOverloadedError(LLMTransportError):
    """Provider is overloaded (529, 503)."""


class LLMAuthError(LLMError):
    """Invalid or missing credentials."""


class LLMRequestError(LLMError):
    """The provider rejected the request as malformed."""


# ─── Session Errors ───────────────────────────────────────────


class SessionError(AgentLoopError):
    """Base for errors that terminate a session."""


class TurnLimitExceededError(SessionError):
    """The model kept requesting tools past the configured turn limit."""

    def __init__(self, max_turns: int) -> None:
        self.max_turns = max_turns
        super().__init__(f"Turn limit of {max_turns} tool rounds exceeded")


class DuplicateCallIdError(SessionError):
    """The LLM client reused a tool-call identifier."""

    def __init__(self, call_id: str) -> None:
        self.call_id = call_id
        super().__init__(f"Duplicate tool call id: {call_id}")
