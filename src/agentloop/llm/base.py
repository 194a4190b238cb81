"""LLM client interface and response data classes.

The orchestrator talks to a model only through the ``LLMClient``
protocol. Vendor adapters (HTTP transport, auth, serialization) live
outside this package; they map their SDK errors onto the
:class:`~agentloop.core.errors.LLMError` family so the retry policy
can tell transient failures from permanent ones.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, Union, runtime_checkable

from agentloop.tools.base import ToolCall

if TYPE_CHECKING:
    from collections.abc import Sequence

    from agentloop.agent.transcript import ConversationTurn
    from agentloop.tools.base import ToolDefinition


@dataclass(frozen=True, slots=True)
class TokenUsage:
    """Token counts from a single model call."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Total tokens consumed (input + output)."""
        return self.input_tokens + self.output_tokens

    def __add__(self, other: TokenUsage) -> TokenUsage:
        if not isinstance(other, TokenUsage):
            return NotImplemented
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


@dataclass(frozen=True, slots=True)
class FinalText:
    """The model answered; the session is done."""

    text: str
    usage: TokenUsage | None = None


@dataclass(frozen=True, slots=True)
class ToolCallRequests:
    """The model wants one or more tools invoked, in this order."""

    calls: tuple[ToolCall, ...]
    usage: TokenUsage | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "calls", tuple(self.calls))
        if not self.calls:
            msg = "ToolCallRequests requires at least one call"
            raise ValueError(msg)
        for call in self.calls:
            if not isinstance(call, ToolCall):
                msg = f"Expected ToolCall, got {type(call).__name__}"
                raise TypeError(msg)


LLMResponse = Union[FinalText, ToolCallRequests]


@runtime_checkable
class LLMClient(Protocol):
    """Protocol that all LLM client adapters must satisfy.

    Implementations are stateless with respect to the conversation;
    the orchestrator owns the transcript and passes it in full on every
    call.
    """

    @property
    def client_id(self) -> str:
        """Identifier used in error messages and logs (e.g. 'openai')."""
        ...

    async def send(
        self,
        transcript: Sequence[ConversationTurn],
        tools: Sequence[ToolDefinition],
    ) -> LLMResponse:
        """Send the conversation and available tools; return the reply.

        Raises:
            LLMTransportError: For retryable failures (rate limit,
                timeout, overload, transient network).
            LLMAuthError, LLMRequestError: For permanent failures.
        """
        ...
