"""Conversation turns and the append-only transcript.

Turn variants are immutable. :class:`Transcript` enforces the
correlation rules between tool-call requests and tool results: call
ids are unique within a conversation, and each request receives at
most one result.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

from agentloop.core.errors import AgentLoopError, DuplicateCallIdError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from agentloop.tools.base import ToolResult


@dataclass(frozen=True, slots=True)
class SystemMessage:
    """Instructions placed ahead of the conversation."""

    content: str


@dataclass(frozen=True, slots=True)
class UserMessage:
    """A message from the user."""

    content: str


@dataclass(frozen=True, slots=True)
class AssistantMessage:
    """Text produced by the model."""

    content: str


@dataclass(frozen=True, slots=True)
class ToolCallRequest:
    """The model asked for a tool to be invoked.

    ``raw_arguments`` is kept exactly as the client delivered it.
    """

    call_id: str
    tool_name: str
    raw_arguments: str | dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolResultMessage:
    """Outcome of a tool call, correlated by ``call_id``."""

    call_id: str
    tool_name: str
    content: str
    is_error: bool = False
    error_kind: str | None = None

    @classmethod
    def from_result(cls, result: ToolResult) -> ToolResultMessage:
        return cls(
            call_id=result.tool_call_id,
            tool_name=result.tool_name,
            content=result.content,
            is_error=result.is_error,
            error_kind=result.error_kind,
        )


ConversationTurn = Union[
    SystemMessage,
    UserMessage,
    AssistantMessage,
    ToolCallRequest,
    ToolResultMessage,
]


class Transcript:
    """Append-only, totally ordered history of one session."""

    def __init__(self) -> None:
        self._turns: list[ConversationTurn] = []
        self._requests: dict[str, ToolCallRequest] = {}
        self._answered: set[str] = set()

    def append(self, turn: ConversationTurn) -> None:
        """Append a turn.

        Raises:
            DuplicateCallIdError: If a tool-call request reuses a call id.
            AgentLoopError: If a tool result does not correlate to exactly
                one unanswered request.
        """
        if isinstance(turn, ToolCallRequest):
            if turn.call_id in self._requests:
                raise DuplicateCallIdError(turn.call_id)
            self._requests[turn.call_id] = turn
        elif isinstance(turn, ToolResultMessage):
            if turn.call_id not in self._requests:
                msg = f"Tool result for unknown call id: {turn.call_id}"
                raise AgentLoopError(msg)
            if turn.call_id in self._answered:
                msg = f"Tool call already has a result: {turn.call_id}"
                raise AgentLoopError(msg)
            self._answered.add(turn.call_id)
        self._turns.append(turn)

    def has_call_id(self, call_id: str) -> bool:
        """Whether a request with this call id has been appended."""
        return call_id in self._requests

    def pending_calls(self) -> list[ToolCallRequest]:
        """Requests that do not yet have a result, in request order."""
        return [
            t
            for t in self._turns
            if isinstance(t, ToolCallRequest) and t.call_id not in self._answered
        ]

    def tool_results(self) -> list[ToolResultMessage]:
        """All tool results in transcript order."""
        return [t for t in self._turns if isinstance(t, ToolResultMessage)]

    def last_assistant_text(self) -> str | None:
        for turn in reversed(self._turns):
            if isinstance(turn, AssistantMessage):
                return turn.content
        return None

    def to_messages(self) -> list[dict[str, Any]]:
        """Render as an OpenAI-style chat message list."""
        return to_messages(self._turns)

    def __iter__(self) -> Iterator[ConversationTurn]:
        return iter(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __getitem__(self, index: int) -> ConversationTurn:
        return self._turns[index]

    def __repr__(self) -> str:
        return f"Transcript(turns={len(self._turns)})"


def _arguments_text(raw: str | dict[str, Any]) -> str:
    if isinstance(raw, str):
        return raw
    return json.dumps(raw, ensure_ascii=False)


def to_messages(turns: Iterable[ConversationTurn]) -> list[dict[str, Any]]:
    """Render turns as an OpenAI-style chat message list.

    Consecutive tool-call requests are grouped into one assistant
    message carrying ``tool_calls``; each result becomes a ``tool``
    message keyed by ``tool_call_id``.
    """
    messages: list[dict[str, Any]] = []
    for turn in turns:
        if isinstance(turn, SystemMessage):
            messages.append({"role": "system", "content": turn.content})
        elif isinstance(turn, UserMessage):
            messages.append({"role": "user", "content": turn.content})
        elif isinstance(turn, AssistantMessage):
            messages.append({"role": "assistant", "content": turn.content})
        elif isinstance(turn, ToolCallRequest):
            entry = {
                "id": turn.call_id,
                "type": "function",
                "function": {
                    "name": turn.tool_name,
                    "arguments": _arguments_text(turn.raw_arguments),
                },
            }
            last = messages[-1] if messages else None
            if last is not None and last["role"] == "assistant" and "tool_calls" in last:
                last["tool_calls"].append(entry)
            else:
                messages.append({"role": "assistant", "content": None, "tool_calls": [entry]})
        else:
            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": turn.call_id,
                    "name": turn.tool_name,
                    "content": turn.content,
                }
            )
    return messages
