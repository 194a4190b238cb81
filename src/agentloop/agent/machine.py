"""Turn-loop state machine: states, context, transitions, guards.

Pure logic module. No IO (no client calls, no tool execution).
The orchestrator performs the work; this module manages valid
transitions and context mutation.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from agentloop.core.errors import AgentLoopError
from agentloop.llm.base import TokenUsage

if TYPE_CHECKING:
    from collections.abc import Sequence

    from agentloop.tools.base import ToolCall


class AgentState(enum.Enum):
    """States in the turn loop."""

    AWAITING_MODEL = "awaiting_model"
    DISPATCHING_TOOLS = "dispatching_tools"
    DONE = "done"
    FAILED = "failed"


@dataclass
class AgentContext:
    """Mutable state for one session.

    ``turns`` counts completed AWAITING_MODEL -> DISPATCHING_TOOLS
    cycles; ``llm_calls`` counts successful model responses; ``usage``
    sums the token counts those responses reported.
    """

    session_id: str
    max_turns: int = 10

    state: AgentState = AgentState.AWAITING_MODEL
    turns: int = 0
    llm_calls: int = 0
    usage: TokenUsage = field(default_factory=TokenUsage)

    # Tool calls awaiting results in the current round
    pending: list[ToolCall] = field(default_factory=list)

    final_text: str | None = None
    error: str | None = None

    @property
    def turn_limit_reached(self) -> bool:
        return self.turns >= self.max_turns


_VALID_TRANSITIONS: dict[AgentState, frozenset[AgentState]] = {
    AgentState.AWAITING_MODEL: frozenset({AgentState.DISPATCHING_TOOLS, AgentState.DONE}),
    AgentState.DISPATCHING_TOOLS: frozenset({AgentState.AWAITING_MODEL}),
    AgentState.DONE: frozenset(),
    AgentState.FAILED: frozenset(),
}

_TERMINAL_STATES: frozenset[AgentState] = frozenset({AgentState.DONE, AgentState.FAILED})


class AgentStateMachine:
    """Manages turn-loop transitions with guard validation.

    Pure logic, no IO. Validates that transitions are legal and
    that guard conditions are met, then mutates the context.
    """

    def __init__(self, context: AgentContext) -> None:
        self._ctx = context

    @property
    def context(self) -> AgentContext:
        """The session context managed by this machine."""
        return self._ctx

    @property
    def state(self) -> AgentState:
        """Current state."""
        return self._ctx.state

    @property
    def is_terminal(self) -> bool:
        """Whether the machine is in a terminal state."""
        return self._ctx.state in _TERMINAL_STATES

    def can_transition(self, to: AgentState) -> bool:
        """Check if a transition is valid without raising."""
        if self._ctx.state in _TERMINAL_STATES:
            return False
        if to == AgentState.FAILED:
            return True
        if to not in _VALID_TRANSITIONS.get(self._ctx.state, frozenset()):
            return False
        return self._check_guard(to) is None

    def transition(self, to: AgentState) -> None:
        """Execute a state transition with guard validation.

        Raises:
            AgentLoopError: If the transition is invalid or a guard
                condition is not met.
        """
        self._validate_transition(to)
        self._apply_transition(to)

    def fail(self, error: str) -> None:
        """Transition to FAILED with an error message.

        Raises:
            AgentLoopError: If already in a terminal state.
        """
        self.transition(AgentState.FAILED)
        self._ctx.error = error

    # ── Internals ─────────────────────────────────────────────

    def _validate_transition(self, to: AgentState) -> None:
        current = self._ctx.state

        if current in _TERMINAL_STATES:
            msg = f"Cannot transition from terminal state {current.value}"
            raise AgentLoopError(msg)

        # FAILED is always reachable from non-terminal states
        if to == AgentState.FAILED:
            return

        valid = _VALID_TRANSITIONS.get(current, frozenset())
        if to not in valid:
            msg = f"Invalid transition: {current.value} -> {to.value}"
            raise AgentLoopError(msg)

        guard_error = self._check_guard(to)
        if guard_error is not None:
            raise AgentLoopError(guard_error)

    def _check_guard(self, to: AgentState) -> str | None:
        """Return an error message if a guard condition fails, else None."""
        ctx = self._ctx

        if to == AgentState.DISPATCHING_TOOLS:
            if not ctx.pending:
                return "Cannot dispatch: no pending tool calls"
            if ctx.turn_limit_reached:
                return f"Cannot dispatch: max turns ({ctx.max_turns}) reached"

        elif to == AgentState.AWAITING_MODEL:
            if ctx.pending:
                return f"Cannot request model: {len(ctx.pending)} tool calls unresolved"

        elif to == AgentState.DONE:
            if ctx.final_text is None:
                return "Cannot finish: no final text"

        return None

    def _apply_transition(self, to: AgentState) -> None:
        if to == AgentState.DISPATCHING_TOOLS:
            self._ctx.turns += 1
        self._ctx.state = to

    def valid_transitions(self) -> Sequence[AgentState]:
        """Return the list of currently valid transitions."""
        if self._ctx.state in _TERMINAL_STATES:
            return []
        candidates = list(_VALID_TRANSITIONS.get(self._ctx.state, frozenset()))
        candidates.append(AgentState.FAILED)
        return [t for t in candidates if self.can_transition(t)]
