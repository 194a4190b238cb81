"""Agent orchestrator. Drives the model/tool turn loop for a session.

Each session sends the full transcript plus the advertised tool
definitions to the LLM client. A final text reply ends the session; a
batch of tool-call requests is validated, dispatched (concurrently when
enabled), and the results are appended in request order before the
model is asked again.

Tool-level problems (unknown tool, bad arguments, tool failure or
timeout) are fed back to the model as error tool-results. Only
exhausted transport retries, non-retryable client errors, the turn
limit, and protocol violations end a session with an exception.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from agentloop.agent.machine import AgentContext, AgentState, AgentStateMachine
from agentloop.agent.transcript import (
    AssistantMessage,
    SystemMessage,
    ToolCallRequest,
    ToolResultMessage,
    Transcript,
    UserMessage,
)
from agentloop.config.schema import AgentLoopConfig
from agentloop.core.errors import (
    AgentLoopError,
    DuplicateCallIdError,
    LLMRequestError,
    LLMTimeoutError,
    LLMTransportError,
    SessionError,
    TurnLimitExceededError,
)
from agentloop.core.retry import retry_with_backoff
from agentloop.llm.base import FinalText, TokenUsage, ToolCallRequests
from agentloop.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from agentloop.agent.transcript import ConversationTurn
    from agentloop.llm.base import LLMClient, LLMResponse
    from agentloop.tools.base import Tool, ToolCall, ToolDefinition, ToolResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AgentResult:
    """Outcome of a successful session."""

    final_text: str
    transcript: Transcript
    turns: int
    llm_calls: int
    usage: TokenUsage = field(default_factory=TokenUsage)


class Agent:
    """Owns a tool registry and an LLM client; runs sessions to completion.

    Args:
        client: The LLM client collaborator.
        tools: Tools to register, or a prepared :class:`ToolRegistry`.
        config: Loop, timeout, and retry settings. Defaults if None.
        system_prompt: Overrides ``config.agent.system_prompt``.
        max_turns: Overrides ``config.agent.max_turns``.
    """

    def __init__(
        self,
        client: LLMClient,
        tools: Iterable[Tool] | ToolRegistry | None = None,
        *,
        config: AgentLoopConfig | None = None,
        system_prompt: str | None = None,
        max_turns: int | None = None,
    ) -> None:
        cfg = config or AgentLoopConfig()
        self._client = client
        if isinstance(tools, ToolRegistry):
            self._registry = tools
        else:
            self._registry = ToolRegistry(tools or ())

        self._max_turns = max_turns if max_turns is not None else cfg.agent.max_turns
        if self._max_turns < 1:
            msg = f"max_turns must be at least 1, got {self._max_turns}"
            raise ValueError(msg)
        self._system_prompt = (
            system_prompt if system_prompt is not None else cfg.agent.system_prompt
        )
        self._llm_timeout = cfg.llm.timeout
        self._retry = cfg.llm.retry.to_retry_config()
        self._tool_timeout = cfg.tools.timeout
        self._parallel = cfg.tools.parallel

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def max_turns(self) -> int:
        return self._max_turns

    def register(self, tool: Tool) -> None:
        """Register a tool before the first session starts.

        Raises:
            SchemaError: On a name collision or once sessions have begun.
        """
        self._registry.register(tool)

    async def run(
        self,
        message: str,
        *,
        history: Iterable[ConversationTurn] | None = None,
    ) -> AgentResult:
        """Run one session from a user message to the final answer.

        ``history`` continues an earlier conversation, for example the
        ``transcript`` of a previous :class:`AgentResult`. Its turns are
        replayed ahead of ``message``; the configured system prompt is
        only added when the history carries no :class:`SystemMessage`.
        The turn limit counts the new session's turns only.

        Raises:
            LLMError: Client failed permanently or retries were exhausted.
            TurnLimitExceededError: The model kept calling tools.
            SessionError: The client violated the tool-call protocol, or
                ``history`` holds tool calls without results.

        Every raised :class:`AgentLoopError` carries the transcript
        accumulated so far as ``transcript``.
        """
        self._registry.seal()
        ctx = AgentContext(session_id=uuid.uuid4().hex[:12], max_turns=self._max_turns)
        machine = AgentStateMachine(ctx)
        transcript = Transcript()
        definitions = self._registry.list_definitions()

        try:
            self._seed(transcript, message, history)
            logger.debug(
                "Session %s started with %d tools, %d prior turns (max_turns=%d)",
                ctx.session_id,
                len(definitions),
                len(transcript) - 1,
                self._max_turns,
            )
            while not machine.is_terminal:
                if machine.state is AgentState.AWAITING_MODEL:
                    await self._await_model(machine, transcript, definitions)
                else:
                    await self._dispatch_tools(machine, transcript)
        except AgentLoopError as exc:
            if not machine.is_terminal:
                machine.fail(str(exc))
            exc.transcript = transcript
            logger.warning("Session %s failed: %s", ctx.session_id, exc)
            raise

        logger.debug(
            "Session %s done after %d turns, %d model calls, %d tokens",
            ctx.session_id,
            ctx.turns,
            ctx.llm_calls,
            ctx.usage.total_tokens,
        )
        return AgentResult(
            final_text=ctx.final_text or "",
            transcript=transcript,
            turns=ctx.turns,
            llm_calls=ctx.llm_calls,
            usage=ctx.usage,
        )

    def _seed(
        self,
        transcript: Transcript,
        message: str,
        history: Iterable[ConversationTurn] | None,
    ) -> None:
        prior = list(history or ())
        if self._system_prompt and not any(isinstance(t, SystemMessage) for t in prior):
            transcript.append(SystemMessage(self._system_prompt))
        for turn in prior:
            transcript.append(turn)

        pending = transcript.pending_calls()
        if pending:
            ids = ", ".join(p.call_id for p in pending)
            msg = f"History has tool calls without results: {ids}"
            raise SessionError(msg)
        transcript.append(UserMessage(message))

    # ── AWAITING_MODEL ────────────────────────────────────────

    async def _await_model(
        self,
        machine: AgentStateMachine,
        transcript: Transcript,
        definitions: Sequence[ToolDefinition],
    ) -> None:
        ctx = machine.context
        snapshot = tuple(transcript)

        def _on_retry(attempt: int, delay: float, error: Exception) -> None:
            logger.warning(
                "Session %s: model call failed (%s); retry %d/%d in %.2fs",
                ctx.session_id,
                error,
                attempt,
                self._retry.max_retries,
                delay,
            )

        response = await retry_with_backoff(
            lambda: self._send(snapshot, definitions),
            self._retry,
            on_retry=_on_retry,
        )
        ctx.llm_calls += 1
        usage = getattr(response, "usage", None)
        if usage is not None:
            ctx.usage = ctx.usage + usage

        if isinstance(response, FinalText):
            logger.debug("Session %s: final answer received", ctx.session_id)
            transcript.append(AssistantMessage(response.text))
            ctx.final_text = response.text
            machine.transition(AgentState.DONE)
            return

        if not isinstance(response, ToolCallRequests):
            msg = f"LLM client returned unsupported response: {type(response).__name__}"
            raise SessionError(msg)

        self._check_call_ids(response.calls, transcript)
        for call in response.calls:
            transcript.append(ToolCallRequest(call.id, call.name, call.arguments))

        if ctx.turn_limit_reached:
            raise TurnLimitExceededError(ctx.max_turns)

        logger.debug(
            "Session %s turn %d: model requested %s",
            ctx.session_id,
            ctx.turns + 1,
            [c.name for c in response.calls],
        )
        ctx.pending = list(response.calls)
        machine.transition(AgentState.DISPATCHING_TOOLS)

    async def _send(
        self,
        turns: Sequence[ConversationTurn],
        definitions: Sequence[ToolDefinition],
    ) -> LLMResponse:
        client_id = getattr(self._client, "client_id", type(self._client).__name__)
        try:
            request = self._client.send(turns, definitions)
            if self._llm_timeout is None:
                return await request
            return await asyncio.wait_for(request, self._llm_timeout)
        except AgentLoopError:
            raise
        except TimeoutError as exc:
            msg = f"No response within {self._llm_timeout}s"
            raise LLMTimeoutError(client_id, msg) from exc
        except OSError as exc:
            raise LLMTransportError(client_id, f"Connection failed: {exc}") from exc
        except Exception as exc:
            msg = f"Unexpected client error: {exc!r}"
            raise LLMRequestError(client_id, msg) from exc

    @staticmethod
    def _check_call_ids(calls: Sequence[ToolCall], transcript: Transcript) -> None:
        """Reject empty or reused call ids before anything is appended."""
        seen: set[str] = set()
        for call in calls:
            if not call.id:
                msg = f"LLM client sent a tool call without an id (tool '{call.name}')"
                raise SessionError(msg)
            if call.id in seen or transcript.has_call_id(call.id):
                raise DuplicateCallIdError(call.id)
            seen.add(call.id)

    # ── DISPATCHING_TOOLS ─────────────────────────────────────

    async def _dispatch_tools(self, machine: AgentStateMachine, transcript: Transcript) -> None:
        ctx = machine.context
        calls = list(ctx.pending)

        results: Sequence[ToolResult]
        if self._parallel and len(calls) > 1:
            # gather() returns in argument order regardless of completion order
            results = await asyncio.gather(
                *(self._registry.execute(c, timeout=self._tool_timeout) for c in calls)
            )
        else:
            results = [
                await self._registry.execute(c, timeout=self._tool_timeout) for c in calls
            ]

        for result in results:
            transcript.append(ToolResultMessage.from_result(result))

        errors = sum(1 for r in results if r.is_error)
        if errors:
            logger.info(
                "Session %s turn %d: %d of %d tool calls returned errors",
                ctx.session_id,
                ctx.turns,
                errors,
                len(results),
            )
        ctx.pending = []
        machine.transition(AgentState.AWAITING_MODEL)


async def run_agent(
    client: LLMClient,
    tools: Iterable[Tool] | ToolRegistry | None,
    message: str,
    *,
    config: AgentLoopConfig | None = None,
    history: Iterable[ConversationTurn] | None = None,
) -> AgentResult:
    """Build an :class:`Agent` and run a single session."""
    return await Agent(client, tools, config=config).run(message, history=history)
