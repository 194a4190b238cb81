"""Tests for the Agent orchestrator turn loop."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock, patch

import pytest

from agentloop.agent.orchestrator import Agent, AgentResult, run_agent
from agentloop.agent.transcript import (
    AssistantMessage,
    SystemMessage,
    ToolCallRequest,
    ToolResultMessage,
    UserMessage,
)
from agentloop.core.errors import (
    DuplicateCallIdError,
    LLMAuthError,
    LLMOverloadedError,
    LLMRateLimitError,
    LLMRequestError,
    LLMTimeoutError,
    LLMTransportError,
    SchemaError,
    SessionError,
    TurnLimitExceededError,
)
from agentloop.llm.base import FinalText, TokenUsage, ToolCallRequests
from agentloop.tools.base import FunctionTool, ToolCall
from agentloop.tools.registry import ToolRegistry
from agentloop.tools.schema import ParameterField, ParameterSchema, ParameterType

from tests.fixtures.clients import ScriptedClient, calls, final
from tests.fixtures.tools import EchoTool, SpyTool, WeatherTool

if TYPE_CHECKING:
    from collections.abc import Sequence

# ── Helpers ─────────────────────────────────────────────────────────


class _EndlessToolCaller:
    """Requests a fresh tool call on every turn, forever."""

    def __init__(self) -> None:
        self.sends = 0

    @property
    def client_id(self) -> str:
        return "endless"

    async def send(self, transcript: Sequence[Any], tools: Sequence[Any]) -> Any:
        self.sends += 1
        call = ToolCall(
            id=f"call_{self.sends}", name="weather_tool", arguments={"location": "Tokyo"}
        )
        return ToolCallRequests(calls=(call,))


class _TracingTool(SpyTool):
    """Appends start/end markers to a shared event log."""

    def __init__(self, name: str, delay: float, events: list[str]) -> None:
        super().__init__(name, delay=delay, result=name)
        self._events = events

    async def call(self, arguments: dict[str, Any]) -> Any:
        self._events.append(f"start {self.name}")
        result = await super().call(arguments)
        self._events.append(f"end {self.name}")
        return result


# ── Happy path ──────────────────────────────────────────────────────


class TestRun:
    async def test_immediate_final_answer(self, registry: ToolRegistry, fast_config: Any) -> None:
        client = ScriptedClient([final("Hello!")])
        result = await Agent(client, registry, config=fast_config()).run("Hi")
        assert isinstance(result, AgentResult)
        assert result.final_text == "Hello!"
        assert result.turns == 0
        assert result.llm_calls == 1
        assert list(result.transcript) == [UserMessage("Hi"), AssistantMessage("Hello!")]

    async def test_tool_round_trip(
        self, weather_tool: WeatherTool, fast_config: Any
    ) -> None:
        client = ScriptedClient(
            [
                calls(("call_1", "weather_tool", '{"location": "Tokyo"}')),
                final("It is sunny in Tokyo."),
            ]
        )
        result = await Agent(client, [weather_tool], config=fast_config()).run(
            "Weather in Tokyo?"
        )
        assert result.final_text == "It is sunny in Tokyo."
        assert result.turns == 1
        assert result.llm_calls == 2
        assert weather_tool.calls == [{"location": "Tokyo"}]
        second = client.call_log[1]["transcript"]
        assert second[-1] == ToolResultMessage("call_1", "weather_tool", "Sunny")
        assert second[-2] == ToolCallRequest(
            "call_1", "weather_tool", '{"location": "Tokyo"}'
        )

    async def test_tools_advertised_on_every_call(
        self, registry: ToolRegistry, fast_config: Any
    ) -> None:
        client = ScriptedClient(
            [calls(("c1", "weather_tool", {"location": "London"})), final("Rain.")]
        )
        await Agent(client, registry, config=fast_config()).run("London?")
        for entry in client.call_log:
            assert [d.name for d in entry["tools"]] == ["weather_tool"]

    async def test_run_agent_helper(self, weather_tool: WeatherTool, fast_config: Any) -> None:
        client = ScriptedClient([final("done")])
        result = await run_agent(client, [weather_tool], "Go", config=fast_config())
        assert result.final_text == "done"

    async def test_no_tools(self, fast_config: Any) -> None:
        client = ScriptedClient([final("ok")])
        result = await Agent(client, config=fast_config()).run("Hi")
        assert result.final_text == "ok"
        assert client.call_log[0]["tools"] == []


class TestSystemPrompt:
    async def test_prompt_argument(self, fast_config: Any) -> None:
        client = ScriptedClient([final("ok")])
        result = await Agent(client, system_prompt="Be brief.", config=fast_config()).run("Hi")
        assert result.transcript[0] == SystemMessage("Be brief.")
        assert result.transcript[1] == UserMessage("Hi")

    async def test_prompt_from_config(self, fast_config: Any) -> None:
        client = ScriptedClient([final("ok")])
        cfg = fast_config(agent={"system_prompt": "From config."})
        await Agent(client, config=cfg).run("Hi")
        assert client.call_log[0]["transcript"][0] == SystemMessage("From config.")

    async def test_no_prompt_by_default(self, fast_config: Any) -> None:
        client = ScriptedClient([final("ok")])
        result = await Agent(client, config=fast_config()).run("Hi")
        assert isinstance(result.transcript[0], UserMessage)


# ── Recoverable tool errors ─────────────────────────────────────────


class TestToolErrorsFedBack:
    async def test_unknown_tool(self, registry: ToolRegistry, fast_config: Any) -> None:
        client = ScriptedClient([calls(("c1", "unknown_tool", {})), final("Sorry.")])
        result = await Agent(client, registry, config=fast_config()).run("Hi")
        (tool_result,) = result.transcript.tool_results()
        assert tool_result.is_error
        assert tool_result.error_kind == "tool_not_found"
        assert result.final_text == "Sorry."
        assert result.llm_calls == 2

    async def test_invalid_arguments_never_invoke_tool(self, fast_config: Any) -> None:
        spy = SpyTool(
            schema=ParameterSchema(fields=(ParameterField("location", ParameterType.STRING),))
        )
        client = ScriptedClient([calls(("c1", "spy", {})), final("ok")])
        result = await Agent(client, [spy], config=fast_config()).run("Hi")
        (tool_result,) = result.transcript.tool_results()
        assert tool_result.error_kind == "invalid_arguments"
        assert "missing required field 'location'" in tool_result.content
        assert spy.calls == []

    async def test_tool_failure_lets_model_recover(
        self, weather_tool: WeatherTool, fast_config: Any
    ) -> None:
        client = ScriptedClient(
            [
                calls(("c1", "weather_tool", {"location": "Atlantis"})),
                calls(("c2", "weather_tool", {"location": "London"})),
                final("Rain in London."),
            ]
        )
        result = await Agent(client, [weather_tool], config=fast_config()).run("Hi")
        first, second = result.transcript.tool_results()
        assert first.is_error and first.error_kind == "tool_execution_error"
        assert second.content == "Rain"
        assert result.turns == 2

    async def test_tool_timeout_from_config(self, fast_config: Any) -> None:
        client = ScriptedClient([calls(("c1", "spy", {})), final("ok")])
        cfg = fast_config(tools={"timeout": 0.01})
        result = await Agent(client, [SpyTool(delay=1.0)], config=cfg).run("Hi")
        (tool_result,) = result.transcript.tool_results()
        assert tool_result.is_error
        assert "timed out" in tool_result.content

    async def test_blocking_tool_timeout(self, fast_config: Any) -> None:
        def stall() -> str:
            time.sleep(0.3)
            return "late"

        client = ScriptedClient([calls(("c1", "stall", {})), final("ok")])
        cfg = fast_config(tools={"timeout": 0.05})
        start = time.monotonic()
        result = await Agent(client, [FunctionTool(stall)], config=cfg).run("Hi")
        assert time.monotonic() - start < 0.25
        (tool_result,) = result.transcript.tool_results()
        assert tool_result.error_kind == "tool_execution_error"
        assert "timed out after 0.05s" in tool_result.content
        assert result.final_text == "ok"


# ── Dispatch ordering ───────────────────────────────────────────────


class TestDispatch:
    async def test_results_in_request_order(self, fast_config: Any) -> None:
        client = ScriptedClient(
            [
                calls(
                    ("a", "echo", {"text": "slow", "delay": 0.05}),
                    ("b", "echo", {"text": "fast"}),
                    ("c", "echo", {"text": "medium", "delay": 0.02}),
                ),
                final("ok"),
            ]
        )
        result = await Agent(client, [EchoTool()], config=fast_config()).run("Hi")
        results = result.transcript.tool_results()
        assert [r.call_id for r in results] == ["a", "b", "c"]
        assert [r.content for r in results] == ["Echo: slow", "Echo: fast", "Echo: medium"]
        assert result.turns == 1

    async def test_parallel_dispatch_overlaps(self, fast_config: Any) -> None:
        events: list[str] = []
        tools = [_TracingTool("slow", 0.05, events), _TracingTool("fast", 0.0, events)]
        client = ScriptedClient([calls(("a", "slow", {}), ("b", "fast", {})), final("ok")])
        result = await Agent(client, tools, config=fast_config()).run("Hi")
        assert events == ["start slow", "start fast", "end fast", "end slow"]
        assert [r.content for r in result.transcript.tool_results()] == ["slow", "fast"]

    async def test_sequential_dispatch(self, fast_config: Any) -> None:
        events: list[str] = []
        tools = [_TracingTool("slow", 0.02, events), _TracingTool("fast", 0.0, events)]
        client = ScriptedClient([calls(("a", "slow", {}), ("b", "fast", {})), final("ok")])
        cfg = fast_config(tools={"parallel": False})
        await Agent(client, tools, config=cfg).run("Hi")
        assert events == ["start slow", "end slow", "start fast", "end fast"]

    async def test_blocking_tools_overlap(self, fast_config: Any) -> None:
        released = threading.Event()

        def waiter() -> str:
            return "overlapped" if released.wait(timeout=2.0) else "serialised"

        def releaser() -> str:
            released.set()
            return "released"

        client = ScriptedClient([calls(("a", "waiter", {}), ("b", "releaser", {})), final("ok")])
        tools = [FunctionTool(waiter), FunctionTool(releaser)]
        result = await Agent(client, tools, config=fast_config()).run("Hi")
        contents = [r.content for r in result.transcript.tool_results()]
        assert contents == ["overlapped", "released"]

    async def test_tool_mutation_does_not_reach_transcript(self, fast_config: Any) -> None:
        def retag(tags: list[dict[str, Any]]) -> str:
            tags[0]["x"] = "mutated"
            return "done"

        schema = ParameterSchema(fields=(ParameterField("tags", ParameterType.ARRAY),))
        client = ScriptedClient([calls(("c1", "retag", {"tags": [{"x": "orig"}]})), final("ok")])
        agent = Agent(client, [FunctionTool(retag, parameters=schema)], config=fast_config())
        result = await agent.run("Hi")
        (request,) = [t for t in result.transcript if isinstance(t, ToolCallRequest)]
        assert request.raw_arguments == {"tags": [{"x": "orig"}]}
        assert client.call_log[1]["transcript"][1] == request

    async def test_every_request_answered_before_next_model_call(
        self, weather_tool: WeatherTool, fast_config: Any
    ) -> None:
        client = ScriptedClient(
            [
                calls(
                    ("a", "weather_tool", {"location": "Tokyo"}),
                    ("b", "nope", {}),
                    ("c", "weather_tool", {"location": 5}),
                ),
                final("ok"),
            ]
        )
        await Agent(client, [weather_tool], config=fast_config()).run("Hi")
        sent = client.call_log[1]["transcript"]
        requests = [t.call_id for t in sent if isinstance(t, ToolCallRequest)]
        results = [t.call_id for t in sent if isinstance(t, ToolResultMessage)]
        assert requests == results == ["a", "b", "c"]


# ── Turn limit ──────────────────────────────────────────────────────


class TestTurnLimit:
    async def test_limit_terminates_loop(self, weather_tool: WeatherTool, fast_config: Any) -> None:
        client = _EndlessToolCaller()
        agent = Agent(client, [weather_tool], config=fast_config(), max_turns=3)
        with pytest.raises(TurnLimitExceededError) as exc_info:
            await agent.run("Loop forever")
        assert exc_info.value.max_turns == 3
        assert client.sends == 4
        assert len(weather_tool.calls) == 3
        transcript = exc_info.value.transcript
        assert transcript is not None
        assert len(transcript.tool_results()) == 3
        assert [p.call_id for p in transcript.pending_calls()] == ["call_4"]

    async def test_limit_from_config(self, weather_tool: WeatherTool, fast_config: Any) -> None:
        client = _EndlessToolCaller()
        agent = Agent(client, [weather_tool], config=fast_config(agent={"max_turns": 1}))
        assert agent.max_turns == 1
        with pytest.raises(TurnLimitExceededError):
            await agent.run("Hi")
        assert client.sends == 2

    def test_invalid_max_turns(self) -> None:
        with pytest.raises(ValueError, match="at least 1"):
            Agent(ScriptedClient([final("x")]), max_turns=0)


# ── Protocol violations ─────────────────────────────────────────────


class TestProtocolViolations:
    async def test_duplicate_id_within_response(
        self, registry: ToolRegistry, fast_config: Any
    ) -> None:
        client = ScriptedClient(
            [calls(("dup", "weather_tool", {"location": "Tokyo"}), ("dup", "weather_tool", {}))]
        )
        with pytest.raises(DuplicateCallIdError) as exc_info:
            await Agent(client, registry, config=fast_config()).run("Hi")
        assert exc_info.value.call_id == "dup"
        assert exc_info.value.transcript is not None
        assert list(exc_info.value.transcript) == [UserMessage("Hi")]

    async def test_duplicate_id_across_turns(
        self, weather_tool: WeatherTool, fast_config: Any
    ) -> None:
        client = ScriptedClient([calls(("c1", "weather_tool", {"location": "Tokyo"}))])
        with pytest.raises(DuplicateCallIdError):
            await Agent(client, [weather_tool], config=fast_config()).run("Hi")
        assert len(weather_tool.calls) == 1

    async def test_empty_call_id(self, registry: ToolRegistry, fast_config: Any) -> None:
        client = ScriptedClient([calls(("", "weather_tool", {"location": "Tokyo"}))])
        with pytest.raises(SessionError, match="without an id"):
            await Agent(client, registry, config=fast_config()).run("Hi")

    async def test_unsupported_response(self, fast_config: Any) -> None:
        client = ScriptedClient(["plain string"])  # type: ignore[list-item]
        with pytest.raises(SessionError, match="unsupported response"):
            await Agent(client, config=fast_config()).run("Hi")


# ── LLM client failures ─────────────────────────────────────────────


class TestClientFailures:
    async def test_transient_error_retried(self, fast_config: Any) -> None:
        client = ScriptedClient([LLMRateLimitError("scripted"), final("ok")])
        result = await Agent(client, config=fast_config()).run("Hi")
        assert result.final_text == "ok"
        assert len(client.call_log) == 2
        assert result.llm_calls == 1

    async def test_retries_exhausted(self, fast_config: Any) -> None:
        client = ScriptedClient([LLMOverloadedError("scripted", "busy")])
        with pytest.raises(LLMOverloadedError) as exc_info:
            await Agent(client, config=fast_config()).run("Hi")
        assert len(client.call_log) == 4
        assert exc_info.value.transcript is not None
        assert list(exc_info.value.transcript) == [UserMessage("Hi")]

    async def test_permanent_error_not_retried(self, fast_config: Any) -> None:
        client = ScriptedClient([LLMAuthError("scripted", "bad key")])
        with pytest.raises(LLMAuthError):
            await Agent(client, config=fast_config()).run("Hi")
        assert len(client.call_log) == 1

    async def test_model_timeout_retried_then_fails(self, fast_config: Any) -> None:
        client = ScriptedClient([final("late")], delay=1.0)
        cfg = fast_config(
            llm={
                "timeout": 0.01,
                "retry": {"max_retries": 1, "base_delay": 0.0, "max_delay": 0.0, "jitter": False},
            }
        )
        with pytest.raises(LLMTimeoutError, match="No response within"):
            await Agent(client, config=cfg).run("Hi")
        assert len(client.call_log) == 2

    async def test_backoff_sleeps_between_attempts(self) -> None:
        client = ScriptedClient(
            [
                LLMRateLimitError("scripted", retry_after=2.0),
                LLMOverloadedError("scripted", "busy"),
                final("ok"),
            ]
        )
        with (
            patch("agentloop.core.retry.asyncio.sleep", new_callable=AsyncMock) as mock_sleep,
            patch("agentloop.core.retry.random.uniform", return_value=1.0),
        ):
            result = await Agent(client).run("Hi")
        assert result.final_text == "ok"
        assert [c.args[0] for c in mock_sleep.call_args_list] == [2.0, 2.0]

    async def test_retry_logged(self, fast_config: Any, caplog: pytest.LogCaptureFixture) -> None:
        client = ScriptedClient([LLMOverloadedError("scripted", "busy"), final("ok")])
        with caplog.at_level(logging.WARNING, logger="agentloop"):
            await Agent(client, config=fast_config()).run("Hi")
        assert any("retry 1/3" in r.getMessage() for r in caplog.records)

    async def test_failure_logged(self, fast_config: Any, caplog: pytest.LogCaptureFixture) -> None:
        client = ScriptedClient([LLMAuthError("scripted", "bad key")])
        with caplog.at_level(logging.WARNING, logger="agentloop"), pytest.raises(LLMAuthError):
            await Agent(client, config=fast_config()).run("Hi")
        assert any("failed" in r.getMessage() for r in caplog.records)

    async def test_connection_error_retried_as_transport_failure(
        self, fast_config: Any
    ) -> None:
        client = ScriptedClient([ConnectionResetError("peer reset")])
        with pytest.raises(LLMTransportError, match="Connection failed: peer reset") as exc_info:
            await Agent(client, config=fast_config()).run("Hi")
        assert len(client.call_log) == 4
        assert isinstance(exc_info.value.__cause__, ConnectionResetError)
        assert exc_info.value.transcript is not None
        assert list(exc_info.value.transcript) == [UserMessage("Hi")]

    async def test_connection_error_recovers(self, fast_config: Any) -> None:
        client = ScriptedClient([ConnectionError("refused"), final("ok")])
        result = await Agent(client, config=fast_config()).run("Hi")
        assert result.final_text == "ok"
        assert len(client.call_log) == 2

    async def test_unexpected_client_error_wrapped(self, fast_config: Any) -> None:
        client = ScriptedClient([KeyError("choices")])
        with pytest.raises(LLMRequestError, match="Unexpected client error") as exc_info:
            await Agent(client, config=fast_config()).run("Hi")
        assert len(client.call_log) == 1
        assert exc_info.value.client_id == "scripted"
        assert isinstance(exc_info.value.__cause__, KeyError)
        assert exc_info.value.transcript is not None

    async def test_cancellation_not_wrapped(self, fast_config: Any) -> None:
        client = ScriptedClient([asyncio.CancelledError()])
        with pytest.raises(asyncio.CancelledError):
            await Agent(client, config=fast_config()).run("Hi")


# ── Token usage ─────────────────────────────────────────────────────


class TestUsage:
    async def test_usage_summed_across_calls(self, weather_tool: WeatherTool) -> None:
        first = ToolCallRequests(
            calls=(ToolCall(id="c1", name="weather_tool", arguments={"location": "Tokyo"}),),
            usage=TokenUsage(input_tokens=100, output_tokens=20),
        )
        second = FinalText("Sunny.", usage=TokenUsage(input_tokens=140, output_tokens=5))
        result = await Agent(ScriptedClient([first, second]), [weather_tool]).run("Tokyo?")
        assert result.usage == TokenUsage(input_tokens=240, output_tokens=25)
        assert result.usage.total_tokens == 265

    async def test_unreported_usage_counts_as_zero(self, fast_config: Any) -> None:
        client = ScriptedClient([final("ok")])
        result = await Agent(client, config=fast_config()).run("Hi")
        assert result.usage == TokenUsage()

    async def test_failed_attempts_not_counted(self, fast_config: Any) -> None:
        client = ScriptedClient(
            [LLMOverloadedError("scripted", "busy"), FinalText("ok", usage=TokenUsage(3, 4))]
        )
        result = await Agent(client, config=fast_config()).run("Hi")
        assert result.usage == TokenUsage(3, 4)


# ── Conversation history ────────────────────────────────────────────


class TestHistory:
    async def test_continue_from_previous_transcript(
        self, weather_tool: WeatherTool, fast_config: Any
    ) -> None:
        client = ScriptedClient(
            [
                calls(("c1", "weather_tool", {"location": "Tokyo"})),
                final("Sunny in Tokyo."),
                final("Take sunglasses."),
            ]
        )
        agent = Agent(client, [weather_tool], config=fast_config())
        first = await agent.run("Weather in Tokyo?")
        second = await agent.run("What should I pack?", history=first.transcript)

        assert second.final_text == "Take sunglasses."
        assert second.turns == 0
        turns = list(second.transcript)
        assert turns[: len(first.transcript)] == list(first.transcript)
        assert turns[-2:] == [
            UserMessage("What should I pack?"),
            AssistantMessage("Take sunglasses."),
        ]
        assert client.call_log[2]["transcript"] == turns[:-1]

    async def test_history_call_ids_stay_reserved(
        self, weather_tool: WeatherTool, fast_config: Any
    ) -> None:
        history = [
            UserMessage("Tokyo?"),
            ToolCallRequest("c1", "weather_tool", {"location": "Tokyo"}),
            ToolResultMessage("c1", "weather_tool", "Sunny"),
            AssistantMessage("Sunny."),
        ]
        client = ScriptedClient([calls(("c1", "weather_tool", {"location": "London"}))])
        agent = Agent(client, [weather_tool], config=fast_config())
        with pytest.raises(DuplicateCallIdError):
            await agent.run("And London?", history=history)
        assert weather_tool.calls == []

    async def test_system_prompt_not_duplicated(self, fast_config: Any) -> None:
        history = [SystemMessage("Earlier prompt."), UserMessage("Hi"), AssistantMessage("Hello")]
        client = ScriptedClient([final("ok")])
        agent = Agent(client, system_prompt="New prompt.", config=fast_config())
        result = await agent.run("Again", history=history)
        assert [t for t in result.transcript if isinstance(t, SystemMessage)] == [
            SystemMessage("Earlier prompt.")
        ]

    async def test_system_prompt_added_to_bare_history(self, fast_config: Any) -> None:
        client = ScriptedClient([final("ok")])
        agent = Agent(client, system_prompt="Be brief.", config=fast_config())
        result = await agent.run("Again", history=[UserMessage("Hi"), AssistantMessage("Hello")])
        assert list(result.transcript)[:3] == [
            SystemMessage("Be brief."),
            UserMessage("Hi"),
            AssistantMessage("Hello"),
        ]

    async def test_unanswered_history_call_rejected(self, fast_config: Any) -> None:
        history = [UserMessage("Hi"), ToolCallRequest("c9", "weather_tool", {})]
        client = ScriptedClient([final("ok")])
        with pytest.raises(SessionError, match="without results: c9") as exc_info:
            await Agent(client, config=fast_config()).run("Next", history=history)
        assert client.call_log == []
        assert exc_info.value.transcript is not None
        assert list(exc_info.value.transcript) == history

    async def test_turn_limit_counts_new_turns_only(
        self, weather_tool: WeatherTool, fast_config: Any
    ) -> None:
        history = [
            UserMessage("Tokyo?"),
            ToolCallRequest("h1", "weather_tool", {"location": "Tokyo"}),
            ToolResultMessage("h1", "weather_tool", "Sunny"),
            AssistantMessage("Sunny."),
        ]
        client = ScriptedClient(
            [calls(("c1", "weather_tool", {"location": "London"})), final("Rain.")]
        )
        agent = Agent(client, [weather_tool], config=fast_config(), max_turns=1)
        result = await agent.run("London?", history=history)
        assert result.turns == 1

    async def test_run_agent_accepts_history(self, fast_config: Any) -> None:
        client = ScriptedClient([final("again")])
        history = [UserMessage("Hi"), AssistantMessage("Hello")]
        result = await run_agent(client, None, "Once more", config=fast_config(), history=history)
        assert client.call_log[0]["transcript"] == [*history, UserMessage("Once more")]
        assert result.final_text == "again"


# ── Registry lifecycle ──────────────────────────────────────────────


class TestRegistryLifecycle:
    async def test_register_before_run(self, fast_config: Any) -> None:
        agent = Agent(ScriptedClient([final("ok")]), config=fast_config())
        agent.register(WeatherTool())
        assert "weather_tool" in agent.registry
        await agent.run("Hi")
        assert agent.registry.sealed

    async def test_register_after_run_rejected(self, fast_config: Any) -> None:
        agent = Agent(ScriptedClient([final("ok")]), config=fast_config())
        await agent.run("Hi")
        with pytest.raises(SchemaError, match="sealed"):
            agent.register(WeatherTool())

    async def test_sessions_are_independent(self, registry: ToolRegistry, fast_config: Any) -> None:
        client = ScriptedClient(
            [calls(("c1", "weather_tool", {"location": "Tokyo"})), final("one"), final("two")]
        )
        agent = Agent(client, registry, config=fast_config())
        first = await agent.run("First")
        second = await agent.run("Second")
        assert first.final_text == "one"
        assert second.final_text == "two"
        assert list(second.transcript) == [UserMessage("Second"), AssistantMessage("two")]

    async def test_concurrent_sessions(self, registry: ToolRegistry, fast_config: Any) -> None:
        agent = Agent(ScriptedClient([final("ok")], delay=0.01), registry, config=fast_config())
        results = await asyncio.gather(agent.run("a"), agent.run("b"))
        assert [r.final_text for r in results] == ["ok", "ok"]
