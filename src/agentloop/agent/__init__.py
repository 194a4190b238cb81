"""Agent orchestrator: transcript, turn-loop state machine, session runner."""

from agentloop.agent.machine import AgentContext, AgentState, AgentStateMachine
from agentloop.agent.orchestrator import Agent, AgentResult, run_agent
from agentloop.agent.transcript import (
    AssistantMessage,
    ConversationTurn,
    SystemMessage,
    ToolCallRequest,
    ToolResultMessage,
    Transcript,
    UserMessage,
)

__all__ = [
    "Agent",
    "AgentContext",
    "AgentResult",
    "AgentState",
    "AgentStateMachine",
    "AssistantMessage",
    "ConversationTurn",
    "SystemMessage",
    "ToolCallRequest",
    "ToolResultMessage",
    "Transcript",
    "UserMessage",
    "run_agent",
]
