"""Configuration loading and validation."""

from agentloop.config.loader import config_sources, load_config
from agentloop.config.schema import (
    AgentConfig,
    AgentLoopConfig,
    LLMConfig,
    LoggingConfig,
    RetryPolicyConfig,
    ToolsConfig,
)

__all__ = [
    "AgentConfig",
    "AgentLoopConfig",
    "LLMConfig",
    "LoggingConfig",
    "RetryPolicyConfig",
    "ToolsConfig",
    "config_sources",
    "load_config",
]
