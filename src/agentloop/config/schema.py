"""Pydantic models for agentloop configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field

from agentloop.core.retry import RetryConfig


class AgentConfig(BaseModel):
    """Turn-loop settings."""

    max_turns: int = Field(default=10, ge=1)
    system_prompt: str | None = None


class RetryPolicyConfig(BaseModel):
    """Backoff policy for retryable LLM client failures."""

    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=1.0, ge=0.0)
    max_delay: float = Field(default=60.0, ge=0.0)
    jitter: bool = True

    def to_retry_config(self) -> RetryConfig:
        """Build the runtime retry configuration."""
        return RetryConfig(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            jitter=self.jitter,
        )


class LLMConfig(BaseModel):
    """LLM client call settings."""

    timeout: float | None = Field(default=60.0, gt=0.0)
    retry: RetryPolicyConfig = Field(default_factory=RetryPolicyConfig)


class ToolsConfig(BaseModel):
    """Tool dispatch settings."""

    timeout: float | None = Field(default=30.0, gt=0.0)
    parallel: bool = True


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file: str = ""
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class AgentLoopConfig(BaseModel):
    """Top-level configuration for agentloop."""

    agent: AgentConfig = Field(default_factory=AgentConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
