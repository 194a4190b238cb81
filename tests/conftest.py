"""Shared test fixtures for agentloop."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from agentloop.config.loader import CONFIG_ENV_VAR, ENV_SETTINGS
from agentloop.config.schema import AgentLoopConfig
from agentloop.tools.registry import ToolRegistry

if TYPE_CHECKING:
    from tests.fixtures.tools import WeatherTool as WeatherToolType


@pytest.fixture
def weather_tool() -> WeatherToolType:
    from tests.fixtures.tools import WeatherTool

    return WeatherTool()


@pytest.fixture
def registry(weather_tool: WeatherToolType) -> ToolRegistry:
    """Registry holding the weather tool."""
    return ToolRegistry([weather_tool])


@pytest.fixture
def isolated(tmp_path: Any, monkeypatch: pytest.MonkeyPatch) -> Any:
    """No user, project, or env config in scope; cwd is tmp_path."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    for var in ENV_SETTINGS:
        monkeypatch.delenv(var, raising=False)
    return tmp_path


@pytest.fixture
def fast_config() -> Any:
    """Factory fixture for configs without retry delays."""

    def _make(**overrides: Any) -> AgentLoopConfig:
        data: dict[str, Any] = {
            "llm": {"retry": {"base_delay": 0.0, "max_delay": 0.0, "jitter": False}},
        }
        for section, values in overrides.items():
            data.setdefault(section, {}).update(values)
        return AgentLoopConfig.model_validate(data)

    return _make
