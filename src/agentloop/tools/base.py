"""Tool protocol and data types.

Defines the ``Tool`` protocol that all tool implementations must
satisfy, data classes for tool calls, results, and definitions, and a
function adapter for declaring tools without writing a class.
"""

from __future__ import annotations

import asyncio
import inspect
import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import BaseModel

from agentloop.core.errors import SchemaError
from agentloop.tools.schema import ParameterSchema

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """What the model is told about a tool."""

    name: str
    description: str
    parameters: ParameterSchema

    def to_dict(self) -> dict[str, Any]:
        """Provider-neutral form: name, description, JSON-Schema parameters."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters.to_json_schema(),
        }

    def to_openai(self) -> dict[str, Any]:
        """OpenAI-compatible ``function`` tool entry."""
        return {"type": "function", "function": self.to_dict()}


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A tool invocation requested by a model.

    ``arguments`` is the raw payload from the client: either a JSON
    string or an already-decoded mapping. It is not trusted until the
    registry validates it.
    """

    id: str
    name: str
    arguments: str | dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Result from executing a tool call.

    ``error_kind`` is set for failures (see ``ToolError.kind``).
    """

    tool_call_id: str
    tool_name: str
    content: str
    is_error: bool = False
    error_kind: str | None = None


@runtime_checkable
class Tool(Protocol):
    """Protocol that all tool implementations must satisfy."""

    @property
    def name(self) -> str:
        """Unique name for this tool."""
        ...

    @property
    def description(self) -> str:
        """Human-readable description of what the tool does."""
        ...

    def parameters(self) -> ParameterSchema:
        """Schema for the tool's arguments. Must be pure and stable."""
        ...

    async def call(self, arguments: dict[str, Any]) -> Any:
        """Execute the tool with validated arguments.

        Returns:
            A string, or any JSON-serializable value.

        Raises:
            Exception: When the arguments are schema-valid but unusable,
                or the underlying work fails.
        """
        ...


def render_result(value: Any) -> str:
    """Render a tool's return value as transcript text."""
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


class FunctionTool:
    """Adapts a plain (async or sync) function to the :class:`Tool` protocol.

    The function receives validated arguments as keyword arguments.
    Coroutine functions are awaited; plain functions run in a worker
    thread via :func:`asyncio.to_thread`. When ``parameters`` is a
    pydantic model class the schema is derived from it and the function
    receives a model instance as its only argument.
    """

    def __init__(
        self,
        fn: Callable[..., Any],
        *,
        name: str | None = None,
        description: str | None = None,
        parameters: ParameterSchema | type[BaseModel] | None = None,
    ) -> None:
        self._fn = fn
        self._name = name or fn.__name__
        self._description = description or inspect.getdoc(fn) or ""
        self._model: type[BaseModel] | None = None

        if parameters is None:
            self._schema = ParameterSchema()
        elif isinstance(parameters, ParameterSchema):
            self._schema = parameters
        elif isinstance(parameters, type) and issubclass(parameters, BaseModel):
            self._model = parameters
            self._schema = ParameterSchema.from_model(parameters)
        else:
            msg = f"Unsupported parameters for tool '{self._name}': {parameters!r}"
            raise SchemaError(msg)

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    def parameters(self) -> ParameterSchema:
        return self._schema

    async def call(self, arguments: dict[str, Any]) -> Any:
        args: tuple[Any, ...] = ()
        kwargs = arguments
        if self._model is not None:
            args, kwargs = (self._model.model_validate(arguments),), {}

        if inspect.iscoroutinefunction(self._fn):
            return await self._fn(*args, **kwargs)
        # Blocking functions never run on the event loop
        result = await asyncio.to_thread(self._fn, *args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        return f"FunctionTool(name={self._name!r})"


def tool(
    name: str | None = None,
    *,
    description: str | None = None,
    parameters: ParameterSchema | type[BaseModel] | None = None,
) -> Callable[[Callable[..., Awaitable[Any] | Any]], FunctionTool]:
    """Decorator that turns a function into a :class:`FunctionTool`.

    Usage::

        @tool("get_weather", parameters=WeatherArgs)
        async def get_weather(args: WeatherArgs) -> str:
            ...

    The description defaults to the function's docstring.
    """

    def wrapper(fn: Callable[..., Any]) -> FunctionTool:
        return FunctionTool(fn, name=name, description=description, parameters=parameters)

    return wrapper
