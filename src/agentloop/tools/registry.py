"""Tool registry: manages available tools.

Provides registration, lookup, listing, and execution of tools
that implement the :class:`Tool` protocol. Execution covers the whole
per-call dispatch: lookup, argument decoding, schema validation, and
invocation under an optional timeout. Tool-level failures come back
as error :class:`ToolResult` objects; they are never raised.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from typing import TYPE_CHECKING, Any

from agentloop.core.errors import (
    InvalidArgumentsError,
    SchemaError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
)
from agentloop.tools.base import Tool, ToolDefinition, ToolResult, render_result
from agentloop.tools.schema import ParameterSchema

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from agentloop.tools.base import ToolCall

logger = logging.getLogger(__name__)


def decode_arguments(tool_name: str, raw: Any) -> dict[str, Any]:
    """Decode a raw argument payload into a dict.

    Accepts a JSON string or a mapping. An empty string means no
    arguments. A mapping is deep-copied, so tools never share
    structure with the payload recorded in the transcript.

    Raises:
        InvalidArgumentsError: If the payload is not a JSON object.
    """
    if raw is None:
        return {}
    if isinstance(raw, (str, bytes, bytearray)):
        if not raw.strip():
            return {}
        try:
            raw = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidArgumentsError(tool_name, [f"arguments are not valid JSON: {e}"]) from e
    if not isinstance(raw, dict):
        raise InvalidArgumentsError(
            tool_name,
            [f"arguments must be a JSON object, got {type(raw).__name__}"],
        )
    return copy.deepcopy(raw)


class ToolRegistry:
    """Registry for managing available tools.

    Supports registration, lookup by name, listing definitions
    (for advertising to the LLM client), and executing tool calls.
    Once sealed the registry is read-only and may be shared by
    concurrently running tool calls without locking.
    """

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        self._schemas: dict[str, ParameterSchema] = {}
        self._sealed = False
        for t in tools:
            self.register(t)

    def register(self, tool: Tool) -> None:
        """Register a tool.

        Raises:
            SchemaError: If the name is taken or invalid, the tool does
                not provide a ParameterSchema, or the registry is sealed.
        """
        if self._sealed:
            msg = f"Cannot register '{getattr(tool, 'name', tool)}': registry is sealed"
            raise SchemaError(msg)
        if not isinstance(tool, Tool):
            msg = f"Object does not implement the Tool protocol: {tool!r}"
            raise SchemaError(msg)

        name = tool.name
        if not isinstance(name, str) or not name.strip():
            msg = f"Tool name must be a non-empty string, got {name!r}"
            raise SchemaError(msg)
        if name in self._tools:
            msg = f"Tool already registered: {name}"
            raise SchemaError(msg)

        schema = tool.parameters()
        if not isinstance(schema, ParameterSchema):
            msg = f"Tool '{name}' parameters() must return a ParameterSchema"
            raise SchemaError(msg)

        self._tools[name] = tool
        # Captured once; later parameters() calls are never consulted
        self._schemas[name] = schema
        logger.debug("Registered tool '%s'", name)

    def seal(self) -> None:
        """Make the registry read-only."""
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError: If the tool is not found.
        """
        if name not in self._tools:
            raise ToolNotFoundError(name)
        return self._tools[name]

    def schema(self, name: str) -> ParameterSchema:
        """Return the schema captured when the tool was registered."""
        if name not in self._schemas:
            raise ToolNotFoundError(name)
        return self._schemas[name]

    def list_definitions(self) -> list[ToolDefinition]:
        """Return tool definitions for all registered tools.

        Suitable for passing to the LLM client as available tools.
        """
        return [
            ToolDefinition(
                name=name,
                description=t.description,
                parameters=self._schemas[name],
            )
            for name, t in self._tools.items()
        ]

    async def execute(self, tool_call: ToolCall, *, timeout: float | None = None) -> ToolResult:
        """Execute a tool call and return the result.

        Unknown tools, undecodable or schema-invalid arguments, tool
        exceptions and timeouts all produce a :class:`ToolResult` with
        ``is_error=True``. The tool is only invoked if validation passes.
        """
        try:
            tool = self.get(tool_call.name)
            arguments = decode_arguments(tool_call.name, tool_call.arguments)
            arguments = self._schemas[tool_call.name].validate(
                arguments, tool_name=tool_call.name
            )
            output = await self._invoke(tool, tool_call, arguments, timeout)
        except ToolError as exc:
            logger.info("Tool call %s (%s) failed: %s", tool_call.id, tool_call.name, exc)
            return ToolResult(
                tool_call_id=tool_call.id,
                tool_name=tool_call.name,
                content=str(exc),
                is_error=True,
                error_kind=exc.kind,
            )
        return ToolResult(
            tool_call_id=tool_call.id,
            tool_name=tool_call.name,
            content=render_result(output),
        )

    async def _invoke(
        self,
        tool: Tool,
        tool_call: ToolCall,
        arguments: dict[str, Any],
        timeout: float | None,
    ) -> Any:
        logger.debug(
            "Executing tool '%s' (call %s) with args=%s", tool.name, tool_call.id, arguments
        )
        try:
            if timeout is None:
                return await tool.call(arguments)
            return await asyncio.wait_for(tool.call(arguments), timeout)
        except TimeoutError as exc:
            msg = f"Tool '{tool.name}' timed out after {timeout}s"
            raise ToolExecutionError(tool.name, msg) from exc
        except ToolError:
            raise
        except Exception as exc:
            msg = f"Tool execution error: {exc}"
            raise ToolExecutionError(tool.name, msg) from exc

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def list_names(self) -> list[str]:
        """Return names of all registered tools."""
        return list(self._tools.keys())
