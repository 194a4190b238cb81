"""Tools served by a Model Context Protocol server.

An :class:`McpTool` wraps one tool advertised by a connected
``mcp.ClientSession``. The server's ``inputSchema`` becomes the tool's
:class:`ParameterSchema`, so arguments are validated locally before the
call crosses the wire.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from mcp.types import TextContent

from agentloop.core.errors import SchemaError, ToolExecutionError
from agentloop.tools.schema import ParameterSchema

if TYPE_CHECKING:
    from mcp import ClientSession
    from mcp.types import CallToolResult, Tool

logger = logging.getLogger(__name__)


class McpTool:
    """Adapter exposing a remote MCP tool through the local tool protocol.

    Raises:
        SchemaError: If the server's input schema cannot be represented.
    """

    def __init__(self, session: ClientSession, spec: Tool) -> None:
        self._session = session
        self._name = spec.name
        self._description = spec.description or ""
        self._schema = ParameterSchema.from_json_schema(spec.inputSchema)

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    def parameters(self) -> ParameterSchema:
        return self._schema

    async def call(self, arguments: dict[str, Any]) -> str:
        result = await self._session.call_tool(self._name, arguments)
        text = render_content(result)
        if result.isError:
            raise ToolExecutionError(self._name, text or "MCP server reported an error")
        return text

    def __repr__(self) -> str:
        return f"McpTool(name={self._name!r})"


def render_content(result: CallToolResult) -> str:
    """Flatten a call result: text blocks verbatim, other blocks as JSON."""
    parts: list[str] = []
    for block in result.content:
        if isinstance(block, TextContent):
            parts.append(block.text)
        else:
            parts.append(json.dumps(block.model_dump(mode="json", exclude_none=True)))
    return "\n".join(parts)


async def load_mcp_tools(session: ClientSession) -> list[McpTool]:
    """List every tool the server offers, following pagination.

    Tools whose input schema is unsupported are skipped with a warning.
    """
    tools: list[McpTool] = []
    listing = await session.list_tools()
    while True:
        for spec in listing.tools:
            try:
                tools.append(McpTool(session, spec))
            except SchemaError as exc:
                logger.warning("Skipping MCP tool '%s': %s", spec.name, exc)
        if not listing.nextCursor:
            break
        listing = await session.list_tools(cursor=listing.nextCursor)

    logger.debug("Loaded %d MCP tools", len(tools))
    return tools
