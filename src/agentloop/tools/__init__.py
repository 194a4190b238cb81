"""Tool framework: parameter schemas, the tool protocol, the registry, and MCP tools."""

from agentloop.tools.base import (
    FunctionTool,
    Tool,
    ToolCall,
    ToolDefinition,
    ToolResult,
    tool,
)
from agentloop.tools.mcp import McpTool, load_mcp_tools
from agentloop.tools.registry import ToolRegistry
from agentloop.tools.schema import ParameterField, ParameterSchema, ParameterType

__all__ = [
    "FunctionTool",
    "McpTool",
    "ParameterField",
    "ParameterSchema",
    "ParameterType",
    "Tool",
    "ToolCall",
    "ToolDefinition",
    "ToolRegistry",
    "ToolResult",
    "load_mcp_tools",
    "tool",
]
