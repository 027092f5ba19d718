"""MCP server exposing AssistantMCPTools over the MCP protocol.

Uses the low-level ``mcp.server.Server`` with one dispatcher per request
type, driven by ``TOOL_CATALOG`` and ``PROMPT_CATALOG``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp import types
from mcp.server import Server

from nr_assistant.mcp.registry import PROMPT_CATALOG, TOOL_CATALOG
from nr_assistant.mcp.tools import AssistantMCPTools
from nr_assistant.tools import ToolResult

logger = logging.getLogger(__name__)

_TOOL_DISPATCH: dict[str, str] = {td.name: method_name for method_name, td in TOOL_CATALOG}
_PROMPT_DISPATCH: dict[str, str] = {pd.name: method_name for method_name, pd in PROMPT_CATALOG}


def create_server(tools: AssistantMCPTools) -> Server:
    """Create an MCP Server wired to the given *tools* instance."""
    server = Server("nr-assistant")

    @server.list_tools()
    async def list_tools() -> list[types.Tool]:
        return [
            types.Tool(
                name=td.name,
                description=td.description or "",
                inputSchema=td.parameters,
            )
            for _method_name, td in TOOL_CATALOG
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: dict[str, Any] | None = None) -> list[types.TextContent]:
        method_name = _TOOL_DISPATCH.get(name)
        if method_name is None:
            payload = json.dumps({"ok": False, "error": f"Unknown tool: {name}"})
            return [types.TextContent(type="text", text=payload)]

        method = getattr(tools, method_name)
        result: ToolResult = await method(**(arguments or {}))
        return [types.TextContent(type="text", text=_serialize(result))]

    @server.list_prompts()
    async def list_prompts() -> list[types.Prompt]:
        return [
            types.Prompt(
                name=pd.name,
                description=pd.description,
                arguments=[
                    types.PromptArgument(name=a.name, description=a.description, required=a.required)
                    for a in pd.arguments
                ],
            )
            for _method_name, pd in PROMPT_CATALOG
        ]

    @server.get_prompt()
    async def get_prompt(name: str, arguments: dict[str, str] | None = None) -> types.GetPromptResult:
        method_name = _PROMPT_DISPATCH.get(name)
        if method_name is None:
            raise ValueError(f"Unknown prompt: {name}")

        messages = getattr(tools, method_name)(**(arguments or {}))
        return types.GetPromptResult(
            messages=[
                types.PromptMessage(
                    role=m["role"],
                    content=types.TextContent(type="text", text=m["content"]["text"]),
                )
                for m in messages
            ],
        )

    return server


def _serialize(r: ToolResult) -> str:
    """Serialize a ToolResult to JSON for MCP transport."""
    return json.dumps(r.to_dict(), default=str)
