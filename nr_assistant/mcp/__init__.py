"""MCP tool and prompt surface of the assistant."""

from nr_assistant.mcp.server import create_server
from nr_assistant.mcp.tools import AssistantMCPTools

__all__ = ["AssistantMCPTools", "create_server"]
