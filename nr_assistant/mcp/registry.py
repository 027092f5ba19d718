"""Catalogs of the assistant's MCP tools and prompts.

``TOOL_CATALOG`` and ``PROMPT_CATALOG`` are the single source of truth for
names, descriptions and argument schemas.  The MCP server and the
``Assistant`` request methods both dispatch through them.

Adding a tool: append to ``TOOL_CATALOG`` and add the method to
``AssistantMCPTools``.  Same for prompts.
"""

from __future__ import annotations

from typing import Any

from nr_assistant.tools import PromptArgDef, PromptDef, ToolDef


def _td(name: str, desc: str, props: dict[str, Any] | None = None, req: list[str] | None = None) -> ToolDef:
    return ToolDef(
        name=name,
        description=desc,
        parameters={"type": "object", "properties": props or {}, "required": req or []},
    )


_FLOW_NODE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"id": {"type": "string"}},
    "required": ["id"],
    "additionalProperties": True,
}


# Each entry: (method_name_on_AssistantMCPTools, ToolDef)
TOOL_CATALOG: list[tuple[str, ToolDef]] = [
    ("predict_next", _td(
        "predict_next",
        "Predict the next node or nodes to follow the provided nodes in a Node-RED flow",
        {
            "flow": {
                "type": "array",
                "items": _FLOW_NODE_SCHEMA,
                "description": "A Node-RED flow related to the prediction.",
            },
            "sourceNode": {
                **_FLOW_NODE_SCHEMA,
                "description": "The node in the flow from which the prediction will be made",
            },
            "sourcePort": {
                "type": "integer",
                "description": "Optional source port to connect the predicted node to",
            },
        },
        ["sourceNode"],
    )),
]

# Each entry: (method_name_on_AssistantMCPTools, PromptDef)
PROMPT_CATALOG: list[tuple[str, PromptDef]] = [
    ("explain_flow", PromptDef(
        name="explain_flow",
        description="Explain what the selected node-red flow of nodes do",
        arguments=[
            PromptArgDef("nodes", "JSON string that represents a flow of Node-RED nodes", required=True),
            PromptArgDef("flowName", "Optional name of the flow to explain"),
            PromptArgDef("userContext", "Optional user context to aid explanation"),
        ],
    )),
]

TOOL_NAMES: frozenset[str] = frozenset(td.name for _m, td in TOOL_CATALOG)
PROMPT_NAMES: frozenset[str] = frozenset(pd.name for _m, pd in PROMPT_CATALOG)
