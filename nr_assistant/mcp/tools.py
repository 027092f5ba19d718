"""Assistant MCP tools and prompts.

``predict_next`` wraps ``NextNodePredictor`` in a ``ToolResult`` envelope and
is the caller-side boundary for flow errors: a cycle in the submitted flow is
logged and reported as a failed result instead of crashing the server.

``explain_flow`` builds the user message asking the backend LLM to summarise
a selection of nodes.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from nr_assistant.completions.predictor import NextNodePredictor
from nr_assistant.flow_graph import CircularReferenceError
from nr_assistant.tools import ToolResult

logger = logging.getLogger("nr_assistant.mcp.tools")

# ~400-1000 characters per exported node; enough for a flow of ~100 nodes.
_EXPLAIN_NODES_MAX_CHARS: int = 100_000
# Shortest JSON array that can hold a node with an id.
_EXPLAIN_NODES_MIN_CHARS: int = 23


# ---------------------------------------------------------------------------
# Argument models
# ---------------------------------------------------------------------------


class FlowNodeArg(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str


class SourceNodeArg(FlowNodeArg):
    type: Optional[str] = None


class PredictNextArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    flow: Optional[list[FlowNodeArg]] = None
    source_node: SourceNodeArg = Field(alias="sourceNode")
    source_port: Optional[int] = Field(default=None, alias="sourcePort")


class ExplainFlowArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    nodes: str = Field(min_length=_EXPLAIN_NODES_MIN_CHARS, max_length=_EXPLAIN_NODES_MAX_CHARS)
    flow_name: Optional[str] = Field(default=None, alias="flowName")
    user_context: Optional[str] = Field(default=None, alias="userContext")

    @field_validator("nodes")
    @classmethod
    def must_be_json_array(cls, v: str) -> str:
        if not (v.startswith("[") and v.endswith("]")):
            raise ValueError("nodes must be a JSON array string")
        return v


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


def _ok(summary: str, data: Any, **facts: Any) -> ToolResult:
    return ToolResult(ok=True, summary=summary, facts=facts, data=data, error=None)


def _fail(error_type: str, message: str, detail: Any = None) -> ToolResult:
    return ToolResult(
        ok=False,
        summary=f"Failed: {message}",
        facts={},
        data=None,
        error={"type": error_type, "message": message, "detail": detail},
    )


def build_explain_flow_text(nodes: str, flow_name: str | None = None, user_context: str | None = None) -> str:
    lines = [
        'Generate a "### Summary" section, followed by a "### Details" section only. '
        "They should explain the following Node-RED flow json. "
        '"Summary" should be a brief TLDR, Details should provide a little more information '
        "but should be concise and to the point. "
        "Use bullet lists or number lists if it gets too wordy."
    ]
    if flow_name:
        lines += [f'The parent flow is named "{flow_name}".', ""]
    if user_context:
        lines += [f'User Context: "{user_context}".', ""]
    lines += ["Here are the nodes in the flow:", "```json", nodes, "```"]
    return "\n".join(lines)


class AssistantMCPTools:
    """The assistant's MCP tools (returning ``ToolResult``) and prompts."""

    def __init__(self, predictor: NextNodePredictor | None = None) -> None:
        self._predictor = predictor or NextNodePredictor()

    @property
    def predictor(self) -> NextNodePredictor:
        return self._predictor

    @predictor.setter
    def predictor(self, value: NextNodePredictor) -> None:
        self._predictor = value

    # ==================================================================
    # TOOLS
    # ==================================================================

    async def predict_next(self, **arguments: Any) -> ToolResult:
        try:
            args = PredictNextArgs.model_validate(arguments)
        except ValidationError as e:
            return _fail("ValidationError", "Invalid predict_next arguments", e.errors(include_url=False))

        flow = [n.model_dump() for n in args.flow] if args.flow is not None else None
        source_node = args.source_node.model_dump()
        try:
            result = await self._predictor.predict(source_node, flow=flow, source_port=args.source_port)
        except CircularReferenceError as e:
            logger.warning("predict_next: %s", e)
            return _fail("CircularReferenceError", str(e), {"node_id": e.node_id})

        data = result.to_dict()
        count = len(result.suggestions)
        return _ok(
            f"Predicted {count} next node(s) for {result.source_id}",
            data,
            suggestion_count=count,
            classifier=self._predictor.classifier_ready,
        )

    # ==================================================================
    # PROMPTS
    # ==================================================================

    def explain_flow(self, **arguments: Any) -> list[dict[str, Any]]:
        """Return the MCP prompt messages for ``explain_flow``.

        Raises:
            pydantic.ValidationError: invalid arguments.
        """
        args = ExplainFlowArgs.model_validate(arguments)
        text = build_explain_flow_text(args.nodes, args.flow_name, args.user_context)
        return [{"role": "user", "content": {"type": "text", "text": text}}]
