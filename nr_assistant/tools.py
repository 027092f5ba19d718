"""Shared tool/prompt definitions and the ToolResult envelope."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToolDef:
    """Definition of an MCP tool.

    parameters follows JSON Schema format:
        {"type": "object", "properties": {...}, "required": [...]}
    """

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class PromptArgDef:
    name: str
    description: str
    required: bool = False


@dataclass
class PromptDef:
    """Definition of an MCP prompt template."""

    name: str
    description: str
    arguments: list[PromptArgDef] = field(default_factory=list)


@dataclass
class ToolResult:
    """Normalized envelope for every tool execution result.

    ok:      True if the tool completed without error.
    summary: Compact human-readable summary of the outcome.
    facts:   Small structured key→value facts about the result,
             e.g. {"suggestion_count": 3, "classifier": True}.
    data:    Raw output of the tool (for predict_next: the
             {"sourceId", "sourcePort", "suggestions"} payload).
    error:   Present when ok=False. Dict with keys:
               type:    Exception class name or error category.
               message: Human-readable summary.
               detail:  Original exception message or extra context.
    """

    ok: bool
    summary: str
    facts: dict
    data: Any
    error: dict | None

    def to_dict(self) -> dict[str, Any]:
        return {"ok": self.ok, "summary": self.summary, "data": self.data, "error": self.error}
