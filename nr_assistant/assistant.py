"""Assistant service: lifecycle and request handling for the editor plugin.

One ``Assistant`` per editor runtime.  ``init()`` brings up, in order:

  1. the backend client (requires ``url`` and ``token``),
  2. the MCP tools and prompts,
  3. completions (vocabulary + classifier), which depend on MCP.

Features that fail to load leave the assistant running with reduced
functionality; completions then fall back to the rule-based predictor.
The editor is told about each stage through ``publish(topic, payload, retain)``.

Request methods raise ``AssistantRequestError`` carrying an HTTP-style status
code so that whatever transport sits in front of them can map it directly.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Mapping

from pydantic import ValidationError

from nr_assistant.client import AssistantClient, is_error
from nr_assistant.completions.loader import ScorerFactory, load_predictor
from nr_assistant.completions.scorer import CompletionsLoadError, RemoteScorer, Scorer
from nr_assistant.config import AssistantSettings
from nr_assistant.flow_graph import clean_flow
from nr_assistant.mcp.registry import PROMPT_CATALOG, TOOL_NAMES
from nr_assistant.mcp.tools import AssistantMCPTools

logger = logging.getLogger("nr_assistant.assistant")

Publisher = Callable[[str, dict[str, Any], bool], None]
ClientFactory = Callable[[AssistantSettings], AssistantClient]

TOPIC_INITIALISE = "nr-assistant/initialise"
TOPIC_MCP_READY = "nr-assistant/mcp/ready"
TOPIC_COMPLETIONS_READY = "nr-assistant/completions/ready"

_METHOD_RE = re.compile(r"[a-z0-9_-]+")
_PROMPT_DISPATCH: dict[str, str] = {pd.name: method_name for method_name, pd in PROMPT_CATALOG}


class AssistantRequestError(Exception):
    """A request the assistant could not serve."""

    def __init__(self, status_code: int, message: str, body: Any = None) -> None:
        self.status_code = status_code
        self.message = message
        self.body = body
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"status": "error", "message": self.message}
        if self.body is not None:
            d["body"] = self.body
        return d


def _no_publish(topic: str, payload: dict[str, Any], retain: bool) -> None:
    return None


class Assistant:
    def __init__(
        self,
        client_factory: ClientFactory = AssistantClient,
        scorer_factory: ScorerFactory = RemoteScorer,
        publish: Publisher | None = None,
    ) -> None:
        self._client_factory = client_factory
        self._scorer_factory = scorer_factory
        self._publish = publish or _no_publish

        self._settings: AssistantSettings | None = None
        self._client: AssistantClient | None = None
        self._tools: AssistantMCPTools | None = None
        self._scorer: Scorer | None = None
        self._loading = False
        self.mcp_ready = False
        self.completions_ready = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self, settings: AssistantSettings) -> None:
        """(Re)initialise from *settings*.

        Raises:
            ValueError: the assistant is enabled but ``url`` or ``token`` is missing.
        """
        if self._loading:
            logger.debug("Assistant is busy loading")
            return
        self._loading = True
        try:
            await self.dispose()
            self._settings = settings

            if not settings.enabled:
                logger.info("Assistant plugin is not enabled")
                return
            if not settings.url or not settings.token:
                logger.warning("Assistant plugin configuration is missing required options")
                raise ValueError("Plugin configuration is missing required options")

            self._client = self._client_factory(settings)
            self._publish(TOPIC_INITIALISE, settings.client_settings, True)

            mcp_enabled = settings.mcp_enabled and self.is_enabled
            if mcp_enabled:
                self._tools = AssistantMCPTools()
                self.mcp_ready = True
                self._publish(TOPIC_MCP_READY, settings.client_settings, True)
                logger.info("Assistant Model Context Protocol (MCP) loaded")
            else:
                logger.info("Assistant MCP is disabled")

            completions_enabled = settings.completions_enabled and self.is_enabled
            if self.mcp_ready and completions_enabled:
                try:
                    await self.load_completions()
                    self.completions_ready = True
                    self._publish(TOPIC_COMPLETIONS_READY, {"enabled": True}, True)
                    logger.info("Assistant completions loaded")
                except CompletionsLoadError as e:
                    self.completions_ready = False
                    logger.warning("Assistant completions could not be loaded and will not be available")
                    logger.debug("Completions loading error: %s: %s", type(e).__name__, e)
            elif not completions_enabled:
                logger.info("Assistant completions are disabled")

            degraded = (mcp_enabled and not self.mcp_ready) or (
                completions_enabled and not self.completions_ready
            )
            logger.info("Assistant plugin loaded%s", " (reduced functionality)" if degraded else "")
        finally:
            self._loading = False

    async def load_completions(self) -> None:
        """Load vocabulary and classifier and hand them to the MCP predictor.

        Raises:
            CompletionsLoadError: not initialised, not configured, or load failed.
        """
        if not self.is_initialized or self._tools is None:
            raise CompletionsLoadError("Assistant is not initialized")
        predictor, scorer = await load_predictor(self._settings, self._scorer_factory)
        previous, self._scorer = self._scorer, scorer
        self._tools.predictor = predictor
        if previous is not None:
            await previous.close()

    async def dispose(self) -> None:
        try:
            if self._scorer is not None:
                await self._scorer.close()
            if self._client is not None:
                await self._client.close()
        finally:
            self._scorer = None
            self._client = None
            self._tools = None
            self._settings = None
            self.mcp_ready = False
            self.completions_ready = False

    @property
    def is_initialized(self) -> bool:
        return self._settings is not None and self._client is not None

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def is_enabled(self) -> bool:
        return self._settings is not None and self._settings.is_configured

    @property
    def tools(self) -> AssistantMCPTools | None:
        return self._tools

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _ensure_ready(self, mcp: bool = True) -> None:
        if not self.is_initialized or self.is_loading:
            raise AssistantRequestError(503, "Assistant is not ready")
        if mcp and not self.mcp_ready:
            raise AssistantRequestError(503, "Model Context Protocol (MCP) is not ready")

    async def call_method(self, method: str, payload: Mapping[str, Any] | None) -> dict[str, Any]:
        """Forward a prompt to the backend endpoint named *method*."""
        self._ensure_ready(mcp=False)
        if not isinstance(method, str) or not _METHOD_RE.fullmatch(method):
            raise AssistantRequestError(400, "Invalid method")
        payload = payload or {}
        prompt = payload.get("prompt")
        if not prompt or not isinstance(prompt, str):
            raise AssistantRequestError(400, "prompt is required")

        body = {
            "prompt": prompt,
            "promptHint": payload.get("promptHint"),
            "context": payload.get("context"),
            "transactionId": payload.get("transactionId"),
        }
        raw = await self._client.post_method(method, body)
        if is_error(raw):
            detail = raw.get("detail")
            logger.warning("Assistant request to %s was unsuccessful: %s", method, raw.get("error"))
            raise AssistantRequestError(raw.get("status_code", 500), "Assistant request was unsuccessful", detail)
        return {"status": "ok", "data": raw}

    async def list_prompts(self) -> dict[str, Any]:
        self._ensure_ready()
        prompts = [
            {
                "name": pd.name,
                "description": pd.description,
                "arguments": [
                    {"name": a.name, "description": a.description, "required": a.required}
                    for a in pd.arguments
                ],
            }
            for _method_name, pd in PROMPT_CATALOG
        ]
        return {"status": "ok", "data": {"prompts": prompts}}

    async def run_prompt(self, prompt_id: str, payload: Mapping[str, Any] | None) -> dict[str, Any]:
        """Build prompt *prompt_id* from the selected nodes and send it to the backend."""
        self._ensure_ready()
        method_name = _PROMPT_DISPATCH.get(prompt_id) if isinstance(prompt_id, str) else None
        if method_name is None:
            raise AssistantRequestError(400, "Invalid prompt ID")
        payload = payload or {}
        nodes = payload.get("nodes")
        if not nodes or not isinstance(nodes, str):
            raise AssistantRequestError(400, "nodes selection is required")

        args: dict[str, Any] = {"nodes": nodes}
        for key in ("flowName", "userContext"):
            if payload.get(key) is not None:
                args[key] = payload[key]
        try:
            messages = getattr(self._tools, method_name)(**args)
        except ValidationError as e:
            raise AssistantRequestError(400, "Invalid prompt arguments", e.errors(include_url=False)) from e

        body = {
            "prompt": prompt_id,
            "transactionId": payload.get("transactionId"),
            "context": {"type": "prompt", "promptId": prompt_id, "prompt": {"messages": messages}},
        }
        raw = await self._client.post_mcp(body)
        if is_error(raw):
            logger.error("Failed to execute MCP prompt %s: %s", prompt_id, raw.get("error"))
            raise AssistantRequestError(raw.get("status_code", 500), "AI response was not successful", raw.get("detail"))
        data = raw.get("data", raw) if isinstance(raw, dict) else raw
        return {"status": "ok", "data": data}

    async def run_tool(self, tool_id: str, payload: Mapping[str, Any] | None) -> dict[str, Any]:
        """Run MCP tool *tool_id* (currently only ``predict_next``)."""
        self._ensure_ready()
        payload = payload or {}
        source_node = payload.get("sourceNode")
        if not isinstance(source_node, Mapping):
            raise AssistantRequestError(400, "Invalid input")
        if tool_id not in TOOL_NAMES:
            raise AssistantRequestError(400, "Invalid tool ID")

        # editor node objects carry runtime-only keys and group back-references
        flow, _count = clean_flow(payload.get("flow"))
        result = await self._tools.predict_next(
            flow=flow or None,
            sourceNode=dict(source_node),
            sourcePort=_source_port(payload.get("sourcePort")),
        )
        return {
            "status": "ok",
            "data": {
                "tool": tool_id,
                "transactionId": payload.get("transactionId"),
                "result": result.to_dict(),
            },
        }


def _source_port(raw: Any) -> int:
    """Accept a non-negative integer port (or numeric string); default 0."""
    if isinstance(raw, bool):
        return 0
    try:
        port = int(raw)
    except (TypeError, ValueError, OverflowError):
        return 0
    return port if port >= 0 else 0
