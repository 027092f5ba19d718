"""Next-node prediction: classifier suggestions plus flow-pattern completion.

Pipeline for one request:

  1. Walk the flow upstream from the source node (``get_longest_upstream_path``).
  2. Take the node types of that path plus the source node, keep the last
     ``window`` of them and encode them as vocabulary ids (left zero-padded).
  3. Score the ids with the classifier and keep the ``top_k`` labels.
  4. Apply the completion rules: a flow that opened a pattern (``split``,
     ``link in``, ``http in``) but never closed it gets the closing node type
     pushed to the front of the suggestions.
  5. If the best suggestion is the source node's own type, demote it to last.

A missing or unready classifier skips step 3; the rules still run.  A cycle
in the flow raises ``CircularReferenceError`` out of ``predict``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

import httpx

from nr_assistant.completions.scorer import CompletionsLoadError, Scorer
from nr_assistant.completions.vocabulary import PREDICTION_SEQUENCE_LENGTH, CompletionsVocabulary
from nr_assistant.flow_graph import FlowNode, get_longest_upstream_path

logger = logging.getLogger("nr_assistant.completions.predictor")

DEFAULT_TOP_K: int = 3


@dataclass
class PredictionCandidate:
    """A suggested node type, with optional placement hints for the editor."""

    type: str
    x: int | None = None
    y: int | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"type": self.type}
        if self.x is not None:
            d["x"] = self.x
        if self.y is not None:
            d["y"] = self.y
        return d


@dataclass
class PredictionResult:
    source_id: str | None
    source_port: int
    suggestions: list[list[PredictionCandidate]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourceId": self.source_id,
            "sourcePort": self.source_port,
            "suggestions": [[c.to_dict() for c in group] for group in self.suggestions],
        }


@dataclass(frozen=True)
class CompletionRule:
    """A flow containing ``opens`` but no ``closes`` should be offered ``closes``."""

    opens: str
    closes: str

    def applies(self, flow_types: set[str], source_type: str | None, suggested: set[str]) -> bool:
        return (
            self.opens in flow_types
            and self.closes not in flow_types
            and self.closes not in suggested
            and source_type != self.opens
        )


# Evaluated in order; each insertion is visible to the rules after it.
COMPLETION_RULES: tuple[CompletionRule, ...] = (
    CompletionRule(opens="split", closes="join"),
    CompletionRule(opens="link in", closes="link out"),
    CompletionRule(opens="http in", closes="http response"),
)


def apply_completion_rules(
    flow: Sequence[FlowNode] | None,
    source_type: str | None,
    candidates: list[PredictionCandidate],
    rules: Iterable[CompletionRule] = COMPLETION_RULES,
) -> list[PredictionCandidate]:
    """Return *candidates* with rule-based completions prepended.

    Rules only look at flows with more than one node.
    """
    result = list(candidates)
    if not flow or len(flow) <= 1:
        return result
    flow_types = {n.get("type") for n in flow if isinstance(n, Mapping)}
    for rule in rules:
        if rule.applies(flow_types, source_type, {c.type for c in result}):
            result.insert(0, PredictionCandidate(type=rule.closes, x=0, y=0))
    return result


def demote_self_suggestion(
    source_type: str | None, candidates: list[PredictionCandidate]
) -> list[PredictionCandidate]:
    """Move a leading suggestion equal to *source_type* to the end."""
    if candidates and candidates[0].type == source_type:
        return [*candidates[1:], candidates[0]]
    return list(candidates)


class NextNodePredictor:
    """Suggest the node types most likely to follow a source node.

    vocabulary and scorer are optional; without both (or while the scorer is
    not ready) predictions come from the completion rules alone.
    """

    def __init__(
        self,
        vocabulary: CompletionsVocabulary | None = None,
        scorer: Scorer | None = None,
        window: int = PREDICTION_SEQUENCE_LENGTH,
        top_k: int = DEFAULT_TOP_K,
        rules: Sequence[CompletionRule] = COMPLETION_RULES,
    ) -> None:
        self._vocabulary = vocabulary
        self._labeller = vocabulary.labeller() if vocabulary is not None else None
        self._scorer = scorer
        self._window = window
        self._top_k = top_k
        self._rules = tuple(rules)

    @property
    def classifier_ready(self) -> bool:
        return self._vocabulary is not None and self._scorer is not None and self._scorer.ready

    async def predict(
        self,
        source_node: FlowNode,
        flow: Sequence[FlowNode] | None = None,
        source_port: int | None = None,
    ) -> PredictionResult:
        """Rank the next node types for *source_node*.

        Raises:
            CircularReferenceError: the flow has a cycle upstream of the source.
        """
        source_node = source_node or {}
        source_id = source_node.get("id")
        source_type = source_node.get("type")

        upstream: list[FlowNode] = []
        if flow and source_id:
            upstream = get_longest_upstream_path(flow, source_id)

        candidates: list[PredictionCandidate] = []
        if self.classifier_ready:
            node_types = [n.get("type") for n in upstream] + [source_type]
            candidates = await self._classify(node_types)

        candidates = apply_completion_rules(flow, source_type, candidates, self._rules)
        candidates = demote_self_suggestion(source_type, candidates)

        return PredictionResult(
            source_id=source_id,
            source_port=source_port or 0,
            suggestions=[[c] for c in candidates],
        )

    async def _classify(self, node_types: Sequence[str | None]) -> list[PredictionCandidate]:
        input_ids = self._vocabulary.encode_window(node_types, self._window)
        try:
            probabilities = await self._scorer.score(input_ids)
        except (httpx.HTTPError, CompletionsLoadError) as e:
            logger.warning("Completions classifier failed, using rules only: %s", e)
            return []
        ranked = self._labeller.decode_predictions(probabilities, self._top_k)
        logger.debug("Classifier input %s -> %s", input_ids, [p.label for p in ranked])
        return [PredictionCandidate(type=p.label) for p in ranked if p.label]
