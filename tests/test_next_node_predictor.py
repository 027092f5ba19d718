"""NextNodePredictor: classifier pipeline, completion rules and self-suggestion demotion."""

from __future__ import annotations

import httpx
import pytest

from nr_assistant.completions.predictor import (
    COMPLETION_RULES,
    NextNodePredictor,
    PredictionCandidate,
    apply_completion_rules,
    demote_self_suggestion,
)
from nr_assistant.completions.scorer import Scorer
from nr_assistant.completions.vocabulary import CompletionsVocabulary
from nr_assistant.flow_graph import CircularReferenceError

_VOCAB = CompletionsVocabulary.from_dict({
    "labelToId": {"inject": 1, "function": 2, "debug": 3, "change": 4},
    "idToLabel": {"1": "inject", "2": "function", "3": "debug", "4": "change"},
})


class FakeScorer(Scorer):
    """Deterministic classifier returning a fixed probability vector."""

    def __init__(self, probabilities, ready=True, error=None):
        self.probabilities = list(probabilities)
        self._ready = ready
        self._error = error
        self.calls: list[list[int]] = []

    @property
    def ready(self) -> bool:
        return self._ready

    async def score(self, input_ids):
        self.calls.append(list(input_ids))
        if self._error is not None:
            raise self._error
        return list(self.probabilities)


def _types(result):
    return [group[0].type for group in result.suggestions]


_LINEAR_FLOW = [
    {"id": "a", "type": "inject", "wires": [["b"]]},
    {"id": "b", "type": "function", "wires": [[]]},
]


# ---------------------------------------------------------------------------
# Classifier path
# ---------------------------------------------------------------------------


class TestClassifierPath:
    @pytest.mark.asyncio
    async def test_top_three_in_confidence_order(self):
        # index: 0=pad 1=inject 2=function 3=debug 4=change; inject/change tie at 0.1
        scorer = FakeScorer([0.0, 0.1, 0.2, 0.6, 0.1])
        predictor = NextNodePredictor(_VOCAB, scorer)

        result = await predictor.predict(_LINEAR_FLOW[1], flow=_LINEAR_FLOW)

        assert _types(result) == ["debug", "function", "inject"]
        assert all(len(group) == 1 for group in result.suggestions)

    @pytest.mark.asyncio
    async def test_scorer_receives_padded_window_ending_with_source(self):
        scorer = FakeScorer([0.0, 0.0, 0.0, 1.0, 0.0])
        await NextNodePredictor(_VOCAB, scorer).predict(_LINEAR_FLOW[1], flow=_LINEAR_FLOW)
        assert scorer.calls == [[0, 0, 0, 1, 2]]

    @pytest.mark.asyncio
    async def test_window_keeps_most_recent_types(self):
        types = ["debug", "change", "inject", "function", "change", "debug", "inject"]
        flow = [
            {"id": f"n{i}", "type": t, "wires": [[f"n{i + 1}"]] if i < len(types) - 1 else []}
            for i, t in enumerate(types)
        ]
        scorer = FakeScorer([0.0, 0.0, 0.0, 1.0, 0.0])
        await NextNodePredictor(_VOCAB, scorer).predict(flow[-1], flow=flow)
        # last five types: inject, function, change, debug, then the source (inject)
        assert scorer.calls == [[1, 2, 4, 3, 1]]

    @pytest.mark.asyncio
    async def test_source_only_without_flow(self):
        scorer = FakeScorer([0.0, 0.0, 0.0, 1.0, 0.0])
        result = await NextNodePredictor(_VOCAB, scorer).predict({"id": "s", "type": "change"})
        assert scorer.calls == [[0, 0, 0, 0, 4]]
        assert _types(result)[0] == "debug"

    @pytest.mark.asyncio
    async def test_padding_label_is_never_suggested(self):
        scorer = FakeScorer([0.9, 0.05, 0.03, 0.02, 0.0])
        result = await NextNodePredictor(_VOCAB, scorer).predict(_LINEAR_FLOW[1], flow=_LINEAR_FLOW)
        assert _types(result) == ["inject", "function"]

    @pytest.mark.asyncio
    async def test_unready_scorer_is_not_called(self):
        scorer = FakeScorer([0.0, 1.0, 0.0, 0.0, 0.0], ready=False)
        predictor = NextNodePredictor(_VOCAB, scorer)
        result = await predictor.predict(_LINEAR_FLOW[1], flow=_LINEAR_FLOW)
        assert predictor.classifier_ready is False
        assert scorer.calls == []
        assert result.suggestions == []

    @pytest.mark.asyncio
    async def test_scorer_failure_degrades_to_rules(self):
        flow = [
            {"id": "s", "type": "split", "wires": [["f"]]},
            {"id": "f", "type": "function", "wires": []},
        ]
        scorer = FakeScorer([], error=httpx.ConnectError("model down"))
        result = await NextNodePredictor(_VOCAB, scorer).predict(flow[1], flow=flow)
        assert _types(result) == ["join"]


# ---------------------------------------------------------------------------
# Completion rules
# ---------------------------------------------------------------------------


class TestCompletionRules:
    @pytest.mark.asyncio
    async def test_split_without_join_suggests_join_first(self):
        flow = [
            {"id": "s", "type": "split", "wires": [["f"]]},
            {"id": "f", "type": "function", "wires": []},
        ]
        scorer = FakeScorer([0.0, 0.1, 0.0, 0.9, 0.0])
        result = await NextNodePredictor(_VOCAB, scorer).predict(flow[1], flow=flow)
        # zero-probability ties keep index order, so the padding slot takes the third place and is dropped
        assert _types(result) == ["join", "debug", "inject"]
        assert result.suggestions[0][0].to_dict() == {"type": "join", "x": 0, "y": 0}

    @pytest.mark.asyncio
    async def test_rules_run_without_classifier(self):
        flow = [
            {"id": "h", "type": "http in", "wires": [["f"]]},
            {"id": "f", "type": "function", "wires": []},
        ]
        result = await NextNodePredictor().predict(flow[1], flow=flow)
        assert _types(result) == ["http response"]

    def test_rules_apply_in_order_later_ones_in_front(self):
        flow = [
            {"id": "1", "type": "split"},
            {"id": "2", "type": "link in"},
            {"id": "3", "type": "http in"},
        ]
        out = apply_completion_rules(flow, "function", [PredictionCandidate("debug")])
        assert [c.type for c in out] == ["http response", "link out", "join", "debug"]

    def test_no_rule_when_closing_node_exists(self):
        flow = [{"id": "1", "type": "split"}, {"id": "2", "type": "join"}]
        assert apply_completion_rules(flow, "function", []) == []

    def test_no_duplicate_of_model_suggestion(self):
        flow = [{"id": "1", "type": "link in"}, {"id": "2", "type": "change"}]
        out = apply_completion_rules(flow, "change", [PredictionCandidate("debug"), PredictionCandidate("link out")])
        assert [c.type for c in out] == ["debug", "link out"]

    @pytest.mark.parametrize("rule", COMPLETION_RULES, ids=lambda r: r.opens)
    def test_source_of_trigger_type_does_not_trigger(self, rule):
        flow = [{"id": "1", "type": rule.opens}, {"id": "2", "type": "change"}]
        assert apply_completion_rules(flow, rule.opens, []) == []

    def test_single_node_flow_skips_rules(self):
        assert apply_completion_rules([{"id": "1", "type": "split"}], "function", []) == []

    def test_no_flow_skips_rules(self):
        assert apply_completion_rules(None, "function", []) == []

    def test_input_list_is_not_mutated(self):
        flow = [{"id": "1", "type": "split"}, {"id": "2", "type": "change"}]
        candidates = [PredictionCandidate("debug")]
        apply_completion_rules(flow, "change", candidates)
        assert [c.type for c in candidates] == ["debug"]

    def test_rules_see_whole_flow_not_just_upstream(self):
        # the split is on an unrelated branch
        flow = [
            {"id": "s", "type": "split", "wires": [[]]},
            {"id": "a", "type": "inject", "wires": [["b"]]},
            {"id": "b", "type": "function", "wires": []},
        ]
        assert [c.type for c in apply_completion_rules(flow, "function", [])] == ["join"]


# ---------------------------------------------------------------------------
# Self-suggestion demotion
# ---------------------------------------------------------------------------


class TestDemotion:
    def test_leading_self_type_moves_to_end(self):
        out = demote_self_suggestion("function", [PredictionCandidate("function"), PredictionCandidate("debug")])
        assert [c.type for c in out] == ["debug", "function"]

    def test_only_first_position_is_checked(self):
        out = demote_self_suggestion("function", [PredictionCandidate("debug"), PredictionCandidate("function")])
        assert [c.type for c in out] == ["debug", "function"]

    def test_empty_list(self):
        assert demote_self_suggestion("function", []) == []

    @pytest.mark.asyncio
    async def test_classifier_self_suggestion_is_demoted_not_dropped(self):
        scorer = FakeScorer([0.0, 0.1, 0.7, 0.2, 0.0])
        result = await NextNodePredictor(_VOCAB, scorer).predict(_LINEAR_FLOW[1], flow=_LINEAR_FLOW)
        assert _types(result) == ["debug", "inject", "function"]


# ---------------------------------------------------------------------------
# Result shape and errors
# ---------------------------------------------------------------------------


class TestPredictResult:
    @pytest.mark.asyncio
    async def test_source_port_defaults_to_zero(self):
        result = await NextNodePredictor().predict({"id": "n1", "type": "inject"})
        assert result.to_dict() == {"sourceId": "n1", "sourcePort": 0, "suggestions": []}

    @pytest.mark.asyncio
    async def test_explicit_source_port(self):
        result = await NextNodePredictor().predict({"id": "n1", "type": "switch"}, source_port=2)
        assert result.source_port == 2

    @pytest.mark.asyncio
    async def test_suggestions_serialize_as_single_element_groups(self):
        flow = [
            {"id": "s", "type": "split", "wires": [["f"]]},
            {"id": "f", "type": "function", "wires": []},
        ]
        scorer = FakeScorer([0.0, 0.0, 0.0, 1.0, 0.0])
        result = await NextNodePredictor(_VOCAB, scorer).predict(flow[1], flow=flow)
        assert result.to_dict()["suggestions"] == [
            [{"type": "join", "x": 0, "y": 0}],
            [{"type": "debug"}],
            [{"type": "inject"}],
        ]

    @pytest.mark.asyncio
    async def test_cycle_propagates(self):
        flow = [
            {"id": "a", "type": "function", "wires": [["b"]]},
            {"id": "b", "type": "function", "wires": [["a"]]},
        ]
        with pytest.raises(CircularReferenceError):
            await NextNodePredictor().predict(flow[0], flow=flow)
