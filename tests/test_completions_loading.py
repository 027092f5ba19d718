"""RemoteScorer, vocabulary download and predictor loading."""

from __future__ import annotations

import json

import httpx
import pytest

from nr_assistant.completions.loader import fetch_vocabulary, load_predictor, load_predictor_or_rules
from nr_assistant.completions.predictor import NextNodePredictor
from nr_assistant.completions.scorer import CompletionsLoadError, RemoteScorer, Scorer
from nr_assistant.completions.vocabulary import CompletionsVocabulary
from nr_assistant.config import AssistantSettings

_VOCAB_JSON = {
    "labelToId": {"inject": 1, "function": 2, "debug": 3},
    "idToLabel": {"1": "inject", "2": "function", "3": "debug"},
}
_MODEL_URL = "https://models.example.com/v1/models/next_node"


def _model_server(predictions=None, status=200):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.method, str(request.url), request.content))
        if status != 200:
            return httpx.Response(status, json={"error": "nope"})
        if request.method == "GET":
            return httpx.Response(200, json={"model_version_status": [{"state": "AVAILABLE"}]})
        return httpx.Response(200, json={"predictions": [predictions or [0.1, 0.2, 0.3, 0.4]]})

    return handler, calls


class StubScorer(Scorer):
    def __init__(self, url, timeout, fail=False):
        self.url = url
        self.timeout = timeout
        self.fail = fail
        self.closed = False
        self._ready = False

    @property
    def ready(self):
        return self._ready

    async def load(self):
        if self.fail:
            raise CompletionsLoadError("model missing")
        self._ready = True

    async def score(self, input_ids):
        return [0.0, 0.0, 0.0, 1.0]

    async def close(self):
        self.closed = True


# ---------------------------------------------------------------------------
# RemoteScorer
# ---------------------------------------------------------------------------


class TestRemoteScorer:
    @pytest.mark.asyncio
    async def test_load_then_score(self):
        handler, calls = _model_server([0.05, 0.15, 0.8])
        scorer = RemoteScorer(_MODEL_URL, transport=httpx.MockTransport(handler))
        try:
            assert scorer.ready is False
            await scorer.load()
            assert scorer.ready is True
            probs = await scorer.score([0, 0, 0, 1, 2])
        finally:
            await scorer.close()

        assert probs == [0.05, 0.15, 0.8]
        method, url, body = calls[-1]
        assert method == "POST"
        assert url == f"{_MODEL_URL}:predict"
        assert json.loads(body) == {"instances": [[0, 0, 0, 1, 2]]}
        assert scorer.ready is False

    @pytest.mark.asyncio
    async def test_load_failure_raises_load_error(self):
        handler, _ = _model_server(status=404)
        scorer = RemoteScorer(_MODEL_URL, transport=httpx.MockTransport(handler))
        try:
            with pytest.raises(CompletionsLoadError, match="404"):
                await scorer.load()
            assert scorer.ready is False
        finally:
            await scorer.close()

    @pytest.mark.asyncio
    async def test_score_before_load_raises(self):
        handler, _ = _model_server()
        scorer = RemoteScorer(_MODEL_URL, transport=httpx.MockTransport(handler))
        try:
            with pytest.raises(CompletionsLoadError):
                await scorer.score([0, 0, 0, 0, 1])
        finally:
            await scorer.close()

    @pytest.mark.asyncio
    async def test_response_without_predictions(self):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json={})
            return httpx.Response(200, json={"outputs": []})

        scorer = RemoteScorer(_MODEL_URL, transport=httpx.MockTransport(handler))
        try:
            await scorer.load()
            with pytest.raises(CompletionsLoadError):
                await scorer.score([1, 2, 3, 4, 5])
        finally:
            await scorer.close()


class TestMalformedModelResponse:
    """A 200 reply the scorer cannot use must leave the predictor on its rules."""

    _FLOW = [
        {"id": "s", "type": "split", "wires": [["f"]]},
        {"id": "f", "type": "function", "wires": []},
    ]

    @staticmethod
    def _scorer(reply: dict) -> RemoteScorer:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json={})
            return httpx.Response(200, **reply)

        return RemoteScorer(_MODEL_URL, transport=httpx.MockTransport(handler))

    _BAD_REPLIES = [
        {"text": "<html>gateway</html>"},
        {"json": {"predictions": {"x": 1}}},
        {"json": {"predictions": [["a"]]}},
        {"json": {"predictions": [[None]]}},
        {"json": [0.1, 0.9]},
    ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", _BAD_REPLIES)
    async def test_score_raises_load_error(self, reply):
        scorer = self._scorer(reply)
        try:
            await scorer.load()
            with pytest.raises(CompletionsLoadError):
                await scorer.score([0, 0, 0, 0, 2])
        finally:
            await scorer.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", _BAD_REPLIES)
    async def test_predictor_falls_back_to_rules(self, reply):
        scorer = self._scorer(reply)
        try:
            await scorer.load()
            predictor = NextNodePredictor(CompletionsVocabulary.from_dict(_VOCAB_JSON), scorer)
            result = await predictor.predict(self._FLOW[1], flow=self._FLOW)
        finally:
            await scorer.close()
        assert [group[0].type for group in result.suggestions] == ["join"]


# ---------------------------------------------------------------------------
# fetch_vocabulary
# ---------------------------------------------------------------------------


class TestFetchVocabulary:
    @pytest.mark.asyncio
    async def test_valid_payload(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json=_VOCAB_JSON))
        vocab = await fetch_vocabulary("https://models.example.com/vocab.json", transport=transport)
        assert vocab.lookup("Debug") == 3

    @pytest.mark.asyncio
    async def test_http_error(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(500, text="boom"))
        with pytest.raises(CompletionsLoadError, match="500"):
            await fetch_vocabulary("https://models.example.com/vocab.json", transport=transport)

    @pytest.mark.asyncio
    async def test_malformed_payload(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"labelToId": {}}))
        with pytest.raises(CompletionsLoadError, match="mappings"):
            await fetch_vocabulary("https://models.example.com/vocab.json", transport=transport)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(CompletionsLoadError):
            await fetch_vocabulary("https://models.example.com/vocab.json", transport=transport)


# ---------------------------------------------------------------------------
# load_predictor
# ---------------------------------------------------------------------------


_CONFIGURED = AssistantSettings(
    enabled=True,
    url="https://assistant.example.com",
    token="t",
    request_timeout=2000,
    model_url=_MODEL_URL,
    vocabulary_url="https://models.example.com/vocab.json",
)
_VOCAB_TRANSPORT = httpx.MockTransport(lambda r: httpx.Response(200, json=_VOCAB_JSON))


class TestLoadPredictor:
    @pytest.mark.asyncio
    async def test_builds_classifier_backed_predictor(self):
        predictor, scorer = await load_predictor(_CONFIGURED, StubScorer, transport=_VOCAB_TRANSPORT)
        assert predictor.classifier_ready is True
        assert scorer.url == _MODEL_URL
        assert scorer.timeout == 2.0

    @pytest.mark.asyncio
    async def test_missing_urls(self):
        with pytest.raises(CompletionsLoadError):
            await load_predictor(AssistantSettings(enabled=True), StubScorer)

    @pytest.mark.asyncio
    async def test_model_failure_closes_scorer(self):
        created = []

        def factory(url, timeout):
            s = StubScorer(url, timeout, fail=True)
            created.append(s)
            return s

        with pytest.raises(CompletionsLoadError):
            await load_predictor(_CONFIGURED, factory, transport=_VOCAB_TRANSPORT)
        assert created[0].closed is True

    @pytest.mark.asyncio
    async def test_or_rules_without_configuration(self):
        predictor, scorer = await load_predictor_or_rules(AssistantSettings())
        assert scorer is None
        assert predictor.classifier_ready is False

    @pytest.mark.asyncio
    async def test_or_rules_on_failure(self):
        def factory(url, timeout):
            return StubScorer(url, timeout, fail=True)

        settings = AssistantSettings(model_url=_MODEL_URL, vocabulary_url="https://models.example.com/vocab.json")
        predictor, scorer = await load_predictor_or_rules(settings, factory, transport=_VOCAB_TRANSPORT)
        assert scorer is None
        assert predictor.classifier_ready is False
