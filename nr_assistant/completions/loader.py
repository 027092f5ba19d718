"""Load the completions vocabulary and classifier into a predictor."""

from __future__ import annotations

import logging
from typing import Callable

import httpx

from nr_assistant.completions.predictor import NextNodePredictor
from nr_assistant.completions.scorer import CompletionsLoadError, RemoteScorer, Scorer
from nr_assistant.completions.vocabulary import CompletionsVocabulary, CompletionsVocabularyError
from nr_assistant.config import AssistantSettings

logger = logging.getLogger("nr_assistant.completions.loader")

ScorerFactory = Callable[[str, float], Scorer]


async def fetch_vocabulary(
    url: str,
    timeout: float = 60.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> CompletionsVocabulary:
    """Download and validate the vocabulary JSON at *url*.

    Raises:
        CompletionsLoadError: the download failed or the payload is malformed.
    """
    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=10.0), transport=transport) as client:
            r = await client.get(url)
            r.raise_for_status()
            raw = r.json()
    except httpx.HTTPStatusError as e:
        raise CompletionsLoadError(f"Vocabulary request returned HTTP {e.response.status_code}") from e
    except (httpx.HTTPError, ValueError) as e:
        raise CompletionsLoadError(f"Vocabulary could not be fetched: {e}") from e

    try:
        return CompletionsVocabulary.from_dict(raw)
    except CompletionsVocabularyError as e:
        raise CompletionsLoadError(str(e)) from e


async def load_predictor(
    settings: AssistantSettings,
    scorer_factory: ScorerFactory = RemoteScorer,
    transport: httpx.AsyncBaseTransport | None = None,
) -> tuple[NextNodePredictor, Scorer]:
    """Build a classifier-backed predictor from *settings*.

    The vocabulary is loaded first, then the model.  On any failure the
    partially created scorer is closed before the error propagates.

    Raises:
        CompletionsLoadError: URLs are missing, or vocabulary/model failed to load.
    """
    if not settings.model_url or not settings.vocabulary_url:
        raise CompletionsLoadError("Completions model and vocabulary URLs are not set")

    vocabulary = await fetch_vocabulary(settings.vocabulary_url, settings.timeout_seconds, transport)
    scorer = scorer_factory(settings.model_url, settings.timeout_seconds)
    try:
        await scorer.load()
    except CompletionsLoadError:
        await scorer.close()
        raise
    logger.debug(
        "Loaded completions vocabulary (%d labels) and model %s",
        len(vocabulary.label_to_id),
        settings.model_url,
    )
    return NextNodePredictor(vocabulary=vocabulary, scorer=scorer), scorer


async def load_predictor_or_rules(
    settings: AssistantSettings,
    scorer_factory: ScorerFactory = RemoteScorer,
    transport: httpx.AsyncBaseTransport | None = None,
) -> tuple[NextNodePredictor, Scorer | None]:
    """Like ``load_predictor`` but degrades to a rules-only predictor."""
    if not settings.completions_enabled or not settings.model_url or not settings.vocabulary_url:
        logger.info("Completions classifier not configured; using completion rules only")
        return NextNodePredictor(), None
    try:
        return await load_predictor(settings, scorer_factory, transport)
    except CompletionsLoadError as e:
        logger.warning("Completions could not be loaded, using completion rules only: %s", e)
        return NextNodePredictor(), None
