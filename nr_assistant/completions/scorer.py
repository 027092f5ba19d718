"""Classifier capability used by the next-node predictor.

The predictor only needs ``score(input_ids) -> probabilities``.  Anything
that can produce a probability vector over the vocabulary's classifier
labels plugs in by subclassing ``Scorer``; tests use a deterministic fake.

``RemoteScorer`` calls a model hosted behind a TensorFlow Serving style REST
endpoint:

  GET  {model_url}            → model status (used as the readiness check)
  POST {model_url}:predict    ← {"instances": [[id, id, id, id, id]]}
                              → {"predictions": [[p0, p1, ...]]}
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Sequence

import httpx

logger = logging.getLogger("nr_assistant.completions.scorer")


class CompletionsLoadError(RuntimeError):
    """Raised when the vocabulary or the model cannot be loaded."""


class Scorer(ABC):
    """Abstract classifier: fixed-width id sequence in, probabilities out."""

    @property
    @abstractmethod
    def ready(self) -> bool:
        """True once the model can serve ``score`` calls."""

    async def load(self) -> None:
        """Prepare the model.  Default: nothing to prepare."""

    @abstractmethod
    async def score(self, input_ids: Sequence[int]) -> list[float]:
        """Return one probability per classifier label."""

    async def close(self) -> None:
        """Release any held resources.  Default: nothing to release."""


class RemoteScorer(Scorer):
    """Scorer backed by a model server reached over HTTP."""

    def __init__(
        self,
        model_url: str,
        timeout: float = 60.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model_url = model_url.rstrip("/")
        self._ready = False
        self._client = httpx.AsyncClient(
            headers=headers or {"Content-Type": "application/json"},
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def model_url(self) -> str:
        return self._model_url

    async def load(self) -> None:
        """Check the model endpoint is reachable and mark the scorer ready.

        Raises:
            CompletionsLoadError: the endpoint is unreachable or errored.
        """
        try:
            r = await self._client.get(self._model_url)
            r.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise CompletionsLoadError(
                f"Model endpoint returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise CompletionsLoadError(f"Model endpoint unreachable: {e}") from e
        self._ready = True
        logger.debug("Model endpoint %s is ready", self._model_url)

    async def score(self, input_ids: Sequence[int]) -> list[float]:
        if not self._ready:
            raise CompletionsLoadError("Model has not been loaded")
        r = await self._client.post(
            f"{self._model_url}:predict",
            json={"instances": [list(input_ids)]},
        )
        r.raise_for_status()
        try:
            body = r.json()
            predictions = body.get("predictions") if isinstance(body, dict) else None
            if not predictions or not isinstance(predictions, list) or not isinstance(predictions[0], list):
                raise CompletionsLoadError("Model response has no predictions")
            return [float(p) for p in predictions[0]]
        except (ValueError, KeyError, TypeError, IndexError) as e:
            raise CompletionsLoadError(f"Malformed model response: {e}") from e

    async def close(self) -> None:
        self._ready = False
        await self._client.aclose()
