"""Feature codec for the next-node classifier.

The feature vector layout is fixed by how the classifier was trained:

  [sequence_length, *one_hot(first), *one_hot(last), *counts]

so ``len(vector) == 1 + 3 * len(input_feature_labels)`` when ``node_labels``
equals ``input_feature_labels`` (the usual case).  Field order must match
the trained model.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True)
class Prediction:
    """One decoded classifier output slot."""

    label: str
    confidence: float
    index: int


class CompletionsLabeller:
    """Encode node-type sequences and decode classifier output.

    input_feature_labels: positions of the one-hot vectors.
    classifier_labels:    classifier output index → node type.
    node_labels:          positions of the per-type occurrence counts.

    Label lists are copied to tuples on construction and never change.
    """

    def __init__(
        self,
        input_feature_labels: Sequence[str],
        classifier_labels: Sequence[str],
        node_labels: Sequence[str] | None = None,
    ) -> None:
        self._input_feature_labels = tuple(input_feature_labels)
        self._classifier_labels = tuple(classifier_labels)
        self._node_labels = tuple(node_labels if node_labels is not None else input_feature_labels)

    @property
    def input_feature_labels(self) -> tuple[str, ...]:
        return self._input_feature_labels

    @property
    def classifier_labels(self) -> tuple[str, ...]:
        return self._classifier_labels

    @property
    def node_labels(self) -> tuple[str, ...]:
        return self._node_labels

    @property
    def feature_width(self) -> int:
        return 1 + 2 * len(self._input_feature_labels) + len(self._node_labels)

    def one_hot(self, label: str) -> list[int]:
        """1 at *label*'s position, all zeros for a label outside the vocabulary."""
        return [1 if known == label else 0 for known in self._input_feature_labels]

    def count_occurrences(self, sequence: Sequence[str]) -> list[int]:
        return [sum(1 for item in sequence if item == known) for known in self._node_labels]

    def encode_sequence(self, sequence: Sequence[str]) -> list[int]:
        """Encode a non-empty node-type sequence into a feature vector.

        Raises:
            ValueError: *sequence* is empty.
        """
        if not sequence:
            raise ValueError("cannot encode an empty node sequence")
        return [
            len(sequence),
            *self.one_hot(sequence[0]),
            *self.one_hot(sequence[-1]),
            *self.count_occurrences(sequence),
        ]

    def decode_predictions(self, probabilities: Sequence[float], top_n: int = 5) -> list[Prediction]:
        """Rank classifier output by confidence, highest first.

        Equal confidences keep their original index order (``sorted`` is
        stable).  Indices beyond ``classifier_labels`` decode to ``""``.
        """
        ranked = sorted(
            (
                Prediction(
                    label=self._classifier_labels[i] if i < len(self._classifier_labels) else "",
                    confidence=float(p),
                    index=i,
                )
                for i, p in enumerate(probabilities)
            ),
            key=lambda pred: pred.confidence,
            reverse=True,
        )
        return ranked[: max(top_n, 0)]
