"""Completions vocabulary: the label/id tables the classifier was trained with.

Served as JSON next to the model:

  {
    "labelToId": {"inject": 1, "function": 2, "debug": 3, ...},
    "idToLabel": {"1": "inject", "2": "function", "3": "debug", ...},
    "inputFeatureLabels": [...],   # optional
    "classifierLabels":   [...],   # optional
    "nodeLabels":         [...]    # optional
  }

Id 0 is reserved for padding and unknown node types.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from nr_assistant.completions.labeller import CompletionsLabeller

PREDICTION_SEQUENCE_LENGTH: int = 5
PADDING_ID: int = 0


class CompletionsVocabularyError(ValueError):
    """Raised when a vocabulary payload is malformed."""


@dataclass(frozen=True)
class CompletionsVocabulary:
    label_to_id: Mapping[str, int]
    id_to_label: Mapping[int, str]
    input_feature_labels: tuple[str, ...]
    classifier_labels: tuple[str, ...]
    node_labels: tuple[str, ...]

    @classmethod
    def from_dict(cls, raw: Any) -> CompletionsVocabulary:
        """Validate and normalize a vocabulary payload.

        ``idToLabel`` keys arrive as strings from JSON and are converted to
        ints.  Missing optional label lists default to the ``labelToId``
        labels ordered by id; missing ``classifierLabels`` are laid out by
        ``idToLabel`` index with ``""`` in any gaps.
        """
        if not isinstance(raw, Mapping):
            raise CompletionsVocabularyError("Invalid vocabulary format")
        label_to_id = raw.get("labelToId")
        id_to_label = raw.get("idToLabel")
        if not isinstance(label_to_id, Mapping) or not isinstance(id_to_label, Mapping):
            raise CompletionsVocabularyError("Vocabulary mappings are not properly defined")

        try:
            ids = {str(label): int(i) for label, i in label_to_id.items()}
            labels = {int(i): str(label) for i, label in id_to_label.items()}
        except (TypeError, ValueError) as e:
            raise CompletionsVocabularyError(f"Vocabulary ids must be integers: {e}") from e

        by_id = tuple(label for label, _ in sorted(ids.items(), key=lambda kv: kv[1]))
        classifier = raw.get("classifierLabels")
        if classifier is None:
            width = max(labels) + 1 if labels else 0
            classifier = [labels.get(i, "") for i in range(width)]
        features = raw.get("inputFeatureLabels") or by_id
        node_labels = raw.get("nodeLabels") or features

        return cls(
            label_to_id=ids,
            id_to_label=labels,
            input_feature_labels=tuple(features),
            classifier_labels=tuple(classifier),
            node_labels=tuple(node_labels),
        )

    def lookup(self, node_type: str | None) -> int:
        """Vocabulary id for *node_type* (case-insensitive), 0 when unknown."""
        if not node_type:
            return PADDING_ID
        return self.label_to_id.get(node_type.lower(), PADDING_ID)

    def encode_window(
        self,
        node_types: Sequence[str | None],
        window: int = PREDICTION_SEQUENCE_LENGTH,
    ) -> list[int]:
        """Encode the last *window* node types as ids, left-padded with zeros.

        Truncation happens on the label sequence; padding is applied to the
        id sequence, so the result is always exactly *window* ints.
        """
        recent = list(node_types)[-window:] if window > 0 else []
        encoded = [self.lookup(t) for t in recent]
        return [PADDING_ID] * (window - len(encoded)) + encoded

    def labeller(self) -> CompletionsLabeller:
        return CompletionsLabeller(
            input_feature_labels=self.input_feature_labels,
            classifier_labels=self.classifier_labels,
            node_labels=self.node_labels,
        )
