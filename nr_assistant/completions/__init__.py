"""Next-node completions: feature codec, vocabulary, classifier and predictor."""

from nr_assistant.completions.labeller import CompletionsLabeller, Prediction
from nr_assistant.completions.predictor import (
    COMPLETION_RULES,
    CompletionRule,
    NextNodePredictor,
    PredictionCandidate,
    PredictionResult,
)
from nr_assistant.completions.scorer import CompletionsLoadError, RemoteScorer, Scorer
from nr_assistant.completions.vocabulary import (
    PREDICTION_SEQUENCE_LENGTH,
    CompletionsVocabulary,
    CompletionsVocabularyError,
)

__all__ = [
    "COMPLETION_RULES",
    "PREDICTION_SEQUENCE_LENGTH",
    "CompletionRule",
    "CompletionsLabeller",
    "CompletionsLoadError",
    "CompletionsVocabulary",
    "CompletionsVocabularyError",
    "NextNodePredictor",
    "Prediction",
    "PredictionCandidate",
    "PredictionResult",
    "RemoteScorer",
    "Scorer",
]
