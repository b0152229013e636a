"""Reference-based cell-type classification (Stage D).

The classifier is an injected :class:`LabelPredictor`. The default is
:class:`SingleRPredictor`; :class:`StaticPredictor` replays precomputed
labels.
"""

from .base import (
    NO_CALL_TOKENS,
    LabelPredictor,
    StaticPredictor,
    attach_predictions,
    normalize_no_calls,
    prediction_summary,
)
from .engine import ClassificationEngine, ClassificationResult
from .reference import ReferencePanel
from .singler_backend import SingleRPredictor, prune_delta_outliers

__all__ = [
    "LabelPredictor",
    "StaticPredictor",
    "SingleRPredictor",
    "ReferencePanel",
    "ClassificationEngine",
    "ClassificationResult",
    "NO_CALL_TOKENS",
    "attach_predictions",
    "normalize_no_calls",
    "prediction_summary",
    "prune_delta_outliers",
]
