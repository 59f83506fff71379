"""Core recommendation domain: contracts, errors and the per-user pipeline."""

from cinerec.core.contracts import (
    BatchSummary,
    Candidate,
    HistoryEntry,
    ModelRecommendation,
    RecommendationStatus,
    Stage,
    clamp_confidence,
)
from cinerec.core.errors import NoCandidatesError, StageError

__all__ = [
    "BatchSummary",
    "Candidate",
    "HistoryEntry",
    "ModelRecommendation",
    "NoCandidatesError",
    "RecommendationStatus",
    "Stage",
    "StageError",
    "clamp_confidence",
]
