"""Domain contracts and type definitions."""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class RecommendationStatus(str, Enum):
    """Lifecycle of a stored recommendation.

    The generator only moves ``pending`` to ``sent`` or ``failed``. ``opened`` and
    ``clicked`` are written by downstream delivery tracking.
    """

    PENDING = "pending"
    SENT = "sent"
    OPENED = "opened"
    CLICKED = "clicked"
    FAILED = "failed"


class Stage(str, Enum):
    """Steps of the per-user pipeline, used to attribute failures."""

    RESERVATIONS = "reservations"
    SCHEDULE = "schedule"
    CANDIDATES = "candidates"
    MODEL = "model"
    MOVIE_DETAILS = "movie_details"
    PERSIST = "persist"
    PUBLISH = "publish"


@dataclass
class HistoryEntry:
    """A movie the user has already booked."""

    movie_id: str
    title: str
    rating: float


@dataclass
class Candidate:
    """An upcoming movie eligible for recommendation."""

    movie_id: str
    title: str
    description: str
    rating: float


@dataclass
class ModelRecommendation:
    """The model's pick after parsing and confidence clamping."""

    movie_id: str
    movie_title: str
    reason: str
    confidence_score: float
    raw_reply: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            "movie_id": self.movie_id,
            "movie_title": self.movie_title,
            "reason": self.reason,
            "confidence_score": self.confidence_score,
        }


@dataclass
class BatchSummary:
    """Outcome of one run over all active users."""

    started_at: datetime
    finished_at: datetime | None = None
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failed_user_ids: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()


def clamp_confidence(score: float) -> float:
    """Clamp a confidence score into [0.0, 1.0]; NaN becomes 0.0."""
    if math.isnan(score):
        return 0.0
    return min(max(score, 0.0), 1.0)
