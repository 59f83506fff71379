"""SQLAlchemy ORM models."""

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Float, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cinerec.core.contracts import RecommendationStatus
from cinerec.storage.db import Base


class Recommendation(Base):
    """One generated movie recommendation and its delivery state.

    ``user_id`` and ``movie_id`` reference records owned by the identity and
    catalog services, so they carry no foreign keys here.
    """

    __tablename__ = "recommendations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    movie_id: Mapped[str] = mapped_column(String(36), nullable=False)

    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=RecommendationStatus.PENDING.value, index=True
    )

    # Inputs and raw model reply, kept for audit/debugging
    generation_context: Mapped[str] = mapped_column(Text, nullable=False, default="{}")

    email_to: Mapped[str] = mapped_column(String, nullable=False, default="")
    email_subject: Mapped[str] = mapped_column(String, nullable=False, default="")

    sent_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    opened_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    clicked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'sent', 'opened', 'clicked', 'failed')",
            name="ck_recommendations_status",
        ),
        CheckConstraint(
            "confidence_score >= 0.0 AND confidence_score <= 1.0",
            name="ck_recommendations_confidence",
        ),
        Index("ix_recommendations_user_created", "user_id", "created_at"),
    )
