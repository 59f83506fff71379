"""Repository for recommendation operations."""

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cinerec.core.contracts import RecommendationStatus, clamp_confidence
from cinerec.storage.json_utils import safe_json_dumps
from cinerec.storage.models import Recommendation
from cinerec.storage.pagination import (
    PaginationOptions,
    SortOptions,
    apply_pagination,
    apply_sort,
)


class RecsRepo:
    """Repository for recommendation operations.

    Every write is a single statement committed on its own, so no lock is held
    across calls.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_rec(
        self,
        user_id: str,
        movie_id: str,
        reason: str,
        confidence_score: float,
        context: dict[str, Any] | None = None,
        email_to: str = "",
        email_subject: str = "",
    ) -> Recommendation:
        """Create a new ``pending`` recommendation.

        Args:
            user_id: Identity-service user ID
            movie_id: Catalog movie ID
            reason: Model rationale
            confidence_score: Model confidence, clamped into [0, 1] here
            context: Generation context (history, candidates, model reply)
            email_to: Destination address
            email_subject: Rendered subject line

        Returns:
            The stored Recommendation
        """
        now = datetime.now(timezone.utc)

        rec = Recommendation(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            movie_id=movie_id,
            reason=reason,
            confidence_score=clamp_confidence(confidence_score),
            status=RecommendationStatus.PENDING.value,
            generation_context=safe_json_dumps(context or {}),
            email_to=email_to,
            email_subject=email_subject,
        )
        self.session.add(rec)
        await self.session.commit()
        return rec

    async def get_rec(self, rec_id: str) -> Recommendation | None:
        stmt = select(Recommendation).where(Recommendation.id == rec_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_user_recs(
        self,
        user_id: str,
        pagination: PaginationOptions | None = None,
        sort: SortOptions | None = None,
    ) -> tuple[list[Recommendation], int]:
        """List a user's recommendations.

        Returns:
            (page of recommendations, total count for the user)
        """
        return await self._list(Recommendation.user_id == user_id, pagination, sort)

    async def list_recs(
        self,
        pagination: PaginationOptions | None = None,
        sort: SortOptions | None = None,
    ) -> tuple[list[Recommendation], int]:
        """List all recommendations.

        Returns:
            (page of recommendations, total count)
        """
        return await self._list(None, pagination, sort)

    async def _list(
        self,
        condition,
        pagination: PaginationOptions | None,
        sort: SortOptions | None,
    ) -> tuple[list[Recommendation], int]:
        count_stmt = select(func.count()).select_from(Recommendation)
        stmt = select(Recommendation)
        if condition is not None:
            count_stmt = count_stmt.where(condition)
            stmt = stmt.where(condition)

        total = (await self.session.execute(count_stmt)).scalar() or 0

        stmt = apply_pagination(apply_sort(stmt, sort), pagination)
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total

    async def mark_sent(self, rec_id: str) -> bool:
        """Move a pending recommendation to ``sent`` and stamp ``sent_at``.

        Returns:
            True if the row transitioned, False if it was missing or already terminal
        """
        now = datetime.now(timezone.utc)
        return await self._transition(
            rec_id, RecommendationStatus.SENT, sent_at=now, updated_at=now
        )

    async def mark_failed(self, rec_id: str) -> bool:
        """Move a pending recommendation to ``failed``.

        Returns:
            True if the row transitioned, False if it was missing or already terminal
        """
        return await self._transition(
            rec_id, RecommendationStatus.FAILED, updated_at=datetime.now(timezone.utc)
        )

    async def _transition(
        self,
        rec_id: str,
        status: RecommendationStatus,
        **values: Any,
    ) -> bool:
        # Targeted update guarded on 'pending' so a terminal status never regresses.
        stmt = (
            update(Recommendation)
            .where(
                Recommendation.id == rec_id,
                Recommendation.status == RecommendationStatus.PENDING.value,
            )
            .values(status=status.value, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount == 1
