"""Per-user recommendation pipeline.

history -> candidates -> model -> validation/fallback -> movie details ->
persist (pending) -> publish -> mark sent | failed

Every step before persistence aborts the user's pipeline without writing
anything. Once a row exists it is never deleted: a publish failure marks it
``failed``, and status updates after creation are best-effort.
"""

import asyncio
import dataclasses
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Iterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cinerec.clients import CatalogClient, Movie, PurchaseClient, TimeSlot, UpstreamError, User
from cinerec.core.contracts import (
    Candidate,
    HistoryEntry,
    ModelRecommendation,
    RecommendationStatus,
    Stage,
)
from cinerec.core.errors import NoCandidatesError, StageError
from cinerec.core.model_gateway import RecommendationModel
from cinerec.logging import get_logger
from cinerec.messaging import NotificationMessage, Publisher
from cinerec.storage import RecsRepo

logger = get_logger(__name__)

EMAIL_TEMPLATE = "recommendation"
DEFAULT_RESERVATION_URL = "https://cinema.example.com/reserve"
DEFAULT_LOOKAHEAD_DAYS = 7


def unique_history(timeslots: Iterable[TimeSlot]) -> list[HistoryEntry]:
    """Collapse booked showings to unique movies, first booking wins."""
    seen: set[str] = set()
    history: list[HistoryEntry] = []
    for slot in timeslots:
        if slot.movie_id in seen:
            continue
        seen.add(slot.movie_id)
        history.append(
            HistoryEntry(movie_id=slot.movie_id, title=slot.movie.title, rating=slot.movie.rating)
        )
    return history


def unique_candidates(timeslots: Iterable[TimeSlot]) -> list[Candidate]:
    """Collapse upcoming showings to unique movies in schedule order."""
    seen: set[str] = set()
    candidates: list[Candidate] = []
    for slot in timeslots:
        if slot.movie_id in seen:
            continue
        seen.add(slot.movie_id)
        candidates.append(
            Candidate(
                movie_id=slot.movie_id,
                title=slot.movie.title,
                description=slot.movie.description,
                rating=slot.movie.rating,
            )
        )
    return candidates


def resolve_pick(
    pick: ModelRecommendation,
    candidates: list[Candidate],
) -> tuple[ModelRecommendation, bool]:
    """Ensure the pick is one of the candidates.

    A movie the model invented is replaced by the first candidate; reason and
    confidence are kept.

    Returns:
        (valid pick, whether the fallback was applied)
    """
    if any(c.movie_id == pick.movie_id for c in candidates):
        return pick, False

    fallback = candidates[0]
    return (
        dataclasses.replace(pick, movie_id=fallback.movie_id, movie_title=fallback.title),
        True,
    )


@contextmanager
def _stage(stage: Stage, user_id: str) -> Iterator[None]:
    """Wrap any failure inside the block as a ``StageError`` for ``stage``."""
    try:
        yield
    except StageError:
        raise
    except Exception as e:
        logger.error(
            f"Pipeline stage failed: {e}",
            extra={"user_id": user_id, "stage": stage.value},
        )
        raise StageError(stage, user_id, str(e)) from e


class RecommendationGenerator:
    """Produces, stores and sends one recommendation per call."""

    def __init__(
        self,
        purchases: PurchaseClient,
        catalog: CatalogClient,
        model: RecommendationModel,
        publisher: Publisher,
        session_factory: async_sessionmaker[AsyncSession],
        lookahead_days: int = DEFAULT_LOOKAHEAD_DAYS,
        reservation_url: str = DEFAULT_RESERVATION_URL,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.purchases = purchases
        self.catalog = catalog
        self.model = model
        self.publisher = publisher
        self.session_factory = session_factory
        self.lookahead_days = lookahead_days
        self.reservation_url = reservation_url
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def close(self) -> None:
        """Release the HTTP clients and the broker connection."""
        await self.purchases.close()
        await self.catalog.close()
        await self.model.adapter.close()
        await self.publisher.close()

    async def generate_for_user(self, user: User) -> str:
        """Run the full pipeline for one user.

        Args:
            user: Active user from the identity service

        Returns:
            ID of the stored recommendation

        Raises:
            StageError: Naming the step that failed. A publish failure is raised
                after the stored row has been marked ``failed``.
        """
        logger.info("Generating recommendation", extra={"user_id": user.id})

        history = await self._collect_history(user)
        candidates = await self._collect_candidates(user)

        with _stage(Stage.MODEL, user.id):
            model_pick = await self.model.recommend(history, candidates)

        pick, substituted = resolve_pick(model_pick, candidates)
        if substituted:
            logger.warning(
                f"Model picked movie {model_pick.movie_id} outside the upcoming list, "
                f"falling back to first candidate {pick.movie_id}",
                extra={"user_id": user.id},
            )
        logger.info(
            f"Model picked movie {pick.movie_id} (confidence {pick.confidence_score:.2f})",
            extra={"user_id": user.id},
        )

        with _stage(Stage.MOVIE_DETAILS, user.id):
            movie = await self.catalog.get_movie(pick.movie_id)

        context = {
            "user_history": history,
            "upcoming_movies": candidates,
            "ai_response": model_pick.to_dict(),
            "raw_reply": model_pick.raw_reply,
            "fallback_applied": substituted,
        }

        with _stage(Stage.PERSIST, user.id):
            async with self.session_factory() as session:
                rec = await RecsRepo(session).create_rec(
                    user_id=user.id,
                    movie_id=pick.movie_id,
                    reason=pick.reason,
                    confidence_score=pick.confidence_score,
                    context=context,
                    email_to=user.email,
                    email_subject=f"Perfect Movie for You: {movie.title}",
                )
        rec_id = rec.id
        logger.info("Recommendation saved", extra={"user_id": user.id, "rec_id": rec_id})

        message = self._build_message(user, movie, pick)
        try:
            await self.publisher.publish(message)
        except asyncio.CancelledError:
            logger.error(
                "Publishing cancelled before the broker confirmed it",
                extra={"user_id": user.id, "rec_id": rec_id},
            )
            await self._settle(rec_id, RecommendationStatus.FAILED)
            raise
        except Exception as e:
            logger.error(
                f"Failed to publish notification: {e}",
                extra={"user_id": user.id, "rec_id": rec_id},
            )
            await self._settle(rec_id, RecommendationStatus.FAILED)
            raise StageError(Stage.PUBLISH, user.id, str(e)) from e

        await self._settle(rec_id, RecommendationStatus.SENT)

        logger.info(
            "Recommendation sent",
            extra={"user_id": user.id, "rec_id": rec_id, "email": user.email},
        )
        return rec_id

    async def _collect_history(self, user: User) -> list[HistoryEntry]:
        with _stage(Stage.RESERVATIONS, user.id):
            reservations = await self.purchases.get_user_reservations(user.id)

        logger.info(f"Fetched {len(reservations)} reservations", extra={"user_id": user.id})

        # Several seats on one showing are separate reservations; resolve each showing once.
        showings: dict[str, TimeSlot] = {}
        for reservation in reservations:
            if reservation.timeslot_id in showings:
                continue
            try:
                showings[reservation.timeslot_id] = await self.catalog.get_timeslot(
                    reservation.timeslot_id
                )
            except UpstreamError as e:
                logger.warning(
                    f"Skipping reservation {reservation.id}, timeslot "
                    f"{reservation.timeslot_id} unavailable: {e}",
                    extra={"user_id": user.id},
                )

        history = unique_history(showings.values())
        logger.info(f"Extracted {len(history)} unique movies", extra={"user_id": user.id})
        return history

    async def _collect_candidates(self, user: User) -> list[Candidate]:
        start = self._clock()
        end = start + timedelta(days=self.lookahead_days)

        with _stage(Stage.SCHEDULE, user.id):
            timeslots = await self.catalog.get_upcoming_timeslots(start, end)

        candidates = unique_candidates(timeslots)
        if not candidates:
            logger.warning("No upcoming movies available", extra={"user_id": user.id})
            raise NoCandidatesError(user.id)

        logger.info(
            f"Extracted {len(candidates)} upcoming movies from {len(timeslots)} timeslots",
            extra={"user_id": user.id},
        )
        return candidates

    def _build_message(
        self,
        user: User,
        movie: Movie,
        pick: ModelRecommendation,
    ) -> NotificationMessage:
        return NotificationMessage(
            to=user.email,
            template=EMAIL_TEMPLATE,
            data={
                "UserName": user.first_name,
                "MovieTitle": movie.title,
                "MovieDescription": movie.description,
                "MovieRating": f"{movie.rating:.1f}/10",
                "RecommendationReason": pick.reason,
                "ReservationURL": f"{self.reservation_url}?movie={pick.movie_id}",
                "ImageURL": movie.image_url,
            },
        )

    async def _settle(self, rec_id: str, status: RecommendationStatus) -> None:
        """Run the status update to completion even if this task is being cancelled."""
        update = asyncio.ensure_future(self._transition(rec_id, status))
        try:
            await asyncio.shield(update)
        except asyncio.CancelledError:
            await update
            raise

    async def _transition(self, rec_id: str, status: RecommendationStatus) -> None:
        """Best-effort status update; failures are logged, never raised."""
        try:
            async with self.session_factory() as session:
                repo = RecsRepo(session)
                if status is RecommendationStatus.SENT:
                    changed = await repo.mark_sent(rec_id)
                else:
                    changed = await repo.mark_failed(rec_id)
        except Exception as e:
            logger.warning(
                f"Failed to mark recommendation as {status.value}: {e}",
                extra={"rec_id": rec_id},
            )
            return

        if not changed:
            logger.warning(
                f"Recommendation was not pending, left as is instead of {status.value}",
                extra={"rec_id": rec_id},
            )
