"""Tests for the per-user recommendation pipeline."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from cinerec.clients import CatalogClient, PurchaseClient, Reservation, UpstreamError
from cinerec.core import NoCandidatesError, RecommendationStatus, Stage, StageError
from cinerec.core.contracts import ModelRecommendation
from cinerec.core.generator import RecommendationGenerator, resolve_pick, unique_candidates
from cinerec.core.model_gateway import ModelResponseError, RecommendationModel
from cinerec.messaging import PublishError
from cinerec.storage import Recommendation, RecsRepo, safe_json_loads

NOW = datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc)


def _reservation(res_id: str, timeslot_id: str, user_id: str = "user-1") -> Reservation:
    return Reservation(id=res_id, timeslot_id=timeslot_id, user_id=user_id)


def _pick(movie_id: str, confidence: float = 0.8) -> ModelRecommendation:
    return ModelRecommendation(
        movie_id=movie_id,
        movie_title=f"Movie {movie_id}",
        reason="You enjoy slow science fiction.",
        confidence_score=confidence,
        raw_reply=f'{{"item_id": "{movie_id}"}}',
    )


@pytest.fixture
def collaborators(make_timeslot, make_movie):
    purchases = AsyncMock(spec=PurchaseClient)
    purchases.get_user_reservations.return_value = []

    catalog = AsyncMock(spec=CatalogClient)
    catalog.get_upcoming_timeslots.return_value = [
        make_timeslot("m-a"),
        make_timeslot("m-b"),
        make_timeslot("m-a"),
        make_timeslot("m-c"),
    ]
    catalog.get_movie.side_effect = lambda movie_id: make_movie(movie_id, rating=8.1)

    model = AsyncMock(spec=RecommendationModel)
    model.recommend.return_value = _pick("m-b")

    publisher = AsyncMock()
    return purchases, catalog, model, publisher


@pytest.fixture
def generator(collaborators, session_factory):
    purchases, catalog, model, publisher = collaborators
    return RecommendationGenerator(
        purchases=purchases,
        catalog=catalog,
        model=model,
        publisher=publisher,
        session_factory=session_factory,
        lookahead_days=7,
        reservation_url="https://cinema.example.com/reserve",
        clock=lambda: NOW,
    )


async def _rows(session_factory) -> list[Recommendation]:
    async with session_factory() as session:
        result = await session.execute(select(Recommendation))
        return list(result.scalars().all())


class TestHelpers:
    def test_unique_candidates_keeps_first_occurrence_order(self, make_timeslot):
        slots = [make_timeslot("A"), make_timeslot("B"), make_timeslot("A"), make_timeslot("C")]
        assert [c.movie_id for c in unique_candidates(slots)] == ["A", "B", "C"]

    def test_resolve_pick_keeps_valid_choice(self, make_timeslot):
        candidates = unique_candidates([make_timeslot("A"), make_timeslot("B")])
        pick, substituted = resolve_pick(_pick("B"), candidates)
        assert pick.movie_id == "B"
        assert substituted is False

    def test_resolve_pick_falls_back_to_first_candidate(self, make_timeslot):
        candidates = unique_candidates([make_timeslot("A", title="Arrival"), make_timeslot("B")])
        pick, substituted = resolve_pick(_pick("Z", confidence=0.6), candidates)
        assert substituted is True
        assert pick.movie_id == "A"
        assert pick.movie_title == "Arrival"
        assert pick.reason == "You enjoy slow science fiction."
        assert pick.confidence_score == 0.6


@pytest.mark.anyio
async def test_success_persists_and_marks_sent(generator, collaborators, session_factory, make_user):
    _, catalog, model, publisher = collaborators

    rec_id = await generator.generate_for_user(make_user())

    rows = await _rows(session_factory)
    assert [r.id for r in rows] == [rec_id]
    rec = rows[0]
    assert rec.movie_id == "m-b"
    assert rec.status == RecommendationStatus.SENT.value
    assert rec.sent_at is not None
    assert rec.email_to == "user-1@example.com"
    assert rec.email_subject == "Perfect Movie for You: Movie m-b"

    history, candidates = model.recommend.call_args.args
    assert history == []
    assert [c.movie_id for c in candidates] == ["m-a", "m-b", "m-c"]

    start, end = catalog.get_upcoming_timeslots.call_args.args
    assert start == NOW
    assert end - start == timedelta(days=7)

    message = publisher.publish.call_args.args[0]
    assert message.to == "user-1@example.com"
    assert message.template == "recommendation"
    assert message.data["UserName"] == "Ana"
    assert message.data["MovieRating"] == "8.1/10"
    assert message.data["ReservationURL"] == "https://cinema.example.com/reserve?movie=m-b"
    assert message.data["RecommendationReason"] == "You enjoy slow science fiction."


@pytest.mark.anyio
async def test_history_dedups_and_skips_unavailable_timeslots(
    generator, collaborators, make_user, make_timeslot
):
    purchases, catalog, model, _ = collaborators
    purchases.get_user_reservations.return_value = [
        _reservation("r-1", "ts-alien"),
        _reservation("r-2", "ts-alien"),
        _reservation("r-3", "ts-gone"),
        _reservation("r-4", "ts-heat"),
        _reservation("r-5", "ts-alien-2"),
    ]
    slots = {
        "ts-alien": make_timeslot("h-1", title="Alien"),
        "ts-heat": make_timeslot("h-2", title="Heat"),
        "ts-alien-2": make_timeslot("h-1", title="Alien"),
    }

    async def get_timeslot(timeslot_id):
        if timeslot_id not in slots:
            raise UpstreamError("spored", "not found", status_code=404)
        return slots[timeslot_id]

    catalog.get_timeslot.side_effect = get_timeslot

    await generator.generate_for_user(make_user())

    history = model.recommend.call_args.args[0]
    assert [h.title for h in history] == ["Alien", "Heat"]
    # Repeated seats on one showing resolve the showing once.
    assert catalog.get_timeslot.await_count == 4


@pytest.mark.anyio
async def test_invented_movie_falls_back_to_first_candidate(
    generator, collaborators, session_factory, make_user, caplog
):
    _, catalog, model, _ = collaborators
    model.recommend.return_value = _pick("not-showing")

    with caplog.at_level(logging.WARNING, logger="cinerec.core.generator"):
        await generator.generate_for_user(make_user())

    rec = (await _rows(session_factory))[0]
    assert rec.movie_id == "m-a"
    catalog.get_movie.assert_awaited_once_with("m-a")
    assert "falling back to first candidate m-a" in caplog.text

    context = safe_json_loads(rec.generation_context)
    assert context["fallback_applied"] is True
    assert context["ai_response"]["movie_id"] == "not-showing"


@pytest.mark.anyio
async def test_no_candidates_writes_nothing(generator, collaborators, session_factory, make_user):
    _, catalog, model, publisher = collaborators
    catalog.get_upcoming_timeslots.return_value = []

    with pytest.raises(NoCandidatesError) as exc_info:
        await generator.generate_for_user(make_user())

    assert exc_info.value.stage is Stage.CANDIDATES
    model.recommend.assert_not_called()
    publisher.publish.assert_not_called()
    assert await _rows(session_factory) == []


@pytest.mark.anyio
async def test_model_failure_aborts_before_persisting(
    generator, collaborators, session_factory, make_user
):
    _, _, model, publisher = collaborators
    model.recommend.side_effect = ModelResponseError("not JSON", raw_reply="Heat!")

    with pytest.raises(StageError) as exc_info:
        await generator.generate_for_user(make_user())

    assert exc_info.value.stage is Stage.MODEL
    assert isinstance(exc_info.value.__cause__, ModelResponseError)
    publisher.publish.assert_not_called()
    assert await _rows(session_factory) == []


@pytest.mark.anyio
async def test_reservations_failure_is_attributed(generator, collaborators, make_user):
    purchases, _, _, _ = collaborators
    purchases.get_user_reservations.side_effect = UpstreamError("nakup", "boom", status_code=500)

    with pytest.raises(StageError) as exc_info:
        await generator.generate_for_user(make_user())

    assert exc_info.value.stage is Stage.RESERVATIONS


@pytest.mark.anyio
async def test_publish_failure_marks_row_failed(
    generator, collaborators, session_factory, make_user
):
    _, _, _, publisher = collaborators
    publisher.publish.side_effect = PublishError("broker unreachable")

    with pytest.raises(StageError) as exc_info:
        await generator.generate_for_user(make_user())

    assert exc_info.value.stage is Stage.PUBLISH
    rows = await _rows(session_factory)
    assert len(rows) == 1
    rec = rows[0]
    assert rec.status == RecommendationStatus.FAILED.value
    assert rec.sent_at is None
    assert rec.reason == "You enjoy slow science fiction."

    context = safe_json_loads(rec.generation_context)
    assert [m["movie_id"] for m in context["upcoming_movies"]] == ["m-a", "m-b", "m-c"]
    assert context["raw_reply"] == '{"item_id": "m-b"}'


def _db_error() -> OperationalError:
    return OperationalError("UPDATE recommendations", {}, Exception("database is locked"))


@pytest.mark.anyio
async def test_persist_failure_writes_nothing_and_skips_publish(
    generator, collaborators, session_factory, make_user
):
    _, _, _, publisher = collaborators

    with patch.object(RecsRepo, "create_rec", AsyncMock(side_effect=_db_error())):
        with pytest.raises(StageError) as exc_info:
            await generator.generate_for_user(make_user())

    assert exc_info.value.stage is Stage.PERSIST
    assert isinstance(exc_info.value.__cause__, OperationalError)
    publisher.publish.assert_not_called()
    assert await _rows(session_factory) == []


@pytest.mark.anyio
@pytest.mark.parametrize("error", [_db_error(), OSError("disk full")])
async def test_mark_sent_failure_is_logged_and_user_succeeds(
    generator, collaborators, session_factory, make_user, caplog, error
):
    _, _, _, publisher = collaborators

    with patch.object(RecsRepo, "mark_sent", AsyncMock(side_effect=error)):
        with caplog.at_level(logging.WARNING, logger="cinerec.core.generator"):
            rec_id = await generator.generate_for_user(make_user())

    publisher.publish.assert_awaited_once()
    rec = (await _rows(session_factory))[0]
    assert rec.id == rec_id
    assert rec.status == RecommendationStatus.PENDING.value
    assert "Failed to mark recommendation as sent" in caplog.text


@pytest.mark.anyio
async def test_mark_failed_failure_still_reports_publish_stage(
    generator, collaborators, session_factory, make_user, caplog
):
    _, _, _, publisher = collaborators
    publisher.publish.side_effect = PublishError("broker unreachable")

    with patch.object(RecsRepo, "mark_failed", AsyncMock(side_effect=_db_error())):
        with caplog.at_level(logging.WARNING, logger="cinerec.core.generator"):
            with pytest.raises(StageError) as exc_info:
                await generator.generate_for_user(make_user())

    assert exc_info.value.stage is Stage.PUBLISH
    assert isinstance(exc_info.value.__cause__, PublishError)
    rows = await _rows(session_factory)
    assert len(rows) == 1
    assert rows[0].status == RecommendationStatus.PENDING.value
    assert "Failed to mark recommendation as failed" in caplog.text


@pytest.mark.anyio
async def test_cancelled_publish_marks_row_failed(
    generator, collaborators, session_factory, make_user
):
    _, _, _, publisher = collaborators
    publishing = asyncio.Event()

    async def hang(message):
        publishing.set()
        await asyncio.sleep(60)

    publisher.publish.side_effect = hang

    task = asyncio.create_task(generator.generate_for_user(make_user()))
    await publishing.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    rows = await _rows(session_factory)
    assert [r.status for r in rows] == [RecommendationStatus.FAILED.value]
