"""Batch driver: one recommendation attempt per active user."""

import asyncio
from datetime import datetime, timezone

from cinerec.clients import IdentityClient
from cinerec.core.contracts import BatchSummary
from cinerec.core.generator import RecommendationGenerator
from cinerec.logging import get_logger

logger = get_logger(__name__)


async def generate_for_all_users(
    identity: IdentityClient,
    generator: RecommendationGenerator,
    deadline: float | None = None,
) -> BatchSummary:
    """Generate recommendations for every active user, one user at a time.

    Users are processed strictly sequentially so at most one request is in flight
    against the upstream services and the model. A failing user is logged and
    counted; the loop always moves on to the next one.

    Args:
        identity: Identity service client
        generator: Per-user pipeline
        deadline: Event-loop time (``loop.time()``) after which no user is started
            and the running pipeline is cancelled

    Returns:
        BatchSummary with total/succeeded/failed counts

    Raises:
        UpstreamError: If the active-user list cannot be fetched
    """
    summary = BatchSummary(started_at=datetime.now(timezone.utc))
    logger.info("Starting recommendation generation for all users")

    users = await identity.get_active_users()
    summary.total = len(users)
    logger.info(f"Fetched {len(users)} active users")

    loop = asyncio.get_running_loop()

    for index, user in enumerate(users, start=1):
        if deadline is not None and loop.time() >= deadline:
            remaining = users[index - 1:]
            logger.error(f"Batch deadline reached, {len(remaining)} users not processed")
            summary.failed += len(remaining)
            summary.failed_user_ids.extend(u.id for u in remaining)
            break

        logger.info(f"Processing user {index}/{len(users)}", extra={"user_id": user.id})

        try:
            async with asyncio.timeout_at(deadline):
                await generator.generate_for_user(user)
        except Exception as e:
            logger.error(
                f"Failed to generate recommendation for user: {e!r}",
                extra={"user_id": user.id},
            )
            summary.failed += 1
            summary.failed_user_ids.append(user.id)
            continue

        summary.succeeded += 1

    summary.finished_at = datetime.now(timezone.utc)
    logger.info(
        f"Recommendation generation completed: total={summary.total} "
        f"succeeded={summary.succeeded} failed={summary.failed} "
        f"duration={summary.duration_seconds:.1f}s"
    )
    return summary
