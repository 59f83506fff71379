"""Recommendation generation job: wires collaborators and runs one batch."""

import asyncio
import time

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cinerec.clients import CatalogClient, IdentityClient, PurchaseClient
from cinerec.config import Config
from cinerec.core.batch import generate_for_all_users
from cinerec.core.contracts import BatchSummary
from cinerec.core.generator import RecommendationGenerator
from cinerec.core.model_gateway import RecommendationModel
from cinerec.llm import LLMAdapter
from cinerec.logging import get_logger
from cinerec.messaging import NotificationPublisher

logger = get_logger(__name__)


def build_generator(
    config: Config,
    session_factory: async_sessionmaker[AsyncSession],
) -> RecommendationGenerator:
    """Assemble the per-user pipeline from configuration."""
    adapter = LLMAdapter(
        base_url=config.openrouter_base_url,
        api_key=config.openrouter_api_key,
        model=config.openrouter_model,
        max_tokens=config.openrouter_max_tokens,
    )
    return RecommendationGenerator(
        purchases=PurchaseClient(config.nakup_host),
        catalog=CatalogClient(config.spored_host),
        model=RecommendationModel(adapter),
        publisher=NotificationPublisher(config.rabbitmq_url, config.email_queue),
        session_factory=session_factory,
        lookahead_days=config.lookahead_days,
        reservation_url=config.reservation_url,
    )


async def run_recommendation_job(
    config: Config,
    session_factory: async_sessionmaker[AsyncSession],
) -> BatchSummary:
    """Generate and send recommendations for all active users.

    The whole run is bounded by ``config.job_timeout_minutes``.

    Returns:
        BatchSummary of the run

    Raises:
        UpstreamError: If the active-user list cannot be fetched
    """
    logger.info("Starting recommendation generation job")
    start = time.monotonic()
    deadline = asyncio.get_running_loop().time() + config.job_timeout_seconds

    identity = IdentityClient(config.auth_host)
    generator = build_generator(config, session_factory)

    try:
        summary = await generate_for_all_users(identity, generator, deadline=deadline)
    except Exception as e:
        logger.error(
            f"Recommendation job failed after {time.monotonic() - start:.1f}s: {e}"
        )
        raise
    finally:
        await identity.close()
        await generator.close()

    logger.info(
        f"Recommendation job completed in {time.monotonic() - start:.1f}s: "
        f"{summary.succeeded}/{summary.total} succeeded"
    )
    return summary
