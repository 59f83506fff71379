"""Run the scheduler as a standalone process.

Usage::

    python -m cinerec.jobs

Useful when the HTTP server runs separately and only the periodic batch is
needed in this process.
"""

import asyncio
import signal

from cinerec.config import Config
from cinerec.logging import get_logger, setup_logging
from cinerec.jobs.scheduler import (
    get_scheduler,
    setup_recommendation_jobs,
    shutdown_scheduler,
    start_scheduler,
)
from cinerec.storage import close_engine, create_engine, create_session_factory, create_tables

logger = get_logger(__name__)


async def _run(config: Config) -> None:
    engine = create_engine(config.database_url, echo=config.log_level == "DEBUG")
    await create_tables(engine)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    start_scheduler()
    setup_recommendation_jobs(config, create_session_factory(engine))
    logger.info("Scheduler running standalone - press Ctrl+C to stop")

    try:
        while get_scheduler().running and not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=1)
            except asyncio.TimeoutError:
                pass
    finally:
        shutdown_scheduler()
        await close_engine(engine)


def main() -> None:
    config = Config.from_env()
    setup_logging(config.log_level)
    asyncio.run(_run(config))


if __name__ == "__main__":
    main()
