"""Application entrypoint: FastAPI app, scheduler startup and admin trigger."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException

from cinerec.config import Config
from cinerec.jobs import (
    JobRunner,
    run_recommendation_job,
    setup_recommendation_jobs,
    shutdown_scheduler,
    start_scheduler,
)
from cinerec.logging import get_logger, setup_logging
from cinerec.storage import close_engine, create_engine, create_session_factory, create_tables

config = Config.from_env()

setup_logging(config.log_level)
logger = get_logger(__name__)

engine = create_engine(config.database_url, echo=config.log_level == "DEBUG")
session_factory = create_session_factory(engine)
job_runner = JobRunner()


async def verify_admin_token(
    authorization: str | None = Header(None, alias="Authorization"),
) -> None:
    """Verify admin token for protected endpoints.

    Args:
        authorization: Authorization header value

    Raises:
        HTTPException: If token is invalid or missing
    """
    if not config.admin_token:
        raise HTTPException(
            status_code=503,
            detail="Admin endpoints not configured (ADMIN_TOKEN not set)",
        )

    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header required")

    # Support "Bearer <token>" or just "<token>"
    token = authorization
    if authorization.startswith("Bearer "):
        token = authorization[7:]

    if token != config.admin_token:
        raise HTTPException(status_code=403, detail="Invalid admin token")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting recommendation service")

    await create_tables(engine)

    start_scheduler()
    setup_recommendation_jobs(config, session_factory)

    logger.info("Server startup complete")
    yield

    logger.info("Shutting down recommendation service")
    await job_runner.shutdown()
    shutdown_scheduler()
    await close_engine(engine)


app = FastAPI(
    title="Cinema Recommendations",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/healthcheck")
@app.get("/health", include_in_schema=False)
async def health_check() -> dict:
    """Health check endpoint."""
    return {"ok": True}


@app.post("/api/v1/predlogi/admin/trigger-job", status_code=202)
async def trigger_recommendation_job(
    _: None = Depends(verify_admin_token),
) -> dict:
    """Start a recommendation run for all active users in the background.

    Requires admin token in Authorization header. Always answers 202; the outcome
    shows up in the logs and in the stored recommendations' statuses.
    """
    logger.info("Admin triggered recommendation job")

    handle = job_runner.submit(
        "recommendation_job",
        lambda: run_recommendation_job(config, session_factory),
    )
    return {
        "message": "Recommendation job triggered successfully",
        "status": "processing",
        "job_id": handle.job_id,
    }


def main() -> None:
    """Run the API server."""
    logger.info(f"Starting FastAPI server on {config.host}:{config.port}")
    uvicorn.run(
        "cinerec.main:app",
        host=config.host,
        port=config.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
