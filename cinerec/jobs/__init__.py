"""Jobs module for scheduled tasks and background processing."""

from cinerec.jobs.recommendation_job import build_generator, run_recommendation_job
from cinerec.jobs.runner import JobHandle, JobRunner, JobStatus
from cinerec.jobs.scheduler import (
    get_scheduler,
    setup_recommendation_jobs,
    shutdown_scheduler,
    start_scheduler,
)

__all__ = [
    "JobHandle",
    "JobRunner",
    "JobStatus",
    "build_generator",
    "get_scheduler",
    "run_recommendation_job",
    "setup_recommendation_jobs",
    "shutdown_scheduler",
    "start_scheduler",
]
