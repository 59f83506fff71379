"""In-process worker for jobs submitted on demand (e.g. the admin trigger).

``submit`` returns immediately with a ``JobHandle``; the runner owns the task,
records its outcome on the handle and logs failures, so nothing started here is
silently dropped.
"""

import asyncio
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

from cinerec.logging import get_logger

logger = get_logger(__name__)

MAX_FINISHED_HANDLES = 50


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class JobHandle:
    """Observable state of one submitted job."""

    job_id: str
    name: str
    submitted_at: datetime
    status: JobStatus = JobStatus.PENDING
    started_at: datetime | None = None
    finished_at: datetime | None = None
    result: Any = None
    error: str | None = None
    task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED)

    async def wait(self) -> None:
        """Wait for the job to finish without raising its error."""
        if self.task is not None:
            await asyncio.gather(self.task, return_exceptions=True)


class JobRunner:
    """Runs submitted coroutines as tracked asyncio tasks."""

    def __init__(self, max_finished: int = MAX_FINISHED_HANDLES) -> None:
        self.max_finished = max_finished
        self._handles: OrderedDict[str, JobHandle] = OrderedDict()

    def submit(self, name: str, job: Callable[[], Awaitable[Any]]) -> JobHandle:
        """Start ``job`` in the background.

        Must be called from a running event loop.

        Args:
            name: Human-readable job name for logs
            job: Zero-argument coroutine factory

        Returns:
            Handle tracking the job's status and outcome
        """
        handle = JobHandle(
            job_id=str(uuid.uuid4()),
            name=name,
            submitted_at=datetime.now(timezone.utc),
        )
        handle.task = asyncio.get_running_loop().create_task(
            self._run(handle, job), name=f"{name}:{handle.job_id}"
        )
        handle.task.add_done_callback(lambda task: self._on_done(handle, task))
        self._handles[handle.job_id] = handle
        self._prune()
        logger.info(f"Submitted job {name}", extra={"job_id": handle.job_id})
        return handle

    def get(self, job_id: str) -> JobHandle | None:
        return self._handles.get(job_id)

    def active(self) -> list[JobHandle]:
        return [h for h in self._handles.values() if not h.done]

    async def _run(self, handle: JobHandle, job: Callable[[], Awaitable[Any]]) -> None:
        handle.status = JobStatus.RUNNING
        handle.started_at = datetime.now(timezone.utc)
        try:
            handle.result = await job()
        except asyncio.CancelledError:
            handle.status = JobStatus.CANCELLED
            logger.warning(f"Job {handle.name} cancelled", extra={"job_id": handle.job_id})
            raise
        except Exception as e:
            handle.status = JobStatus.FAILED
            handle.error = repr(e)
            logger.exception(f"Job {handle.name} failed: {e}", extra={"job_id": handle.job_id})
        else:
            handle.status = JobStatus.SUCCEEDED
            logger.info(f"Job {handle.name} succeeded", extra={"job_id": handle.job_id})
        finally:
            handle.finished_at = datetime.now(timezone.utc)

    @staticmethod
    def _on_done(handle: JobHandle, task: asyncio.Task) -> None:
        # A task cancelled before it started never reaches _run's handlers.
        if task.cancelled() and not handle.done:
            handle.status = JobStatus.CANCELLED
            handle.finished_at = datetime.now(timezone.utc)

    def _prune(self) -> None:
        finished = [job_id for job_id, h in self._handles.items() if h.done]
        for job_id in finished[: max(0, len(finished) - self.max_finished)]:
            del self._handles[job_id]

    async def shutdown(self) -> None:
        """Cancel in-flight jobs and wait for them to unwind."""
        active = self.active()
        if not active:
            return
        logger.info(f"Cancelling {len(active)} running jobs")
        for handle in active:
            if handle.task is not None:
                handle.task.cancel()
        await asyncio.gather(
            *(h.task for h in active if h.task is not None), return_exceptions=True
        )
