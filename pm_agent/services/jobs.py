"""Fire-and-forget background jobs with status polling.

`JobRunner.submit` records a pending job, spawns its processor as an
asyncio task and returns the id without awaiting it. The runner keeps a
reference to every in-flight task so it is neither garbage collected nor
lost on shutdown, and a processor failure is recorded on the job instead of
propagating.

Retention is by age only: the sweep removes any job older than the retention
window, including one that is still pending or processing. A client polling
a job that outlives the window will see "not found".
"""

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable
from uuid import uuid4


logger = logging.getLogger(__name__)

JobProcessor = Callable[[Any], Awaitable[Any]]


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Job:
    id: str
    type: str
    payload: Any
    status: JobStatus
    created_at: float
    result: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "status": self.status.value,
            "createdAt": datetime.fromtimestamp(self.created_at, tz=timezone.utc).isoformat(),
        }
        if self.status is JobStatus.COMPLETED:
            data["result"] = self.result
        if self.status is JobStatus.FAILED:
            data["error"] = self.error
        return data


class JobRunner:
    def __init__(
        self,
        *,
        retention_sec: float = 1800,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.retention_sec = retention_sec
        self._clock = clock
        self._jobs: dict[str, Job] = {}
        self._tasks: set[asyncio.Task] = set()
        self._sweeper: asyncio.Task | None = None

    def submit(self, job_type: str, payload: Any, processor: JobProcessor) -> str:
        """Register a job and start it in the background. Must run inside the event loop."""
        job_id = str(uuid4())
        self._jobs[job_id] = Job(
            id=job_id,
            type=job_type,
            payload=payload,
            status=JobStatus.PENDING,
            created_at=self._clock(),
        )
        task = asyncio.get_running_loop().create_task(
            self._run(job_id, processor), name=f"job:{job_type}:{job_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job_id

    def get_status(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        return replace(job) if job is not None else None

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every job submitted so far has reached a terminal state."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def sweep(self, now: float | None = None) -> int:
        now = self._clock() if now is None else now
        stale = [job_id for job_id, job in self._jobs.items() if now - job.created_at > self.retention_sec]
        for job_id in stale:
            del self._jobs[job_id]
        if stale:
            logger.info("Removed %d jobs older than %.0fs", len(stale), self.retention_sec)
        return len(stale)

    def start_sweeper(self, interval_sec: float, *, also: Iterable[Callable[[], Any]] = ()) -> None:
        """Sweep on a timer; `also` callables run after each job sweep."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(
                self._sweep_forever(interval_sec, tuple(also)), name="job-retention-sweeper"
            )

    async def aclose(self, grace_sec: float | None = None) -> None:
        """Stop the sweeper and wait for in-flight jobs.

        With `grace_sec` set, jobs still running after that long are cancelled
        and recorded as failed.
        """
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

        if not self._tasks:
            return
        _done, pending = await asyncio.wait(list(self._tasks), timeout=grace_sec)
        if pending:
            logger.warning("Cancelling %d unfinished jobs on shutdown", len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    async def _sweep_forever(self, interval_sec: float, also: tuple[Callable[[], Any], ...]) -> None:
        while True:
            await asyncio.sleep(interval_sec)
            self.sweep()
            for extra in also:
                extra()

    async def _run(self, job_id: str, processor: JobProcessor) -> None:
        job = self._jobs.get(job_id)
        if job is None:
            return

        job.status = JobStatus.PROCESSING
        try:
            result = await processor(job.payload)
        except asyncio.CancelledError:
            job.error = "cancelled"
            job.status = JobStatus.FAILED
            raise
        except Exception as exc:
            logger.error("Job %s (%s) failed", job_id, job.type, exc_info=True)
            job.error = str(exc) or type(exc).__name__
            job.status = JobStatus.FAILED
        else:
            job.result = result
            job.status = JobStatus.COMPLETED
