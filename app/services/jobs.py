"""Scan job orchestration: durable job rows, atomic status transitions, background execution."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import update
from sqlalchemy.orm import Session, sessionmaker

from app.models.scan_job import (
    JOB_COMPLETED,
    JOB_FAILED,
    JOB_PENDING,
    JOB_RUNNING,
    TERMINAL_STATUSES,
    ScanJob,
)
from app.schemas.scan import JobRecord, RepositoryReference
from app.services.scanner import CorpusScanner, ScanError

logger = logging.getLogger(__name__)

# (from, to) pairs; nothing leaves a terminal status.
ALLOWED_TRANSITIONS = frozenset(
    {
        (JOB_PENDING, JOB_RUNNING),
        (JOB_RUNNING, JOB_COMPLETED),
        (JOB_RUNNING, JOB_FAILED),
        (JOB_PENDING, JOB_FAILED),
    }
)


class JobNotFoundError(Exception):
    """Raised when polling an unknown job id."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self.message = f"Scan job {job_id!r} not found."
        super().__init__(self.message)


class InvalidTransitionError(ValueError):
    """Raised when a transition is not part of the job state machine."""


class JobStore:
    """
    Persists ScanJob rows keyed by job id.

    Every mutation is a single conditional UPDATE on one job id, so two writers can
    never both apply a transition from the same state.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def create(self, ref: RepositoryReference) -> JobRecord:
        now = datetime.now(timezone.utc)
        job = ScanJob(
            job_id=str(uuid4()),
            status=JOB_PENDING,
            repo_owner=ref.owner,
            repo_name=ref.name,
            created_at=now,
            updated_at=now,
        )
        with self._session_factory() as db:
            db.add(job)
            db.commit()
            db.refresh(job)
            return JobRecord.model_validate(job)

    def get(self, job_id: str) -> JobRecord | None:
        with self._session_factory() as db:
            job = db.get(ScanJob, job_id)
            if job is None:
                return None
            return JobRecord.model_validate(job)

    def transition(
        self,
        job_id: str,
        expected: str,
        new: str,
        *,
        result: dict | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> bool:
        """
        Move a job from expected to new status. Returns False when the job is not in
        the expected status (already moved by another writer, or unknown).
        """
        if (expected, new) not in ALLOWED_TRANSITIONS:
            raise InvalidTransitionError(f"Transition {expected} -> {new} is not allowed.")
        now = datetime.now(timezone.utc)
        values: dict = {"status": new, "updated_at": now}
        if new in TERMINAL_STATUSES:
            values["completed_at"] = now
        if new == JOB_COMPLETED:
            values["result"] = result
        if new == JOB_FAILED:
            values["error_code"] = error_code
            values["error_message"] = error_message
        with self._session_factory() as db:
            outcome = db.execute(
                update(ScanJob)
                .where(ScanJob.job_id == job_id, ScanJob.status == expected)
                .values(**values)
            )
            db.commit()
            return outcome.rowcount == 1


class JobOrchestrator:
    """
    Runs scans as background asyncio tasks and answers status polls from the store.

    Store calls run in worker threads, off the event loop. The caller credential lives
    only in the task; it is never persisted.
    """

    def __init__(self, store: JobStore, scanner: CorpusScanner, job_timeout: float) -> None:
        self._store = store
        self._scanner = scanner
        self._job_timeout = job_timeout
        self._tasks: set[asyncio.Task] = set()

    @property
    def active_scans(self) -> int:
        return len(self._tasks)

    async def submit(self, ref: RepositoryReference, credential: str | None = None) -> JobRecord:
        """Create a pending job and start the scan without waiting for it."""
        job = await asyncio.to_thread(self._store.create, ref)
        task = asyncio.create_task(self._run(job.job_id, ref, credential))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info("Scan job submitted", extra={"job_id": job.job_id, "repo": ref.full_name})
        return job

    async def _transition(self, job_id: str, expected: str, new: str, **values) -> bool:
        """Apply a transition in a worker thread. Store failures are logged and count as not applied."""
        try:
            return await asyncio.to_thread(self._store.transition, job_id, expected, new, **values)
        except Exception:
            logger.exception(
                "Could not record job transition",
                extra={"job_id": job_id, "from_status": expected, "to_status": new},
            )
            return False

    async def _fail(self, job_id: str, code: str, message: str) -> None:
        if not await self._transition(
            job_id, JOB_RUNNING, JOB_FAILED, error_code=code, error_message=message
        ):
            logger.warning("Job was no longer running; failure not recorded", extra={"job_id": job_id})

    async def _run(self, job_id: str, ref: RepositoryReference, credential: str | None) -> None:
        if not await self._transition(job_id, JOB_PENDING, JOB_RUNNING):
            logger.warning("Job was not started; skipping run", extra={"job_id": job_id})
            return
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                self._scanner.scan(ref, credential), timeout=self._job_timeout
            )
        except ScanError as e:
            logger.info(
                "Scan job failed",
                extra={"job_id": job_id, "error_code": e.code, "reason": e.message[:200]},
            )
            await self._fail(job_id, e.code, e.message)
            return
        except asyncio.TimeoutError:
            logger.error(
                "Scan job timed out",
                extra={"job_id": job_id, "timeout_seconds": self._job_timeout},
            )
            await self._fail(job_id, "timeout", f"Scan did not finish within {self._job_timeout:.0f} seconds.")
            return
        except Exception:
            logger.exception("Scan job crashed", extra={"job_id": job_id})
            await self._fail(job_id, "internal_error", "Scan failed unexpectedly.")
            return

        if await self._transition(
            job_id, JOB_RUNNING, JOB_COMPLETED, result=result.model_dump(mode="json")
        ):
            logger.info(
                "Scan job completed",
                extra={
                    "job_id": job_id,
                    "job_seconds": round(time.perf_counter() - start, 3),
                },
            )
        else:
            logger.warning("Job was no longer running; result discarded", extra={"job_id": job_id})

    def poll_status(self, job_id: str) -> JobRecord:
        """Current state of a job. Raises JobNotFoundError for unknown ids."""
        job = self._store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def drain(self) -> None:
        """Wait for in-flight scans (used on shutdown)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        await self._scanner.aclose()
