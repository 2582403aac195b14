"""Data retention: fail stale unfinished scan jobs and delete finished jobs older than RETENTION_HOURS."""

import logging
from datetime import datetime, timezone, timedelta
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from app.models import ScanJob
from app.models.scan_job import JOB_FAILED, JOB_PENDING, JOB_RUNNING, TERMINAL_STATUSES

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

STALE_JOB_MESSAGE = "Scan was abandoned before finishing (worker restarted or timed out)."


def run_retention(session: Session, settings: "Settings") -> tuple[int, int]:
    """
    Mark jobs stuck in pending/running beyond SCAN_JOB_TIMEOUT_SEC as failed, then
    delete terminal jobs older than RETENTION_HOURS.

    Returns (stale_failed, jobs_deleted). Idempotent: safe to run repeatedly.
    """
    if not settings.RETENTION_ENABLED:
        logger.info("Retention is disabled (RETENTION_ENABLED=false); skipping.")
        return (0, 0)

    now = datetime.now(timezone.utc)
    stale_cutoff = now - timedelta(seconds=settings.SCAN_JOB_TIMEOUT_SEC)
    stale_failed = (
        session.query(ScanJob)
        .filter(
            ScanJob.status.in_([JOB_PENDING, JOB_RUNNING]),
            ScanJob.created_at < stale_cutoff,
        )
        .update(
            {
                ScanJob.status: JOB_FAILED,
                ScanJob.error_code: "timeout",
                ScanJob.error_message: STALE_JOB_MESSAGE,
                ScanJob.updated_at: now,
                ScanJob.completed_at: now,
            },
            synchronize_session=False,
        )
    )

    cutoff = now - timedelta(hours=settings.RETENTION_HOURS)
    deleted_count = (
        session.query(ScanJob)
        .filter(
            ScanJob.status.in_(sorted(TERMINAL_STATUSES)),
            ScanJob.created_at < cutoff,
        )
        .delete(synchronize_session=False)
    )
    session.commit()

    if stale_failed > 0 or deleted_count > 0:
        logger.info(
            "Retention run: cutoff=%s, stale_failed=%s, jobs_deleted=%s",
            cutoff.isoformat(),
            stale_failed,
            deleted_count,
        )
    return (stale_failed, deleted_count)
