"""ORM model for asynchronous scan jobs."""

from sqlalchemy import JSON, Column, DateTime, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB

from app.models.base import Base

# Status values; completed and failed are terminal.
JOB_PENDING = "pending"
JOB_RUNNING = "running"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"
TERMINAL_STATUSES = frozenset({JOB_COMPLETED, JOB_FAILED})


class ScanJob(Base):
    """
    One submitted repository scan and its lifecycle.

    Rows are only mutated through JobStore.transition; result is written once,
    together with the transition to completed.
    """

    __tablename__ = "scan_jobs"

    job_id = Column(String(64), primary_key=True)
    status = Column(String(16), nullable=False, default=JOB_PENDING, index=True)
    repo_owner = Column(String(255), nullable=False)
    repo_name = Column(String(255), nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    completed_at = Column(DateTime(timezone=True), nullable=True)
    error_code = Column(String(64), nullable=True)
    error_message = Column(Text, nullable=True)
    result = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=True)
