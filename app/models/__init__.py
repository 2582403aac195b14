"""SQLAlchemy ORM models."""

from app.models.base import Base
from app.models.scan_credit import ScanCredit
from app.models.scan_job import ScanJob

__all__ = ["Base", "ScanCredit", "ScanJob"]
