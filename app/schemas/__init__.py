"""Pydantic request/response schemas."""

from app.schemas.entitlement import CurrentViewer, EntitlementRecord
from app.schemas.health import HealthResponse
from app.schemas.scan import (
    DependencyAdvisory,
    FileTreeEntry,
    Finding,
    GatedScanResult,
    InvalidRepositoryURLError,
    JobRecord,
    RepositoryReference,
    RepositoryTree,
    ScanRequest,
    ScanResult,
    ScanStatusResponse,
    ScanSubmitResponse,
    SeverityLevel,
)

__all__ = [
    "CurrentViewer",
    "DependencyAdvisory",
    "EntitlementRecord",
    "FileTreeEntry",
    "Finding",
    "GatedScanResult",
    "HealthResponse",
    "InvalidRepositoryURLError",
    "JobRecord",
    "RepositoryReference",
    "RepositoryTree",
    "ScanRequest",
    "ScanResult",
    "ScanStatusResponse",
    "ScanSubmitResponse",
    "SeverityLevel",
]
