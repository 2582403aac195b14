"""Scan endpoints: submit a repository scan, poll its status, and CORS preflight no-ops."""

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.api.errors import api_error
from app.api.v1.auth import get_current_viewer
from app.core.database import get_db
from app.schemas.entitlement import CurrentViewer
from app.schemas.scan import (
    InvalidRepositoryURLError,
    JobError,
    RepositoryInfo,
    RepositoryReference,
    ScanRequest,
    ScanStatusResponse,
    ScanSubmitResponse,
)
from app.services.entitlement import filter_result, get_entitlement, is_entitled
from app.services.jobs import JobNotFoundError, JobOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter()


def get_orchestrator(request: Request) -> JobOrchestrator:
    """Dependency: the orchestrator built at startup (see app.main lifespan)."""
    return request.app.state.orchestrator


async def _read_scan_request(request: Request) -> ScanRequest:
    """Read and validate the JSON body of a scan submission."""
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type != "application/json":
        raise api_error(
            status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            "Invalid request body",
            "Content-Type must be application/json",
        )
    raw = await request.body()
    if not raw:
        raise api_error(status.HTTP_400_BAD_REQUEST, "Invalid request body", "Empty request body")
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise api_error(
            status.HTTP_400_BAD_REQUEST, "Invalid request body", f"Invalid JSON: {e!s}"
        ) from e
    if not isinstance(data, dict):
        raise api_error(
            status.HTTP_400_BAD_REQUEST, "Invalid request body", "JSON body must be an object."
        )
    try:
        return ScanRequest.model_validate(data)
    except ValidationError as e:
        raise api_error(
            status.HTTP_400_BAD_REQUEST,
            "Invalid request body",
            e.errors(include_url=False, include_context=False),
        ) from e


@router.options("", status_code=status.HTTP_204_NO_CONTENT)
@router.options("/status", status_code=status.HTTP_204_NO_CONTENT)
def preflight() -> Response:
    """CORS preflight no-op; CORSMiddleware adds the headers."""
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("", response_model=ScanSubmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_scan(
    request: Request,
    orchestrator: Annotated[JobOrchestrator, Depends(get_orchestrator)],
) -> ScanSubmitResponse:
    """
    Start a scan of a GitHub repository and return its job id immediately.

    Body: `{"repo_url": "https://github.com/<owner>/<name>", "github_token": "<optional>"}`.
    Poll `GET /scans/status?job_id=...` until status is `completed` or `failed`.
    """
    body = await _read_scan_request(request)
    try:
        ref = RepositoryReference.from_url(body.repo_url)
    except InvalidRepositoryURLError as e:
        raise api_error(
            status.HTTP_400_BAD_REQUEST, e.message, {"repo_url": body.repo_url[:200]}
        ) from e
    job = await orchestrator.submit(ref, body.github_token)
    return ScanSubmitResponse(job_id=job.job_id, status=job.status)


@router.get("/status", response_model=ScanStatusResponse)
def get_scan_status(
    job_id: Annotated[str, Query(min_length=1, max_length=64)],
    orchestrator: Annotated[JobOrchestrator, Depends(get_orchestrator)],
    db: Annotated[Session, Depends(get_db)],
    viewer: Annotated[CurrentViewer | None, Depends(get_current_viewer)],
) -> ScanStatusResponse:
    """
    Current status of a scan job. The result is present only once completed and is
    truncated per render unless the viewer has credits or the unlimited tier.
    """
    try:
        job = orchestrator.poll_status(job_id)
    except JobNotFoundError as e:
        raise api_error(
            status.HTTP_404_NOT_FOUND, "Scan job not found", {"job_id": e.job_id}
        ) from e

    response = ScanStatusResponse(
        job_id=job.job_id,
        status=job.status,
        repository=RepositoryInfo(owner=job.repo_owner, name=job.repo_name),
        created_at=job.created_at,
    )
    result = job.scan_result()
    if result is not None:
        entitlement = get_entitlement(db, viewer.id) if viewer is not None else None
        response.result = filter_result(result, is_entitled(entitlement))
    elif job.status == "failed":
        response.error = JobError(
            code=job.error_code or "internal_error",
            message=job.error_message or "Scan failed.",
        )
    return response
