"""Health check: database connectivity, scanner backend, and in-flight scan count."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import check_db_connected, get_db
from app.schemas.health import HealthResponse

router = APIRouter()


@router.get("/", response_model=HealthResponse)
def get_health(
    request: Request,
    db: Annotated[Session, Depends(get_db)],
) -> HealthResponse:
    """
    Return service health, database connectivity and scanner configuration.
    Used by load balancers and monitoring.
    """
    orchestrator = getattr(request.app.state, "orchestrator", None)
    return HealthResponse(
        status="ok",
        environment=settings.APP_ENV,
        database="connected" if check_db_connected(db) else "disconnected",
        scanner_backend=settings.SCANNER_BACKEND,
        service_credential_configured=settings.GITHUB_SERVICE_TOKEN is not None,
        active_scans=orchestrator.active_scans if orchestrator is not None else 0,
    )
