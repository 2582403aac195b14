"""FastAPI application entrypoint. No business logic; only wiring and middleware."""

from dotenv import load_dotenv

load_dotenv()

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.errors import http_exception_handler, validation_exception_handler
from app.api.v1 import router as v1_router
from app.core.config import settings
from app.core.database import SessionLocal
from app.services.jobs import JobOrchestrator, JobStore
from app.services.scanner import build_corpus_scanner


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the scanner and orchestrator once per process; drain scans on shutdown."""
    orchestrator = JobOrchestrator(
        store=JobStore(SessionLocal),
        scanner=build_corpus_scanner(settings),
        job_timeout=settings.SCAN_JOB_TIMEOUT_SEC,
    )
    app.state.orchestrator = orchestrator
    try:
        yield
    finally:
        await orchestrator.aclose()


app = FastAPI(
    title="Repolens API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

app.include_router(v1_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
def root() -> dict[str, str]:
    """Root route; minimal payload for discovery."""
    return {"message": "Repolens API"}
