"""
FastAPI PostingGuard Ledger API Server

Provides REST API endpoints for journal posting and metadata lookups.
Journal drafts arrive with codes; the server resolves them to ids, runs
the posting guard and posts through the posting executor.

Usage:
    uvicorn api.server:app --reload --port 8000
"""

import os
import logging
from datetime import datetime, timezone
from typing import Generator, Optional
from uuid import UUID

import psutil
from fastapi import FastAPI, HTTPException, Depends, Query, Request, Security
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from sqlalchemy.orm import Session

from api.models import (
    JournalDraftRequest,
    PostingResponse,
    ValidationResponse,
    JournalListResponse,
    StandardPackListResponse,
    ConceptLookupResponse,
    HealthResponse,
    ErrorResponse,
)
from api.middleware import (
    setup_cors,
    setup_exception_handlers,
    RequestLoggingMiddleware,
)
from config_manager import get_config, configure_logging, ConfigManager, ConfigurationError
from database.connection import DatabaseSessionProvider, init_db, close_db
from database.metadata_service import MetadataService
from database.monitoring import check_health, configure_monitoring
from database.models import ActorType
from ledger.draft_resolver import JournalDraftResolver, DraftResolutionError
from ledger.posting_executor import PostingExecutor
from ledger.types import PostingStatus

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

# Environment variables with defaults
API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", "8000"))
CONFIG_PATH = os.getenv("CONFIG_PATH", "config.yaml")
API_KEY = os.getenv("API_KEY", "")  # Required for authenticated endpoints

# Global state
_config: Optional[ConfigManager] = None
_startup_time: Optional[datetime] = None

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> str:
    """Verify API key for protected endpoints.

    If API_KEY environment variable is not set, authentication is disabled.
    """
    if not API_KEY:
        # API key not configured - allow all requests (development mode)
        return "dev-mode"

    if not api_key:
        raise HTTPException(
            status_code=401, detail="Missing API key. Provide X-API-Key header."
        )

    if api_key != API_KEY:
        raise HTTPException(status_code=403, detail="Invalid API key")

    return api_key


def get_config_instance() -> ConfigManager:
    """Dependency to get the config instance."""
    global _config
    if _config is None:
        _config = get_config(CONFIG_PATH)
    return _config


def get_provider() -> DatabaseSessionProvider:
    """Dependency to get the initialized database provider."""
    return init_db()


def get_session(
    provider: DatabaseSessionProvider = Depends(get_provider),
) -> Generator[Session, None, None]:
    """Dependency for a session that commits on success and rolls back on error."""
    with provider.session_scope() as session:
        yield session


def get_executor(
    provider: DatabaseSessionProvider = Depends(get_provider),
    config: ConfigManager = Depends(get_config_instance),
) -> PostingExecutor:
    """Dependency to get a posting executor."""
    return PostingExecutor(provider, config)


# Create FastAPI application
app = FastAPI(
    title="PostingGuard Ledger API",
    description="Metadata-governed journal posting and metadata lookups",
    version=API_VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# Setup middleware
setup_cors(app)
app.add_middleware(RequestLoggingMiddleware)
setup_exception_handlers(app)


@app.on_event("startup")
async def startup():
    """Load configuration and connect to the database on startup."""
    global _config, _startup_time

    logger.info("Starting PostingGuard Ledger API...")

    try:
        _config = get_config(CONFIG_PATH)
        configure_logging(_config)
        configure_monitoring(
            slow_query_threshold_ms=_config.monitoring.slow_query_threshold_ms,
            warning_threshold_ms=_config.monitoring.warning_threshold_ms,
            enable_prometheus=_config.monitoring.enable_prometheus,
        )
        logger.info(f"Configuration loaded from {CONFIG_PATH}")

        init_db(echo=_config.database.echo)
        _startup_time = datetime.now(timezone.utc)
        logger.info("API ready")

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        raise


@app.on_event("shutdown")
async def shutdown():
    """Cleanup on shutdown."""
    logger.info("Shutting down PostingGuard Ledger API...")
    close_db()


def _rejected_draft(errors) -> JSONResponse:
    body = PostingResponse(status=PostingStatus.REJECTED.value, journal_id=None, errors=errors)
    return JSONResponse(status_code=400, content=body.model_dump(mode="json"))


@app.post(
    "/api/v1/gl/journals",
    response_model=PostingResponse,
    status_code=201,
    responses={
        201: {"model": PostingResponse, "description": "Journal posted"},
        400: {"model": PostingResponse, "description": "Journal rejected"},
        401: {"model": ErrorResponse, "description": "Missing API key"},
        403: {"model": ErrorResponse, "description": "Invalid API key"},
        500: {"model": PostingResponse, "description": "Posting failed"},
    },
    summary="Post a journal",
    description="Resolve a journal draft, validate it with the posting guard and post it",
)
def post_journal(
    request: JournalDraftRequest,
    http_request: Request,
    provider: DatabaseSessionProvider = Depends(get_provider),
    executor: PostingExecutor = Depends(get_executor),
    api_key: str = Depends(verify_api_key),
):
    """Post a journal draft.

    Returns 201 when posted, 400 when rejected (unresolvable codes or guard
    errors) and 500 when the store failed.
    """
    with provider.session_scope() as session:
        try:
            journal = JournalDraftResolver(session).resolve(request.to_draft())
        except DraftResolutionError as e:
            return _rejected_draft(e.errors)

    request_id = getattr(http_request.state, "request_id", "")
    result = executor.post_journal(journal, request_id=request_id)
    body = PostingResponse(**result.to_dict())

    if result.status == PostingStatus.POSTED:
        return body

    status_code = 400 if result.status == PostingStatus.REJECTED else 500
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.post(
    "/api/v1/gl/journals/validate",
    response_model=ValidationResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Missing API key"},
        403: {"model": ErrorResponse, "description": "Invalid API key"},
    },
    summary="Validate a journal",
    description="Dry run of the posting guard; nothing is written",
)
def validate_journal(
    request: JournalDraftRequest,
    provider: DatabaseSessionProvider = Depends(get_provider),
    executor: PostingExecutor = Depends(get_executor),
    api_key: str = Depends(verify_api_key),
):
    """Validate a journal draft without posting it."""
    with provider.session_scope() as session:
        try:
            journal = JournalDraftResolver(session).resolve(request.to_draft())
        except DraftResolutionError as e:
            return ValidationResponse(valid=False, errors=e.errors)

    validation = executor.validate(journal)
    return ValidationResponse(journal_id=str(journal.id), **validation.to_dict())


@app.get(
    "/api/v1/gl/journals",
    response_model=JournalListResponse,
    summary="List journals",
    description="Most recent posted journals of a tenant",
)
def list_journals(
    tenant_id: UUID = Query(..., description="Tenant id"),
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    session: Session = Depends(get_session),
    config: ConfigManager = Depends(get_config_instance),
    api_key: str = Depends(verify_api_key),
):
    """List posted journals, newest posting date first."""
    journals = JournalDraftResolver(session).list_journals(
        tenant_id, limit or config.api.journal_list_limit
    )
    return JournalListResponse(journals=journals, count=len(journals))


@app.get(
    "/api/v1/metadata/concepts/lookup",
    response_model=ConceptLookupResponse,
    responses={404: {"model": ErrorResponse, "description": "Concept not found"}},
    summary="Look up a concept",
    description="Resolve a term to a concept by canonical key or alias",
)
def lookup_concept(
    tenant_id: UUID = Query(..., description="Tenant id"),
    term: str = Query(..., min_length=1, max_length=255, description="Canonical key or alias"),
    actor_type: Optional[ActorType] = Query(default=None, description="Defaults to metadata.default_actor_type"),
    session: Session = Depends(get_session),
    config: ConfigManager = Depends(get_config_instance),
    api_key: str = Depends(verify_api_key),
):
    """Look up a concept for the tenant."""
    if actor_type is None:
        actor_type = ActorType(config.metadata.default_actor_type)
    view = MetadataService(session, config).lookup_concept(tenant_id, term, actor_type)
    if view is None:
        raise HTTPException(status_code=404, detail=f"Concept not found: {term}")
    return ConceptLookupResponse(**view.to_dict())


@app.get(
    "/api/v1/metadata/standard-packs",
    response_model=StandardPackListResponse,
    summary="List standard packs",
    description="All standard packs ordered by code, optionally for one domain",
)
def list_standard_packs(
    domain: Optional[str] = Query(default=None, max_length=50),
    session: Session = Depends(get_session),
    config: ConfigManager = Depends(get_config_instance),
    api_key: str = Depends(verify_api_key),
):
    """List standard packs."""
    packs = MetadataService(session, config).list_standard_packs(domain)
    return StandardPackListResponse(packs=[p.to_dict() for p in packs], count=len(packs))


@app.get(
    "/api/v1/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check service and database health",
)
def health_check(provider: DatabaseSessionProvider = Depends(get_provider)):
    """Return health status including database latency. Always returns HTTP 200."""
    uptime_seconds = None
    if _startup_time:
        uptime_seconds = int((datetime.now(timezone.utc) - _startup_time).total_seconds())

    memory_usage_mb = round(psutil.Process().memory_info().rss / (1024 * 1024), 2)

    health = check_health(provider.engine, provider.session_factory)
    return HealthResponse(
        status="healthy" if health.healthy else "unhealthy",
        database=health.to_dict(),
        version=API_VERSION,
        memory_usage_mb=memory_usage_mb,
        uptime_seconds=uptime_seconds,
        error_message=health.error,
    )


# Root redirect to docs
@app.get("/", include_in_schema=False)
async def root():
    """Redirect root to API documentation."""
    from fastapi.responses import RedirectResponse

    return RedirectResponse(url="/api/docs")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=API_HOST, port=API_PORT)
