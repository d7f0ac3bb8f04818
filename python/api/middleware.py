"""
FastAPI Middleware for the PostingGuard Ledger API

Provides CORS configuration, request-id logging and the error envelope
every failed request is returned in.
"""

import os
import re
import time
import uuid
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from audit_logger import sanitize_for_logging

logger = logging.getLogger(__name__)

# Local front ends (web client, API docs)
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:8000",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:8000",
]

EXPOSED_HEADERS = ["X-Request-ID", "X-Processing-Time-MS"]


def wildcard_origin_regex(origins: List[str]) -> Optional[str]:
    """Regex matching the wildcard-subdomain entries, e.g. https://*.example.com.

    Returns None when no entry uses a wildcard.
    """
    patterns = []
    for origin in origins:
        scheme, sep, host = origin.partition("://*.")
        if sep:
            patterns.append(rf"{re.escape(scheme)}://[\w-]+\.{re.escape(host)}")
    return "|".join(patterns) or None


def setup_cors(app: FastAPI) -> None:
    """Configure CORS from the comma-separated CORS_ORIGINS environment variable."""
    raw = os.getenv("CORS_ORIGINS", "")
    origins = [o.strip() for o in raw.split(",") if o.strip()] or DEFAULT_CORS_ORIGINS

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o for o in origins if "*." not in o],
        allow_origin_regex=wildcard_origin_regex(origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=EXPOSED_HEADERS,
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id and logs it with sanitized inputs."""

    async def dispatch(self, request: Request, call_next: Callable):
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID") or f"REQ-{uuid.uuid4().hex[:8]}"
        request_id = sanitize_for_logging(request_id)[:64]
        request.state.request_id = request_id

        logger.info(
            "Request: method=%s path=%s request_id=%s",
            request.method,
            sanitize_for_logging(str(request.url.path)),
            request_id,
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "Request failed: error=%s processing_time_ms=%d request_id=%s",
                sanitize_for_logging(str(exc)),
                int((time.time() - start_time) * 1000),
                request_id,
            )
            raise

        processing_time_ms = int((time.time() - start_time) * 1000)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Processing-Time-MS"] = str(processing_time_ms)

        logger.info(
            "Response: status=%d processing_time_ms=%d request_id=%s",
            response.status_code,
            processing_time_ms,
            request_id,
        )
        return response


def create_error_response(
    code: str,
    message: str,
    status_code: int = 500,
    request_id: Optional[str] = None,
) -> JSONResponse:
    """Create a standardized error response.

    Args:
        code: Error code for programmatic handling
        message: Human-readable message
        status_code: HTTP status code
        request_id: Id of the failed request, echoed for support

    Returns:
        JSONResponse with the {"error": {...}} envelope
    """
    error_detail = {
        "code": code,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if request_id:
        error_detail["request_id"] = request_id

    return JSONResponse(status_code=status_code, content={"error": error_detail})


def _http_error(exc: HTTPException, request_id: Optional[str]) -> JSONResponse:
    return create_error_response(
        code=f"HTTP_{exc.status_code}",
        message=exc.detail if isinstance(exc.detail, str) else str(exc.detail),
        status_code=exc.status_code,
        request_id=request_id,
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map unhandled errors to the envelope without leaking internals."""
    # Import here to avoid circular imports
    from config_manager import ConfigurationError
    from database.metadata_service import ConceptGovernanceError

    request_id = getattr(request.state, "request_id", None)

    logger.error(
        "Unhandled exception: type=%s message=%s request_id=%s",
        type(exc).__name__,
        sanitize_for_logging(str(exc)),
        request_id,
    )

    if isinstance(exc, ConceptGovernanceError):
        return create_error_response(
            code="CONCEPT_GOVERNANCE_VIOLATION",
            message=str(exc),
            status_code=422,
            request_id=request_id,
        )

    if isinstance(exc, ConfigurationError):
        return create_error_response(
            code="CONFIGURATION_ERROR",
            message="Service configuration is invalid. Please contact administrator.",
            status_code=503,
            request_id=request_id,
        )

    if isinstance(exc, HTTPException):
        return _http_error(exc, request_id)

    return create_error_response(
        code="INTERNAL_ERROR",
        message="An unexpected error occurred. Please try again later.",
        status_code=500,
        request_id=request_id,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for HTTP exceptions."""
    request_id = getattr(request.state, "request_id", None)

    logger.warning(
        "HTTP exception: status=%d detail=%s request_id=%s",
        exc.status_code,
        sanitize_for_logging(str(exc.detail)),
        request_id,
    )
    return _http_error(exc, request_id)


def setup_exception_handlers(app: FastAPI) -> None:
    """Configure exception handlers for the application."""
    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
