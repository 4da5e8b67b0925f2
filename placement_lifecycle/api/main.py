"""FastAPI application factory"""

import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from placement_lifecycle.api.middleware import RequestIDMiddleware, MetricsMiddleware
from placement_lifecycle.api.v1 import applications, business_settings, guarantor_changes, history
from placement_lifecycle.config import settings
from placement_lifecycle.domain.exceptions import (
    ApplicationNotFoundError,
    CandidateNotFoundError,
    ClientNotFoundError,
    DocumentsIncomplete,
    DomainException,
    DuplicateActiveSetting,
    IllegalCancellation,
    InvalidTransition,
    MissingDeportationTemplate,
    MissingRequiredDate,
    MixedCurrencyUnsupported,
    PersistenceFailure,
    SameClientTransfer,
    SettingNotFoundError,
)
from placement_lifecycle.infrastructure.observability.logging import setup_logging
from placement_lifecycle.infrastructure.observability.metrics import record_rejection

# Setup structured logging
setup_logging(settings.log_level)

ERROR_STATUS_CODES = {
    ApplicationNotFoundError: 404,
    ClientNotFoundError: 404,
    CandidateNotFoundError: 404,
    SettingNotFoundError: 404,
    InvalidTransition: 400,
    MissingRequiredDate: 400,
    DocumentsIncomplete: 400,
    SameClientTransfer: 400,
    IllegalCancellation: 409,
    DuplicateActiveSetting: 409,
    MixedCurrencyUnsupported: 422,
    MissingDeportationTemplate: 422,
    PersistenceFailure: 503,
}


def error_body(exc: DomainException) -> dict:
    """JSON error payload; the UI scrolls to the checklist when documents block a move"""
    body = {"error": str(exc)}
    if exc.user_friendly:
        body["user_friendly"] = exc.user_friendly
    if isinstance(exc, DocumentsIncomplete):
        body["scroll_to_documents"] = True
        body["missing_documents"] = exc.missing_documents
    if isinstance(exc, InvalidTransition):
        body["valid_next_states"] = exc.valid_next_states
    if isinstance(exc, MissingRequiredDate):
        body["field"] = exc.field_name
    return body


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(type(exc), 400)
    route = request.scope.get("route")
    record_rejection(getattr(route, "name", "unknown"), exc)

    log = logging.error if status_code >= 500 else logging.warning
    log(
        f"Rejected request: {exc}",
        extra={"request_id": getattr(request.state, "request_id", "unknown"), "error": type(exc).__name__},
    )
    return JSONResponse(status_code=status_code, content=error_body(exc))


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Placement Lifecycle Service",
        description="Application status workflow, cancellations, refunds and guarantor changes",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainException, domain_exception_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(applications.router, prefix="/v1", tags=["applications"])
    app.include_router(guarantor_changes.router, prefix="/v1", tags=["guarantor-changes"])
    app.include_router(business_settings.router, prefix="/v1", tags=["business-settings"])
    app.include_router(history.router, prefix="/v1", tags=["history"])

    return app


app = create_app()
