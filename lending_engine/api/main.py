"""FastAPI application factory"""

import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from lending_engine.api.middleware import RequestIDMiddleware, MetricsMiddleware
from lending_engine.api.v1 import insights, loans, offers, proofs, risk
from lending_engine.domain.exceptions import (
    InvariantViolation,
    NotAuthorizedError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from lending_engine.infrastructure.observability.logging import setup_logging
from lending_engine.infrastructure.observability.metrics import invariant_violation_counter
from lending_engine.config import settings

logger = logging.getLogger(__name__)

# Setup structured logging
setup_logging(settings.log_level)

ERROR_STATUS = {
    ValidationError: 422,
    NotFoundError: 404,
    NotAuthorizedError: 403,
    StateConflictError: 409,
}


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain exceptions onto HTTP status codes"""

    async def domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
        status_code = ERROR_STATUS[type(exc)]
        logger.warning(
            str(exc),
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "error": type(exc).__name__,
                "path": request.url.path,
            },
        )
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    async def invariant_handler(request: Request, exc: InvariantViolation) -> JSONResponse:
        invariant_violation_counter.inc()
        logger.critical(
            "Invariant violated: %s",
            exc,
            extra={"request_id": getattr(request.state, "request_id", None), "path": request.url.path},
        )
        return JSONResponse(status_code=500, content={"detail": "Internal consistency error"})

    for exc_class in ERROR_STATUS:
        app.add_exception_handler(exc_class, domain_error_handler)
    app.add_exception_handler(InvariantViolation, invariant_handler)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Lending Engine",
        description="Peer-to-peer loan terms, repayment settlement and borrower risk service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(offers.router, prefix="/v1", tags=["offers"])
    app.include_router(loans.router, prefix="/v1", tags=["loans"])
    app.include_router(proofs.router, prefix="/v1", tags=["proofs"])
    app.include_router(risk.router, prefix="/v1", tags=["risk"])
    app.include_router(insights.router, prefix="/v1", tags=["insights"])

    return app


app = create_app()
