"""FastAPI application factory"""

import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from card_reminders.api.middleware import RequestIDMiddleware, MetricsMiddleware
from card_reminders.api.v1 import reminders
from card_reminders.domain.exceptions import ConfigurationError
from card_reminders.infrastructure.observability.logging import setup_logging
from card_reminders.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Card Reminders",
        description="Billing, due, overdue and partial-payment push reminders",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Missing credentials: fail the run before touching any user
    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        logging.critical(f"Configuration error: {exc}", extra={"path": request.url.path})
        return JSONResponse(status_code=500, content={"detail": "Push gateway or data store not initialized"})

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(reminders.router, prefix="/v1", tags=["reminders"])

    return app


app = create_app()
