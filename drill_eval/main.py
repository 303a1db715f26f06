"""Application entry point and FastAPI app factory."""

from __future__ import annotations

import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .config.container import ServiceContainer
from .config.log_setup import configure_logging
from .config.settings import Settings, settings
from .controllers import evaluate
from .database import init_models, ping as ping_database
from .middleware import StructuredLoggingMiddleware, TelemetryMiddleware
from .services.analytics import init_sentry
from .views import HealthResponse

logger = logging.getLogger(__name__)


def create_app(
    container: Optional[ServiceContainer] = None,
    app_settings: Optional[Settings] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    When ``container`` is given it is used as-is and left open on shutdown;
    otherwise production services are built on startup.
    """

    app_settings = app_settings or (container.settings if container else settings)
    if container is None:
        configure_logging(app_settings)

    app = FastAPI(
        title=app_settings.app_name,
        version=app_settings.app_version,
        debug=app_settings.debug,
        description="Interview response evaluation API",
    )
    app.state.container = container

    app.add_middleware(TelemetryMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=app_settings.cors_allow_credentials,
        allow_methods=app_settings.cors_allow_methods,
        allow_headers=app_settings.cors_allow_headers,
    )

    app.include_router(evaluate.router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        """Root endpoint."""

        return {
            "message": f"Welcome to {app_settings.app_name}",
            "version": app_settings.app_version,
            "status": "operational",
        }

    @app.get("/health", include_in_schema=False, response_model=HealthResponse)
    async def health_check(request: Request) -> HealthResponse:
        """Report service identity plus Redis and database reachability."""

        services: Optional[ServiceContainer] = request.app.state.container
        checks = {"redis": False, "database": False}
        if services is not None:
            checks["redis"] = await services.queue.ping()
            checks["database"] = (
                await ping_database(services.engine) if services.engine is not None else True
            )

        return HealthResponse(
            status="healthy" if all(checks.values()) else "degraded",
            service=app_settings.app_name,
            version=app_settings.app_version,
            checks=checks,
        )

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        """Expose application metrics for Prometheus scraping."""

        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    @app.on_event("startup")
    async def startup_event() -> None:
        if app.state.container is not None:
            return
        sentry_enabled = init_sentry(app_settings.sentry, component="api")
        services = ServiceContainer.build_from_settings(
            app_settings,
            component="api",
            sentry_enabled=sentry_enabled,
        )
        if app_settings.database.create_tables and services.engine is not None:
            await init_models(services.engine)
        app.state.container = services
        app.state.owns_container = True

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        if getattr(app.state, "owns_container", False):
            await app.state.container.aclose()
            app.state.container = None

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "drill_eval.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
