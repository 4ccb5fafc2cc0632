"""
Hooklog - webhook capture service.

Features:
- Per-channel append-only NDJSON logs with a bounded recency cache
- Query language (field paths, deep key search, free text) and export
- Structured logging with correlation IDs
- Prometheus metrics
- Health checks (liveness and readiness)
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from prometheus_client import make_asgi_app
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import SERVICE_NAME, __version__
from .api.ingest_router import router as ingest_router
from .api.router import router as events_router
from .auth.api_key import APIKeyRegistry
from .config import Settings, get_settings
from .health import HealthChecker
from .logging import get_logger, setup_logging
from .metrics import Metrics
from .middleware import (
    CorrelationIdMiddleware,
    ErrorHandlerMiddleware,
    MetricsMiddleware,
    ValidationMiddleware,
)
from .services import HooklogService

logger = get_logger()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build a fully wired application; every piece of state hangs off ``app.state``."""
    settings = settings or get_settings()
    setup_logging(json_output=settings.LOG_JSON, service_name=SERVICE_NAME)

    metrics = Metrics(service_name=SERVICE_NAME, version=__version__)
    service = HooklogService.from_settings(settings, metrics=metrics)
    health_checker = HealthChecker(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "service_starting",
            version=__version__,
            env=settings.ENV,
            data_dir=str(settings.DATA_DIR),
            max_recent=settings.MAX_RECENT,
        )
        yield
        logger.info("service_stopping")
        metrics.app_up.labels(service=SERVICE_NAME, version=__version__).set(0)

    app = FastAPI(
        title="Hooklog",
        version=__version__,
        description="Webhook capture service with per-channel logs, query and export",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.metrics = metrics
    app.state.service = service
    app.state.health_checker = health_checker
    app.state.api_keys = APIKeyRegistry.from_csv(settings.API_KEYS)

    # Last added runs first: correlation -> metrics -> errors -> validation
    app.add_middleware(ValidationMiddleware, max_body_size=settings.MAX_BODY_SIZE)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(MetricsMiddleware, metrics=metrics)
    app.add_middleware(CorrelationIdMiddleware)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            {"ok": False, "error": exc.detail},
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    app.include_router(ingest_router)
    app.include_router(events_router)

    app.mount("/metrics", make_asgi_app(registry=metrics.registry))

    @app.get("/", include_in_schema=False)
    async def index():
        return RedirectResponse("/docs")

    @app.get("/health")
    async def health():
        """Liveness probe."""
        logger.debug("health_check_liveness")
        return health_checker.liveness()

    @app.get("/health/ready")
    async def health_ready():
        """
        Readiness probe.

        Returns:
            200: Service can persist events
            503: Data directory, disk or memory check failed
        """
        logger.debug("health_check_readiness")
        metrics.update_system_metrics()
        result = await health_checker.readiness()
        status_code = 200 if result["status"] == "ready" else 503
        return JSONResponse(result, status_code=status_code)

    return app


app = create_app()


def run():
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "hooklog.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
        reload=settings.ENV == "dev",
    )


if __name__ == "__main__":
    run()
