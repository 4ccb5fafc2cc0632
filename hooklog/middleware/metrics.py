"""HTTP metrics middleware."""
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
import structlog

log = structlog.get_logger()


def _route_path(request: Request) -> str:
    """Route template (``/v1/hooks/{channel}``) rather than the raw path, to bound label cardinality."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Collects HTTP metrics for Prometheus.

    - Request count by method, route, status
    - Request duration histogram
    - Active requests gauge
    """

    def __init__(self, app, metrics):
        super().__init__(app)
        self.metrics = metrics

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith("/metrics"):
            return await call_next(request)

        service = self.metrics.service_name
        active = self.metrics.http_requests_active.labels(service=service)
        active.inc()
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            self.metrics.http_requests_total.labels(
                service=service,
                method=request.method,
                path=_route_path(request),
                status=500,
            ).inc()
            log.error(
                "http_request_error",
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round(duration * 1000, 2),
            )
            raise
        finally:
            active.dec()

        duration = time.time() - start_time
        path = _route_path(request)
        self.metrics.http_requests_total.labels(
            service=service,
            method=request.method,
            path=path,
            status=response.status_code,
        ).inc()
        self.metrics.http_request_duration.labels(
            service=service,
            method=request.method,
            path=path,
        ).observe(duration)

        log.info(
            "http_request",
            http_status=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )
        return response
