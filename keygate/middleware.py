"""
Middleware for observability features.
"""
import uuid
import time
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
import structlog

UNMATCHED_PATH = "<unmatched>"


def error_response(request: Request, status_code: int, error: str, message: str) -> JSONResponse:
    """
    Build a structured JSON error body.

    Shape: {error, message, status_code, correlation_id, path}
    """
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "status_code": status_code,
            "correlation_id": getattr(request.state, "correlation_id", None),
            "path": str(request.url.path),
        },
    )


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add correlation IDs to all requests.

    - Extracts correlation ID from X-Correlation-ID header if present
    - Generates new UUID if not present
    - Binds correlation ID to structlog context
    - Adds correlation ID to response headers
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("x-correlation-id") or str(uuid.uuid4())
        request.state.correlation_id = correlation_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            http_method=request.method,
            http_path=request.url.path,
        )

        response = await call_next(request)
        response.headers["x-correlation-id"] = correlation_id

        return response


def path_template(request: Request) -> str:
    """
    Path label for HTTP metrics.

    Uses the matched route template, or the template the gate recorded for a
    request it answered itself, so the label set stays bounded no matter how
    many distinct paths clients send.
    """
    route = request.scope.get("route")
    if route is not None:
        return route.path
    return getattr(request.state, "path_template", UNMATCHED_PATH)


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Records gateway HTTP metrics for Prometheus.

    Requests are labelled by route template, never by raw path; the catch-all
    forwarder and gate denials each collapse into a single series.
    The /metrics mount itself is not recorded.
    """

    def __init__(self, app, metrics):
        super().__init__(app)
        self.metrics = metrics

    def _observe(self, request: Request, status: int, duration: float) -> str:
        path = path_template(request)
        self.metrics.http_requests_total.labels(
            service=self.metrics.service_name,
            method=request.method,
            path=path,
            status=status,
        ).inc()
        self.metrics.http_request_duration.labels(
            service=self.metrics.service_name,
            method=request.method,
            path=path,
        ).observe(duration)
        return path

    async def dispatch(self, request: Request, call_next):
        if request.url.path.startswith("/metrics"):
            return await call_next(request)

        self.metrics.http_requests_active.inc()
        start_time = time.time()
        logger = structlog.get_logger()

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            route = self._observe(request, 500, duration)
            logger.error(
                "http_request_error",
                route=route,
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round(duration * 1000, 2),
            )
            raise
        finally:
            self.metrics.http_requests_active.dec()

        duration = time.time() - start_time
        route = self._observe(request, response.status_code, duration)
        logger.info(
            "http_request",
            route=route,
            http_status=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )
        return response
