"""
KeyGate - API key gateway for protected resource paths.

Features:
- Encrypted API key validation on a protected path prefix
- Forwarding of allowed requests to the upstream origin
- Structured logging with correlation IDs
- Prometheus metrics
- Health checks (liveness and readiness)
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse
import httpx
from prometheus_client import make_asgi_app

from .adapters.base import KeyStore, SecretStore
from .adapters.factory import create_key_store, create_secret_store
from .api.proxy import router as proxy_router
from .auth.api_key import ApiKeyGate, ApiKeyGateMiddleware
from .config import Settings, get_settings
from .health import HealthChecker
from .logging import setup_logging, get_logger
from .metrics import Metrics
from .middleware import CorrelationIdMiddleware, MetricsMiddleware

VERSION = "0.1.0"

logger = get_logger()


def create_app(
    settings: Settings | None = None,
    key_store: KeyStore | None = None,
    secret_store: SecretStore | None = None,
    upstream_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """
    Build the gateway application.

    Args:
        settings: Settings to use (defaults to get_settings())
        key_store: Envelope store (defaults to the configured adapter)
        secret_store: Secret store (defaults to the configured adapter)
        upstream_client: Client bound to the upstream origin
    """
    settings = settings or get_settings()
    key_store = key_store or create_key_store(settings.KEY_NAMESPACE, settings)
    secret_store = secret_store or create_secret_store(settings)

    metrics = Metrics(service_name="keygate", version=VERSION)
    health_checker = HealthChecker(key_store, service_name="keygate", version=VERSION)
    gate = ApiKeyGate(key_store, secret_store, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_client = False
        if app.state.upstream_client is None and settings.UPSTREAM_URL:
            app.state.upstream_client = httpx.AsyncClient(
                base_url=str(settings.UPSTREAM_URL),
                timeout=settings.UPSTREAM_TIMEOUT,
            )
            owns_client = True

        logger.info(
            "service_starting",
            version=VERSION,
            env=settings.ENV,
            protected_prefix=settings.PROTECTED_PATH_PREFIX,
            excluded_paths=settings.excluded_paths,
            store_adapter=type(key_store).__name__,
            upstream_configured=app.state.upstream_client is not None,
        )
        yield

        logger.info("service_stopping")
        metrics.app_up.labels(service="keygate", version=VERSION).set(0)
        if owns_client:
            await app.state.upstream_client.aclose()
            app.state.upstream_client = None

    app = FastAPI(
        title="KeyGate",
        version=VERSION,
        description="API key gateway with encrypted key storage",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.gate = gate
    app.state.metrics = metrics
    app.state.upstream_client = upstream_client

    # Last added runs first: correlation ID, then metrics, then the gate
    app.add_middleware(ApiKeyGateMiddleware, gate=gate, metrics=metrics)
    app.add_middleware(MetricsMiddleware, metrics=metrics)
    app.add_middleware(CorrelationIdMiddleware)

    metrics_app = make_asgi_app(registry=metrics.registry)
    app.mount("/metrics", metrics_app)

    @app.get("/health")
    async def health():
        """
        Liveness probe - basic health check.

        Returns 200 if service is running.
        """
        logger.debug("health_check_liveness")
        return health_checker.liveness()

    @app.get("/health/ready")
    async def health_ready():
        """
        Readiness probe - comprehensive health check.

        Returns:
            200: Service is ready to handle traffic
            503: Service is not ready
        """
        logger.debug("health_check_readiness")
        metrics.update_system_metrics()
        result = await health_checker.readiness()
        status_code = 200 if result["status"] == "ready" else 503
        return JSONResponse(result, status_code=status_code)

    # Catch-all forwarder goes last so the routes above win
    app.include_router(proxy_router)

    return app


settings = get_settings()
setup_logging(json_output=settings.LOG_JSON, service_name="keygate", level=settings.LOG_LEVEL)

app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "keygate.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
    )
