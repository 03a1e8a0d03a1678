"""FastAPI application serving the media proxy and the JSON API."""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import structlog
from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..api.provider import ContentProvider, ProviderError, ProviderNotFoundError, load_provider
from ..api.rewriter import MediaRewriter
from ..api import routes as api_routes
from ..common.metrics import GLOBAL_REGISTRY, Counter, Histogram, require_metrics_access
from ..common.observability import configure_logging, configure_tracing, instrument_fastapi_app
from ..common.settings import ShoelaceSettings
from ..proxy import routes as proxy_routes
from ..proxy.errors import ProxyError
from ..proxy.keystore import Keystore
from ..proxy.service import MediaProxy

REQUEST_COUNTER = GLOBAL_REGISTRY.register(Counter("shoelace_http_requests_total", "Total HTTP requests"))
LATENCY_HISTOGRAM = GLOBAL_REGISTRY.register(
    Histogram(
        "shoelace_http_request_latency_seconds",
        buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
        description="HTTP request latency",
    )
)


class ShoelaceState:
    def __init__(
        self,
        settings: ShoelaceSettings,
        keystore: Keystore,
        proxy: MediaProxy,
        provider: Optional[ContentProvider],
    ) -> None:
        self.settings = settings
        self.keystore = keystore
        self.proxy = proxy
        self.rewriter = MediaRewriter(proxy)
        self.provider = provider
        self.logger = structlog.get_logger("shoelace.server").bind(backend=keystore.backend.value)


def get_state(request: Request) -> ShoelaceState:
    return request.app.state.shoelace  # type: ignore[attr-defined]


def register_error_handlers(app: FastAPI) -> None:
    """Render every failure as plain text so API clients can parse it."""

    @app.exception_handler(ProxyError)
    async def proxy_error(_request: Request, exc: ProxyError) -> PlainTextResponse:
        return PlainTextResponse(str(exc), status_code=exc.status_code)

    @app.exception_handler(ProviderError)
    async def provider_error(_request: Request, exc: ProviderError) -> PlainTextResponse:
        if isinstance(exc, ProviderNotFoundError):
            return PlainTextResponse(f"not found: {exc}", status_code=status.HTTP_404_NOT_FOUND)
        return PlainTextResponse(str(exc), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(_request: Request, exc: StarletteHTTPException) -> PlainTextResponse:
        body = "not found" if exc.status_code == status.HTTP_404_NOT_FOUND else str(exc.detail)
        return PlainTextResponse(body, status_code=exc.status_code, headers=exc.headers)


def create_app(
    settings: Optional[ShoelaceSettings] = None,
    provider: Optional[ContentProvider] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    settings = settings or ShoelaceSettings()
    configure_logging("shoelace", settings.log_level)
    configure_tracing(
        service_name="shoelace",
        endpoint=settings.otel_exporter_endpoint,
        headers=settings.otel_exporter_headers,
        sampler_ratio=settings.otel_sampler_ratio,
    )
    if provider is None and settings.provider:
        provider = load_provider(settings.provider)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        keystore = await Keystore.connect(settings)
        client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.origin_timeout_seconds),
            follow_redirects=True,
        )
        proxy = MediaProxy(keystore, settings.base_url, client, log_cdn=settings.log_cdn)
        app.state.shoelace = ShoelaceState(settings, keystore, proxy, provider)
        app.state.shoelace.logger.info(
            "shoelace_started",
            base_url=settings.base_url,
            api=settings.endpoint_api and provider is not None,
        )
        try:
            yield
        finally:
            if http_client is None:
                await client.aclose()
            await keystore.close()

    app = FastAPI(lifespan=lifespan)
    instrument_fastapi_app(app)
    register_error_handlers(app)

    @app.middleware("http")
    async def record_latency(request: Request, call_next):  # noqa: ANN001 - FastAPI middleware signature
        start = time.perf_counter()
        REQUEST_COUNTER.inc()
        logger = request.app.state.shoelace.logger  # type: ignore[attr-defined]
        try:
            response = await call_next(request)
        except Exception:
            duration = time.perf_counter() - start
            LATENCY_HISTOGRAM.observe(duration)
            logger.exception(
                "http_request_error",
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration * 1000, 2),
            )
            raise

        duration = time.perf_counter() - start
        LATENCY_HISTOGRAM.observe(duration)
        log_kwargs = {
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": round(duration * 1000, 2),
        }
        if response.status_code >= 500:
            logger.error("http_request", **log_kwargs)
        elif response.status_code >= 400:
            logger.warning("http_request", **log_kwargs)
        else:
            logger.info("http_request", **log_kwargs)
        return response

    app.include_router(proxy_routes.build_router())
    if settings.endpoint_api and provider is not None:
        app.include_router(api_routes.build_router())

    @app.get("/healthz", status_code=status.HTTP_200_OK)
    async def health_check(state: ShoelaceState = Depends(get_state)) -> dict:
        return {"status": "healthy", "keystore": state.keystore.status()}

    @app.get("/metrics", response_class=PlainTextResponse)
    async def metrics_endpoint(request: Request, state: ShoelaceState = Depends(get_state)) -> PlainTextResponse:
        token = state.settings.metrics_token.get_secret_value() if state.settings.metrics_token else None
        require_metrics_access(request, token)
        return PlainTextResponse(GLOBAL_REGISTRY.render())

    return app
