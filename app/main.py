"""
Main Application - FastAPI application setup.

Everything the handlers need (settings, store, payment provider) is built
once in create_app() and attached to app.state.
"""

import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest
from starlette.routing import Match

from app.api.dependencies import get_app_settings
from app.api.routes import router
from app.config import Settings, get_settings
from app.exceptions import InvalidRequestError, PaymentProviderError, PurchaseStoreError
from app.observability import (
    get_logger,
    instrument_fastapi,
    metrics,
    setup_logging,
    setup_tracing,
)
from app.services.mercadopago_provider import MercadoPagoConfig, MercadoPagoProvider
from app.services.payment_provider import PaymentProvider
from app.services.purchase_store import (
    InMemoryPurchaseStore,
    JsonFilePurchaseStore,
    PurchaseStore,
)
from app.services.purchases import PurchaseService

logger = get_logger(__name__)


def build_store(settings: Settings) -> PurchaseStore:
    """Create the configured purchase store backend."""
    if settings.purchase_store_backend == "memory":
        return InMemoryPurchaseStore()
    return JsonFilePurchaseStore(settings.purchase_store_path)


def build_provider(settings: Settings) -> MercadoPagoProvider:
    """Create the Mercado Pago client from settings."""
    return MercadoPagoProvider(
        MercadoPagoConfig(
            access_token=settings.mp_access_token,
            api_base_url=settings.mp_api_base_url,
            currency_id=settings.mp_currency_id,
            success_url=settings.checkout_success_url,
            failure_url=settings.checkout_failure_url,
            pending_url=settings.pending_url,
            notification_url=settings.webhook_notification_url,
            statement_descriptor=settings.mp_statement_descriptor,
            timeout_seconds=settings.mp_timeout_seconds,
        )
    )


UNMATCHED_ROUTE = "unmatched"


def route_template(request: Request) -> str:
    """
    Path template of the route serving the request, for metric labels.

    Raw paths embed device ids and purchase keys, so they are never used as
    label values.
    """
    route = request.scope.get("route")
    if route is None:
        for candidate in request.app.router.routes:
            match, _ = candidate.matches(request.scope)
            if match == Match.FULL:
                route = candidate
                break
    return getattr(route, "path", UNMATCHED_ROUTE)


def _format_validation_errors(exc: RequestValidationError) -> str:
    """Summarize validation errors as a single message naming the bad fields."""
    fields: list[str] = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        name = ".".join(loc) or "body"
        if name not in fields:
            fields.append(name)
    return f"Missing or invalid required fields: {', '.join(fields)}"


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain exceptions to {"error": ...} responses."""

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report validation errors as 400 with a single error message."""
        message = _format_validation_errors(exc)
        logger.warning(
            "validation_error",
            path=request.url.path,
            method=request.method,
            error=message,
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": message},
        )

    @app.exception_handler(InvalidRequestError)
    async def invalid_request_handler(request: Request, exc: InvalidRequestError) -> JSONResponse:
        logger.warning("invalid_request", path=request.url.path, error=exc.message)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": exc.message},
        )

    @app.exception_handler(PaymentProviderError)
    async def payment_provider_error_handler(
        request: Request, exc: PaymentProviderError
    ) -> JSONResponse:
        logger.error("payment_provider_failed", path=request.url.path, error=exc.message)
        metrics.record_error(type(exc).__name__, route_template(request))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to create payment"},
        )

    @app.exception_handler(PurchaseStoreError)
    async def purchase_store_error_handler(
        request: Request, exc: PurchaseStoreError
    ) -> JSONResponse:
        logger.error("purchase_store_failed", path=request.url.path, error=str(exc))
        metrics.record_error(type(exc).__name__, route_template(request))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Purchase store unavailable"},
        )


def create_app(
    settings: Settings | None = None,
    *,
    store: PurchaseStore | None = None,
    provider: PaymentProvider | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (loaded from the environment if omitted)
        store: Purchase store (built from settings if omitted)
        provider: Payment provider (Mercado Pago client if omitted)
    """
    settings = settings or get_settings()

    # Setup logging before anything else
    setup_logging(settings)
    setup_tracing(settings)

    store = store if store is not None else build_store(settings)
    provider = provider if provider is not None else build_provider(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """
        Application lifespan manager.

        Handles startup and shutdown events.
        """
        logger.info(
            "application_starting",
            service=settings.api_title,
            version=settings.api_version,
            store_backend=settings.purchase_store_backend,
            store_path=settings.purchase_store_path,
            sandbox=settings.mp_use_sandbox,
            tracing_enabled=settings.tracing_enabled,
        )

        yield

        logger.info("application_shutting_down")
        close = getattr(provider, "close", None)
        if close is not None:
            await close()
            logger.info("payment_provider_closed")

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description=settings.api_description,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.purchase_service = PurchaseService(
        store=store,
        provider=provider,
        use_sandbox=settings.mp_use_sandbox,
    )

    metrics.set_service_info(settings.api_version, settings.service_name)
    register_exception_handlers(app)
    instrument_fastapi(app, settings)

    # CORS middleware - the mobile app (Expo) calls from arbitrary origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def logging_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Log all HTTP requests with timing."""
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID", "unknown")
        endpoint = route_template(request)
        path = request.url.path
        method = request.method

        logger.info(
            "request_started",
            method=method,
            path=path,
            request_id=request_id,
        )

        if settings.metrics_enabled:
            metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).inc()

        try:
            response = await call_next(request)
            duration = time.time() - start_time

            if settings.metrics_enabled:
                metrics.record_http_request(endpoint, method, response.status_code, duration)

            logger.info(
                "request_completed",
                method=method,
                path=path,
                status_code=response.status_code,
                duration_seconds=duration,
                request_id=request_id,
            )

            return response
        except Exception as e:
            duration = time.time() - start_time
            if settings.metrics_enabled:
                metrics.record_http_request(endpoint, method, 500, duration)
                metrics.record_error(type(e).__name__, "http_request")

            logger.error(
                "request_failed",
                method=method,
                path=path,
                error=str(e),
                duration_seconds=duration,
                request_id=request_id,
                exc_info=True,
            )
            raise
        finally:
            if settings.metrics_enabled:
                metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).dec()

    app.include_router(router)

    @app.get("/")
    async def root(app_settings: Settings = Depends(get_app_settings)) -> dict[str, str]:
        """Root endpoint."""
        return {
            "service": app_settings.api_title,
            "version": app_settings.api_version,
            "status": "running",
        }

    @app.get("/metrics")
    async def metrics_endpoint() -> Response:
        """
        Prometheus metrics endpoint.

        Returns metrics in Prometheus text format.
        """
        return PlainTextResponse(generate_latest())

    return app


if __name__ == "__main__":
    import uvicorn

    startup_settings = get_settings()
    uvicorn.run(
        "app.main:create_app",
        factory=True,
        host=startup_settings.api_host,
        port=startup_settings.api_port,
        log_level=startup_settings.log_level.lower(),
    )
