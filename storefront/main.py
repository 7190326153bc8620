"""
FastAPI application entry point with health endpoints and service routing.

This module provides the FastAPI application instance with CORS
configuration, request correlation, health checks and the exception
handlers that render every error in the response envelope. Service
exceptions are mapped to HTTP status codes here so routes stay thin.
"""

from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.api.v1 import (
    admin_orders_router,
    coupons_router,
    orders_router,
    payments_router,
    returns_router,
)
from storefront.core.config import get_settings
from storefront.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from storefront.database.connection import (
    check_database_health,
    close_database_connections,
)
from storefront.services.coupons.exceptions import CouponError
from storefront.services.orders.exceptions import (
    OrderNotFoundError,
    OrderServiceError,
)
from storefront.services.payments.service import (
    GatewayError,
    PaymentGatewayUnavailableError,
    PaymentServiceError,
)
from storefront.services.returns.exceptions import ReturnError

# Configure logging before application initialization
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan: log startup, dispose the engine on shutdown.
    """
    settings = get_settings()

    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        version=settings.app_version,
        payments_enabled=settings.payments_enabled,
    )

    yield

    logger.info("Application shutting down")
    with log_performance(logger, "application_shutdown"):
        await close_database_connections()


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Storefront order lifecycle API",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    debug=settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """
    Set the correlation id, log the request and echo ``X-Request-ID``.
    """
    request_id = set_request_id(request.headers.get("X-Request-ID"))

    logger.info(
        "Request received",
        method=request.method,
        path=request.url.path,
        client_host=request.client.host if request.client else None,
    )

    try:
        with log_performance(
            logger,
            "request_processing",
            method=request.method,
            path=request.url.path,
        ):
            response = await call_next(request)

        response.headers["X-Request-ID"] = request_id

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
        )
        return response
    finally:
        clear_context()


# =============================================================================
# Error envelope
# =============================================================================


def error_code(status_code: int) -> str:
    """``404`` -> ``"NOT_FOUND"``."""
    try:
        return HTTPStatus(status_code).name
    except ValueError:
        return "ERROR"


def error_response(
    status_code: int,
    message: str,
    errors: Optional[dict[str, list[str]]] = None,
    headers: Optional[dict[str, str]] = None,
) -> JSONResponse:
    content: dict[str, Any] = {
        "success": False,
        "message": message,
        "error": error_code(status_code),
    }
    if errors is not None:
        content["errors"] = errors
    request_id = get_request_id()
    if request_id:
        content["request_id"] = request_id
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def order_error_status(exc: OrderServiceError) -> int:
    if isinstance(exc, OrderNotFoundError):
        return status.HTTP_404_NOT_FOUND
    return status.HTTP_400_BAD_REQUEST


def payment_error_status(exc: PaymentServiceError) -> int:
    if isinstance(exc, PaymentGatewayUnavailableError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(exc, GatewayError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_400_BAD_REQUEST


@app.exception_handler(OrderServiceError)
async def order_exception_handler(request: Request, exc: OrderServiceError) -> JSONResponse:
    status_code = order_error_status(exc)
    logger.info(
        "Order request rejected",
        path=request.url.path,
        status_code=status_code,
        error_type=type(exc).__name__,
        reason=exc.message,
        **exc.context,
    )
    return error_response(status_code, exc.message)


@app.exception_handler(CouponError)
async def coupon_exception_handler(request: Request, exc: CouponError) -> JSONResponse:
    return error_response(status.HTTP_400_BAD_REQUEST, exc.message)


@app.exception_handler(ReturnError)
async def return_exception_handler(request: Request, exc: ReturnError) -> JSONResponse:
    logger.info(
        "Return request rejected",
        path=request.url.path,
        error_type=type(exc).__name__,
        reason=exc.message,
        **exc.context,
    )
    return error_response(status.HTTP_400_BAD_REQUEST, exc.message)


@app.exception_handler(PaymentServiceError)
async def payment_exception_handler(
    request: Request, exc: PaymentServiceError
) -> JSONResponse:
    status_code = payment_error_status(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "Payment request rejected",
        path=request.url.path,
        status_code=status_code,
        error_type=type(exc).__name__,
        reason=exc.message,
    )
    return error_response(status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else HTTPStatus(exc.status_code).phrase
    return error_response(exc.status_code, message, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Render request validation errors as a 400 with a field -> messages map.
    """
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location) or "request"
        errors.setdefault(field, []).append(error.get("msg", "Invalid value"))

    logger.warning(
        "Request validation failed",
        method=request.method,
        path=request.url.path,
        fields=sorted(errors),
    )
    return error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", errors=errors)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Log unexpected exceptions and return a generic 500.
    """
    logger.error(
        "Unhandled exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred",
    )


# =============================================================================
# Health
# =============================================================================


@app.get("/health", tags=["Health"], summary="Health check endpoint")
async def health_check() -> dict[str, str]:
    """Always 200 while the process is serving requests."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@app.get("/ready", tags=["Health"], summary="Readiness check endpoint")
async def readiness_check():
    """
    Readiness check: 200 when the database answers, 503 otherwise.
    """
    database_ready = await check_database_health()
    content = {
        "status": "ready" if database_ready else "not_ready",
        "service": settings.app_name,
        "version": settings.app_version,
        "database": "healthy" if database_ready else "unhealthy",
    }

    if not database_ready:
        logger.warning("Readiness check failed", database="unhealthy")
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=content)
    return content


@app.get("/live", tags=["Health"], summary="Liveness check endpoint")
async def liveness_check() -> dict[str, str]:
    return {
        "status": "alive",
        "service": settings.app_name,
        "version": settings.app_version,
    }


api_prefix = settings.api_v1_prefix
app.include_router(orders_router, prefix=f"{api_prefix}/orders", tags=["Orders"])
app.include_router(coupons_router, prefix=f"{api_prefix}/coupons", tags=["Coupons"])
app.include_router(payments_router, prefix=f"{api_prefix}/payments", tags=["Payments"])
app.include_router(returns_router, prefix=f"{api_prefix}/returns", tags=["Returns"])
app.include_router(
    admin_orders_router,
    prefix=f"{api_prefix}/admin/orders",
    tags=["Admin Orders"],
)
