"""HTTP surface for checkout: routers and error mapping."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ValidationError
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeout

from checkout.api.routes import coupon_router, order_router
from checkout.domain import checkout
from checkout.errors import (
    AlreadyPaid,
    CheckoutError,
    CouponNotFound,
    DuplicateCoupon,
    InsufficientStock,
    InvalidCoupon,
    InvalidStateTransition,
    NotOwner,
    OrderNotFound,
    ProductInactive,
    ProductNotFound,
)

logger = structlog.get_logger(__name__)

__all__ = ["coupon_router", "domain_context_middleware", "order_router", "register_exception_handlers"]

# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    ProductNotFound: 404,
    OrderNotFound: 404,
    CouponNotFound: 404,
    ProductInactive: 409,
    NotOwner: 403,
    InsufficientStock: 409,
    InvalidStateTransition: 409,
    AlreadyPaid: 409,
    DuplicateCoupon: 409,
    InvalidCoupon: 400,
}


async def checkout_error_handler(request: Request, exc: CheckoutError) -> JSONResponse:
    """Map CheckoutError subclasses to appropriate HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 400)
    content = {"error": exc.code, "detail": str(exc), "messages": exc.messages}
    if isinstance(exc, InvalidCoupon):
        content["reason"] = exc.reason.value
    return JSONResponse(status_code=status_code, content=content)


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"error": "validation_failed", "detail": str(exc.messages), "messages": exc.messages},
    )


async def storage_error_handler(request: Request, exc: OperationalError | PoolTimeout) -> JSONResponse:
    logger.error("Storage unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=503,
        content={"error": "storage_unavailable", "detail": "Storage is temporarily unavailable, retry later"},
    )


async def domain_context_middleware(request: Request, call_next):
    """Run each request inside the checkout domain context."""
    with checkout.domain_context():
        return await call_next(request)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(CheckoutError, checkout_error_handler)
    app.add_exception_handler(OperationalError, storage_error_handler)
    app.add_exception_handler(PoolTimeout, storage_error_handler)
