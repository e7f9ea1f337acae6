"""Checkout FastAPI application.

Processes checkout commands synchronously over HTTP: order placement,
lifecycle transitions, payment outcomes and coupon administration.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from checkout.api import coupon_router, domain_context_middleware, order_router, register_exception_handlers
from checkout.config import get_settings
from checkout.domain import init_domain
from checkout.utils.db import dispose_db, init_db, setup_db
from checkout.utils.logging import add_context, clear_context, configure_logging, get_logger

logger = get_logger(__name__)

# Initialized at module level so uvicorn workers share the domain
checkout = init_domain()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    settings = get_settings()
    init_db(settings.database_uri)
    setup_db()
    logger.info("Checkout service started", environment=settings.environment)
    yield
    dispose_db()


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Storefront Checkout API",
    description="Order checkout: pricing, coupons, inventory and order lifecycle",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


app.middleware("http")(domain_context_middleware)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """Bind a request id to every log line emitted while handling the request."""
    clear_context()
    add_context(request_id=request.headers.get("x-request-id") or uuid4().hex, path=request.url.path)
    try:
        return await call_next(request)
    finally:
        clear_context()


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(order_router)
app.include_router(coupon_router)
register_exception_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    settings = get_settings()
    return JSONResponse(
        content={
            "status": "ok",
            "domain": checkout.name,
            "environment": settings.environment,
            "currency": settings.currency,
        }
    )
