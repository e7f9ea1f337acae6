"""Checkout bounded context: pricing, coupons, inventory and order lifecycle.

Turns a shopping cart into an immutable, priced order while keeping
per-product stock counts correct under concurrent checkouts.

Commands and events are protean elements registered with the ``checkout``
domain. Rows live in SQLAlchemy tables that share one declarative base, so
a single ``create_all`` builds the schema; stock and coupon counters change
through conditional UPDATEs on those tables.
"""

import importlib
from datetime import UTC, datetime

import structlog
from protean.domain import Domain
from sqlalchemy.orm import DeclarativeBase

checkout = Domain(name="checkout")

logger = structlog.get_logger(__name__)

# Modules that register commands, events and their aggregates
ELEMENT_MODULES = (
    "checkout.streams",
    "checkout.order.events",
    "checkout.order.creation",
    "checkout.coupon.management",
)

_initialized = False


def init_domain() -> Domain:
    """Import the element modules and initialize the domain once per process."""
    global _initialized
    if not _initialized:
        for module in ELEMENT_MODULES:
            importlib.import_module(module)
        checkout.init(traverse=False)
        _initialized = True
        logger.debug("Checkout domain initialized", elements=len(ELEMENT_MODULES))
    return checkout


class Base(DeclarativeBase):
    pass


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from databases without timezone support."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
