"""Order and tracking number generation."""

from datetime import datetime
from uuid import uuid4

from checkout.domain import utc_now


def generate_order_number(now: datetime | None = None) -> str:
    """Timestamp plus random suffix, e.g. ``ORD-20260419153012-3FA9C1``."""
    now = now or utc_now()
    return f"ORD-{now:%Y%m%d%H%M%S}-{uuid4().hex[:6].upper()}"


def allocate_order_number(repository, attempts: int = 5) -> str:
    """Generate an order number not yet used by any order.

    The unique constraint on ``orders.order_number`` remains the final guard.
    """
    for _ in range(attempts):
        candidate = generate_order_number()
        if not repository.order_number_exists(candidate):
            return candidate
    raise RuntimeError(f"Could not allocate a unique order number after {attempts} attempts")


def generate_tracking_number() -> str:
    return f"TRK{uuid4().hex[:12].upper()}"
