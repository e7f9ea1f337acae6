"""Checkout configuration.

Settings are read from the environment once and cached. Tests and the HTTP
app can swap them at runtime with set_settings() / reset_settings().

Environment variables:
    CHECKOUT_ENV             test | development | staging | production
    DATABASE_URL             SQLAlchemy URI (default: sqlite:///checkout.db)
    CHECKOUT_TAX_RATE        flat tax rate as a decimal fraction (default 0.08)
    CHECKOUT_SHIPPING_RATES  "standard=5.99,express=15.99"
    CHECKOUT_DELIVERY_DAYS   lead time applied when an order ships (default 7)
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from protean.exceptions import ValidationError


DEFAULT_SHIPPING_RATES = {
    "standard": Decimal("5.99"),
    "express": Decimal("15.99"),
}


@dataclass(frozen=True)
class CheckoutSettings:
    """External configuration consumed by the checkout core."""

    environment: str = "development"
    database_uri: str = "sqlite:///checkout.db"
    tax_rate: Decimal = Decimal("0.08")
    shipping_rates: dict[str, Decimal] = field(default_factory=lambda: dict(DEFAULT_SHIPPING_RATES))
    delivery_lead_time: timedelta = timedelta(days=7)
    currency: str = "USD"
    order_number_attempts: int = 5

    def shipping_cost_for(self, shipping_method: str) -> Decimal:
        """Return the flat cost of a shipping method."""
        try:
            return self.shipping_rates[shipping_method]
        except KeyError:
            raise ValidationError(
                {"shipping_method": [f"Unknown shipping method: {shipping_method}"]}
            ) from None


def _parse_shipping_rates(raw: str) -> dict[str, Decimal]:
    rates = {}
    for entry in raw.split(","):
        if not entry.strip():
            continue
        name, _, cost = entry.partition("=")
        try:
            rates[name.strip()] = Decimal(cost.strip())
        except InvalidOperation:
            raise ValueError(f"Invalid shipping rate for '{name.strip()}': {cost!r}") from None
    return rates


def load_settings() -> CheckoutSettings:
    """Build settings from environment variables."""
    env = (os.getenv("CHECKOUT_ENV") or os.getenv("ENVIRONMENT") or "development").lower()
    raw_rates = os.getenv("CHECKOUT_SHIPPING_RATES")

    return CheckoutSettings(
        environment=env,
        database_uri=os.getenv("DATABASE_URL", "sqlite:///checkout.db"),
        tax_rate=Decimal(os.getenv("CHECKOUT_TAX_RATE", "0.08")),
        shipping_rates=_parse_shipping_rates(raw_rates) if raw_rates else dict(DEFAULT_SHIPPING_RATES),
        delivery_lead_time=timedelta(days=int(os.getenv("CHECKOUT_DELIVERY_DAYS", "7"))),
    )


_current_settings: CheckoutSettings | None = None


def get_settings() -> CheckoutSettings:
    """Return the active settings, loading them from the environment on first use."""
    global _current_settings
    if _current_settings is None:
        _current_settings = load_settings()
    return _current_settings


def set_settings(settings: CheckoutSettings) -> None:
    """Override the active settings (useful for tests)."""
    global _current_settings
    _current_settings = settings


def reset_settings() -> None:
    """Drop cached settings so the next access re-reads the environment."""
    global _current_settings
    _current_settings = None
