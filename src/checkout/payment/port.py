"""Payment gateway port (abstract interface).

The checkout core never charges cards itself. The payment route checks that
the order is still payable, calls the gateway and hands the outcome to
``record_payment_outcome``; swapping the fake adapter for a real one changes
nothing in the core.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class ChargeResult:
    """Result of a payment charge attempt."""

    success: bool
    reference: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def charge(
        self,
        amount: Decimal,
        currency: str,
        method: str,
        details: dict,
        idempotency_key: str,
    ) -> ChargeResult:
        """Charge ``amount`` with the given payment method.

        A repeated ``idempotency_key`` returns the result of the first charge
        made with that key instead of charging again.
        """
        ...
