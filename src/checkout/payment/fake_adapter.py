"""Configurable fake payment gateway for development and testing.

Simulates a gateway without external calls; it can be told to succeed or
fail so both payment outcomes can be exercised end to end.
"""

from decimal import Decimal
from uuid import uuid4

from checkout.payment.port import ChargeResult, PaymentGateway


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.calls: list[dict] = []
        self._results: dict[str, ChargeResult] = {}

    def configure(self, should_succeed: bool, failure_reason: str = "Card declined") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def charge(
        self,
        amount: Decimal,
        currency: str,
        method: str,
        details: dict,
        idempotency_key: str,
    ) -> ChargeResult:
        self.calls.append(
            {
                "amount": amount,
                "currency": currency,
                "method": method,
                "details": details,
                "idempotency_key": idempotency_key,
            }
        )
        if idempotency_key in self._results:
            return self._results[idempotency_key]

        if self.should_succeed:
            result = ChargeResult(success=True, reference=f"fake_txn_{uuid4().hex[:12]}")
        else:
            result = ChargeResult(success=False, failure_reason=self.failure_reason)
        self._results[idempotency_key] = result
        return result

