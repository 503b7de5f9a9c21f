"""Manual payment gateway adapter.

Records adjustments without contacting a processor; partners settle them
with the driver directly and admins reconcile afterwards.
"""

import time

from app.gateways.base import (
    GatewayType,
    PaymentGateway,
    PaymentResult,
    RefundResult,
)


def _timestamp_ms() -> int:
    return time.time_ns() // 1_000_000


class ManualGateway(PaymentGateway):
    """Manual gateway. All operations succeed and are settled offline."""

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.MANUAL

    async def create_payment(
        self,
        amount: int,
        currency: str,
        reference_id: str,
        description: str,
        customer_id: str | None = None,
        metadata: dict | None = None,
    ) -> PaymentResult:
        """Record a manual charge (always succeeds)."""
        return PaymentResult(
            success=True,
            transaction_id=f"inv_{_timestamp_ms()}",
            raw_response={
                "type": "manual_adjustment",
                "status": "pending_settlement",
                "reference_id": reference_id,
                "amount": amount,
                "currency": currency,
            },
        )

    async def process_refund(
        self,
        transaction_id: str | None,
        amount: int,
        reason: str,
    ) -> RefundResult:
        """Record a manual refund (always succeeds)."""
        return RefundResult(
            success=True,
            refund_id=f"ref_{_timestamp_ms()}",
            raw_response={
                "type": "manual_refund",
                "status": "pending_settlement",
                "amount": amount,
                "reason": reason,
            },
        )
