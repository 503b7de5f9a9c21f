"""Payment gateway service.

Turns booking adjustments and cancellation refunds into gateway calls. Amounts
arrive as GBP ``Decimal`` and leave as integer pence. No ledger writes here.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal

from app.config import settings
from app.gateways.base import (
    GatewayType,
    PaymentGateway,
    PaymentResult,
    RefundResult,
)
from app.gateways.manual import ManualGateway
from app.gateways.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)


def to_pence(amount: Decimal) -> int:
    """GBP to integer pence, half-up."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _check_live_keys(gateway: PaymentGateway) -> None:
    """Only production may move money with live Stripe keys.

    Raises:
        RuntimeError: Live key used outside production
    """
    if gateway.gateway_type is not GatewayType.STRIPE or settings.environment == "production":
        return
    if settings.stripe_secret_key and settings.stripe_secret_key.startswith("sk_test_"):
        return
    raise RuntimeError(
        f"Refusing live Stripe call in {settings.environment} environment. "
        "Set ENVIRONMENT=production or use an sk_test_ key."
    )


class GatewayService:
    """Service for adjustment charges and refunds."""

    _adapters = {
        GatewayType.STRIPE: StripeGateway,
        GatewayType.MANUAL: ManualGateway,
    }

    def __init__(self):
        self._gateways: dict[GatewayType, PaymentGateway] = {}

    def gateway(self) -> PaymentGateway:
        """Adapter for the configured ``PAYMENT_GATEWAY``."""
        gateway_type = GatewayType(settings.payment_gateway)
        if gateway_type not in self._gateways:
            self._gateways[gateway_type] = self._adapters[gateway_type]()
        return self._gateways[gateway_type]

    def gateway_name(self) -> str:
        return self.gateway().gateway_type.value

    async def create_payment(
        self,
        amount: Decimal,
        booking_id: str,
        description: str,
        customer_id: str | None,
        metadata: dict | None = None,
    ) -> PaymentResult:
        """Charge the driver's gateway customer."""
        gateway = self.gateway()
        _check_live_keys(gateway)
        logger.info(f"Charging £{amount} to booking {booking_id} via {gateway.gateway_type.value}")
        return await gateway.create_payment(
            amount=to_pence(amount),
            currency=settings.currency,
            reference_id=booking_id,
            description=description,
            customer_id=customer_id,
            metadata={"booking_id": booking_id, **(metadata or {})},
        )

    async def process_refund(
        self,
        amount: Decimal,
        booking_id: str,
        charge_id: str | None,
        reason: str,
    ) -> RefundResult:
        """Refund against the booking's latest charge; the sign of ``amount`` is ignored."""
        gateway = self.gateway()
        _check_live_keys(gateway)
        logger.info(f"Refunding £{abs(amount)} on booking {booking_id} via {gateway.gateway_type.value}")
        return await gateway.process_refund(
            transaction_id=charge_id,
            amount=to_pence(abs(amount)),
            reason=reason,
        )


# Singleton instance
gateway_service = GatewayService()
