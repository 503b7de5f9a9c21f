"""Stripe payment gateway adapter."""

import stripe

from app.config import settings
from app.gateways.base import (
    GatewayType,
    PaymentGateway,
    PaymentResult,
    RefundResult,
)


class StripeGateway(PaymentGateway):
    """Stripe implementation: one-off invoices for charges, refunds against the latest charge."""

    def __init__(self):
        self.secret_key = settings.stripe_secret_key

    @property
    def gateway_type(self) -> GatewayType:
        return GatewayType.STRIPE

    async def create_payment(
        self,
        amount: int,
        currency: str,
        reference_id: str,
        description: str,
        customer_id: str | None = None,
        metadata: dict | None = None,
    ) -> PaymentResult:
        """Invoice the subscription's customer for the adjustment and pay it."""
        if not self.secret_key:
            return PaymentResult(
                success=False,
                error_message="Stripe not configured",
            )
        if not customer_id:
            return PaymentResult(
                success=False,
                error_message="Stripe customer required",
            )

        try:
            stripe.api_key = self.secret_key
            invoice_metadata = {"reference_id": reference_id, **(metadata or {})}

            stripe.InvoiceItem.create(
                customer=customer_id,
                amount=amount,
                currency=currency.lower(),
                description=description,
                metadata=invoice_metadata,
            )
            invoice = stripe.Invoice.create(
                customer=customer_id,
                pending_invoice_items_behavior="include",
                description=description,
                metadata=invoice_metadata,
            )
            invoice = stripe.Invoice.pay(invoice.id)

            return PaymentResult(
                success=invoice.status == "paid",
                transaction_id=invoice.id,
                error_message=None if invoice.status == "paid" else f"Invoice status: {invoice.status}",
                raw_response={"id": invoice.id, "status": invoice.status},
            )

        except stripe.StripeError as e:
            return PaymentResult(
                success=False,
                error_message=str(e),
            )

    async def process_refund(
        self,
        transaction_id: str | None,
        amount: int,
        reason: str,
    ) -> RefundResult:
        """Process Stripe refund."""
        if not self.secret_key:
            return RefundResult(
                success=False,
                error_message="Stripe not configured",
            )
        if not transaction_id:
            return RefundResult(
                success=False,
                error_message="No captured payment to refund",
            )

        try:
            stripe.api_key = self.secret_key

            refund = stripe.Refund.create(
                payment_intent=transaction_id,
                amount=amount,
                reason="requested_by_customer",
                metadata={"reason": reason[:500]},
            )

            return RefundResult(
                success=refund.status in ("succeeded", "pending"),
                refund_id=refund.id,
                raw_response={"status": refund.status, "id": refund.id},
            )

        except stripe.StripeError as e:
            return RefundResult(
                success=False,
                error_message=str(e),
            )
