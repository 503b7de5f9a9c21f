"""Tests for gateway adapters and the gateway service."""

from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe

from app.config import settings
from app.gateways.manual import ManualGateway
from app.gateways.stripe_gateway import StripeGateway
from app.services.gateway_service import GatewayService, to_pence


def test_to_pence_rounds_half_up():
    assert to_pence(Decimal("40.00")) == 4000
    assert to_pence(Decimal("5.715")) == 572
    assert to_pence(Decimal("0.01")) == 1


async def test_manual_gateway_always_succeeds():
    gateway = ManualGateway()

    charge = await gateway.create_payment(4000, "gbp", "booking-1", "Vehicle change adjustment")
    refund = await gateway.process_refund(None, 4000, "Downgrade")

    assert charge.success is True
    assert charge.transaction_id.startswith("inv_")
    assert refund.success is True
    assert refund.refund_id.startswith("ref_")


async def test_refund_amount_is_sent_positive(monkeypatch):
    sent = {}

    async def capture(transaction_id, amount, reason):
        sent.update(transaction_id=transaction_id, amount=amount)
        return SimpleNamespace(success=True)

    service = GatewayService()
    monkeypatch.setattr(service.gateway(), "process_refund", capture)

    await service.process_refund(Decimal("-40.00"), "booking-1", "pi_123", "Downgrade")

    assert sent == {"transaction_id": "pi_123", "amount": 4000}


async def test_live_stripe_key_is_refused_outside_production(monkeypatch):
    monkeypatch.setattr(settings, "payment_gateway", "stripe")
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_live_abc")
    monkeypatch.setattr(settings, "environment", "development")

    with pytest.raises(RuntimeError):
        await GatewayService().create_payment(Decimal("40.00"), "booking-1", "Adjustment", "cus_1")


async def test_stripe_charge_invoices_and_pays(monkeypatch):
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_abc")
    calls = []

    def create_item(**kwargs):
        calls.append(("item", kwargs))
        return SimpleNamespace(id="ii_1")

    def create_invoice(**kwargs):
        calls.append(("invoice", kwargs))
        return SimpleNamespace(id="in_1", status="draft")

    def pay(invoice_id):
        calls.append(("pay", invoice_id))
        return SimpleNamespace(id=invoice_id, status="paid")

    monkeypatch.setattr(stripe.InvoiceItem, "create", create_item)
    monkeypatch.setattr(stripe.Invoice, "create", create_invoice)
    monkeypatch.setattr(stripe.Invoice, "pay", pay)

    result = await StripeGateway().create_payment(
        amount=4000,
        currency="GBP",
        reference_id="booking-1",
        description="Vehicle change adjustment",
        customer_id="cus_1",
    )

    assert result.success is True
    assert result.transaction_id == "in_1"
    assert [name for name, _ in calls] == ["item", "invoice", "pay"]
    assert calls[0][1]["amount"] == 4000
    assert calls[0][1]["currency"] == "gbp"
    assert calls[1][1]["pending_invoice_items_behavior"] == "include"


async def test_stripe_charge_requires_customer(monkeypatch):
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_abc")

    result = await StripeGateway().create_payment(4000, "gbp", "booking-1", "Adjustment")

    assert result.success is False
    assert result.error_message == "Stripe customer required"


async def test_stripe_error_is_reported_not_raised(monkeypatch):
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_abc")

    def declined(**kwargs):
        raise stripe.StripeError("Your card was declined.")

    monkeypatch.setattr(stripe.Refund, "create", declined)

    result = await StripeGateway().process_refund("pi_1", 4000, "Downgrade")

    assert result.success is False
    assert "declined" in result.error_message
