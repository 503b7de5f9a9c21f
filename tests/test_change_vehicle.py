"""Tests for reassigning a booking's vehicle."""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import ConflictError
from app.gateways.base import PaymentResult
from app.models import AdminNotification, Booking, BookingHistory, Notification, Payment, Transaction, Vehicle
from app.services.gateway_service import gateway_service
from app.services.notification_service import notification_service
from app.services.vehicle_assignment_service import vehicle_assignment_service
from tests.factories import fetch, fetch_all, seed_fleet

URL = "/api/v1/bookings/change-vehicle"
THREE_DAYS_IN = datetime(2024, 1, 4, tzinfo=UTC)


def _body(fleet, **overrides):
    body = {
        "bookingId": str(fleet.booking.id),
        "partnerId": str(fleet.partner.id),
        "newVehicleId": str(fleet.new_vehicle.id),
        "reason": "Scheduled service on current vehicle",
        "adjustmentType": "immediate",
    }
    body.update(overrides)
    return body


async def test_change_vehicle_updates_booking_and_fleet(client, session_maker, fleet):
    response = await client.post(URL, json=_body(fleet))

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["message"] == "Vehicle assigned successfully"
    assert data["new_vehicle"] == {
        "id": str(fleet.new_vehicle.id),
        "make": "Kia",
        "model": "Niro",
        "registration_number": "XY34 ZZZ",
    }
    assert data["adjustment_amount"] == 70.0
    assert data["adjustment_reason"] == "Immediate rate adjustment: +£70/week"
    assert data["payment_processed"] is True
    assert data["stripe_payment_id"].startswith("inv_")
    assert data["stripe_refund_id"] is None

    booking = await fetch(session_maker, Booking, fleet.booking.id)
    assert booking.current_vehicle_id == fleet.new_vehicle.id
    assert booking.car_id == fleet.new_vehicle.id
    assert booking.car_name == "Kia Niro"
    assert booking.car_plate == "XY34 ZZZ"
    assert booking.car["registration_number"] == "XY34 ZZZ"
    assert booking.car["price_per_week"] == 350.0
    # Weekly rate stays as agreed; the adjustment covers the difference
    assert booking.weekly_rate == Decimal("280.00")
    assert len(booking.vehicle_history) == 1
    entry = booking.vehicle_history[0]
    assert entry["vehicle_id"] == str(fleet.new_vehicle.id)
    assert entry["previous_vehicle_id"] == str(fleet.old_vehicle.id)
    assert entry["assigned_by_type"] == "partner"
    assert entry["assigned_by_name"] == "Acme Fleet"

    old_vehicle = await fetch(session_maker, Vehicle, fleet.old_vehicle.id)
    new_vehicle = await fetch(session_maker, Vehicle, fleet.new_vehicle.id)
    assert old_vehicle.status == "available"
    assert old_vehicle.current_booking_id is None
    assert new_vehicle.status == "booked"
    assert new_vehicle.current_booking_id == fleet.booking.id


async def test_change_vehicle_records_mirrored_ledger_entries(client, session_maker, fleet):
    response = await client.post(URL, json=_body(fleet))
    assert response.status_code == 200

    payments = await fetch_all(session_maker, Payment, Payment.booking_id == fleet.booking.id)
    assert len(payments) == 1
    payment = payments[0]
    assert payment.type == "vehicle_change_adjustment"
    assert payment.amount == Decimal("70.00")
    assert payment.gateway == "manual"
    assert payment.stripe_invoice_id == response.json()["stripe_payment_id"]
    assert payment.payment_metadata["old_weekly_rate"] == 280.0
    assert payment.payment_metadata["new_weekly_rate"] == 350.0
    assert payment.payment_metadata["old_vehicle_id"] == str(fleet.old_vehicle.id)
    assert payment.payment_metadata["new_vehicle_id"] == str(fleet.new_vehicle.id)

    transactions = await fetch_all(session_maker, Transaction, Transaction.booking_id == fleet.booking.id)
    assert sorted(t.type for t in transactions) == ["expense", "income"]
    income = next(t for t in transactions if t.type == "income")
    expense = next(t for t in transactions if t.type == "expense")
    assert income.amount == expense.amount == Decimal("70.00")
    assert income.net_amount == expense.net_amount == Decimal("70.00")
    assert income.description == expense.description
    assert income.partner_details == expense.partner_details
    assert income.partner_details["company_name"] == "Acme Fleet"
    assert income.driver_details["email"] == "dan.driver@example.com"
    assert income.vehicle_details == {"registration": "XY34 ZZZ", "make": "Kia", "model": "Niro"}


async def test_change_vehicle_writes_history_and_notifications(client, session_maker, fleet):
    response = await client.post(URL, json=_body(fleet))
    assert response.status_code == 200

    history = await fetch_all(session_maker, BookingHistory, BookingHistory.booking_id == fleet.booking.id)
    assert len(history) == 1
    assert history[0].action == "vehicle_assigned"
    assert history[0].performed_by == fleet.partner.id
    assert history[0].description == (
        "Vehicle changed from Toyota Prius to Kia Niro by Acme Fleet. "
        "Reason: Scheduled service on current vehicle (+£70)"
    )
    assert history[0].details["adjustment_amount"] == 70.0

    driver_notes = await fetch_all(session_maker, Notification, Notification.recipient_id == fleet.driver.id)
    assert [(n.type, n.priority, n.title) for n in driver_notes] == [("vehicle_assigned", "high", "Vehicle Changed")]

    admin_notes = await fetch_all(session_maker, Notification, Notification.recipient_id.is_(None))
    assert [(n.type, n.priority) for n in admin_notes] == [("vehicle_assigned_admin", "medium")]

    tasks = await fetch_all(session_maker, AdminNotification, AdminNotification.task_id == fleet.booking.id)
    assert len(tasks) == 1
    assert tasks[0].task_type == "vehicle_changed"
    assert tasks[0].requires_action is True


async def test_prorated_upgrade_three_days_into_paid_week(db):
    fleet = await seed_fleet(db, paid=["280.00"])

    result = await vehicle_assignment_service.change_vehicle(
        db=db,
        booking_id=fleet.booking.id,
        partner_id=fleet.partner.id,
        new_vehicle_id=fleet.new_vehicle.id,
        reason="Upgrade",
        adjustment_type="prorated",
        now=THREE_DAYS_IN,
    )
    await db.commit()

    assert result.adjustment.amount == Decimal("40.00")
    assert result.adjustment.remaining_days == 4
    assert result.payment.payment_processed is True


async def test_downgrade_refunds_the_difference(client, session_maker):
    async with session_maker() as session:
        fleet = await seed_fleet(session, old_rate="350.00", new_rate="280.00", weekly_rate="350.00")

    response = await client.post(URL, json=_body(fleet))

    assert response.status_code == 200
    data = response.json()
    assert data["adjustment_amount"] == -70.0
    assert data["stripe_payment_id"] is None
    assert data["stripe_refund_id"].startswith("ref_")

    payments = await fetch_all(session_maker, Payment, Payment.booking_id == fleet.booking.id)
    assert [(p.type, p.amount) for p in payments] == [("vehicle_change_refund", Decimal("-70.00"))]
    transactions = await fetch_all(session_maker, Transaction, Transaction.booking_id == fleet.booking.id)
    assert {t.amount for t in transactions} == {Decimal("-70.00")}


async def test_rate_falls_back_to_current_vehicle_price(client, session_maker):
    async with session_maker() as session:
        fleet = await seed_fleet(session, old_rate="300.00", weekly_rate=None)

    response = await client.post(URL, json=_body(fleet))

    assert response.status_code == 200
    assert response.json()["adjustment_amount"] == 50.0


async def test_next_cycle_takes_no_payment(client, session_maker, fleet):
    response = await client.post(URL, json=_body(fleet, adjustmentType="next_cycle"))

    assert response.status_code == 200
    data = response.json()
    assert data["adjustment_amount"] == 0.0
    assert data["payment_processed"] is False
    assert await fetch_all(session_maker, Payment, Payment.booking_id == fleet.booking.id) == []


async def test_no_active_subscription_skips_billing(client, session_maker):
    async with session_maker() as session:
        fleet = await seed_fleet(session, subscription=False)

    response = await client.post(URL, json=_body(fleet))

    assert response.status_code == 200
    assert response.json()["payment_processed"] is False
    assert await fetch_all(session_maker, Payment, Payment.booking_id == fleet.booking.id) == []
    booking = await fetch(session_maker, Booking, fleet.booking.id)
    assert booking.current_vehicle_id == fleet.new_vehicle.id


async def test_other_partner_cannot_change_vehicle(client, session_maker, fleet):
    response = await client.post(URL, json=_body(fleet, partnerId=str(uuid4())))

    assert response.status_code == 403
    assert response.json() == {"error": "Unauthorized: You can only modify your own bookings"}

    booking = await fetch(session_maker, Booking, fleet.booking.id)
    assert booking.current_vehicle_id == fleet.old_vehicle.id
    assert booking.vehicle_history == []
    new_vehicle = await fetch(session_maker, Vehicle, fleet.new_vehicle.id)
    assert new_vehicle.status == "available"
    assert await fetch_all(session_maker, Payment) == []
    assert await fetch_all(session_maker, BookingHistory) == []
    assert await fetch_all(session_maker, Notification) == []


async def test_unknown_booking(client, fleet):
    response = await client.post(URL, json=_body(fleet, bookingId=str(uuid4())))

    assert response.status_code == 404
    assert response.json() == {"error": "Booking not found"}


async def test_unknown_new_vehicle(client, fleet):
    response = await client.post(URL, json=_body(fleet, newVehicleId=str(uuid4())))

    assert response.status_code == 404
    assert response.json() == {"error": "New vehicle not found"}


async def test_closed_booking_cannot_change_vehicle(client, session_maker):
    async with session_maker() as session:
        fleet = await seed_fleet(session, status="completed")

    response = await client.post(URL, json=_body(fleet))

    assert response.status_code == 400
    assert response.json() == {"error": "Cannot change vehicle for booking with status: completed"}


async def test_unavailable_vehicle_is_rejected(client, session_maker, fleet):
    async with session_maker() as session:
        vehicle = await session.get(Vehicle, fleet.new_vehicle.id)
        vehicle.status = "maintenance"
        await session.commit()

    response = await client.post(URL, json=_body(fleet))

    assert response.status_code == 400
    assert response.json() == {"error": "Selected vehicle is not available"}
    booking = await fetch(session_maker, Booking, fleet.booking.id)
    assert booking.current_vehicle_id == fleet.old_vehicle.id


async def test_reassigning_the_booked_vehicle_to_itself_is_rejected(client, session_maker, fleet):
    response = await client.post(URL, json=_body(fleet, newVehicleId=str(fleet.old_vehicle.id)))

    assert response.status_code == 400
    old_vehicle = await fetch(session_maker, Vehicle, fleet.old_vehicle.id)
    assert old_vehicle.status == "booked"
    assert old_vehicle.current_booking_id == fleet.booking.id


async def test_reassigning_to_the_same_vehicle_never_releases_it(client, session_maker, fleet):
    # Vehicle row drifted to available while still on the booking
    async with session_maker() as session:
        vehicle = await session.get(Vehicle, fleet.old_vehicle.id)
        vehicle.status = "available"
        await session.commit()

    response = await client.post(URL, json=_body(fleet, newVehicleId=str(fleet.old_vehicle.id)))

    assert response.status_code == 200
    assert response.json()["adjustment_amount"] == 0.0
    vehicle = await fetch(session_maker, Vehicle, fleet.old_vehicle.id)
    assert vehicle.status == "booked"
    assert vehicle.current_booking_id == fleet.booking.id


async def test_gateway_failure_aborts_without_writes(client, session_maker, fleet, monkeypatch):
    async def declined(**kwargs):
        return PaymentResult(success=False, error_message="card_declined")

    monkeypatch.setattr(gateway_service, "create_payment", declined)

    response = await client.post(URL, json=_body(fleet))

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to process payment adjustment"}
    booking = await fetch(session_maker, Booking, fleet.booking.id)
    assert booking.current_vehicle_id == fleet.old_vehicle.id
    new_vehicle = await fetch(session_maker, Vehicle, fleet.new_vehicle.id)
    assert new_vehicle.status == "available"
    assert await fetch_all(session_maker, Payment) == []
    assert await fetch_all(session_maker, Transaction) == []


async def test_notification_failure_does_not_fail_the_change(client, session_maker, fleet, monkeypatch):
    async def broken(**kwargs):
        raise RuntimeError("notifications table unavailable")

    monkeypatch.setattr(notification_service, "create_notification", broken)

    response = await client.post(URL, json=_body(fleet))

    assert response.status_code == 200
    booking = await fetch(session_maker, Booking, fleet.booking.id)
    assert booking.current_vehicle_id == fleet.new_vehicle.id
    assert len(await fetch_all(session_maker, Payment)) == 1
    assert len(await fetch_all(session_maker, BookingHistory)) == 1
    assert await fetch_all(session_maker, Notification) == []
    assert len(await fetch_all(session_maker, AdminNotification)) == 1


async def test_missing_fields_are_a_bad_request(client, fleet):
    body = _body(fleet)
    del body["reason"]

    response = await client.post(URL, json=body)

    assert response.status_code == 400
    assert response.json() == {"error": "Missing required fields: reason"}


async def test_unknown_adjustment_type_is_a_bad_request(client, fleet):
    response = await client.post(URL, json=_body(fleet, adjustmentType="weekly"))

    assert response.status_code == 400
    assert "adjustmentType" in response.json()["error"]


def _charge_spy(monkeypatch):
    charges = []

    async def charge(**kwargs):
        charges.append(kwargs["amount"])
        return PaymentResult(success=True, transaction_id="inv_spy")

    monkeypatch.setattr(gateway_service, "create_payment", charge)
    return charges


async def _assert_nothing_changed(session_maker, fleet):
    booking = await fetch(session_maker, Booking, fleet.booking.id)
    assert booking.current_vehicle_id == fleet.old_vehicle.id
    assert booking.vehicle_history == []
    new_vehicle = await fetch(session_maker, Vehicle, fleet.new_vehicle.id)
    assert new_vehicle.status == "available"
    assert await fetch_all(session_maker, Payment) == []
    assert await fetch_all(session_maker, Transaction) == []


async def test_concurrent_update_is_a_conflict_and_takes_no_payment(client, session_maker, fleet, monkeypatch):
    charges = _charge_spy(monkeypatch)

    async def stale_flush(self, objects=None):
        raise StaleDataError("UPDATE statement on table 'bookings' expected to update 1 row(s); 0 were matched.")

    monkeypatch.setattr(AsyncSession, "flush", stale_flush)

    response = await client.post(URL, json=_body(fleet))

    assert response.status_code == 409
    assert response.json() == {"error": "The record was modified by another request. Please retry."}
    assert charges == []
    await _assert_nothing_changed(session_maker, fleet)


async def test_booking_write_failure_takes_no_payment(client, session_maker, fleet, monkeypatch):
    charges = _charge_spy(monkeypatch)

    async def failing_flush(self, objects=None):
        raise OperationalError("UPDATE bookings", {}, Exception("database is locked"))

    monkeypatch.setattr(AsyncSession, "flush", failing_flush)

    response = await client.post(URL, json=_body(fleet))

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to update booking"}
    assert charges == []
    await _assert_nothing_changed(session_maker, fleet)


async def test_booking_modified_since_read_raises_conflict(db, monkeypatch):
    charges = _charge_spy(monkeypatch)
    fleet = await seed_fleet(db)

    # Another writer bumps the stored version; this session still holds the old one
    bookings = Booking.__table__
    await db.execute(
        update(bookings)
        .where(bookings.c.id == fleet.booking.id)
        .values(version=bookings.c.version + 1)
    )

    with pytest.raises(ConflictError):
        await vehicle_assignment_service.change_vehicle(
            db=db,
            booking_id=fleet.booking.id,
            partner_id=fleet.partner.id,
            new_vehicle_id=fleet.new_vehicle.id,
            reason="Upgrade",
            adjustment_type="immediate",
            now=THREE_DAYS_IN,
        )

    assert charges == []
