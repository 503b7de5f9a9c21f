"""Tests for the vehicle return request workflow."""

from uuid import uuid4

from app.models import AdminNotification, Booking, BookingHistory, Notification, Vehicle
from tests.factories import fetch, fetch_all, make_user, seed_fleet

URL = "/api/v1/bookings/request-return"


def _body(fleet, actor, actor_type, action="request", reason=None):
    body = {
        "bookingId": str(fleet.booking.id),
        "requestedBy": str(actor.id),
        "requestedByType": actor_type,
        "action": action,
    }
    if reason is not None:
        body["reason"] = reason
    return body


async def _request_as_driver(client, fleet, reason="Leaving the trade"):
    response = await client.post(URL, json=_body(fleet, fleet.driver, "driver", reason=reason))
    assert response.status_code == 200
    return response


async def test_driver_requests_return(client, session_maker, fleet):
    response = await _request_as_driver(client, fleet)

    assert response.json() == {
        "success": True,
        "message": "Return requested successfully",
        "status": "active",
        "return_status": {"requested": True, "approved": False},
    }

    booking = await fetch(session_maker, Booking, fleet.booking.id)
    assert booking.return_requested is True
    assert booking.return_requested_by == fleet.driver.id
    assert booking.return_requested_by_type == "driver"
    assert booking.return_reason == "Leaving the trade"
    assert booking.return_requested_at is not None

    history = await fetch_all(session_maker, BookingHistory, BookingHistory.booking_id == fleet.booking.id)
    assert [(h.action, h.description) for h in history] == [
        ("return_requested", "Return requested by Dan Driver: Leaving the trade")
    ]


async def test_driver_request_notifies_partner_and_admins(client, session_maker, fleet):
    await _request_as_driver(client, fleet)

    partner_notes = await fetch_all(session_maker, Notification, Notification.recipient_id == fleet.partner.id)
    assert [(n.type, n.priority, n.recipient_type) for n in partner_notes] == [("return_requested", "high", "partner")]
    assert partner_notes[0].message == "Dan Driver has requested to return the vehicle. Reason: Leaving the trade"

    admin_notes = await fetch_all(session_maker, Notification, Notification.recipient_id.is_(None))
    assert [(n.type, n.priority) for n in admin_notes] == [("return_requested_admin", "medium")]

    tasks = await fetch_all(session_maker, AdminNotification, AdminNotification.task_id == fleet.booking.id)
    assert len(tasks) == 1
    task = tasks[0]
    assert (task.type, task.priority, task.requires_action) == ("warning", "high", True)
    assert task.target_roles == ["admin", "super_admin", "bookings", "operations", "support"]
    assert "Partner must respond within 24 hours" in task.message
    assert task.data["requires_partner_response"] is True


async def test_partner_request_notifies_driver(client, session_maker, fleet):
    response = await client.post(URL, json=_body(fleet, fleet.partner, "partner"))

    assert response.status_code == 200
    booking = await fetch(session_maker, Booking, fleet.booking.id)
    assert booking.return_reason == "No reason provided"
    driver_notes = await fetch_all(session_maker, Notification, Notification.recipient_id == fleet.driver.id)
    assert [n.type for n in driver_notes] == ["return_requested"]
    tasks = await fetch_all(session_maker, AdminNotification)
    assert "Driver will be notified" in tasks[0].message


async def test_partner_approves_return(client, session_maker, fleet):
    await _request_as_driver(client, fleet)

    response = await client.post(URL, json=_body(fleet, fleet.partner, "partner", action="approve"))

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "Return approved successfully",
        "status": "completed",
        "return_status": {"requested": True, "approved": True},
    }

    booking = await fetch(session_maker, Booking, fleet.booking.id)
    assert booking.status == "completed"
    assert booking.completed_at is not None
    assert booking.return_approved is True
    assert booking.return_approved_by == fleet.partner.id
    assert booking.return_approved_by_type == "partner"

    vehicle = await fetch(session_maker, Vehicle, fleet.old_vehicle.id)
    assert vehicle.status == "available"
    assert vehicle.current_booking_id is None

    driver_notes = await fetch_all(session_maker, Notification, Notification.recipient_id == fleet.driver.id)
    assert [(n.type, n.priority) for n in driver_notes] == [("return_approved", "high")]
    admin_types = {n.type for n in await fetch_all(session_maker, Notification, Notification.recipient_id.is_(None))}
    assert "return_approved_admin" in admin_types

    history = await fetch_all(session_maker, BookingHistory, BookingHistory.action == "return_approved")
    assert history[0].description == "Return approved by Acme Fleet. Booking completed."
    assert history[0].details["original_return_reason"] == "Leaving the trade"


async def test_admin_approval_notifies_driver_and_partner(client, session_maker, fleet):
    async with session_maker() as session:
        admin = make_user("admin", "ops@example.com", full_name="Olive Ops")
        session.add(admin)
        await session.commit()

    await _request_as_driver(client, fleet)
    response = await client.post(URL, json=_body(fleet, admin, "admin", action="approve"))

    assert response.status_code == 200
    partner_notes = await fetch_all(session_maker, Notification, Notification.type == "return_approved_partner")
    assert [(n.recipient_id, n.title) for n in partner_notes] == [(fleet.partner.id, "Return Approved by Admin")]
    driver_notes = await fetch_all(session_maker, Notification, Notification.type == "return_approved")
    assert len(driver_notes) == 1
    assert await fetch_all(session_maker, Notification, Notification.type == "return_approved_admin") == []


async def test_approve_without_request_leaves_booking_unchanged(client, session_maker, fleet):
    response = await client.post(URL, json=_body(fleet, fleet.partner, "partner", action="approve"))

    assert response.status_code == 400
    assert response.json() == {"error": "No return request to approve"}
    booking = await fetch(session_maker, Booking, fleet.booking.id)
    assert booking.status == "active"
    assert booking.return_approved is False
    assert booking.version == fleet.booking.version
    vehicle = await fetch(session_maker, Vehicle, fleet.old_vehicle.id)
    assert vehicle.status == "booked"


async def test_approving_twice_is_rejected(client, session_maker, fleet):
    await _request_as_driver(client, fleet)
    first = await client.post(URL, json=_body(fleet, fleet.partner, "partner", action="approve"))
    assert first.status_code == 200

    second = await client.post(URL, json=_body(fleet, fleet.partner, "partner", action="approve"))

    assert second.status_code == 400
    assert second.json() == {"error": "Return already approved"}
    assert len(await fetch_all(session_maker, BookingHistory, BookingHistory.action == "return_approved")) == 1


async def test_requesting_twice_is_rejected(client, fleet):
    await _request_as_driver(client, fleet)

    response = await client.post(URL, json=_body(fleet, fleet.driver, "driver"))

    assert response.status_code == 400
    assert response.json() == {"error": "Return already requested"}


async def test_partner_rejects_return(client, session_maker, fleet):
    await _request_as_driver(client, fleet)

    response = await client.post(
        URL, json=_body(fleet, fleet.partner, "partner", action="reject", reason="Notice period not served")
    )

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "message": "Return rejected successfully",
        "status": "active",
        "return_status": {"requested": False, "approved": False},
    }

    booking = await fetch(session_maker, Booking, fleet.booking.id)
    assert booking.return_requested is False
    assert booking.return_rejected_by == fleet.partner.id
    assert booking.return_rejection_reason == "Notice period not served"

    rejected = await fetch_all(session_maker, Notification, Notification.type == "return_rejected")
    assert [(n.recipient_id, n.recipient_type) for n in rejected] == [(fleet.driver.id, "driver")]
    assert rejected[0].message == "Your return request has been rejected by Acme Fleet. Reason: Notice period not served"
    tasks = await fetch_all(session_maker, AdminNotification, AdminNotification.task_type == "return_rejected")
    assert tasks[0].type == "error"
    assert tasks[0].target_roles == ["admin", "super_admin", "bookings", "support"]


async def test_return_can_be_requested_again_after_rejection(client, fleet):
    await _request_as_driver(client, fleet)
    rejected = await client.post(URL, json=_body(fleet, fleet.partner, "partner", action="reject"))
    assert rejected.status_code == 200

    response = await client.post(URL, json=_body(fleet, fleet.driver, "driver", reason="Second attempt"))

    assert response.status_code == 200
    assert response.json()["return_status"]["requested"] is True


async def test_reject_without_request(client, fleet):
    response = await client.post(URL, json=_body(fleet, fleet.partner, "partner", action="reject"))

    assert response.status_code == 400
    assert response.json() == {"error": "No return request to reject"}


async def test_other_driver_cannot_request_return(client, session_maker, fleet):
    body = _body(fleet, fleet.driver, "driver")
    body["requestedBy"] = str(uuid4())

    response = await client.post(URL, json=body)

    assert response.status_code == 403
    assert response.json() == {"error": "Unauthorized - not your booking"}
    booking = await fetch(session_maker, Booking, fleet.booking.id)
    assert booking.return_requested is False


async def test_authorization_is_checked_before_state(client, session_maker):
    async with session_maker() as session:
        fleet = await seed_fleet(session, status="completed")
    body = _body(fleet, fleet.partner, "partner")
    body["requestedBy"] = str(uuid4())

    response = await client.post(URL, json=body)

    assert response.status_code == 403


async def test_finished_booking_cannot_request_return(client, session_maker):
    async with session_maker() as session:
        fleet = await seed_fleet(session, status="cancelled")

    response = await client.post(URL, json=_body(fleet, fleet.driver, "driver"))

    assert response.status_code == 400
    assert response.json() == {"error": "Cannot request return. Booking status: cancelled"}


async def test_unknown_booking(client, fleet):
    body = _body(fleet, fleet.driver, "driver")
    body["bookingId"] = str(uuid4())

    response = await client.post(URL, json=body)

    assert response.status_code == 404
    assert response.json() == {"error": "Booking not found"}


async def test_invalid_requester_type(client, fleet):
    response = await client.post(URL, json=_body(fleet, fleet.driver, "mechanic"))

    assert response.status_code == 400
    assert "requestedByType" in response.json()["error"]


async def test_invalid_action(client, fleet):
    response = await client.post(URL, json=_body(fleet, fleet.driver, "driver", action="cancel"))

    assert response.status_code == 400
    assert "action" in response.json()["error"]
