"""HTTP API tests with dependency overrides and an in-memory repository."""

import json
from uuid import uuid4

import httpx
import pytest
from fastapi import Header

from staybook.core.security import AuthenticatedUser, get_current_user
from staybook.dependencies import get_clock, get_ical_transport, get_notifier, get_repository
from staybook.main import app
from staybook.services.payments import get_payment_gateway

from conftest import GUEST_ID, HOST_ID, OTHER_GUEST_ID, fixed_clock

API = "/v1"


async def header_user(x_user: str = Header(...)) -> AuthenticatedUser:
    return AuthenticatedUser(uid=x_user, email=f"{x_user}@example.com", email_verified=True)


def as_user(uid):
    return {"X-User": uid}


@pytest.fixture
async def client(repo, gateway, notifier):
    app.dependency_overrides[get_repository] = lambda: repo
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_clock] = lambda: fixed_clock
    app.dependency_overrides[get_ical_transport] = lambda: httpx.MockTransport(
        lambda request: httpx.Response(404)
    )
    app.dependency_overrides[get_current_user] = header_user

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()


async def request_stay(client, listing, check_in="2025-06-10", check_out="2025-06-13", guest=GUEST_ID, guests=2):
    return await client.post(
        f"{API}/bookings",
        json={
            "listing_id": str(listing.id),
            "check_in": check_in,
            "check_out": check_out,
            "guests": guests,
        },
        headers=as_user(guest),
    )


def webhook_payload(event_type, booking_id):
    return json.dumps(
        {
            "id": "evt_1",
            "type": event_type,
            "data": {"object": {"id": "pi_1", "metadata": {"bookingId": booking_id}}},
        }
    )


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestBookingsApi:
    async def test_create_returns_payment_secret(self, client, listing):
        response = await request_stay(client, listing)

        assert response.status_code == 201
        body = response.json()
        assert body["booking"]["status"] == "pending"
        assert body["booking"]["total"] == 58100
        assert body["payment_intent"]["client_secret"] == "pi_1_secret"
        assert body["payment_error"] is None

    async def test_overlap_is_a_conflict(self, client, listing):
        await request_stay(client, listing)

        response = await request_stay(client, listing, "2025-06-12", "2025-06-15", guest=OTHER_GUEST_ID)

        assert response.status_code == 409
        assert response.json() == {"error": "conflict", "detail": "Dates not available"}

    async def test_listing_rules_are_validation_errors(self, client, listing):
        response = await request_stay(client, listing, guests=5)

        assert response.status_code == 400
        assert response.json() == {"error": "validation", "detail": "Maximum 4 guests allowed"}

    async def test_malformed_body(self, client, listing):
        response = await client.post(
            f"{API}/bookings",
            json={"listing_id": str(listing.id), "check_in": "not-a-date"},
            headers=as_user(GUEST_ID),
        )

        assert response.status_code == 422

    async def test_unknown_booking(self, client):
        response = await client.get(f"{API}/bookings/{uuid4()}", headers=as_user(GUEST_ID))

        assert response.status_code == 404
        assert response.json() == {"error": "not_found", "detail": "Booking not found"}

    async def test_only_parties_see_a_booking(self, client, listing):
        booking_id = (await request_stay(client, listing)).json()["booking"]["id"]

        assert (await client.get(f"{API}/bookings/{booking_id}", headers=as_user(HOST_ID))).status_code == 200
        response = await client.get(f"{API}/bookings/{booking_id}", headers=as_user(OTHER_GUEST_ID))
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    async def test_host_accepts_then_guest_cancels(self, client, listing, gateway):
        booking_id = (await request_stay(client, listing)).json()["booking"]["id"]
        await client.post(f"{API}/bookings/{booking_id}/confirm", headers=as_user(GUEST_ID))

        accepted = await client.post(f"{API}/bookings/{booking_id}/accept", headers=as_user(HOST_ID))
        assert accepted.json()["status"] == "confirmed"

        response = await client.post(
            f"{API}/bookings/{booking_id}/cancel",
            json={"reason": "Flight canceled"},
            headers=as_user(GUEST_ID),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["booking"]["status"] == "canceled"
        # Nine days out under MODERATE
        assert body["refund_amount"] == 58100
        assert gateway.refunds == [("pi_1", 58100, "Flight canceled")]

    async def test_guest_cannot_accept(self, client, listing):
        booking_id = (await request_stay(client, listing)).json()["booking"]["id"]

        response = await client.post(f"{API}/bookings/{booking_id}/accept", headers=as_user(GUEST_ID))

        assert response.status_code == 403

    async def test_decline_without_body(self, client, listing):
        booking_id = (await request_stay(client, listing)).json()["booking"]["id"]

        response = await client.post(f"{API}/bookings/{booking_id}/decline", headers=as_user(HOST_ID))

        assert response.status_code == 200
        assert response.json()["booking"]["status"] == "declined"
        assert response.json()["refund_amount"] == 0

    async def test_list_by_role(self, client, listing):
        await request_stay(client, listing)

        as_host = await client.get(f"{API}/bookings", params={"role": "host"}, headers=as_user(HOST_ID))
        as_guest = await client.get(f"{API}/bookings", headers=as_user(HOST_ID))

        assert len(as_host.json()) == 1
        assert as_guest.json() == []

    async def test_check_in_before_confirmation_conflicts(self, client, listing):
        booking_id = (await request_stay(client, listing)).json()["booking"]["id"]

        response = await client.post(f"{API}/bookings/{booking_id}/check-in", headers=as_user(HOST_ID))

        assert response.status_code == 409


class TestCalendarApi:
    async def test_block_and_read_availability(self, client, listing):
        blocked = await client.post(
            f"{API}/calendar/listings/{listing.id}/block",
            json={"start_date": "2025-06-10", "end_date": "2025-06-12"},
            headers=as_user(HOST_ID),
        )
        assert blocked.status_code == 201

        response = await client.get(
            f"{API}/calendar/listings/{listing.id}/availability",
            params={"start": "2025-06-09", "end": "2025-06-13"},
            headers=as_user(GUEST_ID),
        )

        days = response.json()
        assert [d["available"] for d in days] == [True, False, False, True]
        assert days[0]["price"] == 15000

    async def test_unblock(self, client, listing):
        block_id = (
            await client.post(
                f"{API}/calendar/listings/{listing.id}/block",
                json={"start_date": "2025-06-10", "end_date": "2025-06-12"},
                headers=as_user(HOST_ID),
            )
        ).json()["id"]

        response = await client.delete(
            f"{API}/calendar/blocks/{block_id}",
            params={"listing_id": str(listing.id)},
            headers=as_user(HOST_ID),
        )

        assert response.status_code == 204
        assert (await request_stay(client, listing, "2025-06-10", "2025-06-12")).status_code == 201

    async def test_price_override_changes_quote(self, client, listing):
        response = await client.post(
            f"{API}/calendar/listings/{listing.id}/price-override",
            json={"override_date": "2025-06-11", "nightly_price": 20000},
            headers=as_user(HOST_ID),
        )
        assert response.status_code == 200

        created = await request_stay(client, listing, "2025-06-10", "2025-06-12")

        assert created.json()["booking"]["subtotal"] == 35000

    async def test_guest_cannot_block(self, client, listing):
        response = await client.post(
            f"{API}/calendar/listings/{listing.id}/block",
            json={"start_date": "2025-06-10", "end_date": "2025-06-12"},
            headers=as_user(GUEST_ID),
        )

        assert response.status_code == 403

    async def test_export_feed(self, client, listing):
        calendar = (
            await client.post(
                f"{API}/calendar/listings/{listing.id}/calendars",
                json={"source": "internal"},
                headers=as_user(HOST_ID),
            )
        ).json()
        await request_stay(client, listing)

        response = await client.get(
            f"{API}/calendar/listings/{listing.id}/export/{calendar['ical_export_token']}"
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/calendar")
        assert "BEGIN:VCALENDAR" in response.text
        assert "DTSTART;VALUE=DATE:20250610" in response.text

    async def test_export_with_bad_token(self, client, listing):
        response = await client.get(f"{API}/calendar/listings/{listing.id}/export/nope")

        assert response.status_code == 403
        assert response.json() == {"error": "forbidden", "detail": "Invalid export token"}

    async def test_import_failure_is_reported_on_the_calendar(self, client, listing):
        response = await client.post(
            f"{API}/calendar/listings/{listing.id}/calendars",
            json={"source": "ical", "ical_url": "https://calendar.example.com/missing.ics"},
            headers=as_user(HOST_ID),
        )

        assert response.status_code == 201
        assert "404" in response.json()["last_sync_error"]

        retry = await client.post(
            f"{API}/calendar/calendars/{response.json()['id']}/sync", headers=as_user(HOST_ID)
        )
        assert retry.status_code == 502
        assert retry.json()["error"] == "external_service"


class TestPaymentWebhook:
    async def test_succeeded_confirms_booking(self, client, listing):
        booking_id = (await request_stay(client, listing)).json()["booking"]["id"]

        response = await client.post(
            f"{API}/payments/webhook",
            content=webhook_payload("payment_intent.succeeded", booking_id),
            headers={"stripe-signature": "valid"},
        )

        assert response.json() == {"received": True, "confirmed": True, "status": "pending"}

    async def test_bad_signature(self, client):
        response = await client.post(
            f"{API}/payments/webhook",
            content=webhook_payload("payment_intent.succeeded", str(uuid4())),
            headers={"stripe-signature": "forged"},
        )

        assert response.status_code == 400

    async def test_other_events_are_acknowledged(self, client):
        response = await client.post(
            f"{API}/payments/webhook",
            content=webhook_payload("charge.refunded", str(uuid4())),
            headers={"stripe-signature": "valid"},
        )

        assert response.json() == {"received": True}

    async def test_unknown_booking_is_acknowledged(self, client):
        response = await client.post(
            f"{API}/payments/webhook",
            content=webhook_payload("payment_intent.succeeded", str(uuid4())),
            headers={"stripe-signature": "valid"},
        )

        assert response.status_code == 200
        assert response.json()["confirmed"] is False
