"""Tests for the appointments API."""

import pytest
from uuid import uuid4

from clinic_scheduling.core.deps import COOKIE_NAME


@pytest.fixture
def booking(doctor_id):
    """Request body for a Monday 09:00 booking."""
    return {
        "patient_id": str(uuid4()),
        "doctor_id": str(doctor_id),
        "appointment_date": "2030-01-07",
        "appointment_time": "09:00",
    }


async def _book(client, body, **overrides):
    response = await client.post("/appointments", json={**body, **overrides})
    assert response.status_code == 201, response.text
    return response.json()


# =============================================================================
# Guards
# =============================================================================

@pytest.mark.asyncio
async def test_list_requires_auth(client):
    response = await client.get("/appointments")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_booking_requires_csrf_header(client, test_auth, booking, make_rule):
    make_rule()
    client.cookies.set(COOKIE_NAME, test_auth.token)

    response = await client.post("/appointments", json=booking)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


# =============================================================================
# Booking
# =============================================================================

@pytest.mark.asyncio
async def test_book_appointment(authed_client, booking, make_rule, test_auth):
    rule = make_rule()

    data = await _book(authed_client, booking, chief_complaint="Fever")

    assert data["status"] == "scheduled"
    assert data["appointment_time"] == "09:00:00"
    assert data["duration_minutes"] == 30
    assert data["source_rule_id"] == str(rule.id)
    assert data["created_by"] == str(test_auth.user_id)
    assert data["chief_complaint"] == "Fever"


@pytest.mark.asyncio
async def test_full_slot_returns_conflict(authed_client, booking, make_rule):
    make_rule()
    await _book(authed_client, booking)

    response = await authed_client.post(
        "/appointments", json={**booking, "patient_id": str(uuid4())}
    )

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "slot_full"


@pytest.mark.asyncio
async def test_overlap_reports_conflicting_appointment(authed_client, booking, make_rule):
    make_rule()
    first = await _book(authed_client, booking, duration_minutes=60)

    response = await authed_client.post(
        "/appointments", json={**booking, "appointment_time": "09:30"}
    )

    assert response.status_code == 409
    assert response.json()["conflicting_id"] == first["id"]


@pytest.mark.asyncio
async def test_off_grid_time_is_unavailable(authed_client, booking, make_rule):
    make_rule()

    response = await authed_client.post(
        "/appointments", json={**booking, "appointment_time": "09:15"}
    )

    assert response.status_code == 409
    assert response.json()["error"] == "slot_unavailable"


@pytest.mark.asyncio
async def test_malformed_body_rejected(authed_client, booking):
    response = await authed_client.post(
        "/appointments", json={**booking, "appointment_time": "25:00"}
    )

    assert response.status_code == 422


# =============================================================================
# Reads
# =============================================================================

@pytest.mark.asyncio
async def test_get_and_list(authed_client, booking, make_rule, doctor_id):
    make_rule()
    first = await _book(authed_client, booking)
    await _book(authed_client, booking, patient_id=str(uuid4()), appointment_time="10:00")

    detail = await authed_client.get(f"/appointments/{first['id']}")
    listing = await authed_client.get(
        "/appointments", params={"doctor_id": str(doctor_id), "per_page": 1}
    )

    assert detail.status_code == 200
    assert detail.json()["id"] == first["id"]

    body = listing.json()
    assert body["total"] == 2
    assert body["pages"] == 2
    assert len(body["items"]) == 1
    assert body["items"][0]["appointment_time"] == "10:00:00"


@pytest.mark.asyncio
async def test_get_missing_appointment(authed_client):
    response = await authed_client.get(f"/appointments/{uuid4()}")

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_stats(authed_client, booking, make_rule):
    make_rule()
    await _book(authed_client, booking)

    response = await authed_client.get(
        "/appointments/stats", params={"date_start": "2030-01-01", "date_end": "2030-01-31"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["by_status"]["scheduled"] == 1


# =============================================================================
# Transitions
# =============================================================================

@pytest.mark.asyncio
async def test_cancel_is_idempotent(authed_client, booking, make_rule):
    make_rule()
    appointment = await _book(authed_client, booking)
    url = f"/appointments/{appointment['id']}/cancel"

    first = await authed_client.post(url, json={"reason": "Patient request"})
    second = await authed_client.post(url, json={})

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["status"] == "cancelled"
    assert second.json()["cancellation_reason"] == "Patient request"

    history = await authed_client.get(f"/appointments/{appointment['id']}/history")
    assert [entry["new_status"] for entry in history.json()] == ["scheduled", "cancelled"]


@pytest.mark.asyncio
async def test_status_transitions(authed_client, booking, make_rule):
    make_rule()
    appointment = await _book(authed_client, booking)
    url = f"/appointments/{appointment['id']}/status"

    confirmed = await authed_client.patch(url, json={"status": "confirmed"})
    invalid = await authed_client.patch(url, json={"status": "scheduled"})

    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"
    assert invalid.status_code == 409
    assert invalid.json()["error"] == "invalid_transition"


@pytest.mark.asyncio
async def test_reschedule(authed_client, booking, make_rule):
    make_rule()
    appointment = await _book(authed_client, booking)

    response = await authed_client.post(
        f"/appointments/{appointment['id']}/reschedule",
        json={"appointment_date": "2030-01-07", "appointment_time": "11:00"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["original"]["status"] == "cancelled"
    assert body["appointment"]["appointment_time"] == "11:00:00"
    assert body["appointment"]["rescheduled_from_id"] == appointment["id"]


@pytest.mark.asyncio
async def test_reschedule_into_full_slot_keeps_original(authed_client, booking, make_rule):
    make_rule()
    appointment = await _book(authed_client, booking)
    await _book(authed_client, booking, patient_id=str(uuid4()), appointment_time="11:00")

    response = await authed_client.post(
        f"/appointments/{appointment['id']}/reschedule",
        json={"appointment_date": "2030-01-07", "appointment_time": "11:00"},
    )

    assert response.status_code == 409
    detail = await authed_client.get(f"/appointments/{appointment['id']}")
    assert detail.json()["status"] == "scheduled"
