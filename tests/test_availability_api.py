"""
Tests for the availability action-dispatch endpoint.

Covers the request envelope, auth and CSRF guards, and error rendering.
"""

import pytest
from uuid import uuid4

from clinic_scheduling.core.deps import COOKIE_NAME


def _rule_payload(doctor_id, **overrides):
    payload = {
        "action": "create_availability",
        "doctor_id": str(doctor_id),
        "day_of_week": 1,
        "start_time": "09:00",
        "end_time": "12:00",
        "slot_duration_minutes": 30,
        "max_patients_per_slot": 1,
        "availability_type": "regular",
        "effective_from": "2029-01-01",
    }
    payload.update(overrides)
    return payload


# =============================================================================
# Auth Guards
# =============================================================================

@pytest.mark.asyncio
async def test_requires_session_cookie(client):
    response = await client.get("/availability")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_post_requires_csrf_header(client, test_auth, doctor_id):
    client.cookies.set(COOKIE_NAME, test_auth.token)

    response = await client.post("/availability", json=_rule_payload(doctor_id))

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_rejects_tampered_token(client):
    client.cookies.set(COOKIE_NAME, "not-a-jwt")

    response = await client.get("/availability")

    assert response.status_code == 401


# =============================================================================
# Reads
# =============================================================================

@pytest.mark.asyncio
async def test_default_action_lists_capabilities(authed_client):
    response = await authed_client.get("/availability")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["action"] == "capabilities"
    assert "create_availability" in body["data"]["post_actions"]


@pytest.mark.asyncio
async def test_list_availabilities(authed_client, doctor_id, make_rule):
    rule = make_rule()
    make_rule(doctor_id=uuid4())

    response = await authed_client.get(
        "/availability",
        params={"action": "availabilities", "doctor_id": str(doctor_id)},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert [item["id"] for item in data] == [str(rule.id)]
    assert data[0]["start_time"] == "09:00:00"


@pytest.mark.asyncio
async def test_stats(authed_client, make_rule):
    make_rule()

    response = await authed_client.get(
        "/availability", params={"action": "stats", "date_start": "2030-01-07"}
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total_slots"] == 6
    assert data["doctors_with_availability"] == 1


@pytest.mark.asyncio
async def test_stats_requires_date_start(authed_client):
    response = await authed_client.get("/availability", params={"action": "stats"})

    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"


# =============================================================================
# Actions
# =============================================================================

@pytest.mark.asyncio
async def test_create_availability(authed_client, doctor_id, test_auth):
    response = await authed_client.post("/availability", json=_rule_payload(doctor_id))

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["action"] == "create_availability"
    assert body["data"]["doctor_id"] == str(doctor_id)
    assert body["data"]["created_by"] == str(test_auth.user_id)


@pytest.mark.asyncio
async def test_create_conflicting_availability(authed_client, doctor_id, make_rule):
    existing = make_rule()

    response = await authed_client.post(
        "/availability",
        json=_rule_payload(doctor_id, start_time="11:00", end_time="14:00"),
    )

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "rule_conflict"
    assert body["conflicting_id"] == str(existing.id)


@pytest.mark.asyncio
async def test_create_with_invalid_payload(authed_client, doctor_id):
    response = await authed_client.post(
        "/availability", json=_rule_payload(doctor_id, day_of_week=9)
    )

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "validation_error"
    assert "day_of_week" in body["detail"]


@pytest.mark.asyncio
async def test_unknown_action(authed_client):
    response = await authed_client.post("/availability", json={"action": "delete_everything"})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "invalid_action"


@pytest.mark.asyncio
async def test_update_availability(authed_client, make_rule):
    rule = make_rule()

    response = await authed_client.post(
        "/availability",
        json={"action": "update_availability", "rule_id": str(rule.id), "max_patients_per_slot": 4},
    )

    assert response.status_code == 200
    assert response.json()["data"]["max_patients_per_slot"] == 4


@pytest.mark.asyncio
async def test_update_missing_rule(authed_client):
    response = await authed_client.post(
        "/availability",
        json={"action": "update_availability", "rule_id": str(uuid4()), "notes": "x"},
    )

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_end_availability(authed_client, make_rule):
    rule = make_rule()

    response = await authed_client.post(
        "/availability",
        json={"action": "end_availability", "rule_id": str(rule.id), "effective_to": "2029-12-31"},
    )

    assert response.status_code == 200
    assert response.json()["data"]["effective_to"] == "2029-12-31"


@pytest.mark.asyncio
async def test_generate_slots(authed_client, doctor_id, make_rule):
    make_rule(buffer_time_minutes=10)

    response = await authed_client.post(
        "/availability",
        json={"action": "generate_slots", "doctor_id": str(doctor_id), "date_start": "2030-01-07"},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total"] == 4
    assert [slot["start_time"] for slot in data["slots"]] == [
        "09:00:00", "09:40:00", "10:20:00", "11:00:00",
    ]


@pytest.mark.asyncio
async def test_get_available_slots(authed_client, doctor_id, make_rule):
    make_rule(max_patients_per_slot=2)

    response = await authed_client.post(
        "/availability",
        json={
            "action": "get_available_slots",
            "doctor_id": str(doctor_id),
            "date_start": "2030-01-07",
            "date_end": "2030-01-13",
        },
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["total"] == 6
    assert data["slots"][0]["remaining"] == 2


@pytest.mark.asyncio
async def test_next_available_slot(authed_client, doctor_id, make_rule):
    make_rule()

    response = await authed_client.post(
        "/availability",
        json={
            "action": "next_available_slot",
            "doctor_id": str(doctor_id),
            "from_date": "2030-01-01",
        },
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["date"] == "2030-01-07"
    assert data["start_time"] == "09:00:00"


@pytest.mark.asyncio
async def test_next_available_slot_none(authed_client):
    response = await authed_client.post(
        "/availability",
        json={"action": "next_available_slot", "doctor_id": str(uuid4()), "from_date": "2030-01-01"},
    )

    assert response.status_code == 200
    assert response.json()["data"] is None
