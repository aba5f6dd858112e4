"""
Concurrent booking tests.

Each worker books through its own session, as separate requests would.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, time, timezone
from uuid import uuid4

from clinic_scheduling.core.errors import SlotFullError
from clinic_scheduling.schemas.appointment import AppointmentCreate
from clinic_scheduling.services import appointment_store, booking_service


MONDAY = date(2030, 1, 7)
BEFORE_MONDAY = datetime(2030, 1, 1, 8, 0, tzinfo=timezone.utc)


def _race(session_factory, tenant_id, doctor_id, times):
    """Book every entry of `times` at once; returns the outcome of each attempt."""
    barrier = threading.Barrier(len(times))

    def attempt(slot_time):
        session = session_factory()
        try:
            barrier.wait()
            booking_service.create_appointment(
                session,
                tenant_id,
                AppointmentCreate(
                    patient_id=uuid4(),
                    doctor_id=doctor_id,
                    appointment_date=MONDAY,
                    appointment_time=slot_time,
                ),
                now=BEFORE_MONDAY,
            )
            return "booked"
        except SlotFullError:
            return "full"
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=len(times)) as pool:
        return list(pool.map(attempt, times))


def test_capacity_holds_under_concurrent_bookings(
    db, session_factory, tenant_id, doctor_id, make_rule
):
    make_rule(max_patients_per_slot=3)
    # Release the fixture session's transaction before the workers start
    db.close()

    outcomes = _race(session_factory, tenant_id, doctor_id, [time(9, 0)] * 8)

    assert outcomes.count("booked") == 3
    assert outcomes.count("full") == 5
    assert appointment_store.count_active_at_slot(
        db, tenant_id, doctor_id, MONDAY, time(9, 0)
    ) == 3


def test_single_seat_goes_to_exactly_one_caller(
    db, session_factory, tenant_id, doctor_id, make_rule
):
    make_rule()
    db.close()

    outcomes = _race(session_factory, tenant_id, doctor_id, [time(10, 0)] * 5)

    assert outcomes.count("booked") == 1
    assert outcomes.count("full") == 4


def test_different_slots_do_not_block_each_other(
    db, session_factory, tenant_id, doctor_id, make_rule
):
    make_rule()
    db.close()

    times = [time(9, 0), time(9, 30), time(10, 0), time(10, 30)]
    outcomes = _race(session_factory, tenant_id, doctor_id, times)

    assert outcomes == ["booked"] * 4
    appointments, total = appointment_store.list_appointments(db, tenant_id, doctor_id=doctor_id)
    assert total == 4
