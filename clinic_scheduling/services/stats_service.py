"""Stats service - slot utilization and appointment counts for dashboards."""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from clinic_scheduling.core.errors import ValidationError
from clinic_scheduling.db.enums import AppointmentStatus
from clinic_scheduling.db.models import Appointment
from clinic_scheduling.services import appointment_store, booking_service, rule_store


def _rate(part: int, whole: int) -> float:
    if not whole:
        return 0.0
    return round(part / whole * 100, 2)


def _slot_to_dict(item: booking_service.SlotAvailability | None) -> dict[str, Any] | None:
    if item is None:
        return None
    slot = item.slot
    return {
        "doctor_id": slot.doctor_id,
        "date": slot.date,
        "start_time": slot.start_time,
        "end_time": slot.end_time,
        "duration_minutes": slot.duration_minutes,
        "capacity": slot.capacity,
        "booked": item.booked,
        "remaining": item.remaining,
        "source_rule_id": slot.source_rule_id,
    }


def _summarize(items: list[booking_service.SlotAvailability]) -> dict[str, Any]:
    total_slots = len(items)
    booked_slots = sum(1 for item in items if item.booked > 0)
    total_capacity = sum(item.slot.capacity for item in items)
    booked_capacity = sum(min(item.booked, item.slot.capacity) for item in items)
    return {
        "total_slots": total_slots,
        "booked_slots": booked_slots,
        "available_slots": total_slots - booked_slots,
        "utilization_rate": _rate(booked_slots, total_slots),
        "total_capacity": total_capacity,
        "booked_capacity": booked_capacity,
        "occupancy_rate": _rate(booked_capacity, total_capacity),
    }


def get_availability_stats(
    db: Session,
    tenant_id: UUID,
    date_start: date,
    date_end: date,
    doctor_id: UUID | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Slot utilization for a date range, tenant-wide or for one doctor.

    booked_slots counts slots holding at least one non-cancelled appointment,
    so a half-full group slot is booked but still has capacity left;
    occupancy_rate is the capacity-weighted view of the same data.
    """
    booking_service.validate_date_range(date_start, date_end)

    rules = rule_store.list_rules_for_range(db, tenant_id, doctor_id, date_start, date_end)
    booked = appointment_store.count_active_by_slot(db, tenant_id, doctor_id, date_start, date_end)
    doctor_ids = (
        [doctor_id] if doctor_id
        else rule_store.list_doctor_ids(db, tenant_id, date_start, date_end)
    )

    all_items: list[booking_service.SlotAvailability] = []
    breakdown = []
    for current_doctor in doctor_ids:
        doctor_rules = [rule for rule in rules if rule.doctor_id == current_doctor]
        items = list(booking_service.iter_slot_availability(
            doctor_rules, booked, current_doctor, date_start, date_end
        ))
        if not items:
            continue
        all_items.extend(items)

        next_slot = next(
            (
                item for item in items
                if item.remaining > 0
                and not booking_service.slot_has_started(item.slot.date, item.slot.start_time, now)
            ),
            None,
        )
        breakdown.append({
            "doctor_id": current_doctor,
            **_summarize(items),
            "next_available_slot": _slot_to_dict(next_slot),
        })

    return {
        "date_start": date_start,
        "date_end": date_end,
        **_summarize(all_items),
        "doctors_with_availability": len(breakdown),
        "per_doctor_breakdown": breakdown,
    }


def get_appointment_stats(
    db: Session,
    tenant_id: UUID,
    date_start: date,
    date_end: date,
    doctor_id: UUID | None = None,
) -> dict[str, Any]:
    """Appointment counts per status in a date range."""
    if date_end < date_start:
        raise ValidationError("date_end must not be before date_start")

    query = db.query(Appointment.status, func.count(Appointment.id)).filter(
        Appointment.tenant_id == tenant_id,
        Appointment.appointment_date >= date_start,
        Appointment.appointment_date <= date_end,
    )
    if doctor_id:
        query = query.filter(Appointment.doctor_id == doctor_id)

    by_status = {status.value: 0 for status in AppointmentStatus}
    for status, count in query.group_by(Appointment.status).all():
        by_status[status] = count

    return {
        "date_start": date_start,
        "date_end": date_end,
        "total": sum(by_status.values()),
        "by_status": by_status,
    }
