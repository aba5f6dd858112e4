"""Appointment storage - queries and writes for appointments and their history.

No business rules live here. Capacity, overlap and state machine checks
belong to booking_service, which calls these inside its transaction.
"""

from collections import Counter
from datetime import date, time
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clinic_scheduling.db.enums import AppointmentStatus
from clinic_scheduling.db.models import Appointment, AppointmentSlotLock, AppointmentStatusHistory
from clinic_scheduling.db.transactions import SlotLockContention


def _active_filter():
    return Appointment.status != AppointmentStatus.CANCELLED.value


# =============================================================================
# Reads
# =============================================================================

def get_appointment(
    db: Session,
    tenant_id: UUID,
    appointment_id: UUID,
) -> Appointment | None:
    """Get appointment by ID."""
    return db.query(Appointment).filter(
        Appointment.id == appointment_id,
        Appointment.tenant_id == tenant_id,
    ).first()


def list_appointments(
    db: Session,
    tenant_id: UUID,
    doctor_id: UUID | None = None,
    patient_id: UUID | None = None,
    status: str | None = None,
    date_start: date | None = None,
    date_end: date | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Appointment], int]:
    """List appointments with pagination, newest slot first."""
    query = db.query(Appointment).filter(Appointment.tenant_id == tenant_id)

    if doctor_id:
        query = query.filter(Appointment.doctor_id == doctor_id)
    if patient_id:
        query = query.filter(Appointment.patient_id == patient_id)
    if status:
        query = query.filter(Appointment.status == status)
    if date_start:
        query = query.filter(Appointment.appointment_date >= date_start)
    if date_end:
        query = query.filter(Appointment.appointment_date <= date_end)

    total = query.count()
    appointments = query.order_by(
        Appointment.appointment_date.desc(),
        Appointment.appointment_time.desc(),
        Appointment.created_at.desc(),
    ).offset(offset).limit(limit).all()

    return appointments, total


def count_active_at_slot(
    db: Session,
    tenant_id: UUID,
    doctor_id: UUID,
    appointment_date: date,
    appointment_time: time,
) -> int:
    """Number of non-cancelled appointments starting exactly at this slot."""
    return db.query(Appointment).filter(
        Appointment.tenant_id == tenant_id,
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == appointment_date,
        Appointment.appointment_time == appointment_time,
        _active_filter(),
    ).count()


def list_active_for_doctor_on_date(
    db: Session,
    tenant_id: UUID,
    doctor_id: UUID,
    appointment_date: date,
) -> list[Appointment]:
    """Non-cancelled appointments of a doctor on one date, by start time."""
    return db.query(Appointment).filter(
        Appointment.tenant_id == tenant_id,
        Appointment.doctor_id == doctor_id,
        Appointment.appointment_date == appointment_date,
        _active_filter(),
    ).order_by(Appointment.appointment_time, Appointment.created_at).all()


def count_active_by_slot(
    db: Session,
    tenant_id: UUID,
    doctor_id: UUID | None,
    date_start: date,
    date_end: date,
) -> Counter:
    """
    Non-cancelled bookings per slot start in a date range.

    Returns a Counter keyed by (doctor_id, appointment_date, appointment_time).
    """
    query = db.query(
        Appointment.doctor_id,
        Appointment.appointment_date,
        Appointment.appointment_time,
    ).filter(
        Appointment.tenant_id == tenant_id,
        Appointment.appointment_date >= date_start,
        Appointment.appointment_date <= date_end,
        _active_filter(),
    )
    if doctor_id:
        query = query.filter(Appointment.doctor_id == doctor_id)

    return Counter(
        (row.doctor_id, row.appointment_date, row.appointment_time)
        for row in query.all()
    )


def get_status_history(
    db: Session,
    tenant_id: UUID,
    appointment_id: UUID,
) -> list[AppointmentStatusHistory]:
    """Status changes of an appointment, oldest first."""
    return db.query(AppointmentStatusHistory).filter(
        AppointmentStatusHistory.tenant_id == tenant_id,
        AppointmentStatusHistory.appointment_id == appointment_id,
    ).order_by(AppointmentStatusHistory.changed_at, AppointmentStatusHistory.id).all()


# =============================================================================
# Writes (caller owns the transaction)
# =============================================================================

def record_status_change(
    db: Session,
    appointment: Appointment,
    old_status: str | None,
    new_status: str,
    reason: str | None = None,
    changed_by: UUID | None = None,
) -> AppointmentStatusHistory:
    """Append a status history row. old_status is None for the creation entry."""
    entry = AppointmentStatusHistory(
        tenant_id=appointment.tenant_id,
        appointment_id=appointment.id,
        old_status=old_status,
        new_status=new_status,
        reason=reason,
        changed_by=changed_by,
    )
    db.add(entry)
    return entry


def add_appointment(
    db: Session,
    appointment: Appointment,
    changed_by: UUID | None = None,
) -> Appointment:
    """Insert a new appointment together with its creation history row."""
    db.add(appointment)
    db.flush()
    record_status_change(db, appointment, None, appointment.status, changed_by=changed_by)
    db.flush()
    return appointment


def acquire_slot_lock(
    db: Session,
    tenant_id: UUID,
    doctor_id: UUID,
    slot_date: date,
    slot_time: time,
) -> None:
    """
    Take the per-slot write lock for the rest of the transaction.

    Bumps the lock row's version, creating the row on first use. If another
    transaction creates the same row concurrently, SlotLockContention is
    raised so the whole booking can be retried from a clean transaction.
    """
    updated = db.query(AppointmentSlotLock).filter(
        AppointmentSlotLock.tenant_id == tenant_id,
        AppointmentSlotLock.doctor_id == doctor_id,
        AppointmentSlotLock.slot_date == slot_date,
        AppointmentSlotLock.slot_time == slot_time,
    ).update(
        {AppointmentSlotLock.version: AppointmentSlotLock.version + 1},
        synchronize_session=False,
    )
    if updated:
        return

    db.add(AppointmentSlotLock(
        tenant_id=tenant_id,
        doctor_id=doctor_id,
        slot_date=slot_date,
        slot_time=slot_time,
        version=1,
    ))
    try:
        db.flush()
    except IntegrityError as exc:
        raise SlotLockContention(
            f"Slot lock for {slot_date} {slot_time} was created concurrently"
        ) from exc
