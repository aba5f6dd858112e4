"""Booking service - business logic for slots and appointments.

Handles:
- Slot queries (available slots, next available slot, raw generation)
- Booking with capacity and overlap enforcement under a per-slot lock
- Cancellation, status transitions and reschedule
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, NamedTuple, Sequence
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from clinic_scheduling.core.config import settings
from clinic_scheduling.core.errors import (
    InvalidTransition,
    NotFoundError,
    SlotFullError,
    SlotUnavailableError,
    ValidationError,
)
from clinic_scheduling.core.structured_logging import build_log_context
from clinic_scheduling.db.enums import (
    APPOINTMENT_TRANSITIONS,
    DEFAULT_APPOINTMENT_STATUS,
    AppointmentStatus,
)
from clinic_scheduling.db.models import Appointment
from clinic_scheduling.db.transactions import run_in_transaction
from clinic_scheduling.schemas.appointment import AppointmentCreate
from clinic_scheduling.services import appointment_store, rule_store, slot_generator
from clinic_scheduling.services.rule_validator import RuleLike, minutes_of_day
from clinic_scheduling.services.slot_generator import TimeSlot

logger = logging.getLogger(__name__)


# =============================================================================
# Types
# =============================================================================

class SlotAvailability(NamedTuple):
    """A generated slot together with its current bookings."""
    slot: TimeSlot
    booked: int

    @property
    def remaining(self) -> int:
        return max(self.slot.capacity - self.booked, 0)


# =============================================================================
# Clock
# =============================================================================

def _get_timezone(name: str | None) -> ZoneInfo:
    """Get a ZoneInfo timezone with safe fallback."""
    if not name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown CLINIC_TIMEZONE %r, falling back to UTC", name)
        return ZoneInfo("UTC")


def clinic_now(now: datetime | None = None) -> datetime:
    """Current wall-clock time in the clinic timezone."""
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current.astimezone(_get_timezone(settings.CLINIC_TIMEZONE))


def slot_has_started(slot_date: date, slot_time: time, now: datetime | None) -> bool:
    current = clinic_now(now)
    return datetime.combine(slot_date, slot_time, tzinfo=current.tzinfo) < current


def validate_date_range(date_start: date, date_end: date, max_days: int | None = None) -> None:
    if date_end < date_start:
        raise ValidationError("date_end must not be before date_start")
    limit = max_days or settings.SLOT_QUERY_MAX_DAYS
    if (date_end - date_start).days + 1 > limit:
        raise ValidationError(f"Date range cannot exceed {limit} days")


# =============================================================================
# Slot Calculation
# =============================================================================

def iter_slot_availability(
    rules: Sequence[RuleLike],
    booked_by_slot: dict,
    doctor_id: UUID,
    date_start: date,
    date_end: date,
) -> Iterator[SlotAvailability]:
    """Pair each generated slot with its booking count (keyed like count_active_by_slot)."""
    for slot in slot_generator.generate(doctor_id, date_start, date_end, rules):
        booked = booked_by_slot.get((doctor_id, slot.date, slot.start_time), 0)
        yield SlotAvailability(slot=slot, booked=booked)


def generate_slots(
    db: Session,
    tenant_id: UUID,
    doctor_id: UUID,
    date_start: date,
    date_end: date,
) -> list[TimeSlot]:
    """All slots the doctor's rules produce in the range, ignoring bookings."""
    validate_date_range(date_start, date_end)
    rules = rule_store.list_rules_for_range(db, tenant_id, doctor_id, date_start, date_end)
    return list(slot_generator.generate(doctor_id, date_start, date_end, rules))


def get_available_slots(
    db: Session,
    tenant_id: UUID,
    doctor_id: UUID,
    date_start: date,
    date_end: date | None = None,
    now: datetime | None = None,
) -> list[SlotAvailability]:
    """
    Slots with remaining capacity, in date then time order.

    Slots that have already started are left out.
    """
    date_end = date_end or date_start
    validate_date_range(date_start, date_end)

    rules = rule_store.list_rules_for_range(db, tenant_id, doctor_id, date_start, date_end)
    booked = appointment_store.count_active_by_slot(db, tenant_id, doctor_id, date_start, date_end)

    return [
        item
        for item in iter_slot_availability(rules, booked, doctor_id, date_start, date_end)
        if item.remaining > 0 and not slot_has_started(item.slot.date, item.slot.start_time, now)
    ]


def get_next_available_slot(
    db: Session,
    tenant_id: UUID,
    doctor_id: UUID,
    from_date: date | None = None,
    horizon_days: int | None = None,
    now: datetime | None = None,
) -> SlotAvailability | None:
    """First bookable slot from `from_date` (default: clinic today) within the horizon."""
    date_start = from_date or clinic_now(now).date()
    days = horizon_days or settings.NEXT_SLOT_HORIZON_DAYS
    date_end = date_start + timedelta(days=days - 1)

    rules = rule_store.list_rules_for_range(db, tenant_id, doctor_id, date_start, date_end)
    if not rules:
        return None
    booked = appointment_store.count_active_by_slot(db, tenant_id, doctor_id, date_start, date_end)

    for item in iter_slot_availability(rules, booked, doctor_id, date_start, date_end):
        if item.remaining > 0 and not slot_has_started(item.slot.date, item.slot.start_time, now):
            return item
    return None


def _find_overlap(
    db: Session,
    tenant_id: UUID,
    doctor_id: UUID,
    appointment_date: date,
    appointment_time: time,
    duration_minutes: int,
    buffer_minutes: int,
) -> Appointment | None:
    """First appointment at another start that collides with the buffered request."""
    start = minutes_of_day(appointment_time)
    requested_start = start - buffer_minutes
    requested_end = start + duration_minutes + buffer_minutes

    for other in appointment_store.list_active_for_doctor_on_date(
        db, tenant_id, doctor_id, appointment_date
    ):
        if other.appointment_time == appointment_time:
            continue
        other_start = minutes_of_day(other.appointment_time)
        other_end = other_start + other.duration_minutes
        if requested_start < other_end and other_start < requested_end:
            return other
    return None


# =============================================================================
# Booking
# =============================================================================

def _covered_slot_times(
    slots: Sequence[TimeSlot],
    appointment_time: time,
    duration_minutes: int,
    buffer_minutes: int,
) -> list[time]:
    """
    Slot starts inside the buffered interval of a request, in lock order.

    Two overlapping appointments with the same buffer always share at least
    one of these starts, so locking all of them serializes the overlap check
    as well as the capacity check.
    """
    start = minutes_of_day(appointment_time)
    window_start = start - buffer_minutes
    window_end = start + duration_minutes + buffer_minutes
    covered = {
        slot.start_time for slot in slots
        if window_start <= minutes_of_day(slot.start_time) < window_end
    }
    covered.add(appointment_time)
    return sorted(covered)


def _book(
    db: Session,
    tenant_id: UUID,
    *,
    patient_id: UUID,
    doctor_id: UUID,
    appointment_date: date,
    appointment_time: time,
    duration_minutes: int | None,
    details: dict,
    created_by: UUID | None,
    now: datetime | None,
    rescheduled_from_id: UUID | None = None,
) -> Appointment:
    """Checks and insert for one booking. Runs inside the caller's transaction."""
    rules = rule_store.list_rules_for_range(
        db, tenant_id, doctor_id, appointment_date, appointment_date
    )
    if slot_generator.is_on_leave(rules, doctor_id, appointment_date):
        raise SlotUnavailableError(f"Doctor is on leave on {appointment_date.isoformat()}")

    slot = slot_generator.find_slot(rules, doctor_id, appointment_date, appointment_time)
    if slot is None:
        raise SlotUnavailableError(
            f"No bookable slot starts at {appointment_time:%H:%M} on {appointment_date.isoformat()}"
        )
    if slot_has_started(appointment_date, appointment_time, now):
        raise SlotUnavailableError("Cannot book a slot in the past")

    duration = duration_minutes or slot.duration_minutes
    if duration <= 0:
        raise ValidationError("duration_minutes must be greater than 0")

    # Serializes capacity and overlap checks with every booking that could collide
    day_slots = slot_generator.slots_for_date(rules, doctor_id, appointment_date)
    for lock_time in _covered_slot_times(
        day_slots, appointment_time, duration, slot.buffer_time_minutes
    ):
        appointment_store.acquire_slot_lock(db, tenant_id, doctor_id, appointment_date, lock_time)

    booked = appointment_store.count_active_at_slot(
        db, tenant_id, doctor_id, appointment_date, appointment_time
    )
    if booked >= slot.capacity:
        raise SlotFullError(
            f"Slot {appointment_time:%H:%M} on {appointment_date.isoformat()} is fully booked "
            f"({booked}/{slot.capacity})"
        )

    overlapping = _find_overlap(
        db, tenant_id, doctor_id, appointment_date, appointment_time,
        duration, slot.buffer_time_minutes,
    )
    if overlapping is not None:
        raise SlotFullError(
            f"Requested time overlaps the appointment at {overlapping.appointment_time:%H:%M}",
            conflicting_id=overlapping.id,
        )

    appointment = Appointment(
        tenant_id=tenant_id,
        patient_id=patient_id,
        doctor_id=doctor_id,
        appointment_date=appointment_date,
        appointment_time=appointment_time,
        duration_minutes=duration,
        buffer_time_minutes=slot.buffer_time_minutes,
        status=DEFAULT_APPOINTMENT_STATUS.value,
        source_rule_id=slot.source_rule_id,
        rescheduled_from_id=rescheduled_from_id,
        created_by=created_by,
        **details,
    )
    return appointment_store.add_appointment(db, appointment, changed_by=created_by)


def create_appointment(
    db: Session,
    tenant_id: UUID,
    request: AppointmentCreate,
    created_by: UUID | None = None,
    now: datetime | None = None,
) -> Appointment:
    """
    Book an appointment into a generated slot.

    Raises:
        SlotUnavailableError: no slot starts at the requested time, the slot
            is in the past, or the doctor is on leave
        SlotFullError: slot capacity reached, or the request overlaps another
            appointment of the doctor (conflicting_id is set)
        StorageError: storage kept failing after retries
    """
    details = {
        "appointment_type": request.appointment_type,
        "appointment_source": request.appointment_source,
        "priority": request.priority,
        "chief_complaint": request.chief_complaint,
        "notes": request.notes,
    }
    context = build_log_context(tenant_id=tenant_id, doctor_id=request.doctor_id)

    appointment = run_in_transaction(
        db,
        lambda: _book(
            db,
            tenant_id,
            patient_id=request.patient_id,
            doctor_id=request.doctor_id,
            appointment_date=request.appointment_date,
            appointment_time=request.appointment_time,
            duration_minutes=request.duration_minutes,
            details=details,
            created_by=created_by,
            now=now,
        ),
        log_context=context,
    )
    db.refresh(appointment)

    logger.info(
        "Appointment booked",
        extra=build_log_context(
            tenant_id=tenant_id, doctor_id=appointment.doctor_id, appointment_id=appointment.id
        ),
    )
    return appointment


# =============================================================================
# Status Transitions
# =============================================================================

def _get_or_404(db: Session, tenant_id: UUID, appointment_id: UUID) -> Appointment:
    appointment = appointment_store.get_appointment(db, tenant_id, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment not found")
    return appointment


def _apply_transition(
    db: Session,
    appointment: Appointment,
    new_status: str,
    reason: str | None,
    changed_by: UUID | None,
) -> None:
    """Move an appointment along the state machine and log it. No commit."""
    try:
        target = AppointmentStatus(new_status)
    except ValueError:
        raise ValidationError(f"Unknown appointment status '{new_status}'")
    current = AppointmentStatus(appointment.status)

    if target not in APPOINTMENT_TRANSITIONS[current]:
        raise InvalidTransition(current.value, target.value, appointment.id)

    appointment.status = target.value
    if target == AppointmentStatus.CANCELLED:
        appointment.cancelled_at = datetime.now(timezone.utc)
        appointment.cancellation_reason = reason
    appointment_store.record_status_change(
        db, appointment, current.value, target.value, reason=reason, changed_by=changed_by
    )


def cancel_appointment(
    db: Session,
    tenant_id: UUID,
    appointment_id: UUID,
    reason: str | None = None,
    changed_by: UUID | None = None,
) -> Appointment:
    """
    Cancel an appointment.

    Cancelling an already cancelled appointment succeeds without changes.
    Completed and no-show appointments cannot be cancelled.
    """

    def work() -> Appointment:
        appointment = _get_or_404(db, tenant_id, appointment_id)
        if appointment.status == AppointmentStatus.CANCELLED.value:
            return appointment
        _apply_transition(db, appointment, AppointmentStatus.CANCELLED.value, reason, changed_by)
        return appointment

    appointment = run_in_transaction(
        db, work, log_context=build_log_context(tenant_id=tenant_id, appointment_id=appointment_id)
    )
    db.refresh(appointment)
    logger.info(
        "Appointment cancelled",
        extra=build_log_context(tenant_id=tenant_id, appointment_id=appointment.id),
    )
    return appointment


def update_status(
    db: Session,
    tenant_id: UUID,
    appointment_id: UUID,
    new_status: str,
    reason: str | None = None,
    changed_by: UUID | None = None,
) -> Appointment:
    """
    Apply a lifecycle transition (confirm, complete, no-show, cancel).

    Raises:
        NotFoundError: appointment does not exist for this tenant
        InvalidTransition: transition not allowed; the record is unchanged
    """
    if new_status == AppointmentStatus.CANCELLED.value:
        return cancel_appointment(db, tenant_id, appointment_id, reason, changed_by)

    def work() -> Appointment:
        appointment = _get_or_404(db, tenant_id, appointment_id)
        _apply_transition(db, appointment, new_status, reason, changed_by)
        return appointment

    appointment = run_in_transaction(
        db, work, log_context=build_log_context(tenant_id=tenant_id, appointment_id=appointment_id)
    )
    db.refresh(appointment)
    logger.info(
        "Appointment status changed to %s",
        appointment.status,
        extra=build_log_context(tenant_id=tenant_id, appointment_id=appointment.id),
    )
    return appointment


def reschedule_appointment(
    db: Session,
    tenant_id: UUID,
    appointment_id: UUID,
    new_date: date,
    new_time: time,
    reason: str | None = None,
    changed_by: UUID | None = None,
    now: datetime | None = None,
) -> tuple[Appointment, Appointment]:
    """
    Move an appointment to another slot.

    The original is cancelled and a replacement booked in the same
    transaction; the replacement keeps the visit details and points back via
    rescheduled_from_id. If the new slot cannot be booked nothing changes.

    Returns:
        (original, replacement)
    """

    def work() -> tuple[Appointment, Appointment]:
        original = _get_or_404(db, tenant_id, appointment_id)
        _apply_transition(
            db, original, AppointmentStatus.CANCELLED.value,
            reason or "Rescheduled", changed_by,
        )
        # Free the original's seat before the capacity check
        db.flush()

        replacement = _book(
            db,
            tenant_id,
            patient_id=original.patient_id,
            doctor_id=original.doctor_id,
            appointment_date=new_date,
            appointment_time=new_time,
            duration_minutes=original.duration_minutes,
            details={
                "appointment_type": original.appointment_type,
                "appointment_source": original.appointment_source,
                "priority": original.priority,
                "chief_complaint": original.chief_complaint,
                "notes": original.notes,
            },
            created_by=changed_by,
            now=now,
            rescheduled_from_id=original.id,
        )
        return original, replacement

    original, replacement = run_in_transaction(
        db, work, log_context=build_log_context(tenant_id=tenant_id, appointment_id=appointment_id)
    )
    db.refresh(original)
    db.refresh(replacement)

    logger.info(
        "Appointment rescheduled",
        extra=build_log_context(
            tenant_id=tenant_id, doctor_id=replacement.doctor_id, appointment_id=replacement.id
        ),
    )
    return original, replacement
