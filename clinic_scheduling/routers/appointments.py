"""Appointments router - API endpoints for booking and appointment management.

Internal authenticated endpoints for clinic staff to:
- Book appointments into generated slots
- Confirm, complete, mark no-show, cancel and reschedule
- Read status history and dashboard counts
"""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from clinic_scheduling.core.deps import (
    get_current_session,
    get_db,
    require_csrf_header,
)
from clinic_scheduling.core.errors import NotFoundError
from clinic_scheduling.schemas.auth import TenantSession
from clinic_scheduling.schemas.appointment import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentListItem,
    AppointmentListResponse,
    AppointmentRead,
    AppointmentReschedule,
    AppointmentStatsRead,
    AppointmentStatusLiteral,
    AppointmentStatusUpdate,
    RescheduleResponse,
    StatusHistoryRead,
)
from clinic_scheduling.services import appointment_store, booking_service, stats_service
from clinic_scheduling.utils.pagination import PaginationParams, get_pagination

router = APIRouter()


# =============================================================================
# Helper Functions
# =============================================================================

def _appointment_to_read(appt) -> AppointmentRead:
    """Convert Appointment model to read schema."""
    return AppointmentRead(
        id=appt.id,
        patient_id=appt.patient_id,
        doctor_id=appt.doctor_id,
        appointment_date=appt.appointment_date,
        appointment_time=appt.appointment_time,
        duration_minutes=appt.duration_minutes,
        buffer_time_minutes=appt.buffer_time_minutes,
        status=appt.status,
        appointment_type=appt.appointment_type,
        appointment_source=appt.appointment_source,
        priority=appt.priority,
        chief_complaint=appt.chief_complaint,
        notes=appt.notes,
        source_rule_id=appt.source_rule_id,
        rescheduled_from_id=appt.rescheduled_from_id,
        cancelled_at=appt.cancelled_at,
        cancellation_reason=appt.cancellation_reason,
        created_by=appt.created_by,
        created_at=appt.created_at,
        updated_at=appt.updated_at,
    )


def _appointment_to_list_item(appt) -> AppointmentListItem:
    return AppointmentListItem(
        id=appt.id,
        patient_id=appt.patient_id,
        doctor_id=appt.doctor_id,
        appointment_date=appt.appointment_date,
        appointment_time=appt.appointment_time,
        duration_minutes=appt.duration_minutes,
        status=appt.status,
        appointment_type=appt.appointment_type,
        priority=appt.priority,
        created_at=appt.created_at,
    )


def _history_to_read(entry) -> StatusHistoryRead:
    return StatusHistoryRead(
        id=entry.id,
        old_status=entry.old_status,
        new_status=entry.new_status,
        reason=entry.reason,
        changed_by=entry.changed_by,
        changed_at=entry.changed_at,
    )


# =============================================================================
# Appointments
# =============================================================================

@router.get("", response_model=AppointmentListResponse)
def list_appointments(
    session: TenantSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    pagination: PaginationParams = Depends(get_pagination),
    doctor_id: UUID | None = None,
    patient_id: UUID | None = None,
    status: AppointmentStatusLiteral | None = None,
    date_start: date | None = None,
    date_end: date | None = None,
):
    """List appointments of the tenant, newest slot first."""
    appointments, total = appointment_store.list_appointments(
        db=db,
        tenant_id=session.tenant_id,
        doctor_id=doctor_id,
        patient_id=patient_id,
        status=status,
        date_start=date_start,
        date_end=date_end,
        limit=pagination.per_page,
        offset=pagination.offset,
    )

    return AppointmentListResponse(
        items=[_appointment_to_list_item(a) for a in appointments],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
        pages=pagination.pages(total),
    )


@router.post(
    "",
    response_model=AppointmentRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_appointment(
    data: AppointmentCreate,
    session: TenantSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Book an appointment into a generated slot."""
    appt = booking_service.create_appointment(
        db, session.tenant_id, data, created_by=session.user_id
    )
    return _appointment_to_read(appt)


@router.get("/stats", response_model=AppointmentStatsRead)
def get_appointment_stats(
    date_start: date = Query(...),
    date_end: date = Query(...),
    doctor_id: UUID | None = None,
    session: TenantSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Appointment counts per status for a date range."""
    stats = stats_service.get_appointment_stats(
        db, session.tenant_id, date_start, date_end, doctor_id=doctor_id
    )
    return AppointmentStatsRead(**stats)


@router.get("/{appointment_id}", response_model=AppointmentRead)
def get_appointment(
    appointment_id: UUID,
    session: TenantSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Get appointment details."""
    appt = appointment_store.get_appointment(db, session.tenant_id, appointment_id)
    if not appt:
        raise NotFoundError("Appointment not found")
    return _appointment_to_read(appt)


@router.get("/{appointment_id}/history", response_model=list[StatusHistoryRead])
def get_appointment_history(
    appointment_id: UUID,
    session: TenantSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Status changes of an appointment, oldest first."""
    appt = appointment_store.get_appointment(db, session.tenant_id, appointment_id)
    if not appt:
        raise NotFoundError("Appointment not found")
    history = appointment_store.get_status_history(db, session.tenant_id, appointment_id)
    return [_history_to_read(entry) for entry in history]


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentRead,
    dependencies=[Depends(require_csrf_header)],
)
def cancel_appointment(
    appointment_id: UUID,
    data: AppointmentCancel,
    session: TenantSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Cancel an appointment. Repeating the call is harmless."""
    appt = booking_service.cancel_appointment(
        db, session.tenant_id, appointment_id, reason=data.reason, changed_by=session.user_id
    )
    return _appointment_to_read(appt)


@router.patch(
    "/{appointment_id}/status",
    response_model=AppointmentRead,
    dependencies=[Depends(require_csrf_header)],
)
def update_appointment_status(
    appointment_id: UUID,
    data: AppointmentStatusUpdate,
    session: TenantSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Confirm, complete, mark no-show or cancel an appointment."""
    appt = booking_service.update_status(
        db,
        session.tenant_id,
        appointment_id,
        data.status,
        reason=data.reason,
        changed_by=session.user_id,
    )
    return _appointment_to_read(appt)


@router.post(
    "/{appointment_id}/reschedule",
    response_model=RescheduleResponse,
    dependencies=[Depends(require_csrf_header)],
)
def reschedule_appointment(
    appointment_id: UUID,
    data: AppointmentReschedule,
    session: TenantSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Move an appointment to another slot (the original is cancelled)."""
    original, replacement = booking_service.reschedule_appointment(
        db,
        session.tenant_id,
        appointment_id,
        data.appointment_date,
        data.appointment_time,
        reason=data.reason,
        changed_by=session.user_id,
    )
    return RescheduleResponse(
        original=_appointment_to_read(original),
        appointment=_appointment_to_read(replacement),
    )
