"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time, timezone

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinic_scheduling.db.base import Base
from clinic_scheduling.db.enums import (
    AppointmentPriority,
    AppointmentSource,
    AppointmentStatus,
    AppointmentType,
    AvailabilityType,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AvailabilityRule(Base):
    """
    Doctor availability rule (e.g., "Monday 9am-12pm, 30 min slots").

    day_of_week follows the platform convention: Sunday=0, Saturday=6.
    Rules are never overwritten to retire them; effective_to is set instead.
    Doctors and tenants live in the platform's user store, so they are plain
    ids here rather than foreign keys.
    """

    __tablename__ = "doctor_availability"
    __table_args__ = (
        Index(
            "idx_doctor_availability_key",
            "doctor_id", "day_of_week", "start_time", "end_time",
        ),
        Index("idx_doctor_availability_tenant", "tenant_id", "doctor_id"),
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="valid_day_of_week"),
        CheckConstraint("start_time < end_time", name="valid_time_window"),
        CheckConstraint("slot_duration_minutes > 0", name="positive_slot_duration"),
        CheckConstraint("buffer_time_minutes >= 0", name="non_negative_buffer"),
        CheckConstraint("max_patients_per_slot >= 1", name="positive_capacity"),
        CheckConstraint(
            "effective_to IS NULL OR effective_from <= effective_to",
            name="valid_effective_range",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    doctor_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    # Weekly window (clinic local time)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)

    # Slot configuration
    slot_duration_minutes: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    buffer_time_minutes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_patients_per_slot: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    availability_type: Mapped[str] = mapped_column(
        String(20), default=AvailabilityType.REGULAR.value, nullable=False
    )

    # Validity window; effective_to NULL means open-ended
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    updated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False
    )


class Appointment(Base):
    """
    Booked appointment.

    Lifecycle: scheduled → confirmed → completed/cancelled/no_show
    buffer_time_minutes is a snapshot from the rule that produced the slot.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index(
            "idx_appointments_doctor_slot",
            "doctor_id", "appointment_date", "appointment_time",
        ),
        Index("idx_appointments_tenant_status", "tenant_id", "status"),
        Index("idx_appointments_tenant_date", "tenant_id", "appointment_date"),
        Index("idx_appointments_patient", "patient_id"),
        CheckConstraint("duration_minutes > 0", name="positive_duration"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    patient_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    doctor_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    # Scheduling (clinic local time)
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False)
    appointment_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    buffer_time_minutes: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(20), default=AppointmentStatus.SCHEDULED.value, nullable=False
    )
    appointment_type: Mapped[str] = mapped_column(
        String(20), default=AppointmentType.CONSULTATION.value, nullable=False
    )
    appointment_source: Mapped[str] = mapped_column(
        String(20), default=AppointmentSource.MANUAL.value, nullable=False
    )
    priority: Mapped[str] = mapped_column(
        String(20), default=AppointmentPriority.NORMAL.value, nullable=False
    )

    chief_complaint: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Provenance
    source_rule_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("doctor_availability.id", ondelete="SET NULL"), nullable=True
    )
    rescheduled_from_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True
    )

    # Cancellation tracking
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), onupdate=_utcnow, nullable=False
    )

    # Relationships
    status_history: Mapped[list["AppointmentStatusHistory"]] = relationship(
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentStatusHistory.changed_at",
    )


class AppointmentStatusHistory(Base):
    """Tracks every status change on an appointment, including creation."""

    __tablename__ = "appointment_status_history"
    __table_args__ = (
        Index("idx_appointment_history_appt", "appointment_id", "changed_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    appointment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False
    )
    old_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(
        default=_utcnow, server_default=func.now(), nullable=False
    )

    appointment: Mapped["Appointment"] = relationship(back_populates="status_history")


class AppointmentSlotLock(Base):
    """
    Per-slot serialization point for bookings.

    The booking transaction bumps `version` before reading the slot's
    appointments. The UPDATE holds a row lock until commit, so two requests
    for the same (doctor, date, time) can never both pass the capacity check.
    """

    __tablename__ = "appointment_slot_locks"

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    doctor_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    slot_date: Mapped[date] = mapped_column(Date, primary_key=True)
    slot_time: Mapped[time] = mapped_column(Time, primary_key=True)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
