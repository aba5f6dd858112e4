"""Appointment schemas - Pydantic models for appointments API."""

from datetime import date, datetime, time
from uuid import UUID
from typing import Literal

from pydantic import BaseModel, Field


AppointmentTypeLiteral = Literal["consultation", "follow_up", "emergency", "procedure"]
AppointmentSourceLiteral = Literal["manual", "online", "whatsapp", "phone", "patient_portal"]
AppointmentPriorityLiteral = Literal["normal", "urgent", "emergency"]
AppointmentStatusLiteral = Literal["scheduled", "confirmed", "completed", "cancelled", "no_show"]


# =============================================================================
# Appointments
# =============================================================================

class AppointmentCreate(BaseModel):
    """Schema for booking an appointment into a generated slot."""
    patient_id: UUID
    doctor_id: UUID
    appointment_date: date
    appointment_time: time
    duration_minutes: int | None = Field(None, gt=0, le=480, description="Defaults to the slot length")
    appointment_type: AppointmentTypeLiteral = "consultation"
    appointment_source: AppointmentSourceLiteral = "manual"
    priority: AppointmentPriorityLiteral = "normal"
    chief_complaint: str | None = Field(None, max_length=2000)
    notes: str | None = Field(None, max_length=2000)


class AppointmentReschedule(BaseModel):
    """Schema for rescheduling an appointment."""
    appointment_date: date
    appointment_time: time
    reason: str | None = Field(None, max_length=1000)


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""
    reason: str | None = Field(None, max_length=1000)


class AppointmentStatusUpdate(BaseModel):
    """Schema for moving an appointment through its lifecycle."""
    status: AppointmentStatusLiteral
    reason: str | None = Field(None, max_length=1000)


class AppointmentRead(BaseModel):
    """Schema for reading an appointment."""
    id: UUID
    patient_id: UUID
    doctor_id: UUID
    appointment_date: date
    appointment_time: time
    duration_minutes: int
    buffer_time_minutes: int
    status: str
    appointment_type: str
    appointment_source: str
    priority: str
    chief_complaint: str | None
    notes: str | None
    source_rule_id: UUID | None
    rescheduled_from_id: UUID | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    created_by: UUID | None
    created_at: datetime
    updated_at: datetime


class AppointmentListItem(BaseModel):
    """Schema for appointment list item."""
    id: UUID
    patient_id: UUID
    doctor_id: UUID
    appointment_date: date
    appointment_time: time
    duration_minutes: int
    status: str
    appointment_type: str
    priority: str
    created_at: datetime


class AppointmentListResponse(BaseModel):
    """Schema for appointment list response."""
    items: list[AppointmentListItem]
    total: int
    page: int
    per_page: int
    pages: int


class RescheduleResponse(BaseModel):
    """Original (now cancelled) and replacement appointment."""
    original: AppointmentRead
    appointment: AppointmentRead


# =============================================================================
# Status History
# =============================================================================

class StatusHistoryRead(BaseModel):
    """Schema for one status change."""
    id: UUID
    old_status: str | None
    new_status: str
    reason: str | None
    changed_by: UUID | None
    changed_at: datetime


# =============================================================================
# Stats
# =============================================================================

class AppointmentStatsRead(BaseModel):
    """Appointment counts by status for a date range."""
    date_start: date
    date_end: date
    total: int
    by_status: dict[str, int]
