"""Availability schemas - Pydantic models for the availability API."""

from datetime import date, datetime, time
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field


# =============================================================================
# Availability Rules
# =============================================================================

class AvailabilityRuleCreate(BaseModel):
    """Schema for creating an availability rule."""
    doctor_id: UUID
    day_of_week: int = Field(..., ge=0, le=6, description="Sunday=0, Saturday=6")
    start_time: time
    end_time: time
    slot_duration_minutes: int = Field(30, gt=0, le=480)
    buffer_time_minutes: int = Field(0, ge=0, le=240)
    max_patients_per_slot: int = Field(1, ge=1, le=100)
    availability_type: Literal["regular", "exception", "leave"] = "regular"
    effective_from: date
    effective_to: date | None = None
    notes: str | None = Field(None, max_length=2000)


class AvailabilityRuleUpdate(BaseModel):
    """Schema for editing an availability rule. Only provided fields change."""
    day_of_week: int | None = Field(None, ge=0, le=6)
    start_time: time | None = None
    end_time: time | None = None
    slot_duration_minutes: int | None = Field(None, gt=0, le=480)
    buffer_time_minutes: int | None = Field(None, ge=0, le=240)
    max_patients_per_slot: int | None = Field(None, ge=1, le=100)
    availability_type: Literal["regular", "exception", "leave"] | None = None
    effective_from: date | None = None
    effective_to: date | None = None
    notes: str | None = Field(None, max_length=2000)


class AvailabilityRuleRead(BaseModel):
    """Schema for reading an availability rule."""
    id: UUID
    doctor_id: UUID
    day_of_week: int
    start_time: time
    end_time: time
    slot_duration_minutes: int
    buffer_time_minutes: int
    max_patients_per_slot: int
    availability_type: str
    effective_from: date
    effective_to: date | None
    notes: str | None
    created_by: UUID | None
    updated_by: UUID | None
    created_at: datetime
    updated_at: datetime


# =============================================================================
# Slots
# =============================================================================

class TimeSlotRead(BaseModel):
    """Schema for a generated slot."""
    doctor_id: UUID
    date: date
    start_time: time
    end_time: time
    duration_minutes: int
    capacity: int
    booked: int | None = None
    remaining: int | None = None
    source_rule_id: UUID | None


# =============================================================================
# Stats
# =============================================================================

class DoctorAvailabilityStats(BaseModel):
    """Per-doctor slot utilization."""
    doctor_id: UUID
    total_slots: int
    booked_slots: int
    available_slots: int
    utilization_rate: float
    total_capacity: int
    booked_capacity: int
    occupancy_rate: float
    next_available_slot: TimeSlotRead | None = None


class AvailabilityStatsRead(BaseModel):
    """Tenant-wide slot utilization for a date range."""
    date_start: date
    date_end: date
    total_slots: int
    booked_slots: int
    available_slots: int
    utilization_rate: float
    total_capacity: int
    booked_capacity: int
    occupancy_rate: float
    doctors_with_availability: int
    per_doctor_breakdown: list[DoctorAvailabilityStats]


# =============================================================================
# Action Dispatch
# =============================================================================

class ActionRequest(BaseModel):
    """Envelope for POST /availability. Payload fields sit next to `action`."""
    model_config = {"extra": "allow"}

    action: str = Field(..., min_length=1, max_length=50)

    def payload(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class UpdateAvailabilityPayload(AvailabilityRuleUpdate):
    rule_id: UUID


class EndAvailabilityPayload(BaseModel):
    rule_id: UUID
    effective_to: date


class SlotRangePayload(BaseModel):
    doctor_id: UUID
    date_start: date
    date_end: date | None = None


class NextSlotPayload(BaseModel):
    doctor_id: UUID
    from_date: date | None = None
    horizon_days: int | None = Field(None, ge=1, le=366)


class ActionResponse(BaseModel):
    """Success envelope for action-dispatch responses."""
    success: bool = True
    action: str
    data: Any = None
