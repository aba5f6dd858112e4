"""Pydantic schemas for API request/response models."""

from clinic_scheduling.schemas.auth import TenantSession, TokenPayload
from clinic_scheduling.schemas.availability import (
    ActionRequest,
    ActionResponse,
    AvailabilityRuleCreate,
    AvailabilityRuleRead,
    AvailabilityRuleUpdate,
    AvailabilityStatsRead,
    DoctorAvailabilityStats,
    TimeSlotRead,
)
from clinic_scheduling.schemas.appointment import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentListItem,
    AppointmentListResponse,
    AppointmentRead,
    AppointmentReschedule,
    AppointmentStatsRead,
    AppointmentStatusUpdate,
    RescheduleResponse,
    StatusHistoryRead,
)

__all__ = [
    "TenantSession",
    "TokenPayload",
    "ActionRequest",
    "ActionResponse",
    "AvailabilityRuleCreate",
    "AvailabilityRuleRead",
    "AvailabilityRuleUpdate",
    "AvailabilityStatsRead",
    "DoctorAvailabilityStats",
    "TimeSlotRead",
    "AppointmentCancel",
    "AppointmentCreate",
    "AppointmentListItem",
    "AppointmentListResponse",
    "AppointmentRead",
    "AppointmentReschedule",
    "AppointmentStatsRead",
    "AppointmentStatusUpdate",
    "RescheduleResponse",
    "StatusHistoryRead",
]
