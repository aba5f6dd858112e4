"""Availability and appointment enums."""

from enum import Enum


class AvailabilityType(str, Enum):
    """
    Kind of availability rule.

    Precedence on a given date: leave > exception > regular.
    """

    REGULAR = "regular"  # Recurring weekly hours
    EXCEPTION = "exception"  # One-off schedule change, replaces regular hours
    LEAVE = "leave"  # No availability at all


class AppointmentStatus(str, Enum):
    """
    Appointment lifecycle status.

    Flow: scheduled → confirmed → completed
              ↘ cancelled   ↘ cancelled
              ↘ no_show     ↘ no_show
    """

    SCHEDULED = "scheduled"  # Booked, awaiting confirmation
    CONFIRMED = "confirmed"  # Confirmed with the patient
    COMPLETED = "completed"  # Visit took place
    CANCELLED = "cancelled"  # Cancelled by patient or staff
    NO_SHOW = "no_show"  # Patient didn't show up


class AppointmentType(str, Enum):
    """Reason category for the visit."""

    CONSULTATION = "consultation"
    FOLLOW_UP = "follow_up"
    EMERGENCY = "emergency"
    PROCEDURE = "procedure"


class AppointmentSource(str, Enum):
    """Channel the booking came through."""

    MANUAL = "manual"
    ONLINE = "online"
    WHATSAPP = "whatsapp"
    PHONE = "phone"
    PATIENT_PORTAL = "patient_portal"


class AppointmentPriority(str, Enum):
    NORMAL = "normal"
    URGENT = "urgent"
    EMERGENCY = "emergency"


# Allowed status transitions; anything not listed is rejected
APPOINTMENT_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

# Default appointment status
DEFAULT_APPOINTMENT_STATUS = AppointmentStatus.SCHEDULED
