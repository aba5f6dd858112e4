"""Scheduling error taxonomy.

Every error carries an HTTP status and a stable machine-readable code so the
API layer can render it without guessing, and so callers can tell an invalid
request apart from a transient storage failure.
"""

from uuid import UUID


class SchedulingError(Exception):
    """Base exception for availability and booking errors."""

    status_code = 400
    code = "scheduling_error"

    def __init__(self, message: str, conflicting_id: UUID | None = None):
        super().__init__(message)
        self.message = message
        self.conflicting_id = conflicting_id


class ValidationError(SchedulingError):
    """Malformed or missing fields, invalid time or date ranges."""

    status_code = 422
    code = "validation_error"


class NotFoundError(SchedulingError):
    """Rule or appointment does not exist for this tenant."""

    status_code = 404
    code = "not_found"


class RuleConflict(SchedulingError):
    """Candidate rule overlaps an existing rule of the same doctor."""

    status_code = 409
    code = "rule_conflict"

    def __init__(self, conflicting_rule_id: UUID | None, reason: str):
        super().__init__(reason, conflicting_id=conflicting_rule_id)
        self.conflicting_rule_id = conflicting_rule_id
        self.reason = reason


class SlotUnavailableError(SchedulingError):
    """No bookable slot starts at the requested time (or the doctor is on leave)."""

    status_code = 409
    code = "slot_unavailable"


class SlotFullError(SchedulingError):
    """Slot capacity exhausted, or the request overlaps another appointment."""

    status_code = 409
    code = "slot_full"


class InvalidTransition(SchedulingError):
    """Status change not allowed by the appointment state machine."""

    status_code = 409
    code = "invalid_transition"

    def __init__(self, current_status: str, new_status: str, appointment_id: UUID | None = None):
        super().__init__(
            f"Cannot change appointment status from '{current_status}' to '{new_status}'",
            conflicting_id=appointment_id,
        )
        self.current_status = current_status
        self.new_status = new_status


class StorageError(SchedulingError):
    """Storage kept failing after bounded retries. Safe to try again later."""

    status_code = 503
    code = "storage_unavailable"
