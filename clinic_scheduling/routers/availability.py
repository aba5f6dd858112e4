"""Availability router - action-dispatch endpoint for rules and slots.

GET  /availability?action=availabilities|stats   reads
POST /availability {"action": ..., ...payload}    writes and slot queries

Every response uses the envelope {success, action, data}. Engine errors are
rendered by the SchedulingError handler registered in main.
"""

from datetime import date
from typing import Any, Callable
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from clinic_scheduling.core.deps import get_current_session, get_db, require_csrf_header
from clinic_scheduling.core.errors import ValidationError
from clinic_scheduling.schemas.auth import TenantSession
from clinic_scheduling.schemas.availability import (
    ActionRequest,
    ActionResponse,
    AvailabilityRuleCreate,
    AvailabilityRuleRead,
    AvailabilityRuleUpdate,
    AvailabilityStatsRead,
    EndAvailabilityPayload,
    NextSlotPayload,
    SlotRangePayload,
    TimeSlotRead,
    UpdateAvailabilityPayload,
)
from clinic_scheduling.services import booking_service, rule_store, stats_service
from clinic_scheduling.services.booking_service import SlotAvailability
from clinic_scheduling.services.slot_generator import TimeSlot

router = APIRouter()

GET_ACTIONS = {
    "availabilities": "List availability rules (optional doctor_id, active_on)",
    "stats": "Slot utilization for date_start..date_end (optional doctor_id)",
}

POST_ACTIONS = {
    "create_availability": "Create a regular, exception or leave rule",
    "update_availability": "Edit a rule (rule_id plus changed fields)",
    "end_availability": "Retire a rule from effective_to onwards",
    "generate_slots": "All slots for doctor_id between date_start and date_end",
    "get_available_slots": "Slots with remaining capacity for doctor_id",
    "next_available_slot": "First bookable slot for doctor_id",
}


# =============================================================================
# Helper Functions
# =============================================================================

def _rule_to_read(rule) -> AvailabilityRuleRead:
    """Convert AvailabilityRule model to read schema."""
    return AvailabilityRuleRead(
        id=rule.id,
        doctor_id=rule.doctor_id,
        day_of_week=rule.day_of_week,
        start_time=rule.start_time,
        end_time=rule.end_time,
        slot_duration_minutes=rule.slot_duration_minutes,
        buffer_time_minutes=rule.buffer_time_minutes,
        max_patients_per_slot=rule.max_patients_per_slot,
        availability_type=rule.availability_type,
        effective_from=rule.effective_from,
        effective_to=rule.effective_to,
        notes=rule.notes,
        created_by=rule.created_by,
        updated_by=rule.updated_by,
        created_at=rule.created_at,
        updated_at=rule.updated_at,
    )


def _slot_to_read(slot: TimeSlot, booked: int | None = None) -> TimeSlotRead:
    """Convert a generated slot (and optional booking count) to read schema."""
    return TimeSlotRead(
        doctor_id=slot.doctor_id,
        date=slot.date,
        start_time=slot.start_time,
        end_time=slot.end_time,
        duration_minutes=slot.duration_minutes,
        capacity=slot.capacity,
        booked=booked,
        remaining=None if booked is None else max(slot.capacity - booked, 0),
        source_rule_id=slot.source_rule_id,
    )


def _availability_to_read(item: SlotAvailability) -> TimeSlotRead:
    return _slot_to_read(item.slot, item.booked)


def _parse(model: type[BaseModel], payload: dict[str, Any]):
    """Validate an action payload, reporting problems as a scheduling ValidationError."""
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'body'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ValidationError(problems)


# =============================================================================
# Reads
# =============================================================================

@router.get("", response_model=ActionResponse)
def availability_query(
    action: str = Query("capabilities"),
    doctor_id: UUID | None = None,
    active_on: date | None = None,
    date_start: date | None = None,
    date_end: date | None = None,
    session: TenantSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Read availability rules or stats. Unknown actions return the capability listing."""
    if action == "availabilities":
        rules = rule_store.list_rules(
            db, session.tenant_id, doctor_id=doctor_id, active_on=active_on
        )
        return ActionResponse(action=action, data=[_rule_to_read(r) for r in rules])

    if action == "stats":
        if not date_start:
            raise ValidationError("date_start is required for stats")
        stats = stats_service.get_availability_stats(
            db,
            session.tenant_id,
            date_start=date_start,
            date_end=date_end or date_start,
            doctor_id=doctor_id,
        )
        return ActionResponse(action=action, data=AvailabilityStatsRead(**stats))

    return ActionResponse(
        action="capabilities",
        data={
            "get_actions": GET_ACTIONS,
            "post_actions": POST_ACTIONS,
            "usage": "GET ?action=<name> or POST {\"action\": \"<name>\", ...}",
        },
    )


# =============================================================================
# Actions
# =============================================================================

def _create_availability(db: Session, session: TenantSession, payload: dict) -> Any:
    data = _parse(AvailabilityRuleCreate, payload)
    rule = rule_store.create_rule(db, session.tenant_id, data, created_by=session.user_id)
    return _rule_to_read(rule)


def _update_availability(db: Session, session: TenantSession, payload: dict) -> Any:
    data = _parse(UpdateAvailabilityPayload, payload)
    changes = AvailabilityRuleUpdate.model_validate(
        data.model_dump(exclude_unset=True, exclude={"rule_id"})
    )
    rule = rule_store.update_rule(
        db, session.tenant_id, data.rule_id, changes, updated_by=session.user_id
    )
    return _rule_to_read(rule)


def _end_availability(db: Session, session: TenantSession, payload: dict) -> Any:
    data = _parse(EndAvailabilityPayload, payload)
    rule = rule_store.end_rule(
        db, session.tenant_id, data.rule_id, data.effective_to, updated_by=session.user_id
    )
    return _rule_to_read(rule)


def _generate_slots(db: Session, session: TenantSession, payload: dict) -> Any:
    data = _parse(SlotRangePayload, payload)
    slots = booking_service.generate_slots(
        db, session.tenant_id, data.doctor_id, data.date_start, data.date_end or data.date_start
    )
    return {"slots": [_slot_to_read(s) for s in slots], "total": len(slots)}


def _get_available_slots(db: Session, session: TenantSession, payload: dict) -> Any:
    data = _parse(SlotRangePayload, payload)
    items = booking_service.get_available_slots(
        db, session.tenant_id, data.doctor_id, data.date_start, data.date_end
    )
    return {"slots": [_availability_to_read(i) for i in items], "total": len(items)}


def _next_available_slot(db: Session, session: TenantSession, payload: dict) -> Any:
    data = _parse(NextSlotPayload, payload)
    item = booking_service.get_next_available_slot(
        db,
        session.tenant_id,
        data.doctor_id,
        from_date=data.from_date,
        horizon_days=data.horizon_days,
    )
    return _availability_to_read(item) if item else None


ACTION_HANDLERS: dict[str, Callable[[Session, TenantSession, dict], Any]] = {
    "create_availability": _create_availability,
    "update_availability": _update_availability,
    "end_availability": _end_availability,
    "generate_slots": _generate_slots,
    "get_available_slots": _get_available_slots,
    "next_available_slot": _next_available_slot,
}


@router.post(
    "",
    response_model=ActionResponse,
    dependencies=[Depends(require_csrf_header)],
)
def availability_action(
    body: ActionRequest,
    response: Response,
    session: TenantSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Dispatch a POST action to the engine."""
    handler = ACTION_HANDLERS.get(body.action)
    if handler is None:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": "invalid_action",
                "detail": f"Invalid action. Available actions: {', '.join(ACTION_HANDLERS)}",
            },
        )

    data = handler(db, session, body.payload())
    if body.action == "create_availability":
        response.status_code = 201
    return ActionResponse(action=body.action, data=data)
