"""Availability rule storage.

RuleStore is the only writer of doctor_availability. Rules are never deleted
to retire them; end_rule() sets effective_to instead so past bookings keep
their provenance.
"""

import logging
from datetime import date
from types import SimpleNamespace
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from clinic_scheduling.core.errors import NotFoundError, ValidationError
from clinic_scheduling.core.structured_logging import build_log_context
from clinic_scheduling.db.models import AvailabilityRule
from clinic_scheduling.db.transactions import run_in_transaction
from clinic_scheduling.schemas.availability import AvailabilityRuleCreate, AvailabilityRuleUpdate
from clinic_scheduling.services import rule_validator

logger = logging.getLogger(__name__)

# Fields an edit may set back to NULL
CLEARABLE_FIELDS = {"effective_to", "notes"}

RULE_FIELDS = (
    "id",
    "doctor_id",
    "day_of_week",
    "start_time",
    "end_time",
    "slot_duration_minutes",
    "buffer_time_minutes",
    "max_patients_per_slot",
    "availability_type",
    "effective_from",
    "effective_to",
    "created_at",
)


# =============================================================================
# Reads
# =============================================================================

def get_rule(db: Session, tenant_id: UUID, rule_id: UUID) -> AvailabilityRule | None:
    """Get availability rule by ID."""
    return db.query(AvailabilityRule).filter(
        AvailabilityRule.id == rule_id,
        AvailabilityRule.tenant_id == tenant_id,
    ).first()


def list_rules(
    db: Session,
    tenant_id: UUID,
    doctor_id: UUID | None = None,
    day_of_week: int | None = None,
    active_on: date | None = None,
    availability_type: str | None = None,
) -> list[AvailabilityRule]:
    """List rules of a tenant, optionally narrowed to one doctor, weekday or date."""
    query = db.query(AvailabilityRule).filter(AvailabilityRule.tenant_id == tenant_id)

    if doctor_id:
        query = query.filter(AvailabilityRule.doctor_id == doctor_id)
    if day_of_week is not None:
        query = query.filter(AvailabilityRule.day_of_week == day_of_week)
    if availability_type:
        query = query.filter(AvailabilityRule.availability_type == availability_type)
    if active_on:
        query = query.filter(
            AvailabilityRule.effective_from <= active_on,
            or_(
                AvailabilityRule.effective_to.is_(None),
                AvailabilityRule.effective_to >= active_on,
            ),
        )

    return query.order_by(
        AvailabilityRule.doctor_id,
        AvailabilityRule.day_of_week,
        AvailabilityRule.start_time,
        AvailabilityRule.created_at,
    ).all()


def list_rules_for_range(
    db: Session,
    tenant_id: UUID,
    doctor_id: UUID | None,
    date_start: date,
    date_end: date,
) -> list[AvailabilityRule]:
    """Rules whose effective window intersects [date_start, date_end]."""
    query = db.query(AvailabilityRule).filter(
        AvailabilityRule.tenant_id == tenant_id,
        AvailabilityRule.effective_from <= date_end,
        or_(
            AvailabilityRule.effective_to.is_(None),
            AvailabilityRule.effective_to >= date_start,
        ),
    )
    if doctor_id:
        query = query.filter(AvailabilityRule.doctor_id == doctor_id)

    return query.order_by(
        AvailabilityRule.day_of_week,
        AvailabilityRule.start_time,
        AvailabilityRule.created_at,
        AvailabilityRule.id,
    ).all()


def list_doctor_ids(
    db: Session,
    tenant_id: UUID,
    date_start: date | None = None,
    date_end: date | None = None,
) -> list[UUID]:
    """Doctors that have at least one rule (in the range, when given)."""
    query = db.query(AvailabilityRule.doctor_id).filter(
        AvailabilityRule.tenant_id == tenant_id,
    )
    if date_end:
        query = query.filter(AvailabilityRule.effective_from <= date_end)
    if date_start:
        query = query.filter(
            or_(
                AvailabilityRule.effective_to.is_(None),
                AvailabilityRule.effective_to >= date_start,
            )
        )
    rows = query.distinct().all()
    return sorted((row[0] for row in rows), key=str)


def _doctor_rules(db: Session, tenant_id: UUID, doctor_id: UUID) -> list[AvailabilityRule]:
    return db.query(AvailabilityRule).filter(
        AvailabilityRule.tenant_id == tenant_id,
        AvailabilityRule.doctor_id == doctor_id,
    ).all()


# =============================================================================
# Writes
# =============================================================================

def create_rule(
    db: Session,
    tenant_id: UUID,
    data: AvailabilityRuleCreate,
    created_by: UUID | None = None,
) -> AvailabilityRule:
    """
    Create an availability rule for a doctor.

    Raises:
        ValidationError: rule is structurally invalid
        RuleConflict: rule overlaps an existing rule of the same doctor
        StorageError: storage kept failing after retries
    """

    def work() -> AvailabilityRule:
        rule = AvailabilityRule(
            tenant_id=tenant_id,
            doctor_id=data.doctor_id,
            day_of_week=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
            slot_duration_minutes=data.slot_duration_minutes,
            buffer_time_minutes=data.buffer_time_minutes,
            max_patients_per_slot=data.max_patients_per_slot,
            availability_type=data.availability_type,
            effective_from=data.effective_from,
            effective_to=data.effective_to,
            notes=data.notes,
            created_by=created_by,
            updated_by=created_by,
        )
        rule_validator.validate(_doctor_rules(db, tenant_id, data.doctor_id), rule)
        db.add(rule)
        return rule

    rule = run_in_transaction(
        db, work, log_context=build_log_context(tenant_id=tenant_id, doctor_id=data.doctor_id)
    )
    db.refresh(rule)

    logger.info(
        "Availability rule created",
        extra=build_log_context(tenant_id=tenant_id, doctor_id=rule.doctor_id, rule_id=rule.id),
    )
    return rule


def _get_or_404(db: Session, tenant_id: UUID, rule_id: UUID) -> AvailabilityRule:
    rule = get_rule(db, tenant_id, rule_id)
    if not rule:
        raise NotFoundError("Availability rule not found")
    return rule


def update_rule(
    db: Session,
    tenant_id: UUID,
    rule_id: UUID,
    changes: AvailabilityRuleUpdate,
    updated_by: UUID | None = None,
) -> AvailabilityRule:
    """
    Apply a partial edit to a rule.

    The edited rule is validated as a whole against the doctor's other rules
    before anything is written; a rejected edit leaves the row unchanged.

    Raises:
        NotFoundError: rule does not exist for this tenant
        ValidationError: edited rule is structurally invalid
        RuleConflict: edited rule overlaps another rule
        StorageError: storage kept failing after retries
    """
    update_data = {
        field: value
        for field, value in changes.model_dump(exclude_unset=True).items()
        if field in AvailabilityRuleUpdate.model_fields
        and (value is not None or field in CLEARABLE_FIELDS)
    }
    if not update_data:
        return _get_or_404(db, tenant_id, rule_id)

    def work() -> AvailabilityRule:
        rule = _get_or_404(db, tenant_id, rule_id)

        draft = SimpleNamespace(**{field: getattr(rule, field) for field in RULE_FIELDS})
        for field, value in update_data.items():
            setattr(draft, field, value)
        rule_validator.validate(_doctor_rules(db, tenant_id, rule.doctor_id), draft)

        for field, value in update_data.items():
            setattr(rule, field, value)
        rule.updated_by = updated_by
        return rule

    rule = run_in_transaction(
        db, work, log_context=build_log_context(tenant_id=tenant_id, rule_id=rule_id)
    )
    db.refresh(rule)

    logger.info(
        "Availability rule updated",
        extra=build_log_context(tenant_id=tenant_id, doctor_id=rule.doctor_id, rule_id=rule.id),
    )
    return rule


def end_rule(
    db: Session,
    tenant_id: UUID,
    rule_id: UUID,
    effective_to: date,
    updated_by: UUID | None = None,
) -> AvailabilityRule:
    """
    Retire a rule by setting its last active day.

    The rule stays active through `effective_to`, inclusive.

    Raises:
        NotFoundError: rule does not exist for this tenant
        ValidationError: effective_to falls before effective_from
        StorageError: storage kept failing after retries
    """

    def work() -> AvailabilityRule:
        rule = _get_or_404(db, tenant_id, rule_id)
        if effective_to < rule.effective_from:
            raise ValidationError("effective_to must not be before effective_from")
        rule.effective_to = effective_to
        rule.updated_by = updated_by
        return rule

    rule = run_in_transaction(
        db, work, log_context=build_log_context(tenant_id=tenant_id, rule_id=rule_id)
    )
    db.refresh(rule)

    logger.info(
        "Availability rule ended",
        extra=build_log_context(tenant_id=tenant_id, doctor_id=rule.doctor_id, rule_id=rule.id),
    )
    return rule
