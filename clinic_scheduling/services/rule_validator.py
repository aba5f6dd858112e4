"""Availability rule validation and deduplication.

Pure functions over rule objects (ORM rows or anything with the same
attributes). Nothing here touches the database.

Checks:
- Structural checks of a single rule
- Overlapping regular rules for the same doctor
- A second exception rule on dates already covered by one
- Canonicalization of exact duplicates (upstream writes have no unique key)
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, time, timedelta
from typing import Iterable, Protocol, Sequence
from uuid import UUID

from clinic_scheduling.core.errors import RuleConflict, ValidationError
from clinic_scheduling.db.enums import AvailabilityType


class RuleLike(Protocol):
    id: UUID | None
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


def minutes_of_day(value: time) -> int:
    """Minutes since midnight (seconds are ignored)."""
    return value.hour * 60 + value.minute


def window_minutes(rule: RuleLike) -> int:
    return minutes_of_day(rule.end_time) - minutes_of_day(rule.start_time)


def canonical_key(rule: RuleLike) -> tuple:
    """Identity of a rule for deduplication purposes."""
    return (
        rule.doctor_id,
        rule.day_of_week,
        rule.start_time,
        rule.end_time,
        rule.availability_type,
    )


def platform_weekday(value: date) -> int:
    """Weekday number with Sunday=0 ... Saturday=6."""
    return (value.weekday() + 1) % 7


def applies_on_some_date(rule: RuleLike) -> bool:
    """False when a short effective range contains no date on the rule's weekday."""
    if rule.effective_to is None or (rule.effective_to - rule.effective_from).days >= 6:
        return True
    days = (rule.effective_to - rule.effective_from).days + 1
    return any(
        platform_weekday(rule.effective_from + timedelta(days=offset)) == rule.day_of_week
        for offset in range(days)
    )


def covers_date(rule: RuleLike, target: date) -> bool:
    """True if the rule's effective window includes `target`."""
    if target < rule.effective_from:
        return False
    return rule.effective_to is None or target <= rule.effective_to


# =============================================================================
# Structure
# =============================================================================

def validate_structure(rule: RuleLike) -> None:
    """
    Enforce the structural constraints of a single rule.

    Raises:
        ValidationError: describing the first violated constraint
    """
    if rule.doctor_id is None:
        raise ValidationError("doctor_id is required")
    if rule.day_of_week is None or not 0 <= rule.day_of_week <= 6:
        raise ValidationError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
    if rule.start_time is None or rule.end_time is None:
        raise ValidationError("start_time and end_time are required")
    if rule.start_time >= rule.end_time:
        raise ValidationError("start_time must be before end_time")
    if rule.slot_duration_minutes is None or rule.slot_duration_minutes <= 0:
        raise ValidationError("slot_duration_minutes must be greater than 0")
    if rule.buffer_time_minutes is None or rule.buffer_time_minutes < 0:
        raise ValidationError("buffer_time_minutes cannot be negative")
    if rule.max_patients_per_slot is None or rule.max_patients_per_slot < 1:
        raise ValidationError("max_patients_per_slot must be at least 1")
    try:
        rule_type = AvailabilityType(rule.availability_type)
    except ValueError:
        raise ValidationError(f"Unknown availability_type '{rule.availability_type}'")
    if rule.effective_from is None:
        raise ValidationError("effective_from is required")
    if rule.effective_to is not None and rule.effective_from > rule.effective_to:
        raise ValidationError("effective_from must not be after effective_to")
    if not applies_on_some_date(rule):
        raise ValidationError(
            "effective_from..effective_to contains no date on day_of_week; "
            "the rule would never apply"
        )

    # Leave rules only block days; they never produce slots
    if rule_type != AvailabilityType.LEAVE:
        needed = rule.slot_duration_minutes + rule.buffer_time_minutes
        if needed > window_minutes(rule):
            raise ValidationError(
                "slot_duration_minutes + buffer_time_minutes does not fit in the "
                "time window; the rule would produce no slots"
            )


# =============================================================================
# Conflicts
# =============================================================================

def _times_overlap(a: RuleLike, b: RuleLike) -> bool:
    return a.start_time < b.end_time and b.start_time < a.end_time


def _dates_overlap(a: RuleLike, b: RuleLike) -> bool:
    a_end = a.effective_to or date.max
    b_end = b.effective_to or date.max
    return a.effective_from <= b_end and b.effective_from <= a_end


def find_conflict(existing_rules: Iterable[RuleLike], candidate: RuleLike) -> RuleConflict | None:
    """Return the first conflict between `candidate` and `existing_rules`, if any."""
    candidate_type = AvailabilityType(candidate.availability_type)
    if candidate_type == AvailabilityType.LEAVE:
        return None

    for rule in existing_rules:
        if rule.doctor_id != candidate.doctor_id:
            continue
        if candidate.id is not None and rule.id == candidate.id:
            continue
        if rule.availability_type != candidate_type.value:
            continue
        if rule.day_of_week != candidate.day_of_week or not _dates_overlap(rule, candidate):
            continue

        if candidate_type == AvailabilityType.REGULAR and _times_overlap(rule, candidate):
            if canonical_key(rule) == canonical_key(candidate):
                reason = "An identical regular rule already exists for this doctor"
            else:
                reason = (
                    f"Regular hours {candidate.start_time:%H:%M}-{candidate.end_time:%H:%M} "
                    f"overlap existing hours {rule.start_time:%H:%M}-{rule.end_time:%H:%M}"
                )
            return RuleConflict(rule.id, reason)

        if candidate_type == AvailabilityType.EXCEPTION:
            return RuleConflict(
                rule.id,
                "Another exception rule already covers these dates; "
                "combine them into one or end the existing rule first",
            )
    return None


def validate(existing_rules: Iterable[RuleLike], candidate: RuleLike) -> None:
    """
    Validate a candidate rule against a doctor's existing rules.

    Raises:
        ValidationError: candidate is structurally invalid
        RuleConflict: candidate overlaps an existing rule
    """
    validate_structure(candidate)
    conflict = find_conflict(existing_rules, candidate)
    if conflict is not None:
        raise conflict


# =============================================================================
# Deduplication
# =============================================================================

def _age_key(rule: RuleLike) -> tuple:
    created_at = getattr(rule, "created_at", None)
    return (created_at is None, created_at or 0, str(rule.id))


def find_duplicates(rules: Iterable[RuleLike]) -> list[list[RuleLike]]:
    """Groups of rules sharing a canonical key, oldest first. Singletons omitted."""
    groups: dict[tuple, list[RuleLike]] = defaultdict(list)
    for rule in rules:
        groups[canonical_key(rule)].append(rule)
    return [sorted(group, key=_age_key) for group in groups.values() if len(group) > 1]


def canonicalize(rules: Sequence[RuleLike]) -> list[RuleLike]:
    """
    Collapse exact duplicates to one rule per canonical key.

    The earliest created rule wins; input order is otherwise preserved.
    """
    keep: dict[tuple, RuleLike] = {}
    for rule in rules:
        key = canonical_key(rule)
        current = keep.get(key)
        if current is None or _age_key(rule) < _age_key(current):
            keep[key] = rule
    kept_ids = {id(rule) for rule in keep.values()}
    return [rule for rule in rules if id(rule) in kept_ids]
