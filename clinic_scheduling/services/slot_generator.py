"""Slot generation from availability rules.

Turns a doctor's weekly rules into concrete dated slots. Pure and
deterministic: the same rules and range always yield the same slots in the
same order, and nothing is cached between calls.

Precedence on a single date:
- any leave rule blocks the whole day
- otherwise exception rules replace the regular hours
- otherwise the regular rules apply
"""

from __future__ import annotations

import logging
from datetime import date, time, timedelta
from typing import Iterable, Iterator, NamedTuple, Sequence
from uuid import UUID

from clinic_scheduling.db.enums import AvailabilityType
from clinic_scheduling.services.rule_validator import (
    RuleLike,
    canonicalize,
    covers_date,
    find_duplicates,
    minutes_of_day,
    platform_weekday,
)

logger = logging.getLogger(__name__)


class TimeSlot(NamedTuple):
    """A bookable slot on a specific date."""

    doctor_id: UUID
    date: date
    start_time: time
    end_time: time
    capacity: int
    source_rule_id: UUID | None
    buffer_time_minutes: int = 0

    @property
    def duration_minutes(self) -> int:
        return minutes_of_day(self.end_time) - minutes_of_day(self.start_time)


def _time_from_minutes(total: int) -> time:
    return time(total // 60, total % 60)


def _iter_dates(date_start: date, date_end: date) -> Iterator[date]:
    current = date_start
    while current <= date_end:
        yield current
        current += timedelta(days=1)


def rules_for_date(rules: Iterable[RuleLike], doctor_id: UUID, target: date) -> list[RuleLike]:
    """Rules of `doctor_id` that apply on `target`, duplicates collapsed."""
    weekday = platform_weekday(target)
    applicable = [
        rule for rule in rules
        if rule.doctor_id == doctor_id
        and rule.day_of_week == weekday
        and covers_date(rule, target)
    ]
    for group in find_duplicates(applicable):
        logger.warning(
            "Collapsing %s duplicate availability rules",
            len(group),
            extra={"doctor_id": str(doctor_id), "rule_id": str(group[0].id)},
        )
    return canonicalize(applicable)


def resolve_rules(applicable: Sequence[RuleLike]) -> list[RuleLike]:
    """Apply leave > exception > regular precedence to one date's rules."""
    by_type: dict[str, list[RuleLike]] = {t.value: [] for t in AvailabilityType}
    for rule in applicable:
        by_type.setdefault(rule.availability_type, []).append(rule)

    if by_type[AvailabilityType.LEAVE.value]:
        return []
    if by_type[AvailabilityType.EXCEPTION.value]:
        return by_type[AvailabilityType.EXCEPTION.value]
    return by_type[AvailabilityType.REGULAR.value]


def _walk_rule(rule: RuleLike, doctor_id: UUID, target: date) -> Iterator[TimeSlot]:
    start = minutes_of_day(rule.start_time)
    end = minutes_of_day(rule.end_time)
    duration = rule.slot_duration_minutes
    step = duration + rule.buffer_time_minutes

    cursor = start
    while cursor + duration <= end:
        yield TimeSlot(
            doctor_id=doctor_id,
            date=target,
            start_time=_time_from_minutes(cursor),
            end_time=_time_from_minutes(cursor + duration),
            capacity=rule.max_patients_per_slot,
            source_rule_id=rule.id,
            buffer_time_minutes=rule.buffer_time_minutes,
        )
        cursor += step


def slots_for_date(rules: Iterable[RuleLike], doctor_id: UUID, target: date) -> list[TimeSlot]:
    """All slots for one doctor on one date, ordered by start time."""
    resolved = resolve_rules(rules_for_date(rules, doctor_id, target))
    slots: list[TimeSlot] = []
    for rule in resolved:
        slots.extend(_walk_rule(rule, doctor_id, target))
    slots.sort(key=lambda slot: (slot.start_time, slot.end_time))
    return slots


def generate(
    doctor_id: UUID,
    date_start: date,
    date_end: date,
    rules: Sequence[RuleLike],
) -> Iterator[TimeSlot]:
    """
    Lazily yield every slot for `doctor_id` between two dates (inclusive).

    Each call starts from scratch, so the result can be iterated again by
    calling generate() again with the same arguments.
    """
    for target in _iter_dates(date_start, date_end):
        yield from slots_for_date(rules, doctor_id, target)


def is_on_leave(rules: Iterable[RuleLike], doctor_id: UUID, target: date) -> bool:
    """True if a leave rule covers `target` for this doctor."""
    return any(
        rule.availability_type == AvailabilityType.LEAVE.value
        for rule in rules_for_date(rules, doctor_id, target)
    )


def find_slot(
    rules: Iterable[RuleLike],
    doctor_id: UUID,
    target: date,
    start_time: time,
) -> TimeSlot | None:
    """The generated slot starting exactly at `start_time`, or None."""
    for slot in slots_for_date(rules, doctor_id, target):
        if slot.start_time == start_time:
            return slot
    return None
