"""Transaction helpers with retry/backoff for transient storage failures."""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from clinic_scheduling.core.config import settings
from clinic_scheduling.core.errors import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SlotLockContention(Exception):
    """Another transaction created the same slot lock row first."""


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, SlotLockContention):
        return True
    if isinstance(exc, OperationalError):
        return True
    # Dropped connections surface as DBAPIError with the invalidation flag set
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


def run_in_transaction(
    db: Session,
    work: Callable[[], T],
    *,
    max_attempts: int | None = None,
    base_delay: float | None = None,
    max_delay: float | None = None,
    log_context: dict | None = None,
) -> T:
    """
    Run `work` and commit, retrying transient failures with exponential backoff.

    `work` must be safe to re-run from scratch: every attempt starts after a
    rollback, so nothing from a failed attempt is visible. Domain errors
    (capacity, overlap, validation) roll back and propagate immediately.
    """
    attempts = max_attempts or settings.BOOKING_MAX_ATTEMPTS
    base = settings.BOOKING_RETRY_BASE_DELAY if base_delay is None else base_delay
    cap = settings.BOOKING_RETRY_MAX_DELAY if max_delay is None else max_delay

    for attempt in range(attempts):
        try:
            result = work()
            db.commit()
            return result
        except Exception as exc:
            db.rollback()
            if not _is_transient(exc):
                raise
            if attempt >= attempts - 1:
                logger.error(
                    "Storage failure after %s attempts",
                    attempts,
                    exc_info=exc,
                    extra=log_context or {},
                )
                raise StorageError(
                    "Storage is temporarily unavailable, please try again later"
                ) from exc
            delay = min(cap, base * (2**attempt))
            if delay:
                delay = delay + random.uniform(0, delay / 2)
            logger.warning(
                "Transient storage failure, retrying (attempt %s/%s)",
                attempt + 1,
                attempts,
                exc_info=exc,
                extra=log_context or {},
            )
            if delay:
                time.sleep(delay)

    raise StorageError("Storage is temporarily unavailable, please try again later")
