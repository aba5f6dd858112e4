"""Structured logging helpers (PHI-safe)."""

import logging
from typing import Any
from uuid import UUID

from clinic_scheduling.core.config import settings


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once at application startup."""
    logging.basicConfig(level=(level or settings.LOG_LEVEL).upper(), format=LOG_FORMAT)


def build_log_context(
    *,
    tenant_id: UUID | str | None = None,
    doctor_id: UUID | str | None = None,
    appointment_id: UUID | str | None = None,
    rule_id: UUID | str | None = None,
    request_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """
    Return a PHI-safe log context dict.

    Only opaque identifiers go in here. Patient ids, complaints and notes
    must never be logged.
    """
    context: dict[str, Any] = {}
    if tenant_id:
        context["tenant_id"] = str(tenant_id)
    if doctor_id:
        context["doctor_id"] = str(doctor_id)
    if appointment_id:
        context["appointment_id"] = str(appointment_id)
    if rule_id:
        context["rule_id"] = str(rule_id)
    if request_id:
        context["request_id"] = request_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
