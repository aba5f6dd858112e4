"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from clinic_scheduling.core.config import settings
from clinic_scheduling.core.errors import SchedulingError
from clinic_scheduling.core.structured_logging import build_log_context, configure_logging
from clinic_scheduling.db.session import engine

configure_logging()
logger = logging.getLogger(__name__)


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Clinic Scheduling API",
    description="Doctor availability, slot generation and appointment booking",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,  # Required for cookies
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "X-Requested-With"],
)


# ============================================================================
# Error Handling
# ============================================================================

async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    """Render engine errors with a stable code and the conflicting id, if any."""
    context = build_log_context(
        request_id=request.headers.get("X-Request-ID"),
        route=request.url.path,
        method=request.method,
    )
    if exc.status_code >= 500:
        logger.error("Scheduling request failed: %s", exc.code, extra=context)
    else:
        logger.info("Scheduling request rejected: %s", exc.code, extra=context)

    content = {"success": False, "error": exc.code, "detail": exc.message}
    if exc.conflicting_id is not None:
        content["conflicting_id"] = str(exc.conflicting_id)
    return JSONResponse(status_code=exc.status_code, content=content)


app.add_exception_handler(SchedulingError, scheduling_error_handler)


# ============================================================================
# Routers
# ============================================================================

from clinic_scheduling.routers import appointments, availability

# Availability rules and slot queries (action dispatch)
app.include_router(availability.router, prefix="/availability", tags=["availability"])

# Appointments (internal, authenticated)
app.include_router(appointments.router, prefix="/appointments", tags=["appointments"])


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
