"""FastAPI dependencies for authentication and database access."""

from typing import Generator

import jwt
from fastapi import HTTPException, Request
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from clinic_scheduling.core.security import decode_session_token
from clinic_scheduling.db.session import SessionLocal
from clinic_scheduling.schemas.auth import TenantSession, TokenPayload


# Cookie and header names
COOKIE_NAME = "clinic_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_session(request: Request) -> TenantSession:
    """
    Get caller context from the session cookie.

    Identity is owned by the platform auth service; here we only verify the
    signed token and extract user, tenant and role.

    Raises:
        HTTPException 401: Not authenticated
    """
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = TokenPayload.model_validate(decode_session_token(token))
    except (jwt.InvalidTokenError, PydanticValidationError):
        raise HTTPException(status_code=401, detail="Invalid session")

    return TenantSession(
        user_id=payload.sub,
        tenant_id=payload.tenant_id,
        role=payload.role,
    )


def require_csrf_header(request: Request) -> None:
    """
    Verify CSRF header on mutations.

    Apply to state-changing endpoints (POST, PATCH, DELETE).

    Raises:
        HTTPException 403: Missing or invalid CSRF header
    """
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'"
        )
