"""JWT session tokens.

Tokens are issued by the platform's auth service; this module only needs to
verify them. `create_session_token` mirrors the issuer's format and is used by
tests and local tooling.
"""

from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from clinic_scheduling.core.config import settings


def create_session_token(
    user_id: UUID,
    tenant_id: UUID,
    role: str,
    expires_hours: int | None = None,
) -> str:
    """
    Create signed session JWT.

    Always signs with current secret (JWT_SECRET).
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "tenant_id": str(tenant_id),
        "role": role,
        "iat": now,
        "exp": now + timedelta(hours=expires_hours or settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_session_token(token: str) -> dict:
    """
    Decode and verify session JWT.

    Tries current secret first, then previous (for rotation support).

    Raises:
        jwt.InvalidTokenError: If token invalid with all secrets
    """
    last_error = None
    for secret in settings.jwt_secrets:
        try:
            return jwt.decode(token, secret, algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            last_error = e
            continue
    raise last_error  # type: ignore
