"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel


class TokenPayload(BaseModel):
    """Decoded JWT payload structure."""
    sub: UUID  # user_id
    tenant_id: UUID
    role: str


class TenantSession(BaseModel):
    """
    Caller context for authenticated requests.

    Returned by the get_current_session dependency. tenant_id scopes every
    engine call and is never taken from a request body.
    """
    user_id: UUID
    tenant_id: UUID
    role: str
