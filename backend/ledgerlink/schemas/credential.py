"""Xero credential schemas."""
from pydantic import BaseModel, Field


class CredentialCreate(BaseModel):
    """Register the Xero app credentials for a company."""

    client_id: str = Field(..., min_length=1)
    client_secret: str = Field(..., min_length=1)
    scope: str | None = None
    company_name: str | None = None


class CredentialUpdate(BaseModel):
    """Partial update; only fields present in the request are applied.

    An explicit null clears the stored value.
    """

    client_id: str | None = None
    client_secret: str | None = None
    scope: str | None = None
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: str | None = None
    tenant_id: str | None = None
    tenant_name: str | None = None
    tenant_type: str | None = None


class CredentialResponse(BaseModel):
    """Credential status; secrets and tokens are never returned."""

    id: str
    company_id: int
    client_id: str | None
    has_client_secret: bool
    scope: str
    connected: bool
    tenant_id: str | None
    tenant_name: str | None
    tenant_type: str | None
    expires_at: str | None


class AuthorizeResponse(BaseModel):
    authorization_url: str


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
