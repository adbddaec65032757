"""Pydantic schemas for authentication."""

import uuid

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)


class SessionUser(BaseModel):
    """User attached to a freshly issued token."""

    model_config = ConfigDict(populate_by_name=True)

    id: uuid.UUID
    email: str
    name: str | None = None
    role: str
    pharmacy_id: uuid.UUID | None = Field(None, alias="pharmacyId")
    pharmacy_name: str | None = Field(None, alias="pharmacyName")


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: SessionUser


class CurrentUser(BaseModel):
    """Identity carried by the bearer token."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    role: str
    is_admin: bool = Field(..., alias="isAdmin")
    pharmacy_id: str | None = Field(None, alias="pharmacyId")
    pharmacy_name: str | None = Field(None, alias="pharmacyName")
