"""Pydantic schemas for pharmacy administration."""

import datetime
import uuid

from pydantic import BaseModel, Field


class AdminPharmacy(BaseModel):
    """Pharmacy row as shown in the administration table."""

    id: uuid.UUID
    id_nat: str | None = None
    name: str | None = None
    address: str | None = None
    area: str | None = None
    ca: float | None = None
    employees_count: int | None = None
    ca_rank: int | None = None
    user_count: int = 0
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None


class PharmacyUpdate(BaseModel):
    """Partial update; only fields present in the body are written."""

    name: str | None = Field(None, max_length=255)
    id_nat: str | None = Field(None, max_length=50)
    address: str | None = None
    area: str | None = Field(None, max_length=100)
    ca: float | None = Field(None, ge=0)
    employees_count: int | None = Field(None, ge=0)


class PharmacyUpdateResponse(BaseModel):
    success: bool = True
    pharmacy: AdminPharmacy
