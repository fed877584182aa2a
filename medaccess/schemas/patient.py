"""Pydantic schemas for patient accounts."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class PatientCreate(BaseModel):
    """Open a patient account for the calling identity."""

    name: str = Field(..., description="Display name (max 50 characters)")
    date_of_birth: date
    emergency_contact: str | None = Field(None, description="Identity to contact in an emergency")


class PatientUpdate(BaseModel):
    emergency_contact: str | None = None


class PatientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    owner: str
    name: str
    date_of_birth: date
    is_active: bool
    emergency_contact: str | None = None
    record_count: int
    access_grant_count: int
    created_at: datetime
    updated_at: datetime
