"""
Pydantic schemas for volunteer registrations.
"""
from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.features.volunteer_registrations.models import RegistrationStatus


class RegistrationCreate(BaseModel):
    grid_id: str = Field(..., min_length=1, max_length=26)
    volunteer_name: str = Field(..., min_length=1, max_length=255)
    volunteer_phone: str | None = Field(None, max_length=50)
    volunteer_email: EmailStr | None = None
    notes: str | None = Field(None, max_length=2000)


class RegistrationStatusUpdate(BaseModel):
    status: RegistrationStatus


class RegistrationResponse(BaseModel):
    id: str
    grid_id: str
    user_id: str | None = None
    volunteer_name: str
    # Plain str: contact fields may carry the redaction marker
    volunteer_phone: str | None = None
    volunteer_email: str | None = None
    status: RegistrationStatus
    notes: str | None = None
    created_by_id: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
