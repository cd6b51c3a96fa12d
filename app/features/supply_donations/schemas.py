"""
Pydantic schemas for supply donations.
"""
from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.features.supply_donations.models import DonationStatus


class DonationCreate(BaseModel):
    grid_id: str = Field(..., min_length=1, max_length=26)
    name: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(..., gt=0)
    unit: str = Field(..., min_length=1, max_length=50)
    donor_name: str = Field(..., min_length=1, max_length=255)
    donor_phone: str | None = Field(None, max_length=50)
    donor_email: EmailStr | None = None
    donor_contact: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=2000)


class DonationUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    quantity: int | None = Field(None, gt=0)
    unit: str | None = Field(None, min_length=1, max_length=50)
    status: DonationStatus | None = None
    notes: str | None = Field(None, max_length=2000)


class DonationResponse(BaseModel):
    id: str
    grid_id: str
    name: str
    quantity: int
    unit: str
    donor_name: str
    donor_phone: str | None = None
    donor_email: str | None = None
    donor_contact: str | None = None
    status: DonationStatus
    notes: str | None = None
    created_by_id: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
