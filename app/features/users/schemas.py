"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field

from app.features.permissions.constants import Role


class UserBase(BaseModel):
    """Base user schema with common fields."""
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)


class UserUpdate(BaseModel):
    """Schema for updating user information."""
    name: str | None = Field(None, min_length=1, max_length=255)
    phone: str | None = Field(None, max_length=50)


class UserResponse(UserBase):
    """The caller's own profile."""
    id: str
    phone: str | None = None
    role: Role
    # Role this request was evaluated with; differs from role while acting
    effective_role: Role
    is_active: bool
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserPublic(BaseModel):
    """Public user information (limited fields)."""
    id: str
    name: str

    model_config = {"from_attributes": True}


class UserRoleUpdate(BaseModel):
    role: Role
