"""
Pydantic schemas for grids and grid discussions.
"""
from datetime import datetime
from typing import Dict
from pydantic import BaseModel, ConfigDict, Field

from app.features.grids.models import GridStatus


class GridBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    grid_type: str = Field("manpower", min_length=1, max_length=50)
    disaster_area_id: str | None = Field(None, max_length=26)
    volunteer_needed: int = Field(0, ge=0)
    meeting_point: str | None = Field(None, max_length=500)
    contact_info: str | None = Field(None, max_length=255)


class GridCreate(GridBase):
    grid_manager_id: str | None = Field(None, max_length=26)


class GridUpdate(BaseModel):
    """Fields to change; omitted fields are left as they are."""
    code: str | None = Field(None, min_length=1, max_length=50)
    grid_type: str | None = Field(None, min_length=1, max_length=50)
    volunteer_needed: int | None = Field(None, ge=0)
    meeting_point: str | None = Field(None, max_length=500)
    contact_info: str | None = Field(None, max_length=255)
    # "deleted" is reached only through the trash route
    status: GridStatus | None = None
    grid_manager_id: str | None = Field(None, max_length=26)


class GridResponse(GridBase):
    id: str
    volunteer_registered: int
    status: GridStatus
    grid_manager_id: str | None = None
    created_by_id: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class GridDeleteResponse(BaseModel):
    id: str
    # Dependent rows removed along with the grid, by kind
    deleted: Dict[str, int]


class DiscussionCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


class DiscussionResponse(BaseModel):
    id: str
    grid_id: str
    author_id: str | None = None
    content: str
    created_by_id: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
