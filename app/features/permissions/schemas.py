"""
Pydantic schemas for permission management.

Request and response models for the role permission matrix and audit logs.
"""
from datetime import datetime
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict

from app.features.permissions.constants import Role


# ============================================================================
# Role Permission Schemas
# ============================================================================

class CapabilityFlags(BaseModel):
    """The five capability flags of one rule."""
    can_view: bool = False
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_manage: bool = False


class RolePermissionResponse(CapabilityFlags):
    id: str
    role: Role
    permission_key: str
    permission_name: Optional[str] = None
    permission_category: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RolePermissionUpdate(BaseModel):
    """Flags to change; omitted flags are left as they are."""
    can_view: Optional[bool] = None
    can_create: Optional[bool] = None
    can_edit: Optional[bool] = None
    can_delete: Optional[bool] = None
    can_manage: Optional[bool] = None


class BatchUpdateItem(RolePermissionUpdate):
    id: str = Field(..., min_length=1, max_length=26)


class BatchUpdateRequest(BaseModel):
    updates: List[BatchUpdateItem] = Field(..., min_length=1, max_length=500)


class BatchUpdateResponse(BaseModel):
    updated: int
    permissions: List[RolePermissionResponse]


# ============================================================================
# Compact maps for client-side caching
# ============================================================================

class ActionFlags(BaseModel):
    view: bool = False
    create: bool = False
    edit: bool = False
    delete: bool = False
    manage: bool = False


class RolePermissionMap(BaseModel):
    """Capabilities of one role keyed by permission_key."""
    role: Role
    # True when the map was built from the fallback matrix
    degraded: bool = False
    permissions: Dict[str, ActionFlags]


class MyPermissionsResponse(RolePermissionMap):
    actual_role: Role
    is_acting: bool


# ============================================================================
# Permission Check Schemas
# ============================================================================

class PermissionCheckResponse(BaseModel):
    has_permission: bool
    source: str
    reason: str


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    user_id: Optional[str] = None
    effective_role: Optional[str] = None
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    allowed: Optional[bool] = None
    reason: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    """Schema for paginated audit log list."""
    items: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    pages: int
