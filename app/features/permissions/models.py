"""
Role permission matrix and audit log models.

The matrix holds one row per (role, permission_key) with five independent
capability flags. A permission_key names either a protected resource kind
("grids", "trash_grids") or a privacy facet ("view_volunteer_contact").
"""
from typing import Any, Dict
from sqlalchemy import String, Text, Boolean, Enum, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin, generate_ulid
from app.features.permissions.constants import Action, Role


class RolePermission(Base, TimestampMixin):
    """
    Capability flags for one role on one resource kind.

    Flags carry no implied ordering: can_manage does not imply can_edit.
    Rows are seeded at deploy time and edited only through the permission
    management routes.
    """
    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint("role", "permission_key", name="uq_role_permissions_role_key"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    role: Mapped[Role] = mapped_column(
        Enum(Role, name="role", values_callable=lambda roles: [r.value for r in roles]),
        nullable=False,
        index=True,
    )
    permission_key: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    # Display metadata, never evaluated
    permission_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    permission_category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    can_view: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_create: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_edit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_delete: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_manage: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def allows(self, action: Action) -> bool:
        return bool(getattr(self, action.column))

    def __repr__(self) -> str:
        return f"<RolePermission(role={self.role.value}, key={self.permission_key!r})>"


class AuditLog(Base, TimestampMixin):
    """
    Audit log of authorization decisions and permission changes.

    Written from background tasks by the routes that call the authorizer;
    the authorization engine itself never writes here.
    """
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Actor
    user_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)
    effective_role: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Action details
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)
    allowed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    reason: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Context
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action}, resource={self.resource_type})>"
