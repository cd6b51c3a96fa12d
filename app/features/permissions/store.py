"""
Permission store: read access to the role permission matrix.

The resolver depends on the PermissionStore protocol rather than on a
database session, so the matrix can be swapped for an in-memory table.
Stores raise StoreUnavailable on any backend failure and return None when
no row exists; they never decide anything.
"""
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.constants import Action, Role
from app.features.permissions.exceptions import StoreUnavailable
from app.features.permissions.models import RolePermission
from app.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class PermissionRule:
    role: Role
    resource_kind: str
    can_view: bool = False
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_manage: bool = False

    def allows(self, action: Action) -> bool:
        return bool(getattr(self, action.column))

    @classmethod
    def from_row(cls, row: RolePermission) -> "PermissionRule":
        return cls(
            role=row.role,
            resource_kind=row.permission_key,
            can_view=row.can_view,
            can_create=row.can_create,
            can_edit=row.can_edit,
            can_delete=row.can_delete,
            can_manage=row.can_manage,
        )


class PermissionStore(Protocol):
    async def get_rule(self, role: Role, resource_kind: str) -> PermissionRule | None:
        ...

    async def list_rules(self, role: Role) -> list[PermissionRule]:
        ...


class SqlAlchemyPermissionStore:
    """PermissionStore over the role_permissions table, queried on every call."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_rule(self, role: Role, resource_kind: str) -> PermissionRule | None:
        stmt = select(RolePermission).where(
            RolePermission.role == role,
            RolePermission.permission_key == resource_kind,
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreUnavailable(str(e)) from e
        row = result.scalars().first()
        return PermissionRule.from_row(row) if row else None

    async def list_rules(self, role: Role) -> list[PermissionRule]:
        stmt = (
            select(RolePermission)
            .where(RolePermission.role == role)
            .order_by(RolePermission.permission_key)
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreUnavailable(str(e)) from e
        return [PermissionRule.from_row(row) for row in result.scalars().all()]


class InMemoryPermissionStore:
    """
    PermissionStore over a plain dict, keyed by (role, resource_kind).

    Used for local tooling and tests; set ``available = False`` to make every
    lookup fail the way an unreachable database does.
    """

    def __init__(self, rules: list[PermissionRule] | None = None):
        self.rules: dict[tuple[Role, str], PermissionRule] = {}
        self.available = True
        self.calls = 0
        for rule in rules or []:
            self.put(rule)

    def put(self, rule: PermissionRule) -> None:
        self.rules[(rule.role, rule.resource_kind)] = rule

    def _check(self) -> None:
        self.calls += 1
        if not self.available:
            raise StoreUnavailable("in-memory store marked unavailable")

    async def get_rule(self, role: Role, resource_kind: str) -> PermissionRule | None:
        self._check()
        return self.rules.get((role, resource_kind))

    async def list_rules(self, role: Role) -> list[PermissionRule]:
        self._check()
        return sorted(
            (rule for (r, _), rule in self.rules.items() if r == role),
            key=lambda rule: rule.resource_kind,
        )
