"""
Permission resolver: (role, resource_kind, action) -> Decision.

Lookup order:
1. super_admin is allowed without consulting the store.
2. The store row for (role, resource_kind) answers directly.
3. With no row, or with the store unreachable, the fallback matrix answers.
4. With no fallback entry either, the decision is an unconfigured deny.
"""
import enum
from dataclasses import dataclass

from app.features.permissions.constants import Action, Role
from app.features.permissions.defaults import fallback_allows
from app.features.permissions.exceptions import StoreUnavailable
from app.features.permissions.store import PermissionStore
from app.utils import get_logger


log = get_logger(__name__)


class DecisionSource(str, enum.Enum):
    STORE = "store"
    FALLBACK = "fallback"
    # super_admin short-circuit, no lookup performed
    BUILTIN = "builtin"


class DecisionReason(str, enum.Enum):
    GRANTED = "granted"
    OWNER_GRANTED = "owner_granted"
    SUPER_ADMIN = "super_admin"
    DENIED = "denied"
    UNCONFIGURED = "unconfigured"
    NOT_OWNER = "not_owner"
    UNAUTHENTICATED = "unauthenticated"


@dataclass(frozen=True)
class Decision:
    allow: bool
    source: DecisionSource
    reason: DecisionReason

    def __bool__(self) -> bool:
        return self.allow


class PermissionResolver:
    """
    Resolves single permission checks against a PermissionStore.

    Nothing is cached here: each call reads the store, so a change made
    through the management routes applies to the next request.
    """

    def __init__(self, store: PermissionStore):
        self.store = store

    async def resolve(self, role: Role, resource_kind: str, action: Action) -> Decision:
        if role is Role.SUPER_ADMIN:
            return Decision(True, DecisionSource.BUILTIN, DecisionReason.SUPER_ADMIN)

        try:
            rule = await self.store.get_rule(role, resource_kind)
        except StoreUnavailable as e:
            log.warning(
                "Permission store unavailable, degraded mode using fallback matrix: %s "
                "(role=%s kind=%s action=%s)",
                e, role.value, resource_kind, action.value,
            )
            return self._fallback(role, resource_kind, action)

        if rule is None:
            return self._fallback(role, resource_kind, action)

        allowed = rule.allows(action)
        return Decision(
            allowed,
            DecisionSource.STORE,
            DecisionReason.GRANTED if allowed else DecisionReason.DENIED,
        )

    def _fallback(self, role: Role, resource_kind: str, action: Action) -> Decision:
        allowed = fallback_allows(role, resource_kind, action)
        if allowed is None:
            log.warning(
                "Permission not configured: role=%s kind=%s action=%s",
                role.value, resource_kind, action.value,
            )
            return Decision(False, DecisionSource.FALLBACK, DecisionReason.UNCONFIGURED)
        return Decision(
            allowed,
            DecisionSource.FALLBACK,
            DecisionReason.GRANTED if allowed else DecisionReason.DENIED,
        )
