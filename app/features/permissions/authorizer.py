"""
Ownership-aware authorizer.

Every mutating route goes through ``Authorizer.ensure`` before touching data.
For edit/delete on a specific resource the decision combines three grants:

- the base grant on the resource kind ("grids".can_edit),
- the owner-scoped grant ("my_resources".can_edit), consulted only when the
  actor created or manages the resource,
- for permanent deletes with dependents, the trash grant of every dependent
  kind ("trash_volunteers".can_delete, ...).

Owning a resource is never sufficient on its own: an owner is allowed through
the owner-scoped grant or the base grant, and denied when neither grants.
"""
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from app.features.permissions.acting_role import RequestContext
from app.features.permissions.constants import CASCADE_PERMISSIONS, MY_RESOURCES, Action, Role
from app.features.permissions.exceptions import (
    AuthorizationError,
    CascadeConflict,
    Denied,
    Unauthenticated,
    Unconfigured,
)
from app.features.permissions.resolver import Decision, DecisionReason, DecisionSource, PermissionResolver
from app.utils import get_logger


log = get_logger(__name__)

_OWNER_CHECKED = (Action.EDIT, Action.DELETE)


@dataclass(frozen=True)
class Ownership:
    """Identities that count as owner of one resource instance."""
    created_by_id: str | None = None
    grid_manager_id: str | None = None
    # Owners inherited from a parent record, e.g. the grid of a registration
    inherited: tuple[str, ...] = field(default_factory=tuple)

    def owner_ids(self) -> set[str]:
        ids = {self.created_by_id, self.grid_manager_id, *self.inherited}
        return {i for i in ids if i}

    def is_owned_by(self, actor_id: str | None) -> bool:
        return actor_id is not None and actor_id in self.owner_ids()


def ownership_of(resource: Any, inherited: Iterable[str | None] = ()) -> Ownership:
    """Read created_by_id / grid_manager_id off a model instance or a dict."""
    if isinstance(resource, Ownership):
        return resource
    if isinstance(resource, Mapping):
        get = resource.get
    else:
        def get(name):
            return getattr(resource, name, None)
    return Ownership(
        created_by_id=get("created_by_id"),
        grid_manager_id=get("grid_manager_id"),
        inherited=tuple(i for i in inherited if i),
    )


class Authorizer:
    def __init__(self, resolver: PermissionResolver):
        self.resolver = resolver

    async def authorize(
        self,
        ctx: RequestContext,
        resource_kind: str,
        action: Action,
        resource: Any | None = None,
    ) -> Decision:
        """Decide whether ``ctx`` may perform ``action`` on ``resource_kind``."""
        role = ctx.effective_role
        if role is Role.SUPER_ADMIN:
            return Decision(True, DecisionSource.BUILTIN, DecisionReason.SUPER_ADMIN)

        if action is not Action.VIEW and not ctx.is_authenticated:
            return Decision(False, DecisionSource.BUILTIN, DecisionReason.UNAUTHENTICATED)

        base = await self.resolver.resolve(role, resource_kind, action)
        if action not in _OWNER_CHECKED or resource is None:
            return base

        if ownership_of(resource).is_owned_by(ctx.actor_id):
            owned = await self.resolver.resolve(role, MY_RESOURCES, action)
            if owned.allow:
                return Decision(True, owned.source, DecisionReason.OWNER_GRANTED)
            return base

        if base.allow or base.reason is DecisionReason.UNCONFIGURED:
            return base
        return Decision(False, base.source, DecisionReason.NOT_OWNER)

    async def ensure(
        self,
        ctx: RequestContext,
        resource_kind: str,
        action: Action,
        resource: Any | None = None,
    ) -> Decision:
        """Like ``authorize`` but raises an AuthorizationError on deny."""
        decision = await self.authorize(ctx, resource_kind, action, resource)
        if decision.allow:
            log.debug(
                "Allowed actor=%s role=%s %s on %s (%s/%s)",
                ctx.actor_id, ctx.effective_role.value, action.value, resource_kind,
                decision.source.value, decision.reason.value,
            )
            return decision

        log.info(
            "Denied actor=%s role=%s %s on %s (%s/%s)",
            ctx.actor_id, ctx.effective_role.value, action.value, resource_kind,
            decision.source.value, decision.reason.value,
        )
        raise self._error_for(decision, ctx, resource_kind, action)

    async def ensure_cascade(
        self,
        ctx: RequestContext,
        resource_kind: str,
        resource_id: str,
        dependents: Mapping[str, int],
    ) -> None:
        """
        Gate a permanent delete that would remove dependent records.

        With any dependents present, the effective role needs the delete grant
        on the trash permission of every dependent kind of ``resource_kind``.
        Raises CascadeConflict otherwise; nothing is deleted in that case.
        """
        if not any(dependents.values()):
            return
        if ctx.effective_role is Role.SUPER_ADMIN:
            return

        trash_kinds = CASCADE_PERMISSIONS.get(resource_kind, {})
        blocked = [kind for kind, count in dependents.items() if count and kind not in trash_kinds]
        for trash_kind in sorted(set(trash_kinds.values())):
            decision = await self.resolver.resolve(ctx.effective_role, trash_kind, Action.DELETE)
            if not decision.allow:
                blocked.append(trash_kind)

        if blocked:
            log.info(
                "Cascade delete of %s %s blocked for role=%s, missing %s, dependents=%s",
                resource_kind, resource_id, ctx.effective_role.value, blocked, dict(dependents),
            )
            raise CascadeConflict(resource_kind, resource_id, dependents)

    @staticmethod
    def _error_for(
        decision: Decision, ctx: RequestContext, resource_kind: str, action: Action
    ) -> AuthorizationError:
        detail = dict(role=ctx.effective_role.value, resource_kind=resource_kind, action=action.value)
        if decision.reason is DecisionReason.UNAUTHENTICATED:
            return Unauthenticated(**detail)
        if decision.reason is DecisionReason.UNCONFIGURED:
            return Unconfigured(**detail)
        return Denied(reason=decision.reason.value, **detail)
