"""
Acting-role selection ("view as").

An authenticated actor may ask for one request to be evaluated as a lesser
role. The request value is parsed into a Role and accepted only if it appears
in the actor's allow-list and does not outrank the actual role; anything else
is ignored and the actual role is used.
"""
from dataclasses import dataclass

from app.features.permissions.constants import ACTING_ROLE_ALLOW_LIST, Role
from app.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """
    Who is asking, computed once per request.

    Every permission and privacy decision in the request reads
    ``effective_role`` from this object.
    """
    actor_id: str | None
    actual_role: Role
    effective_role: Role

    @property
    def is_authenticated(self) -> bool:
        return self.actor_id is not None

    @property
    def is_acting(self) -> bool:
        return self.effective_role is not self.actual_role


def select_effective_role(actual_role: Role, signal: str | None) -> Role:
    """Return the role to evaluate this request with."""
    if not signal:
        return actual_role

    requested = Role.parse(signal)
    allowed = ACTING_ROLE_ALLOW_LIST.get(actual_role, frozenset())
    if requested is None or requested not in allowed or requested.outranks(actual_role):
        log.debug("Ignoring acting role signal %r for role %s", signal, actual_role.value)
        return actual_role
    return requested


def build_context(actor_id: str | None, stored_role: Role | None, signal: str | None) -> RequestContext:
    """Anonymous callers are guests and never get an override."""
    if actor_id is None:
        return RequestContext(actor_id=None, actual_role=Role.GUEST, effective_role=Role.GUEST)
    actual = stored_role or Role.USER
    return RequestContext(
        actor_id=actor_id,
        actual_role=actual,
        effective_role=select_effective_role(actual, signal),
    )
