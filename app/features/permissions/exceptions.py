"""
Authorization error taxonomy.

Unauthenticated, Denied and Unconfigured differ only in what gets logged; the
exception handler in app.main renders all three as the same 403 response.
StoreUnavailable never reaches a caller: the resolver recovers from it with
the fallback matrix. CascadeConflict is an expected, actionable state and is
reported with the blocking dependent counts.
"""
from typing import Mapping


class AuthorizationError(Exception):
    """Base class for every rejected authorization decision."""

    reason = "denied"

    def __init__(
        self,
        message: str = "Forbidden",
        *,
        role: str | None = None,
        resource_kind: str | None = None,
        action: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.role = role
        self.resource_kind = resource_kind
        self.action = action

    def log_context(self) -> dict:
        return {
            "reason": self.reason,
            "role": self.role,
            "resource_kind": self.resource_kind,
            "action": self.action,
        }


class Unauthenticated(AuthorizationError):
    """No actor on a request that needs one."""

    reason = "unauthenticated"


class Denied(AuthorizationError):
    """A rule exists and says no, or the actor is not the owner."""

    reason = "denied"

    def __init__(self, message: str = "Forbidden", *, reason: str = "denied", **kwargs):
        super().__init__(message, **kwargs)
        self.reason = reason


class Unconfigured(AuthorizationError):
    """No rule in the store and no fallback entry for the triple."""

    reason = "unconfigured"


class StoreUnavailable(Exception):
    """The permission store could not be queried."""


class CascadeConflict(Exception):
    """Permanent delete blocked by dependents the actor may not delete."""

    def __init__(self, resource_kind: str, resource_id: str, dependents: Mapping[str, int]):
        self.resource_kind = resource_kind
        self.resource_id = resource_id
        self.dependents = {kind: count for kind, count in dependents.items() if count}
        self.total = sum(self.dependents.values())
        super().__init__(
            f"{resource_kind} {resource_id} has {self.total} dependent record(s)"
        )
