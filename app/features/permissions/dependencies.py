"""
FastAPI dependencies wiring the authorization engine into routes.

Implements:
- The per-request RequestContext (actor, actual role, effective role)
- Store / resolver / authorizer construction on the request's session
- Route guards and facet checks
- The audit log sink, written from background tasks
"""
from typing import Annotated, Any, Dict, Optional

from fastapi import BackgroundTasks, Depends, Request, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core import config
from app.core.database.engine import AsyncSessionLocal, get_db
from app.features.permissions.acting_role import RequestContext, build_context
from app.features.permissions.authorizer import Authorizer
from app.features.permissions.constants import Action, Facet
from app.features.permissions.models import AuditLog
from app.features.permissions.resolver import PermissionResolver
from app.features.permissions.store import PermissionStore, SqlAlchemyPermissionStore
from app.features.users.dependencies import get_optional_user
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Request context
# ============================================================================

async def get_request_context(
    request: Request,
    response: Response,
    user: Annotated[Optional[User], Depends(get_optional_user)],
) -> RequestContext:
    """
    Compute who is asking, once per request.

    The acting-role header is only read here; everything downstream uses the
    returned context's effective_role.
    """
    cached = getattr(request.state, "auth_context", None)
    if cached is not None:
        return cached

    signal = request.headers.get(config.ACTING_ROLE_HEADER)
    ctx = build_context(
        user.id if user else None,
        user.role if user else None,
        signal,
    )
    if ctx.is_acting:
        log.debug("Actor %s acting as %s (actual %s)", ctx.actor_id, ctx.effective_role.value, ctx.actual_role.value)

    request.state.auth_context = ctx
    response.headers["Vary"] = f"Authorization, {config.ACTING_ROLE_HEADER}"
    return ctx


# ============================================================================
# Engine construction
# ============================================================================

async def get_permission_store(
    db: Annotated[AsyncSession, Depends(get_db)]
) -> PermissionStore:
    return SqlAlchemyPermissionStore(db)


async def get_resolver(
    store: Annotated[PermissionStore, Depends(get_permission_store)]
) -> PermissionResolver:
    return PermissionResolver(store)


async def get_authorizer(
    resolver: Annotated[PermissionResolver, Depends(get_resolver)]
) -> Authorizer:
    return Authorizer(resolver)


# ============================================================================
# Route guards
# ============================================================================

def require_permission(resource_kind: str, action: Action):
    """
    FastAPI dependency to require a kind-level permission.

    Use it for checks that do not depend on a specific resource instance
    (list, create). Edit and delete of one record go through
    ``Authorizer.ensure`` with the loaded record instead.

    Usage:
        @router.post("/grids")
        async def create_grid(
            ctx: RequestContext = Depends(require_permission("grids", Action.CREATE))
        ):
            ...

    Raises:
        AuthorizationError: rendered as 403 by the app's exception handler
    """
    async def permission_dependency(
        ctx: Annotated[RequestContext, Depends(get_request_context)],
        authorizer: Annotated[Authorizer, Depends(get_authorizer)],
    ) -> RequestContext:
        await authorizer.ensure(ctx, resource_kind, action)
        return ctx

    return permission_dependency


async def has_facet_permission(
    ctx: RequestContext,
    resolver: PermissionResolver,
    facet: Facet,
) -> bool:
    """Whether the effective role holds the view grant on a privacy facet."""
    decision = await resolver.resolve(ctx.effective_role, facet.value, Action.VIEW)
    return decision.allow


# ============================================================================
# Audit Logging
# ============================================================================

class AuditSink:
    """
    Fire-and-forget writer for audit entries.

    Entries are written on their own session after the response is sent, so a
    failing audit write never changes the outcome of the request.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def write(self, **fields: Any) -> None:
        try:
            async with self.session_factory() as session:
                session.add(AuditLog(**fields))
                await session.commit()
        except SQLAlchemyError as e:
            log.error("Failed to write audit log %s: %s", fields.get("action"), e)
            return
        log.info(
            "Audit: user=%s role=%s action=%s resource=%s:%s allowed=%s",
            fields.get("user_id"), fields.get("effective_role"), fields.get("action"),
            fields.get("resource_type"), fields.get("resource_id"), fields.get("allowed"),
        )


def get_audit_sink() -> AuditSink:
    return AuditSink(AsyncSessionLocal)


def create_audit_log(
    background_tasks: BackgroundTasks,
    sink: AuditSink,
    request: Request,
    ctx: RequestContext,
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    allowed: Optional[bool] = True,
    reason: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Schedule an audit log entry for after the response.

    Args:
        action: Action performed (e.g., "create", "update", "delete", "restore")
        resource_type: Resource kind (e.g., "grids", "role_permissions")
        resource_id: ID of the resource
        allowed: Outcome of the authorization decision
        reason: Decision reason (e.g., "granted", "owner_granted")
        details: Additional details
    """
    background_tasks.add_task(
        sink.write,
        user_id=ctx.actor_id,
        effective_role=ctx.effective_role.value,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        allowed=allowed,
        reason=reason,
        details=details,
        ip_address=request.client.host if request.client else None,
        user_agent=(request.headers.get("User-Agent") or "")[:255] or None,
    )
