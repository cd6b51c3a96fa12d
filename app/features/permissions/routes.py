"""
Permission management API routes.

Read access to the role permission matrix (full rows for administrators,
compact maps for client-side caching), single permission checks, flag edits
and the audit log viewer.
"""
from typing import Annotated, Dict, List, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.permissions.acting_role import RequestContext
from app.features.permissions.constants import Action, Role
from app.features.permissions.defaults import FALLBACK_MATRIX
from app.features.permissions.dependencies import (
    AuditSink,
    create_audit_log,
    get_audit_sink,
    get_permission_store,
    get_request_context,
    get_resolver,
    require_permission,
)
from app.features.permissions.exceptions import StoreUnavailable
from app.features.permissions.models import AuditLog, RolePermission
from app.features.permissions.resolver import PermissionResolver
from app.features.permissions.schemas import (
    ActionFlags,
    AuditLogListResponse,
    AuditLogResponse,
    BatchUpdateRequest,
    BatchUpdateResponse,
    MyPermissionsResponse,
    PermissionCheckResponse,
    RolePermissionMap,
    RolePermissionResponse,
    RolePermissionUpdate,
)
from app.features.permissions.store import PermissionStore
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()

_FLAGS = [action.column for action in Action]


def _parse_role(value: str) -> Role:
    role = Role.parse(value)
    if role is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown role {value!r}")
    return role


async def _role_map(store: PermissionStore, role: Role) -> RolePermissionMap:
    """Compact capability map for one role, from the fallback matrix if the store is down."""
    try:
        rules = await store.list_rules(role)
    except StoreUnavailable as e:
        log.warning("Permission store unavailable, serving fallback map for %s: %s", role.value, e)
        return RolePermissionMap(
            role=role,
            degraded=True,
            permissions={
                kind: ActionFlags(**{action.value: action in granted for action in Action})
                for (r, kind), granted in sorted(FALLBACK_MATRIX.items(), key=lambda item: item[0][1])
                if r == role
            },
        )

    return RolePermissionMap(
        role=role,
        permissions={
            rule.resource_kind: ActionFlags(**{action.value: rule.allows(action) for action in Action})
            for rule in rules
        },
    )


def _apply_flags(row: RolePermission, update: RolePermissionUpdate) -> Dict[str, Dict[str, bool]]:
    """Set the provided flags on ``row`` and return {flag: {old, new}} for the ones that changed."""
    changes = {}
    for flag, value in update.model_dump(include=set(_FLAGS), exclude_none=True).items():
        old = getattr(row, flag)
        if old != value:
            setattr(row, flag, value)
            changes[flag] = {"old": old, "new": value}
    return changes


# ============================================================================
# Matrix reads
# ============================================================================

@router.get("", response_model=List[RolePermissionResponse])
async def list_role_permissions(
    _ctx: Annotated[RequestContext, Depends(require_permission("role_permissions", Action.VIEW))],
    db: Annotated[AsyncSession, Depends(get_db)],
    category: Optional[str] = None,
):
    """List every rule of the matrix, optionally for one category."""
    stmt = select(RolePermission)
    if category:
        stmt = stmt.where(RolePermission.permission_category == category)
    stmt = stmt.order_by(RolePermission.role, RolePermission.permission_key)
    result = await db.execute(stmt)
    return result.scalars().all()


@router.get("/role/{role}", response_model=List[RolePermissionResponse])
async def list_permissions_for_role(
    role: str,
    _ctx: Annotated[RequestContext, Depends(require_permission("role_permissions", Action.VIEW))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """List the rules of one role."""
    parsed = _parse_role(role)
    result = await db.execute(
        select(RolePermission)
        .where(RolePermission.role == parsed)
        .order_by(RolePermission.permission_key)
    )
    return result.scalars().all()


@router.get("/for-role", response_model=RolePermissionMap)
async def get_permission_map_for_role(
    role: str,
    store: Annotated[PermissionStore, Depends(get_permission_store)],
):
    """Compact {permission_key: {view, create, edit, delete, manage}} map for a role."""
    return await _role_map(store, _parse_role(role))


@router.get("/me", response_model=MyPermissionsResponse)
async def get_my_permissions(
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    store: Annotated[PermissionStore, Depends(get_permission_store)],
):
    """Capability map of the caller's effective role."""
    role_map = await _role_map(store, ctx.effective_role)
    return MyPermissionsResponse(
        **role_map.model_dump(),
        actual_role=ctx.actual_role,
        is_acting=ctx.is_acting,
    )


@router.get("/check", response_model=PermissionCheckResponse)
async def check_permission(
    permission_key: str,
    action: Action,
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    resolver: Annotated[PermissionResolver, Depends(get_resolver)],
):
    """Resolve one (permission_key, action) pair for the caller's effective role."""
    decision = await resolver.resolve(ctx.effective_role, permission_key, action)
    return PermissionCheckResponse(
        has_permission=decision.allow,
        source=decision.source.value,
        reason=decision.reason.value,
    )


# ============================================================================
# Matrix edits
# ============================================================================

@router.patch("/{permission_id}", response_model=RolePermissionResponse)
async def update_role_permission(
    permission_id: str,
    update: RolePermissionUpdate,
    background_tasks: BackgroundTasks,
    request: Request,
    ctx: Annotated[RequestContext, Depends(require_permission("role_permissions", Action.EDIT))],
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
):
    """Change the flags of one rule."""
    row = await db.get(RolePermission, permission_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Permission not found")

    changes = _apply_flags(row, update)
    await db.commit()
    await db.refresh(row)

    if changes:
        log.info("Permission %s/%s changed by %s: %s", row.role.value, row.permission_key, ctx.actor_id, changes)
        create_audit_log(
            background_tasks, audit, request, ctx,
            action="update",
            resource_type="role_permissions",
            resource_id=row.id,
            reason="granted",
            details={"role": row.role.value, "permission_key": row.permission_key, "changes": changes},
        )
    return row


@router.post("/batch-update", response_model=BatchUpdateResponse)
async def batch_update_role_permissions(
    body: BatchUpdateRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    ctx: Annotated[RequestContext, Depends(require_permission("role_permissions", Action.MANAGE))],
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
):
    """
    Change the flags of several rules at once.

    All ids must exist; nothing is written otherwise.
    """
    ids = [item.id for item in body.updates]
    result = await db.execute(select(RolePermission).where(RolePermission.id.in_(ids)))
    rows = {row.id: row for row in result.scalars().all()}

    missing = sorted(set(ids) - set(rows))
    if missing:
        raise HTTPException(status_code=404, detail=f"Permissions not found: {', '.join(missing)}")

    changed: Dict[str, dict] = {}
    for item in body.updates:
        row = rows[item.id]
        changes = _apply_flags(row, item)
        if changes:
            changed[row.id] = {"role": row.role.value, "permission_key": row.permission_key, "changes": changes}

    await db.commit()
    for row in rows.values():
        await db.refresh(row)

    if changed:
        log.info("Batch permission update by %s: %d rule(s) changed", ctx.actor_id, len(changed))
        create_audit_log(
            background_tasks, audit, request, ctx,
            action="batch_update",
            resource_type="role_permissions",
            reason="granted",
            details={"updates": changed},
        )
    return BatchUpdateResponse(
        updated=len(changed),
        permissions=[RolePermissionResponse.model_validate(rows[i]) for i in dict.fromkeys(ids)],
    )


# ============================================================================
# Audit Log Routes
# ============================================================================

@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    _ctx: Annotated[RequestContext, Depends(require_permission("audit_logs", Action.VIEW))],
    db: Annotated[AsyncSession, Depends(get_db)],
    skip: int = 0,
    limit: int = 50,
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
):
    """List audit logs with optional filtering."""
    stmt = select(AuditLog)

    if user_id:
        stmt = stmt.where(AuditLog.user_id == user_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if resource_type:
        stmt = stmt.where(AuditLog.resource_type == resource_type)

    count_stmt = select(func.count()).select_from(stmt.subquery())
    total = (await db.execute(count_stmt)).scalar() or 0

    stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    logs = result.scalars().all()

    pages = (total + limit - 1) // limit if limit > 0 else 0
    page = (skip // limit) + 1 if limit > 0 else 1

    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(entry) for entry in logs],
        total=total,
        page=page,
        page_size=limit,
        pages=pages,
    )
