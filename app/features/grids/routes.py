"""
Grid routes: CRUD, trash / restore, permanent delete and discussions.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.grids.dependencies import (
    DEPENDENT_MODELS,
    count_dependents,
    get_grid_by_id,
    grid_ownership,
)
from app.features.grids.models import Grid, GridDiscussion, GridStatus
from app.features.grids.schemas import (
    DiscussionCreate,
    DiscussionResponse,
    GridCreate,
    GridDeleteResponse,
    GridResponse,
    GridUpdate,
)
from app.features.permissions.acting_role import RequestContext
from app.features.permissions.authorizer import Authorizer
from app.features.permissions.constants import Action, Facet
from app.features.permissions.dependencies import (
    AuditSink,
    create_audit_log,
    get_audit_sink,
    get_authorizer,
    get_request_context,
    get_resolver,
    has_facet_permission,
    require_permission,
)
from app.features.permissions.privacy import filter_contacts
from app.features.permissions.resolver import PermissionResolver
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


async def _present(
    grids: List[Grid],
    ctx: RequestContext,
    resolver: PermissionResolver,
) -> List[dict]:
    records = [GridResponse.model_validate(grid).model_dump() for grid in grids]
    allowed = await has_facet_permission(ctx, resolver, Facet.GRID_CONTACT)
    return filter_contacts(records, ctx, Facet.GRID_CONTACT, allowed)


# ============================================================================
# Reads
# ============================================================================

@router.get("", response_model=List[GridResponse])
async def list_grids(
    ctx: Annotated[RequestContext, Depends(require_permission("grids", Action.VIEW))],
    resolver: Annotated[PermissionResolver, Depends(get_resolver)],
    db: Annotated[AsyncSession, Depends(get_db)],
    disaster_area_id: Optional[str] = None,
    grid_status: Optional[GridStatus] = None,
    skip: int = 0,
    limit: int = 100,
):
    """List grids outside the trash."""
    stmt = select(Grid).where(Grid.status != GridStatus.DELETED)
    if disaster_area_id:
        stmt = stmt.where(Grid.disaster_area_id == disaster_area_id)
    if grid_status:
        stmt = stmt.where(Grid.status == grid_status)
    stmt = stmt.order_by(Grid.code, Grid.id).offset(skip).limit(limit)
    result = await db.execute(stmt)
    return await _present(list(result.scalars().all()), ctx, resolver)


@router.get("/trash", response_model=List[GridResponse])
async def list_trashed_grids(
    ctx: Annotated[RequestContext, Depends(require_permission("trash_grids", Action.VIEW))],
    resolver: Annotated[PermissionResolver, Depends(get_resolver)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """List grids in the trash."""
    result = await db.execute(
        select(Grid).where(Grid.status == GridStatus.DELETED).order_by(Grid.updated_at.desc(), Grid.id)
    )
    return await _present(list(result.scalars().all()), ctx, resolver)


@router.get("/{grid_id}", response_model=GridResponse)
async def get_grid(
    grid: Annotated[Grid, Depends(get_grid_by_id)],
    ctx: Annotated[RequestContext, Depends(require_permission("grids", Action.VIEW))],
    resolver: Annotated[PermissionResolver, Depends(get_resolver)],
):
    if grid.status is GridStatus.DELETED:
        raise HTTPException(status_code=404, detail="Grid not found")
    return (await _present([grid], ctx, resolver))[0]


# ============================================================================
# Writes
# ============================================================================

@router.post("", response_model=GridResponse, status_code=status.HTTP_201_CREATED)
async def create_grid(
    body: GridCreate,
    background_tasks: BackgroundTasks,
    request: Request,
    ctx: Annotated[RequestContext, Depends(require_permission("grids", Action.CREATE))],
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
):
    grid = Grid(**body.model_dump(), created_by_id=ctx.actor_id)
    db.add(grid)
    await db.commit()
    await db.refresh(grid)

    log.info("Grid %s (%s) created by %s", grid.id, grid.code, ctx.actor_id)
    create_audit_log(
        background_tasks, audit, request, ctx,
        action="create", resource_type="grids", resource_id=grid.id, reason="granted",
        details={"code": grid.code},
    )
    return grid


@router.patch("/{grid_id}", response_model=GridResponse)
async def update_grid(
    body: GridUpdate,
    grid: Annotated[Grid, Depends(get_grid_by_id)],
    background_tasks: BackgroundTasks,
    request: Request,
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    authorizer: Annotated[Authorizer, Depends(get_authorizer)],
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
):
    """
    Edit a grid; owners need the owner-scoped grant, everyone else the grids grant.

    Trashed grids are only reachable through the trash routes.
    """
    if grid.status is GridStatus.DELETED:
        raise HTTPException(status_code=404, detail="Grid not found")

    decision = await authorizer.ensure(ctx, "grids", Action.EDIT, grid_ownership(grid))

    changes = body.model_dump(exclude_unset=True)
    if changes.get("status") is GridStatus.DELETED:
        raise HTTPException(status_code=400, detail="Use the trash route to delete a grid")
    for field, value in changes.items():
        setattr(grid, field, value)

    await db.commit()
    await db.refresh(grid)

    create_audit_log(
        background_tasks, audit, request, ctx,
        action="update", resource_type="grids", resource_id=grid.id, reason=decision.reason.value,
        details={"fields": sorted(changes)},
    )
    return grid


@router.delete("/{grid_id}", response_model=GridDeleteResponse)
async def delete_grid(
    grid: Annotated[Grid, Depends(get_grid_by_id)],
    background_tasks: BackgroundTasks,
    request: Request,
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    authorizer: Annotated[Authorizer, Depends(get_authorizer)],
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
):
    """
    Permanently delete a grid and everything attached to it.

    Registrations, donations and discussions go with it, which needs the
    delete grant on the matching trash permission for each of them;
    otherwise a 409 lists what blocks the delete and nothing is removed.
    """
    decision = await authorizer.ensure(ctx, "grids", Action.DELETE, grid_ownership(grid))

    dependents = await count_dependents(db, grid.id)
    await authorizer.ensure_cascade(ctx, "grids", grid.id, dependents)

    for kind, model in DEPENDENT_MODELS.items():
        if dependents[kind]:
            await db.execute(delete(model).where(model.grid_id == grid.id))
    grid_id, code = grid.id, grid.code
    await db.delete(grid)
    await db.commit()

    log.info("Grid %s (%s) permanently deleted by %s with %s", grid_id, code, ctx.actor_id, dependents)
    create_audit_log(
        background_tasks, audit, request, ctx,
        action="permanent_delete", resource_type="grids", resource_id=grid_id,
        reason=decision.reason.value, details={"code": code, "dependents": dependents},
    )
    return GridDeleteResponse(id=grid_id, deleted=dependents)


@router.patch("/{grid_id}/trash", response_model=GridResponse)
async def move_grid_to_trash(
    grid: Annotated[Grid, Depends(get_grid_by_id)],
    background_tasks: BackgroundTasks,
    request: Request,
    ctx: Annotated[RequestContext, Depends(require_permission("trash_grids", Action.EDIT))],
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
):
    if grid.status is GridStatus.DELETED:
        raise HTTPException(status_code=404, detail="Grid not found or already deleted")

    grid.status = GridStatus.DELETED
    await db.commit()
    await db.refresh(grid)

    create_audit_log(
        background_tasks, audit, request, ctx,
        action="trash", resource_type="grids", resource_id=grid.id, reason="granted",
    )
    return grid


@router.patch("/{grid_id}/restore", response_model=GridResponse)
async def restore_grid(
    grid: Annotated[Grid, Depends(get_grid_by_id)],
    background_tasks: BackgroundTasks,
    request: Request,
    ctx: Annotated[RequestContext, Depends(require_permission("trash_grids", Action.EDIT))],
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
):
    if grid.status is not GridStatus.DELETED:
        raise HTTPException(status_code=404, detail="Grid not found in trash")

    grid.status = GridStatus.OPEN
    await db.commit()
    await db.refresh(grid)

    create_audit_log(
        background_tasks, audit, request, ctx,
        action="restore", resource_type="grids", resource_id=grid.id, reason="granted",
    )
    return grid


# ============================================================================
# Discussions
# ============================================================================

@router.get("/{grid_id}/discussions", response_model=List[DiscussionResponse])
async def list_discussions(
    grid: Annotated[Grid, Depends(get_grid_by_id)],
    _ctx: Annotated[RequestContext, Depends(require_permission("grid_discussions", Action.VIEW))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    result = await db.execute(
        select(GridDiscussion)
        .where(GridDiscussion.grid_id == grid.id)
        .order_by(GridDiscussion.created_at, GridDiscussion.id)
    )
    return result.scalars().all()


@router.post("/{grid_id}/discussions", response_model=DiscussionResponse, status_code=status.HTTP_201_CREATED)
async def create_discussion(
    body: DiscussionCreate,
    grid: Annotated[Grid, Depends(get_grid_by_id)],
    ctx: Annotated[RequestContext, Depends(require_permission("grid_discussions", Action.CREATE))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    if grid.status is GridStatus.DELETED:
        raise HTTPException(status_code=404, detail="Grid not found")

    discussion = GridDiscussion(
        grid_id=grid.id,
        author_id=ctx.actor_id,
        created_by_id=ctx.actor_id,
        content=body.content,
    )
    db.add(discussion)
    await db.commit()
    await db.refresh(discussion)
    return discussion
