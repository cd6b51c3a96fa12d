"""
Volunteer registration routes.

Contact fields pass through the volunteer contact filter; the parent grid's
owners are loaded in the same query as the registrations.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.grids.dependencies import child_ownership
from app.features.grids.models import Grid, GridStatus
from app.features.permissions.acting_role import RequestContext
from app.features.permissions.authorizer import Authorizer, Ownership
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
from app.features.volunteer_registrations.models import (
    COUNTED_STATUSES,
    RegistrationStatus,
    VolunteerRegistration,
    can_transition,
)
from app.features.volunteer_registrations.schemas import (
    RegistrationCreate,
    RegistrationResponse,
    RegistrationStatusUpdate,
)
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()

_WITH_GRID_OWNERS = (
    select(VolunteerRegistration, Grid.created_by_id, Grid.grid_manager_id)
    .join(Grid, Grid.id == VolunteerRegistration.grid_id)
)


async def _get_with_owners(db: AsyncSession, registration_id: str) -> tuple[VolunteerRegistration, Ownership]:
    """The registration and its parent grid's ownership, or 404."""
    result = await db.execute(_WITH_GRID_OWNERS.where(VolunteerRegistration.id == registration_id))
    row = result.first()
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Registration not found")
    registration, creator_id, manager_id = row
    return registration, Ownership(created_by_id=creator_id, grid_manager_id=manager_id)


async def _present(
    rows: List[tuple[VolunteerRegistration, Ownership]],
    ctx: RequestContext,
    resolver: PermissionResolver,
) -> List[dict]:
    parents = {registration.grid_id: owners for registration, owners in rows}
    records = [RegistrationResponse.model_validate(registration).model_dump() for registration, _ in rows]
    allowed = await has_facet_permission(ctx, resolver, Facet.VOLUNTEER_CONTACT)
    return filter_contacts(records, ctx, Facet.VOLUNTEER_CONTACT, allowed, parents)


async def _recount(db: AsyncSession, grid_id: str) -> None:
    """Refresh Grid.volunteer_registered from the confirmed/arrived/completed registrations."""
    counted = (
        select(func.count())
        .select_from(VolunteerRegistration)
        .where(
            VolunteerRegistration.grid_id == grid_id,
            VolunteerRegistration.status.in_(COUNTED_STATUSES),
        )
        .scalar_subquery()
    )
    await db.execute(update(Grid).where(Grid.id == grid_id).values(volunteer_registered=counted))


@router.get("", response_model=List[RegistrationResponse])
async def list_registrations(
    ctx: Annotated[RequestContext, Depends(require_permission("volunteer_registrations", Action.VIEW))],
    resolver: Annotated[PermissionResolver, Depends(get_resolver)],
    db: Annotated[AsyncSession, Depends(get_db)],
    grid_id: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
):
    stmt = _WITH_GRID_OWNERS
    if grid_id:
        stmt = stmt.where(VolunteerRegistration.grid_id == grid_id)
    stmt = stmt.order_by(VolunteerRegistration.created_at.desc(), VolunteerRegistration.id).offset(skip).limit(limit)
    result = await db.execute(stmt)
    rows = [
        (registration, Ownership(created_by_id=creator_id, grid_manager_id=manager_id))
        for registration, creator_id, manager_id in result.all()
    ]
    return await _present(rows, ctx, resolver)


@router.get("/{registration_id}", response_model=RegistrationResponse)
async def get_registration(
    registration_id: str,
    ctx: Annotated[RequestContext, Depends(require_permission("volunteer_registrations", Action.VIEW))],
    resolver: Annotated[PermissionResolver, Depends(get_resolver)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    row = await _get_with_owners(db, registration_id)
    return (await _present([row], ctx, resolver))[0]


@router.post("", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
async def create_registration(
    body: RegistrationCreate,
    background_tasks: BackgroundTasks,
    request: Request,
    ctx: Annotated[RequestContext, Depends(require_permission("volunteer_registrations", Action.CREATE))],
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
):
    """Sign the caller up on a grid."""
    grid = await db.get(Grid, body.grid_id)
    if grid is None or grid.status is GridStatus.DELETED:
        raise HTTPException(status_code=404, detail="Grid not found")

    registration = VolunteerRegistration(
        **body.model_dump(),
        user_id=ctx.actor_id,
        created_by_id=ctx.actor_id,
    )
    db.add(registration)
    await db.flush()
    await _recount(db, grid.id)
    await db.commit()
    await db.refresh(registration)

    create_audit_log(
        background_tasks, audit, request, ctx,
        action="create", resource_type="volunteer_registrations", resource_id=registration.id,
        reason="granted", details={"grid_id": grid.id},
    )
    # The registrant is the subject of the contact details, so nothing to redact
    return registration


@router.patch("/{registration_id}/status", response_model=RegistrationResponse)
async def update_registration_status(
    registration_id: str,
    body: RegistrationStatusUpdate,
    background_tasks: BackgroundTasks,
    request: Request,
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    authorizer: Annotated[Authorizer, Depends(get_authorizer)],
    resolver: Annotated[PermissionResolver, Depends(get_resolver)],
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
):
    """
    Move a registration through its lifecycle.

    Confirming, declining, arrival and completion are decided by the grid's
    owners (through the owner-scoped grant) or by roles with the edit grant on
    registrations. The registrant may also cancel their own registration.
    """
    registration, grid_owners = await _get_with_owners(db, registration_id)
    current, target = registration.status, body.status

    if not can_transition(current, target):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Illegal status transition {current.value} -> {target.value}",
        )

    is_registrant = ctx.is_authenticated and ctx.actor_id in (registration.user_id, registration.created_by_id)
    if target is RegistrationStatus.CANCELLED and is_registrant:
        reason = "registrant"
    else:
        decision = await authorizer.ensure(
            ctx, "volunteer_registrations", Action.EDIT,
            Ownership(inherited=tuple(grid_owners.owner_ids())),
        )
        reason = decision.reason.value

    if target is not current:
        registration.status = target
        await db.flush()
        await _recount(db, registration.grid_id)
        await db.commit()
        await db.refresh(registration)

        log.info("Registration %s %s -> %s by %s", registration.id, current.value, target.value, ctx.actor_id)
        create_audit_log(
            background_tasks, audit, request, ctx,
            action="update_status", resource_type="volunteer_registrations", resource_id=registration.id,
            reason=reason, details={"from": current.value, "to": target.value},
        )
    return (await _present([(registration, grid_owners)], ctx, resolver))[0]


@router.delete("/{registration_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_registration(
    registration_id: str,
    background_tasks: BackgroundTasks,
    request: Request,
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    authorizer: Annotated[Authorizer, Depends(get_authorizer)],
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
):
    registration, grid_owners = await _get_with_owners(db, registration_id)
    decision = await authorizer.ensure(
        ctx, "volunteer_registrations", Action.DELETE,
        child_ownership(registration.created_by_id, grid_owners.created_by_id, grid_owners.grid_manager_id),
    )

    grid_id = registration.grid_id
    await db.delete(registration)
    await db.flush()
    await _recount(db, grid_id)
    await db.commit()

    create_audit_log(
        background_tasks, audit, request, ctx,
        action="delete", resource_type="volunteer_registrations", resource_id=registration_id,
        reason=decision.reason.value, details={"grid_id": grid_id},
    )
