"""
Supply donation routes.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.grids.dependencies import child_ownership, load_grid_owners
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
from app.features.supply_donations.models import SupplyDonation
from app.features.supply_donations.schemas import DonationCreate, DonationResponse, DonationUpdate
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


async def _get_donation(db: AsyncSession, donation_id: str) -> SupplyDonation:
    donation = await db.get(SupplyDonation, donation_id)
    if donation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Donation not found")
    return donation


async def _present(
    donations: List[SupplyDonation],
    parents: dict[str, Ownership],
    ctx: RequestContext,
    resolver: PermissionResolver,
) -> List[dict]:
    records = [DonationResponse.model_validate(donation).model_dump() for donation in donations]
    allowed = await has_facet_permission(ctx, resolver, Facet.DONOR_CONTACT)
    return filter_contacts(records, ctx, Facet.DONOR_CONTACT, allowed, parents)


def _ownership(donation: SupplyDonation, parents: dict[str, Ownership]) -> Ownership:
    grid = parents.get(donation.grid_id, Ownership())
    return child_ownership(donation.created_by_id, grid.created_by_id, grid.grid_manager_id)


@router.get("", response_model=List[DonationResponse])
async def list_donations(
    ctx: Annotated[RequestContext, Depends(require_permission("supply_donations", Action.VIEW))],
    resolver: Annotated[PermissionResolver, Depends(get_resolver)],
    db: Annotated[AsyncSession, Depends(get_db)],
    grid_id: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
):
    stmt = select(SupplyDonation)
    if grid_id:
        stmt = stmt.where(SupplyDonation.grid_id == grid_id)
    stmt = stmt.order_by(SupplyDonation.created_at.desc(), SupplyDonation.id).offset(skip).limit(limit)
    donations = list((await db.execute(stmt)).scalars().all())

    parents = await load_grid_owners(db, (donation.grid_id for donation in donations))
    return await _present(donations, parents, ctx, resolver)


@router.get("/{donation_id}", response_model=DonationResponse)
async def get_donation(
    donation_id: str,
    ctx: Annotated[RequestContext, Depends(require_permission("supply_donations", Action.VIEW))],
    resolver: Annotated[PermissionResolver, Depends(get_resolver)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    donation = await _get_donation(db, donation_id)
    parents = await load_grid_owners(db, [donation.grid_id])
    return (await _present([donation], parents, ctx, resolver))[0]


@router.post("", response_model=DonationResponse, status_code=status.HTTP_201_CREATED)
async def create_donation(
    body: DonationCreate,
    background_tasks: BackgroundTasks,
    request: Request,
    ctx: Annotated[RequestContext, Depends(require_permission("supply_donations", Action.CREATE))],
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
):
    grid = await db.get(Grid, body.grid_id)
    if grid is None or grid.status is GridStatus.DELETED:
        raise HTTPException(status_code=404, detail="Grid not found")

    donation = SupplyDonation(**body.model_dump(), created_by_id=ctx.actor_id)
    db.add(donation)
    await db.commit()
    await db.refresh(donation)

    create_audit_log(
        background_tasks, audit, request, ctx,
        action="create", resource_type="supply_donations", resource_id=donation.id,
        reason="granted", details={"grid_id": grid.id},
    )
    return donation


@router.patch("/{donation_id}", response_model=DonationResponse)
async def update_donation(
    donation_id: str,
    body: DonationUpdate,
    background_tasks: BackgroundTasks,
    request: Request,
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    authorizer: Annotated[Authorizer, Depends(get_authorizer)],
    resolver: Annotated[PermissionResolver, Depends(get_resolver)],
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
):
    donation = await _get_donation(db, donation_id)
    parents = await load_grid_owners(db, [donation.grid_id])
    decision = await authorizer.ensure(ctx, "supply_donations", Action.EDIT, _ownership(donation, parents))

    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(donation, field, value)
    await db.commit()
    await db.refresh(donation)

    create_audit_log(
        background_tasks, audit, request, ctx,
        action="update", resource_type="supply_donations", resource_id=donation.id,
        reason=decision.reason.value, details={"fields": sorted(changes)},
    )
    return (await _present([donation], parents, ctx, resolver))[0]


@router.delete("/{donation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_donation(
    donation_id: str,
    background_tasks: BackgroundTasks,
    request: Request,
    ctx: Annotated[RequestContext, Depends(get_request_context)],
    authorizer: Annotated[Authorizer, Depends(get_authorizer)],
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
):
    donation = await _get_donation(db, donation_id)
    parents = await load_grid_owners(db, [donation.grid_id])
    decision = await authorizer.ensure(ctx, "supply_donations", Action.DELETE, _ownership(donation, parents))

    await db.delete(donation)
    await db.commit()

    create_audit_log(
        background_tasks, audit, request, ctx,
        action="delete", resource_type="supply_donations", resource_id=donation_id,
        reason=decision.reason.value, details={"grid_id": donation.grid_id},
    )
