"""
Grid-related dependency injection functions.
"""
from typing import Annotated, Iterable
from fastapi import Depends, HTTPException, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.grids.models import Grid, GridDiscussion
from app.features.permissions.authorizer import Ownership
from app.features.supply_donations.models import SupplyDonation
from app.features.volunteer_registrations.models import VolunteerRegistration


# Child tables removed with a grid, keyed by resource kind
DEPENDENT_MODELS = {
    "volunteer_registrations": VolunteerRegistration,
    "supply_donations": SupplyDonation,
    "grid_discussions": GridDiscussion,
}


async def get_grid_by_id(
    grid_id: str,
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Grid:
    """
    Get grid by ID or raise 404. Grids in the trash are included.

    Raises:
        HTTPException: 404 if grid not found
    """
    grid = await db.get(Grid, grid_id)

    if grid is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Grid not found"
        )

    return grid


def grid_ownership(grid: Grid) -> Ownership:
    return Ownership(created_by_id=grid.created_by_id, grid_manager_id=grid.grid_manager_id)


def child_ownership(created_by_id: str | None, grid_creator_id: str | None, grid_manager_id: str | None) -> Ownership:
    """Ownership of a record under a grid: its creator plus the grid's owners."""
    return Ownership(created_by_id=created_by_id, inherited=tuple(i for i in (grid_creator_id, grid_manager_id) if i))


async def load_grid_owners(db: AsyncSession, grid_ids: Iterable[str]) -> dict[str, Ownership]:
    """Ownership of several grids in one query."""
    ids = set(grid_ids)
    if not ids:
        return {}
    result = await db.execute(
        select(Grid.id, Grid.created_by_id, Grid.grid_manager_id).where(Grid.id.in_(ids))
    )
    return {
        row.id: Ownership(created_by_id=row.created_by_id, grid_manager_id=row.grid_manager_id)
        for row in result
    }


async def count_dependents(db: AsyncSession, grid_id: str) -> dict[str, int]:
    """Number of child rows per dependent kind of one grid."""
    counts = {}
    for kind, model in DEPENDENT_MODELS.items():
        result = await db.execute(select(func.count()).select_from(model).where(model.grid_id == grid_id))
        counts[kind] = result.scalar() or 0
    return counts
