"""
User feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.permissions.acting_role import RequestContext
from app.features.permissions.constants import Action
from app.features.permissions.dependencies import (
    AuditSink,
    create_audit_log,
    get_audit_sink,
    get_request_context,
    require_permission,
)
from app.features.users.models import User
from app.features.users.schemas import UserResponse, UserPublic, UserRoleUpdate, UserUpdate
from app.features.users.dependencies import get_current_user
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter(tags=["users"])


def _profile(user: User, ctx: RequestContext) -> UserResponse:
    data = {name: getattr(user, name) for name in UserResponse.model_fields if name != "effective_role"}
    return UserResponse(**data, effective_role=ctx.effective_role)


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    user: Annotated[User, Depends(get_current_user)],
    ctx: Annotated[RequestContext, Depends(get_request_context)],
):
    """Get current authenticated user's profile, with the role this request runs as."""
    return _profile(user, ctx)


@router.patch("/me", response_model=UserResponse)
async def update_current_user_profile(
    update_data: UserUpdate,
    user: Annotated[User, Depends(get_current_user)],
    ctx: Annotated[RequestContext, Depends(require_permission("profile", Action.EDIT))],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update current user's profile."""
    if update_data.name is not None:
        user.name = update_data.name
    if update_data.phone is not None:
        user.phone = update_data.phone

    await db.commit()
    await db.refresh(user)
    return _profile(user, ctx)


@router.patch("/{user_id}/role", response_model=UserPublic)
async def update_user_role(
    user_id: str,
    body: UserRoleUpdate,
    background_tasks: BackgroundTasks,
    request: Request,
    ctx: Annotated[RequestContext, Depends(require_permission("users", Action.MANAGE))],
    db: Annotated[AsyncSession, Depends(get_db)],
    audit: Annotated[AuditSink, Depends(get_audit_sink)],
):
    """
    Change a user's stored role.

    Nobody can change their own role, change the role of someone ranked above
    them, or grant a role above their own effective role.
    """
    if user_id == ctx.actor_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot change your own role")
    if body.role.outranks(ctx.effective_role):
        log.info("Refused role change of %s to %s by %s", user_id, body.role.value, ctx.actor_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    if user.role.outranks(ctx.effective_role):
        log.info("Refused role change of %s (%s) by %s", user_id, user.role.value, ctx.actor_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    old = user.role
    user.role = body.role
    await db.commit()
    await db.refresh(user)

    create_audit_log(
        background_tasks, audit, request, ctx,
        action="change_role",
        resource_type="users",
        resource_id=user.id,
        reason="granted",
        details={"old": old.value, "new": body.role.value},
    )
    return user


@router.get("/{user_id}", response_model=UserPublic)
async def get_user_by_id(
    user_id: str,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Get public user profile by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    return user


@router.get("/", response_model=list[UserPublic])
async def list_users(
    _ctx: Annotated[RequestContext, Depends(require_permission("users", Action.VIEW))],
    db: Annotated[AsyncSession, Depends(get_db)],
    skip: int = 0,
    limit: int = 50
):
    """List active users (public info only)."""
    result = await db.execute(
        select(User)
        .where(User.is_active == True)  # noqa: E712
        .order_by(User.id)
        .offset(skip)
        .limit(limit)
    )
    return result.scalars().all()
