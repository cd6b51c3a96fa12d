"""
FastAPI dependencies for authentication.
"""
from typing import Annotated
from datetime import datetime, timezone
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.features.users.models import User
from app.features.users.auth import verify_jwt_token, get_appwrite_user


security = HTTPBearer(auto_error=False)


async def get_optional_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User | None:
    """
    Resolve the caller from the bearer token, or None for anonymous calls.

    This dependency:
    1. Extracts JWT from Authorization header (absent means anonymous)
    2. Verifies the JWT
    3. Looks up or creates the user in the local database
    4. Updates last_login_at timestamp
    """
    if credentials is None:
        return None

    payload = verify_jwt_token(credentials.credentials)
    identity_id = payload.get("userId") or payload.get("sub")

    if not identity_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    result = await db.execute(
        select(User).where(User.identity_id == identity_id)
    )
    user = result.scalar_one_or_none()

    # If user doesn't exist locally, fetch from Appwrite and create
    if user is None:
        appwrite_user = await get_appwrite_user(identity_id)

        user = User(
            identity_id=identity_id,
            email=appwrite_user.get("email", ""),
            name=appwrite_user.get("name", "Unknown"),
            phone=appwrite_user.get("phone") or None,
            last_login_at=datetime.now(timezone.utc),
        )
        db.add(user)
    else:
        user.last_login_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(user)

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden",
        )

    return user


async def get_current_user(
    user: Annotated[User | None, Depends(get_optional_user)]
) -> User:
    """
    Require an authenticated user.

    Usage:
        @router.get("/me")
        async def get_me(user: User = Depends(get_current_user)):
            return user
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_authorization_header(request: Request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
