"""
Seed script to populate the default role permission matrix.

Run this script after database initialization. Rows that already exist for a
(role, permission_key) pair are left untouched, so edits made through the
permission routes survive a re-run.

Usage:
    uv run python -m scripts.seed_permissions
    uv run python -m scripts.seed_permissions --promote someone@example.org super_admin
"""
import argparse
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db, init_db
from app.features.permissions.constants import Role
from app.features.permissions.defaults import DEFAULT_PERMISSIONS
from app.features.permissions.models import RolePermission
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


async def seed_permissions(db: AsyncSession) -> int:
    """
    Insert the default rows that are missing.

    Returns:
        Number of rows created
    """
    log.info("Creating default permissions...")

    result = await db.execute(select(RolePermission.role, RolePermission.permission_key))
    existing = {(row.role, row.permission_key) for row in result}

    created = 0
    for row in DEFAULT_PERMISSIONS:
        if (row["role"], row["permission_key"]) in existing:
            log.debug("Permission %s/%s already exists, skipping", row["role"].value, row["permission_key"])
            continue
        db.add(RolePermission(**row))
        created += 1

    await db.commit()
    log.info("Created %d permissions, %d already present", created, len(existing))
    return created


async def promote_user(db: AsyncSession, email: str, role: Role) -> bool:
    """Set the stored role of the user with ``email``; False when no such user."""
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None:
        log.warning("No user with email %s", email)
        return False
    user.role = role
    await db.commit()
    log.info("User %s is now %s", email, role.value)
    return True


async def main(promote: tuple[str, str] | None = None):
    """Main function to seed the permission matrix."""
    log.info("Starting permission seeding...")

    log.info("Initializing database tables...")
    await init_db()

    async for db in get_db():
        try:
            await seed_permissions(db)
            if promote:
                email, role_name = promote
                role = Role.parse(role_name)
                if role is None:
                    raise SystemExit(f"Unknown role {role_name!r}")
                await promote_user(db, email, role)
            log.info("Permission seeding completed successfully!")
        except Exception as e:
            log.error("Error seeding permissions: %s", e, exc_info=True)
            await db.rollback()
            raise

        break  # Only use first session


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--promote", nargs=2, metavar=("EMAIL", "ROLE"), help="set a user's stored role")
    args = parser.parse_args()
    asyncio.run(main(tuple(args.promote) if args.promote else None))
