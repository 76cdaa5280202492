"""Grant or revoke the Admin role by email.

Bootstraps the first admin, who can then manage roles through
/api/v1/admin.

Usage:
    cd backend && python -m scripts.promote_admin user@example.com
    cd backend && python -m scripts.promote_admin user@example.com --demote
"""

import argparse
import logging
import sys

from sqlalchemy.ext.asyncio import AsyncSession

from photaro.models.user import UserRole
from photaro.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


async def set_role_by_email(db: AsyncSession, email: str, role: UserRole) -> bool:
    """Set a user's role.

    Args:
        db: Async database session.
        email: Account email (case-insensitive).
        role: Role to assign.

    Returns:
        True if the account exists and was updated.
    """
    user = await UserRepository.get_by_email(db, email)
    if user is None:
        logger.error("No account for %s", email)
        return False
    if user.is_deleted:
        logger.error("Account %s is deleted", user.id)
        return False

    await UserRepository.set_role(db, user.id, role=role)
    logger.info("User %s is now %s", user.id, role.value)
    return True


async def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from photaro.core.config import settings

    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("email", help="Email of the account to change")
    parser.add_argument(
        "--demote", action="store_true", help="Set the role back to User"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = create_async_engine(settings.database_url, echo=False)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    role = UserRole.USER if args.demote else UserRole.ADMIN
    async with factory() as session:
        ok = await set_role_by_email(session, args.email, role)
        if ok:
            await session.commit()

    await engine.dispose()
    return 0 if ok else 1


if __name__ == "__main__":
    import asyncio

    sys.exit(asyncio.run(main()))
