"""Sweep expired refresh tokens and verification codes.

Standalone script, meant for cron or a scheduled job. Expired rows are
rejected on the request path but never deleted there.

Usage:
    cd backend && python -m scripts.cleanup_expired_tokens
"""

import logging

from photaro.services.token_cleanup import cleanup_expired_credentials

logger = logging.getLogger(__name__)


async def main() -> None:
    """CLI entry point: run the sweep against the configured database."""
    from sqlalchemy.ext.asyncio import (
        AsyncSession,
        async_sessionmaker,
        create_async_engine,
    )

    from photaro.core.config import settings

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = create_async_engine(settings.database_url, echo=False)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    # The revocation and reset stores live in the API process (or Redis,
    # which expires keys itself), so only the database is swept here.
    async with factory() as session:
        result = await cleanup_expired_credentials(session)
        await session.commit()

    await engine.dispose()

    logger.info("Final stats: %s", result)


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
