"""Periodic credential sweep inside the API process.

The in-process revocation and reset stores are only reachable from the
process that owns them, so the standalone cleanup script cannot sweep
them. This worker runs cleanup_expired_credentials() on an interval from
the FastAPI lifespan.
"""

import asyncio
import contextlib
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from photaro.services.password_reset_store import PasswordResetStore
from photaro.services.revocation_store import RevocationStore
from photaro.services.token_cleanup import CleanupResult, cleanup_expired_credentials

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 60 * 60


class CredentialSweeper:
    """Background task that evicts expired credentials.

    Lifecycle:
    - start() creates the asyncio task running the loop.
    - stop() cancels it and waits for it to finish.
    - run_once() runs a single sweep (for testing).

    Args:
        session_factory: Async session factory for DB access.
        revocation_store: Store to evict expired revocations from.
        reset_store: Reset store to sweep.
        interval_seconds: Seconds between sweeps.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        revocation_store: RevocationStore,
        reset_store: PasswordResetStore,
        *,
        interval_seconds: int = DEFAULT_INTERVAL_SECONDS,
    ) -> None:
        self._session_factory = session_factory
        self._revocation_store = revocation_store
        self._reset_store = reset_store
        self._interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the background task is active."""
        return self._running and self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the sweep loop. No-op if already running."""
        if self.is_running:
            logger.warning("Credential sweeper already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Credential sweeper started (interval=%ds)", self._interval_seconds)

    async def stop(self) -> None:
        """Cancel the loop and wait for it."""
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("Credential sweeper stopped")

    async def run_once(self) -> CleanupResult:
        """Run one sweep in its own transaction."""
        async with self._session_factory() as db:
            result = await cleanup_expired_credentials(
                db,
                revocation_store=self._revocation_store,
                reset_store=self._reset_store,
            )
            await db.commit()
        return result

    async def _run_loop(self) -> None:
        try:
            while self._running:
                await asyncio.sleep(self._interval_seconds)
                try:
                    await self.run_once()
                except Exception:  # noqa: BLE001
                    logger.exception("Credential sweep failed")
        except asyncio.CancelledError:
            logger.debug("Credential sweep loop cancelled")
            raise
