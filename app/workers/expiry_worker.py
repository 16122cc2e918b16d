"""Contract expiry worker.

Runs inside the API process as a background task started from the app
lifespan. Each pass moves approved contracts whose window has closed to
``expired``; reads and writes also sweep lazily, so a stopped worker only
delays the status change seen by idle clients.
"""

import asyncio
import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.domain.services.contract_service import ContractService
from app.infrastructure.realtime import RealtimeBroker
from app.settings import settings

logger = logging.getLogger(__name__)


class ContractExpiryWorker:
    """Periodic sweep of overdue approved contracts."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        broker: RealtimeBroker | None = None,
        interval_seconds: float | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.broker = broker
        self.interval_seconds = interval_seconds or settings.contract_expiry_sweep_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self, now: datetime | None = None) -> int:
        """Run a single sweep.

        Returns:
            Number of contracts expired
        """
        async with self.session_factory() as session:
            return await ContractService(session, self.broker).expire_overdue(now=now)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Contract expiry worker started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Contract expiry worker stopped")

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Contract expiry sweep failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval_seconds)
