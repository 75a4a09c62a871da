"""
Lease reaper for recovering expired job leases.

A worker that dies mid-job leaves its job PROCESSING with a lease that
eventually expires. The reaper returns such jobs to QUEUED, or marks them
FAILED once their attempts are spent, so every job reaches a terminal state.
"""

import asyncio
import contextlib
import logging
import signal

from boxsync.config import get_settings
from boxsync.db import StatusStore, close_db, get_session_context, init_db
from boxsync.observability.logging import setup_logging
from boxsync.observability.metrics import get_metrics
from boxsync.queue.job_queue import SessionFactory

logger = logging.getLogger(__name__)


class Reaper:
    """
    Periodic sweep over PROCESSING jobs with expired leases.

    Several reapers may run against one database: each sweep is a pair of
    conditional updates, so a job is reclaimed at most once.
    """

    def __init__(
        self,
        interval_seconds: float | None = None,
        session_factory: SessionFactory = get_session_context,
    ):
        self.interval = interval_seconds or get_settings().reaper_interval_seconds
        self._session_factory = session_factory
        self._stopped = asyncio.Event()
        self._metrics = get_metrics()

    async def start(self) -> None:
        """Sweep every ``interval`` seconds until stop() is called."""
        logger.info("Reaper starting", extra={"interval": self.interval})
        self._stopped.clear()

        while not self._stopped.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.exception(f"Error in reaper loop: {e}")

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval)

        logger.info("Reaper stopped")

    async def stop(self) -> None:
        """Stop after the current sweep; an idle reaper stops immediately."""
        logger.info("Reaper stopping")
        self._stopped.set()

    async def run_once(self) -> int:
        """
        Sweep once.

        Returns:
            Number of jobs reclaimed (requeued or failed).
        """
        async with self._session_factory() as session:
            count = await StatusStore(session).recover_expired_leases()

        if count > 0:
            self._metrics.record_lease_expired(count)

        return count


async def run_async() -> None:
    setup_logging("reaper")
    await init_db()

    reaper = Reaper()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda: asyncio.create_task(reaper.stop()))

    try:
        await reaper.start()
    finally:
        await close_db()


def run() -> None:
    """Entry point of ``boxsync-reaper``."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
