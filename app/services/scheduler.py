import asyncio
import logging
from typing import Awaitable, Callable, Mapping

from sqlalchemy.orm import Session

from app.services.exceptions import ReconciliationInProgress
from app.services.gateway_client import PaymentVerifier
from app.services.reconciliation import ReconciliationResult, run_reconciliation_cycle

logger = logging.getLogger(__name__)


class ReconciliationScheduler:
    """Runs reconciliation on a fixed interval inside the application's event loop."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        verifiers_factory: Callable[[], Mapping[str, PaymentVerifier]],
        interval_seconds: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.session_factory = session_factory
        self.verifiers_factory = verifiers_factory
        self.interval_seconds = interval_seconds
        self.sleep = sleep
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> ReconciliationResult | None:
        db = self.session_factory()
        try:
            result, _ = await run_reconciliation_cycle(db, self.verifiers_factory(), manual=False)
            return result
        except ReconciliationInProgress:
            logger.info("Scheduled reconciliation skipped: another run is in progress")
            return None
        except Exception:
            logger.exception("Scheduled reconciliation run failed")
            return None
        finally:
            db.close()

    async def _loop(self) -> None:
        while True:
            await self.run_once()
            await self.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.running:
            return
        logger.info("Starting reconciliation scheduler (every %ss)", self.interval_seconds)
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Reconciliation scheduler stopped")
