"""Reconciliation of orders whose payment outcome is stale.

A run selects orders still pending payment past a staleness threshold, asks the
gateway for each order's latest transaction, and applies what the gateway says
through the normal (non-override) transition rules. Every run appends exactly
one ``AutoProcessLog`` row.

Two runs must not work on the same order set at once; ``run_reconciliation_exclusive``
holds a process-wide lock for that. Across processes, the terminal-state guard in
``app.services.transitions`` is the only safety net.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Mapping

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.config import settings
from app.models import AutoProcessLog, Order, PaymentGatewayTransaction
from app.models.status import OrderStatus, PaymentStatus, ProcessRunType
from app.services.clock import db_datetime, utcnow
from app.services.exceptions import (
    GatewayReportedFailure,
    GatewayUnreachable,
    PaymentWorkflowError,
    ReconciliationInProgress,
)
from app.services.gateway_client import GatewayVerification, PaymentVerifier
from app.services.payments import (
    PaymentOutcome,
    apply_gateway_outcome,
    find_order_transaction,
    notify_order_confirmed,
)

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = timedelta(hours=1)
UNEXPECTED_ERROR_KIND = "UnexpectedError"


@dataclass
class RunErrorEntry:
    order_id: int | None
    order_number: str | None
    error_kind: str
    message: str


@dataclass
class ReconciliationResult:
    processed: int = 0
    total: int = 0
    unresolved: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[RunErrorEntry] = field(default_factory=list)
    execution_time: float = 0.0
    log_id: int | None = None

    def record_error(self, order_id: int | None, order_number: str | None, kind: str, message: str) -> None:
        self.errors.append(
            RunErrorEntry(order_id=order_id, order_number=order_number, error_kind=kind, message=message)
        )

    def errors_as_dicts(self) -> list[dict]:
        return [asdict(entry) for entry in self.errors]


def find_stale_pending_orders(
    db: Session,
    now: datetime,
    stale_after: timedelta = DEFAULT_STALE_AFTER,
    limit: int | None = None,
) -> list[Order]:
    cutoff = db_datetime(db, now - stale_after)
    query = (
        db.query(Order)
        .filter(
            Order.status == OrderStatus.PENDING.value,
            Order.payment_status == PaymentStatus.PENDING.value,
            Order.created_at < cutoff,
        )
        .order_by(Order.created_at.asc(), Order.id.asc())
    )
    if limit is not None:
        query = query.limit(limit)
    return query.all()


async def verify_with_deadline(
    verifiers: Mapping[str, PaymentVerifier],
    provider: str,
    transaction_id: str,
    timeout: float | None,
) -> GatewayVerification:
    verifier = verifiers.get(provider)
    if verifier is None:
        raise GatewayUnreachable(f"No payment verifier is configured for provider '{provider}'")
    try:
        return await asyncio.wait_for(verifier.verify(transaction_id), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise GatewayUnreachable(
            f"Verification of transaction {transaction_id} timed out after {timeout}s"
        ) from exc


class ReconciliationService:
    def __init__(
        self,
        db: Session,
        verifiers: Mapping[str, PaymentVerifier],
        clock: Callable[[], datetime] = utcnow,
        gateway_timeout: float | None = None,
    ):
        self.db = db
        self.verifiers = verifiers
        self.clock = clock
        self.gateway_timeout = (
            settings.GATEWAY_TIMEOUT_SECONDS if gateway_timeout is None else gateway_timeout
        )

    async def run(
        self,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        limit: int | None = None,
        manual: bool = False,
    ) -> ReconciliationResult:
        started = time.perf_counter()
        now = self.clock()
        candidates = await run_in_threadpool(self._load_candidates, now, stale_after, limit)
        logger.info(
            "Reconciliation started (manual=%s): %s stale pending order(s) older than %s",
            manual,
            len(candidates),
            stale_after,
        )

        result = ReconciliationResult()
        seen: set[int] = set()
        for order, order_id, order_number in candidates:
            if order_id in seen:
                continue
            seen.add(order_id)
            result.total += 1
            await self._reconcile_order(order, order_id, order_number, result)

        result.execution_time = round(time.perf_counter() - started, 4)
        result.log_id = await run_in_threadpool(self._write_log, result, manual)

        logger.info(
            "Reconciliation finished: %s/%s processed, %s failed, %s unresolved, %s error(s)",
            result.processed,
            result.total,
            result.failed,
            result.unresolved,
            len(result.errors),
        )
        return result

    # Session work below runs in the threadpool; only gateway calls stay on the event loop.

    def _load_candidates(
        self, now: datetime, stale_after: timedelta, limit: int | None
    ) -> list[tuple[Order, int, str]]:
        return [
            (order, order.id, order.order_number)
            for order in find_stale_pending_orders(self.db, now, stale_after, limit)
        ]

    def _load_transaction(self, order: Order) -> tuple[PaymentGatewayTransaction, str, str]:
        transaction = find_order_transaction(self.db, order)
        return transaction, transaction.provider, transaction.transaction_id

    def _write_log(self, result: ReconciliationResult, manual: bool) -> int:
        log = AutoProcessLog(
            run_type=ProcessRunType.RECONCILIATION.value,
            manual=manual,
            processed_orders=result.processed,
            total_orders=result.total,
            unresolved_orders=result.unresolved,
            execution_time=result.execution_time,
            errors=result.errors_as_dicts(),
        )
        self.db.add(log)
        self.db.commit()
        return log.id

    async def _reconcile_order(
        self, order: Order, order_id: int, order_number: str, result: ReconciliationResult
    ) -> None:
        try:
            transaction, provider, transaction_id = await run_in_threadpool(self._load_transaction, order)
            verification = await verify_with_deadline(
                self.verifiers,
                provider,
                transaction_id,
                self.gateway_timeout,
            )
            outcome = await run_in_threadpool(self._apply, order, transaction, verification)
        except PaymentWorkflowError as exc:
            await run_in_threadpool(self.db.rollback)
            logger.warning("Order %s not reconciled (%s): %s", order_number, exc.kind, exc.message)
            result.unresolved += 1
            result.record_error(order_id, order_number, exc.kind, exc.message)
            return
        except Exception as exc:
            await run_in_threadpool(self.db.rollback)
            logger.error("Error reconciling order %s: %s", order_number, exc, exc_info=True)
            result.unresolved += 1
            result.record_error(order_id, order_number, UNEXPECTED_ERROR_KIND, str(exc))
            return

        if outcome is None:
            result.skipped += 1
        elif outcome == PaymentOutcome.CONFIRMED:
            result.processed += 1
            await run_in_threadpool(notify_order_confirmed, order)
        elif outcome == PaymentOutcome.FAILED:
            result.failed += 1
            failure = GatewayReportedFailure(
                f"Gateway reported {verification.status.value} for transaction {transaction_id}"
            )
            result.record_error(order_id, order_number, failure.kind, failure.message)
        else:
            result.unresolved += 1

    def _apply(
        self,
        order: Order,
        transaction: PaymentGatewayTransaction,
        verification: GatewayVerification,
    ) -> PaymentOutcome | None:
        # The gateway call may have taken a while; pick up writes made meanwhile.
        self.db.refresh(transaction, with_for_update=True)
        self.db.refresh(order, with_for_update=True)
        if order.payment_status != PaymentStatus.PENDING.value:
            logger.info("Order %s was settled while verifying, skipping", order.order_number)
            self.db.commit()
            return None
        outcome = apply_gateway_outcome(self.db, transaction, verification.status, verification.payload)
        self.db.commit()
        return outcome


_run_lock = asyncio.Lock()


async def run_reconciliation_exclusive(
    service: ReconciliationService,
    stale_after: timedelta = DEFAULT_STALE_AFTER,
    limit: int | None = None,
    manual: bool = False,
) -> ReconciliationResult:
    if _run_lock.locked():
        raise ReconciliationInProgress("A reconciliation run is already in progress")
    async with _run_lock:
        return await service.run(stale_after=stale_after, limit=limit, manual=manual)


async def run_reconciliation_cycle(
    db: Session,
    verifiers: Mapping[str, PaymentVerifier],
    *,
    manual: bool,
    stale_after: timedelta | None = None,
    limit: int | None = None,
    clock: Callable[[], datetime] = utcnow,
    auto_process: bool | None = None,
):
    """Reconcile, then fulfil newly confirmed orders when anything was unblocked."""
    from app.services.fulfillment import auto_process_orders

    if stale_after is None:
        stale_after = timedelta(minutes=settings.RECONCILE_STALE_AFTER_MINUTES)
    if limit is None:
        limit = settings.RECONCILE_BATCH_LIMIT
    if auto_process is None:
        auto_process = settings.AUTO_PROCESS_AFTER_RECONCILE

    service = ReconciliationService(db, verifiers, clock=clock)
    result = await run_reconciliation_exclusive(service, stale_after=stale_after, limit=limit, manual=manual)

    processing = None
    if auto_process and result.processed > 0:
        processing = await run_in_threadpool(auto_process_orders, db, manual=manual)
    return result, processing
