import calendar
import logging
import time
from dataclasses import asdict
from datetime import datetime
from typing import Callable, Mapping

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.config import settings
from app.models import AutoProcessLog, Vendor, VendorSubscription
from app.models.status import (
    GatewayProvider,
    ProcessRunType,
    SubscriptionDuration,
    SubscriptionStatus,
    TransactionStatus,
)
from app.services.clock import utcnow
from app.services.exceptions import GatewayReportedFailure, PaymentWorkflowError
from app.services.gateway_client import GatewayVerification, PaymentVerifier
from app.services.reconciliation import UNEXPECTED_ERROR_KIND, ReconciliationResult, verify_with_deadline
from app.services.transitions import TransitionDecision, check_subscription_transition

logger = logging.getLogger(__name__)

APPROVAL_SOURCE_GATEWAY = "gateway"
APPROVAL_SOURCE_ADMIN = "admin"


def _add_months(start: datetime, months: int) -> datetime:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def subscription_expiry(start: datetime, duration: SubscriptionDuration | str) -> datetime:
    """Monthly plans run one calendar month, yearly plans twelve. Short months clamp the day."""
    duration = SubscriptionDuration(duration)
    if duration == SubscriptionDuration.YEARLY:
        return _add_months(start, 12)
    return _add_months(start, 1)


def activate_subscription(
    db: Session,
    subscription: VendorSubscription,
    now: datetime,
    *,
    source: str,
    approved_by_id: int | None = None,
    override: bool = False,
    payment_verified: bool = False,
) -> TransitionDecision:
    """Confirm a subscription and switch the vendor's plan on. The caller commits."""
    decision = check_subscription_transition(
        subscription.status,
        SubscriptionStatus.CONFIRMED,
        override=override,
        payment_verified=payment_verified,
    )
    decision.raise_for_rejection()
    if decision.noop:
        return decision

    expires_at = subscription_expiry(now, subscription.duration)
    subscription.status = SubscriptionStatus.CONFIRMED.value
    subscription.payment_confirmed_at = now
    subscription.expires_at = expires_at
    subscription.approval_source = source
    subscription.approved_by_id = approved_by_id

    vendor = db.query(Vendor).filter(Vendor.user_id == subscription.user_id).first()
    if vendor is None:
        logger.warning("Subscription %s confirmed but user %s has no vendor profile", subscription.id, subscription.user_id)
    else:
        vendor.subscription_status = "active"
        vendor.subscription_plan = subscription.plan_id
        vendor.subscription_expires_at = expires_at
    return decision


def reject_subscription(subscription: VendorSubscription, payload: dict | None = None) -> TransitionDecision:
    decision = check_subscription_transition(subscription.status, SubscriptionStatus.REJECTED)
    decision.raise_for_rejection()
    if decision.noop:
        return decision
    subscription.status = SubscriptionStatus.REJECTED.value
    if payload is not None:
        subscription.gateway_payload = payload
    return decision


def _pending_subscriptions(db: Session) -> list[tuple[VendorSubscription, int, str, str, str]]:
    pending = (
        db.query(VendorSubscription)
        .filter(
            VendorSubscription.status == SubscriptionStatus.PENDING.value,
            VendorSubscription.gateway_transaction_id.isnot(None),
        )
        .order_by(VendorSubscription.created_at.asc(), VendorSubscription.id.asc())
        .all()
    )
    return [
        (
            subscription,
            subscription.id,
            subscription.transaction_number,
            subscription.provider or GatewayProvider.MONEROO.value,
            subscription.gateway_transaction_id,
        )
        for subscription in pending
    ]


def _apply_verification(
    db: Session,
    subscription: VendorSubscription,
    verification: GatewayVerification,
    now: datetime,
) -> str:
    db.refresh(subscription, with_for_update=True)
    if verification.status == TransactionStatus.SUCCESS:
        decision = activate_subscription(
            db, subscription, now, source=APPROVAL_SOURCE_GATEWAY, payment_verified=True
        )
        if not decision.noop:
            subscription.gateway_payload = verification.payload
        outcome = "skipped" if decision.noop else "processed"
    elif verification.status.is_terminal:
        decision = reject_subscription(subscription, verification.payload)
        outcome = "skipped" if decision.noop else "failed"
    else:
        outcome = "unresolved"
    db.commit()
    return outcome


def _write_log(db: Session, result: ReconciliationResult, manual: bool) -> int:
    log = AutoProcessLog(
        run_type=ProcessRunType.SUBSCRIPTION_RECONCILIATION.value,
        manual=manual,
        processed_orders=result.processed,
        total_orders=result.total,
        unresolved_orders=result.unresolved,
        execution_time=result.execution_time,
        errors=[asdict(entry) for entry in result.errors],
    )
    db.add(log)
    db.commit()
    return log.id


async def reconcile_subscriptions(
    db: Session,
    verifiers: Mapping[str, PaymentVerifier],
    manual: bool = False,
    clock: Callable[[], datetime] = utcnow,
    gateway_timeout: float | None = None,
) -> ReconciliationResult:
    """Verify pending subscriptions that carry a gateway transaction id.

    A subscription settled by someone else while its gateway check was in flight
    counts as skipped.
    """
    started = time.perf_counter()
    timeout = settings.GATEWAY_TIMEOUT_SECONDS if gateway_timeout is None else gateway_timeout
    pending = await run_in_threadpool(_pending_subscriptions, db)
    result = ReconciliationResult(total=len(pending))

    for subscription, subscription_id, number, provider, gateway_transaction_id in pending:
        try:
            verification = await verify_with_deadline(verifiers, provider, gateway_transaction_id, timeout)
            outcome = await run_in_threadpool(_apply_verification, db, subscription, verification, clock())
        except PaymentWorkflowError as exc:
            await run_in_threadpool(db.rollback)
            logger.warning("Subscription %s not reconciled (%s): %s", number, exc.kind, exc.message)
            result.unresolved += 1
            result.record_error(subscription_id, number, exc.kind, exc.message)
            continue
        except Exception as exc:
            await run_in_threadpool(db.rollback)
            logger.error("Error reconciling subscription %s: %s", number, exc, exc_info=True)
            result.unresolved += 1
            result.record_error(subscription_id, number, UNEXPECTED_ERROR_KIND, str(exc))
            continue

        if outcome == "processed":
            result.processed += 1
        elif outcome == "failed":
            result.failed += 1
            failure = GatewayReportedFailure(f"Gateway reported {verification.status.value} for subscription {number}")
            result.record_error(subscription_id, number, failure.kind, failure.message)
        elif outcome == "skipped":
            result.skipped += 1
        else:
            result.unresolved += 1

    result.execution_time = round(time.perf_counter() - started, 4)
    result.log_id = await run_in_threadpool(_write_log, db, result, manual)
    logger.info(
        "Subscription reconciliation finished: %s/%s activated, %s rejected, %s skipped",
        result.processed,
        result.total,
        result.failed,
        result.skipped,
    )
    return result
