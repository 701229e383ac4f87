"""Admin override paths.

Each action goes through the same transition checks as the automated paths,
with ``override=True``. Every attempt, whether applied, a no-op or rejected,
leaves an ``AdminActionLog`` row.
"""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from app.models import AdminActionLog, Order, PaymentGatewayTransaction, VendorSubscription
from app.models.status import TransactionStatus
from app.services.clock import utcnow
from app.services.exceptions import DataIntegrityGap, NotFound, TransitionRejected
from app.services.payments import confirm_order_payment, set_transaction_status
from app.services.subscriptions import APPROVAL_SOURCE_ADMIN, activate_subscription
from app.services.transitions import OrderState

logger = logging.getLogger(__name__)

ACTION_FORCE_TRANSACTION_SUCCESS = "force_transaction_success"
ACTION_CONFIRM_ORDER = "confirm_order"
ACTION_APPROVE_SUBSCRIPTION = "approve_subscription"

OUTCOME_APPLIED = "applied"
OUTCOME_NOOP = "noop"
OUTCOME_REJECTED = "rejected"


@dataclass(frozen=True)
class OverrideResult:
    action: str
    outcome: str
    target_id: str
    order_number: str | None
    before: dict[str, Any]
    after: dict[str, Any]
    audit_id: int


def _order_snapshot(order: Order) -> dict[str, Any]:
    return {"order_number": order.order_number, **OrderState.of(order).as_dict()}


def _transaction_snapshot(transaction: PaymentGatewayTransaction, order: Order) -> dict[str, Any]:
    return {"transaction_status": transaction.status, "order": _order_snapshot(order)}


def _subscription_snapshot(subscription: VendorSubscription) -> dict[str, Any]:
    return {
        "status": subscription.status,
        "expires_at": subscription.expires_at.isoformat() if subscription.expires_at else None,
        "approval_source": subscription.approval_source,
    }


def _audit(
    db: Session,
    *,
    admin_id: int,
    action: str,
    target_type: str,
    target_id: str,
    outcome: str,
    reason: str | None = None,
    notes: str | None = None,
    before: dict | None = None,
    after: dict | None = None,
) -> AdminActionLog:
    entry = AdminActionLog(
        admin_id=admin_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        outcome=outcome,
        reason=reason,
        notes=notes,
        before_state=before,
        after_state=after,
    )
    db.add(entry)
    return entry


def _record_rejection(db: Session, exc: TransitionRejected, **audit_fields) -> None:
    db.rollback()
    _audit(db, outcome=OUTCOME_REJECTED, reason=exc.reason.value, **audit_fields)
    db.commit()
    logger.warning(
        "Admin %s %s on %s rejected: %s",
        audit_fields["admin_id"],
        audit_fields["action"],
        audit_fields["target_id"],
        exc.message,
    )


def _finish(db: Session, *, before: dict, after: dict, order_number: str | None, **audit_fields) -> OverrideResult:
    outcome = OUTCOME_NOOP if before == after else OUTCOME_APPLIED
    entry = _audit(db, outcome=outcome, before=before, after=after, **audit_fields)
    db.commit()
    logger.info(
        "Admin %s %s on %s: %s",
        audit_fields["admin_id"],
        audit_fields["action"],
        audit_fields["target_id"],
        outcome,
    )
    return OverrideResult(
        action=audit_fields["action"],
        outcome=outcome,
        target_id=audit_fields["target_id"],
        order_number=order_number,
        before=before,
        after=after,
        audit_id=entry.id,
    )


def force_transaction_success(
    db: Session,
    admin_id: int,
    transaction_id: str,
    notes: str | None = None,
) -> OverrideResult:
    """Mark a gateway transaction successful and its order paid and confirmed."""
    transaction = (
        db.query(PaymentGatewayTransaction)
        .filter(PaymentGatewayTransaction.transaction_id == transaction_id)
        .with_for_update()
        .first()
    )
    if transaction is None:
        raise NotFound(f"Transaction {transaction_id} not found")
    order = transaction.order
    if order is None:
        raise DataIntegrityGap(f"Transaction {transaction_id} does not reference an existing order")

    audit_fields = dict(
        admin_id=admin_id,
        action=ACTION_FORCE_TRANSACTION_SUCCESS,
        target_type="transaction",
        target_id=transaction_id,
        notes=notes,
    )
    before = _transaction_snapshot(transaction, order)
    try:
        set_transaction_status(transaction, TransactionStatus.SUCCESS, override=True)
        confirm_order_payment(order, override=True)
    except TransitionRejected as exc:
        _record_rejection(db, exc, before=before, **audit_fields)
        raise

    after = _transaction_snapshot(transaction, order)
    if after != before:
        transaction.gateway_payload = {
            **(transaction.gateway_payload or {}),
            "manual_success": True,
            "forced_by": admin_id,
            "forced_at": utcnow().isoformat(),
            "notes": notes,
        }
    return _finish(db, before=before, after=after, order_number=order.order_number, **audit_fields)


def confirm_order(
    db: Session,
    admin_id: int,
    order_id: int,
    notes: str | None = None,
) -> OverrideResult:
    """Mark an order paid and confirmed without touching its gateway transaction."""
    order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
    if order is None:
        raise NotFound(f"Order {order_id} not found")

    audit_fields = dict(
        admin_id=admin_id,
        action=ACTION_CONFIRM_ORDER,
        target_type="order",
        target_id=str(order_id),
        notes=notes,
    )
    before = _order_snapshot(order)
    try:
        confirm_order_payment(order, override=True)
    except TransitionRejected as exc:
        _record_rejection(db, exc, before=before, **audit_fields)
        raise
    after = _order_snapshot(order)
    return _finish(db, before=before, after=after, order_number=order.order_number, **audit_fields)


def approve_subscription(
    db: Session,
    admin_id: int,
    subscription_id: int,
    notes: str | None = None,
) -> OverrideResult:
    subscription = (
        db.query(VendorSubscription)
        .filter(VendorSubscription.id == subscription_id)
        .with_for_update()
        .first()
    )
    if subscription is None:
        raise NotFound(f"Subscription {subscription_id} not found")

    audit_fields = dict(
        admin_id=admin_id,
        action=ACTION_APPROVE_SUBSCRIPTION,
        target_type="subscription",
        target_id=str(subscription_id),
        notes=notes,
    )
    before = _subscription_snapshot(subscription)
    try:
        activate_subscription(
            db,
            subscription,
            utcnow(),
            source=APPROVAL_SOURCE_ADMIN,
            approved_by_id=admin_id,
            override=True,
        )
    except TransitionRejected as exc:
        _record_rejection(db, exc, before=before, **audit_fields)
        raise
    after = _subscription_snapshot(subscription)
    return _finish(db, before=before, after=after, order_number=None, **audit_fields)
