import logging
import secrets
from datetime import datetime
from enum import Enum

from sqlalchemy.orm import Session

from app.models import Order, PaymentGatewayTransaction
from app.models.status import GatewayProvider, OrderStatus, PaymentStatus, TransactionStatus
from app.services.clock import utcnow
from app.services.email_service import send_order_confirmation_email
from app.services.exceptions import DataIntegrityGap, NotFound, TransitionRejected
from app.services.transitions import (
    OrderField,
    OrderState,
    TransitionDecision,
    check_order_transition,
    check_transaction_transition,
)

logger = logging.getLogger(__name__)


GATEWAY_STATUS_ALIASES: dict[str, TransactionStatus] = {
    "success": TransactionStatus.SUCCESS,
    "successful": TransactionStatus.SUCCESS,
    "succeeded": TransactionStatus.SUCCESS,
    "completed": TransactionStatus.SUCCESS,
    "paid": TransactionStatus.SUCCESS,
    "failed": TransactionStatus.FAILED,
    "failure": TransactionStatus.FAILED,
    "error": TransactionStatus.FAILED,
    "declined": TransactionStatus.FAILED,
    "no paid": TransactionStatus.FAILED,
    "cancelled": TransactionStatus.CANCELLED,
    "canceled": TransactionStatus.CANCELLED,
    "initiated": TransactionStatus.INITIATED,
}


class PaymentOutcome(str, Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"
    UNCHANGED = "unchanged"


def map_gateway_status(raw_status: str | None) -> TransactionStatus:
    """Translate a gateway's status vocabulary into a transaction status.

    Anything unknown is treated as still pending so it is never settled by accident.
    """
    if raw_status is None:
        return TransactionStatus.PENDING
    return GATEWAY_STATUS_ALIASES.get(str(raw_status).strip().lower(), TransactionStatus.PENDING)


def generate_order_number(now: datetime | None = None) -> str:
    now = now or utcnow()
    return f"ORD-{now:%Y%m%d}-{secrets.token_hex(3).upper()}"


def generate_reference_code() -> str:
    return f"REF-{secrets.token_hex(6).upper()}"


def set_transaction_status(
    transaction: PaymentGatewayTransaction,
    proposed: TransactionStatus,
    *,
    override: bool = False,
) -> TransitionDecision:
    decision = check_transaction_transition(transaction.status, proposed, override=override)
    decision.raise_for_rejection()
    transaction.status = TransactionStatus(proposed).value
    return decision


def set_order_field(
    order: Order,
    field: OrderField,
    proposed,
    *,
    override: bool = False,
) -> TransitionDecision:
    decision = check_order_transition(OrderState.of(order), field, proposed, override=override)
    decision.raise_for_rejection()
    setattr(order, field.value, proposed.value if isinstance(proposed, Enum) else proposed)
    return decision


def find_order_transaction(db: Session, order: Order) -> PaymentGatewayTransaction:
    """Return the latest gateway transaction for an order, matched by id then reference code."""
    transaction = (
        db.query(PaymentGatewayTransaction)
        .filter(PaymentGatewayTransaction.order_id == order.id)
        .order_by(PaymentGatewayTransaction.id.desc())
        .first()
    )
    if transaction is None and order.reference_code:
        transaction = (
            db.query(PaymentGatewayTransaction)
            .filter(PaymentGatewayTransaction.reference_code == order.reference_code)
            .order_by(PaymentGatewayTransaction.id.desc())
            .first()
        )
    if transaction is None:
        raise DataIntegrityGap(f"Order {order.order_number} has no gateway transaction")
    return transaction


def confirm_order_payment(order: Order, *, override: bool = False) -> None:
    """Mark the order paid, then confirmed when it is still pending (or cancelled, under override)."""
    set_order_field(order, OrderField.PAYMENT_STATUS, PaymentStatus.PAID, override=override)
    current_status = OrderStatus(order.status)
    if current_status == OrderStatus.PENDING or (override and current_status == OrderStatus.CANCELLED):
        set_order_field(order, OrderField.STATUS, OrderStatus.CONFIRMED, override=override)


def notify_order_confirmed(order: Order) -> None:
    """Email the customer that their payment was received. Call after commit."""
    customer = order.customer
    if customer is None:
        return
    try:
        send_order_confirmation_email(
            customer.email,
            customer.display_name,
            order.order_number,
            order.total_amount,
            order.currency,
        )
    except Exception:
        logger.exception("Failed to send confirmation email for order %s", order.order_number)


def apply_gateway_outcome(
    db: Session,
    transaction: PaymentGatewayTransaction,
    reported: TransactionStatus,
    payload: dict | None = None,
) -> PaymentOutcome:
    """Apply a status reported by the gateway (webhook or verification poll).

    Runs on the normal, non-override path. A reported failure marks the payment
    failed but leaves the order itself for human review. The caller commits.
    """
    reported = TransactionStatus(reported)
    if not reported.is_terminal:
        return PaymentOutcome.UNCHANGED

    order = transaction.order
    if order is None:
        raise DataIntegrityGap(
            f"Transaction {transaction.transaction_id} does not reference an existing order"
        )

    before = (transaction.status, OrderState.of(order))
    if reported == TransactionStatus.SUCCESS:
        set_transaction_status(transaction, reported)
        confirm_order_payment(order)
    else:
        set_transaction_status(transaction, reported)
        set_order_field(order, OrderField.PAYMENT_STATUS, PaymentStatus.FAILED)

    if (transaction.status, OrderState.of(order)) == before:
        logger.info("Duplicate %s report for transaction %s ignored", reported.value, transaction.transaction_id)
        return PaymentOutcome.UNCHANGED

    if payload is not None:
        transaction.gateway_payload = payload

    if reported == TransactionStatus.SUCCESS:
        logger.info("Order %s confirmed from gateway status %s", order.order_number, reported.value)
        return PaymentOutcome.CONFIRMED

    logger.info(
        "Order %s payment marked failed from gateway status %s; order left for review",
        order.order_number,
        reported.value,
    )
    return PaymentOutcome.FAILED


def handle_gateway_notification(
    db: Session,
    provider: GatewayProvider | str,
    transaction_id: str,
    reported: TransactionStatus,
    payload: dict,
) -> dict:
    """Apply a webhook notification and commit.

    Rejected transitions are acknowledged and logged, never applied.
    """
    provider = GatewayProvider(provider)
    transaction = (
        db.query(PaymentGatewayTransaction)
        .filter(
            PaymentGatewayTransaction.transaction_id == transaction_id,
            PaymentGatewayTransaction.provider == provider.value,
        )
        .with_for_update()
        .first()
    )
    if transaction is None:
        raise NotFound(f"{provider.value} transaction {transaction_id} not found")

    try:
        outcome = apply_gateway_outcome(db, transaction, reported, payload)
        db.commit()
    except TransitionRejected as exc:
        db.rollback()
        logger.warning(
            "Ignoring %s notification for %s (%s): %s",
            provider.value,
            transaction_id,
            exc.reason.value,
            exc.message,
        )
        return {"received": True, "applied": False, "reason": exc.reason.value}
    except DataIntegrityGap as exc:
        db.rollback()
        logger.error("Cannot apply %s notification for %s: %s", provider.value, transaction_id, exc.message)
        return {"received": True, "applied": False, "reason": exc.kind}

    if outcome == PaymentOutcome.CONFIRMED:
        notify_order_confirmed(transaction.order)
    return {
        "received": True,
        "applied": outcome != PaymentOutcome.UNCHANGED,
        "outcome": outcome.value,
    }
