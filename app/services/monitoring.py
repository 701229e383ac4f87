from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models import AdminActionLog, AutoProcessLog, Order, PaymentGatewayTransaction
from app.models.status import FulfillmentStatus, OrderStatus, PaymentStatus, TransactionStatus
from app.services.clock import as_utc, db_datetime

PAYMENT_STUCK_AFTER = timedelta(days=1)
FULFILLMENT_DELAYED_AFTER = timedelta(days=3)


class OrderIssue(str, Enum):
    PAYMENT_STUCK = "payment_stuck"
    FULFILLMENT_DELAYED = "fulfillment_delayed"
    PROCESSING = "processing"


def classify_order_issue(order: Order, now: datetime) -> OrderIssue:
    age = as_utc(now) - as_utc(order.created_at)
    if order.payment_status == PaymentStatus.PENDING.value and age > PAYMENT_STUCK_AFTER:
        return OrderIssue.PAYMENT_STUCK
    if (
        order.payment_status == PaymentStatus.PAID.value
        and order.fulfillment_status == FulfillmentStatus.PENDING.value
        and age > FULFILLMENT_DELAYED_AFTER
    ):
        return OrderIssue.FULFILLMENT_DELAYED
    return OrderIssue.PROCESSING


def list_stuck_orders(db: Session, now: datetime, stale_after: timedelta, limit: int = 100) -> list[Order]:
    """Orders still waiting on payment past ``stale_after``; the set a reconciliation run would pick up."""
    cutoff = db_datetime(db, now - stale_after)
    return (
        db.query(Order)
        .filter(
            Order.status == OrderStatus.PENDING.value,
            Order.payment_status == PaymentStatus.PENDING.value,
            Order.created_at < cutoff,
        )
        .order_by(Order.created_at.asc())
        .limit(limit)
        .all()
    )


def list_orders_needing_attention(db: Session, now: datetime, limit: int = 100) -> list[tuple[Order, OrderIssue]]:
    orders = (
        db.query(Order)
        .filter(
            Order.status != OrderStatus.CANCELLED.value,
            (Order.payment_status == PaymentStatus.PENDING.value)
            | (
                (Order.payment_status == PaymentStatus.PAID.value)
                & (Order.fulfillment_status == FulfillmentStatus.PENDING.value)
            ),
        )
        .order_by(Order.created_at.asc())
        .limit(limit)
        .all()
    )
    return [(order, classify_order_issue(order, now)) for order in orders]


def order_statistics(db: Session, now: datetime, stale_after: timedelta) -> dict:
    cutoff = db_datetime(db, now - stale_after)
    total_orders = db.query(func.count(Order.id)).scalar() or 0
    pending_payments = (
        db.query(func.count(Order.id)).filter(Order.payment_status == PaymentStatus.PENDING.value).scalar() or 0
    )
    paid_orders = db.query(func.count(Order.id)).filter(Order.payment_status == PaymentStatus.PAID.value).scalar() or 0
    failed_payments = (
        db.query(func.count(Order.id)).filter(Order.payment_status == PaymentStatus.FAILED.value).scalar() or 0
    )
    stuck_orders = (
        db.query(func.count(Order.id))
        .filter(
            Order.status == OrderStatus.PENDING.value,
            Order.payment_status == PaymentStatus.PENDING.value,
            Order.created_at < cutoff,
        )
        .scalar()
        or 0
    )
    awaiting_fulfillment = (
        db.query(func.count(Order.id))
        .filter(
            Order.payment_status == PaymentStatus.PAID.value,
            Order.fulfillment_status == FulfillmentStatus.PENDING.value,
        )
        .scalar()
        or 0
    )
    revenue = (
        db.query(func.coalesce(func.sum(Order.total_amount), 0))
        .filter(Order.payment_status == PaymentStatus.PAID.value)
        .scalar()
    )
    return {
        "total_orders": total_orders,
        "pending_payments": pending_payments,
        "paid_orders": paid_orders,
        "failed_payments": failed_payments,
        "stuck_orders": stuck_orders,
        "awaiting_fulfillment": awaiting_fulfillment,
        "total_revenue": Decimal(str(revenue or 0)),
    }


def list_pending_transactions(db: Session, limit: int = 50) -> list[PaymentGatewayTransaction]:
    return (
        db.query(PaymentGatewayTransaction)
        .filter(
            PaymentGatewayTransaction.status.in_(
                [TransactionStatus.INITIATED.value, TransactionStatus.PENDING.value]
            )
        )
        .order_by(PaymentGatewayTransaction.created_at.desc(), PaymentGatewayTransaction.id.desc())
        .limit(limit)
        .all()
    )


def list_process_logs(db: Session, limit: int = 10, run_type: str | None = None) -> list[AutoProcessLog]:
    query = db.query(AutoProcessLog)
    if run_type:
        query = query.filter(AutoProcessLog.run_type == run_type)
    return query.order_by(AutoProcessLog.created_at.desc(), AutoProcessLog.id.desc()).limit(limit).all()


def list_admin_actions(db: Session, limit: int = 50) -> list[AdminActionLog]:
    return (
        db.query(AdminActionLog)
        .order_by(AdminActionLog.created_at.desc(), AdminActionLog.id.desc())
        .limit(limit)
        .all()
    )
