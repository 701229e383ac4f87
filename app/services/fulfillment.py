"""Auto-processing: fulfil confirmed, paid orders and credit vendor balances."""

import logging
import time
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from decimal import Decimal

from sqlalchemy.orm import Session

from app.models import AutoProcessLog, Order, Vendor, VendorBalance
from app.models.status import FulfillmentStatus, OrderStatus, PaymentStatus, ProcessRunType
from app.services.email_service import send_digital_delivery_email, send_vendor_payment_email
from app.services.exceptions import PaymentWorkflowError
from app.services.payments import set_order_field
from app.services.reconciliation import UNEXPECTED_ERROR_KIND, RunErrorEntry
from app.services.transitions import OrderField

logger = logging.getLogger(__name__)


@dataclass
class AutoProcessResult:
    processed: int = 0
    total: int = 0
    errors: list[RunErrorEntry] = field(default_factory=list)
    execution_time: float = 0.0
    log_id: int | None = None


def find_orders_ready_for_fulfillment(db: Session, limit: int | None = None) -> list[Order]:
    query = (
        db.query(Order)
        .filter(
            Order.status == OrderStatus.CONFIRMED.value,
            Order.payment_status == PaymentStatus.PAID.value,
            Order.fulfillment_status == FulfillmentStatus.PENDING.value,
        )
        .order_by(Order.id.asc())
    )
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def vendor_totals(order: Order) -> dict[int, Decimal]:
    totals: dict[int, Decimal] = defaultdict(Decimal)
    for item in order.items:
        totals[item.vendor_id] += Decimal(item.total)
    return dict(totals)


def credit_vendor_balances(db: Session, order: Order) -> dict[int, Decimal]:
    """Add each vendor's share of the order to their available balance. No platform commission is taken."""
    totals = vendor_totals(order)
    for vendor_id, amount in totals.items():
        balance = (
            db.query(VendorBalance)
            .filter(VendorBalance.vendor_id == vendor_id)
            .with_for_update()
            .first()
        )
        if balance is None:
            balance = VendorBalance(
                vendor_id=vendor_id,
                available_balance=Decimal("0"),
                pending_balance=Decimal("0"),
                total_earned=Decimal("0"),
                total_withdrawn=Decimal("0"),
            )
            db.add(balance)
        balance.available_balance = Decimal(balance.available_balance or 0) + amount
        balance.total_earned = Decimal(balance.total_earned or 0) + amount
    return totals


def fulfill_order(db: Session, order: Order) -> dict[int, Decimal]:
    set_order_field(order, OrderField.FULFILLMENT_STATUS, FulfillmentStatus.FULFILLED)
    return credit_vendor_balances(db, order)


def notify_order_fulfilled(db: Session, order: Order, credited: dict[int, Decimal]) -> None:
    downloads = [
        (item.product_name, item.digital_file_url)
        for item in order.items
        if item.is_digital and item.digital_file_url
    ]
    customer = order.customer
    if downloads and customer is not None:
        try:
            send_digital_delivery_email(customer.email, customer.display_name, order.order_number, downloads)
        except Exception:
            logger.exception("Failed to send delivery email for order %s", order.order_number)

    for vendor_id, amount in credited.items():
        vendor = db.get(Vendor, vendor_id)
        if vendor is None:
            continue
        to_email = vendor.notification_email or (vendor.user.email if vendor.user else None)
        if not to_email:
            continue
        product_names = [item.product_name for item in order.items if item.vendor_id == vendor_id]
        try:
            send_vendor_payment_email(
                to_email,
                vendor.business_name,
                order.order_number,
                amount,
                order.currency,
                product_names,
            )
        except Exception:
            logger.exception("Failed to send payment email to vendor %s for order %s", vendor_id, order.order_number)


def auto_process_orders(db: Session, manual: bool = False, limit: int | None = None) -> AutoProcessResult:
    started = time.perf_counter()
    orders = find_orders_ready_for_fulfillment(db, limit)
    result = AutoProcessResult(total=len(orders))
    logger.info("Auto-process started (manual=%s): %s order(s) ready", manual, result.total)

    for order in orders:
        order_id, order_number = order.id, order.order_number
        try:
            credited = fulfill_order(db, order)
            db.commit()
        except PaymentWorkflowError as exc:
            db.rollback()
            logger.warning("Order %s not fulfilled (%s): %s", order_number, exc.kind, exc.message)
            result.errors.append(RunErrorEntry(order_id, order_number, exc.kind, exc.message))
            continue
        except Exception as exc:
            db.rollback()
            logger.error("Error fulfilling order %s: %s", order_number, exc, exc_info=True)
            result.errors.append(RunErrorEntry(order_id, order_number, UNEXPECTED_ERROR_KIND, str(exc)))
            continue

        result.processed += 1
        notify_order_fulfilled(db, order, credited)

    result.execution_time = round(time.perf_counter() - started, 4)
    log = AutoProcessLog(
        run_type=ProcessRunType.AUTO_PROCESS.value,
        manual=manual,
        processed_orders=result.processed,
        total_orders=result.total,
        unresolved_orders=len(result.errors),
        execution_time=result.execution_time,
        errors=[asdict(entry) for entry in result.errors],
    )
    db.add(log)
    db.commit()
    result.log_id = log.id
    logger.info("Auto-process finished: %s/%s order(s) fulfilled", result.processed, result.total)
    return result
