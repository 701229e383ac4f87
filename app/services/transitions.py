"""Authoritative transition rules for order, transaction and subscription statuses.

Every status write in the service goes through one of the ``check_*`` functions
below. They are pure: they look at the current value(s) and the proposed value
and return a :class:`TransitionDecision`. Persisting the change is the caller's job.

Passing a value outside the closed status sets raises ``ValueError`` straight
from the enum constructor; that is a programming error, not a rejection.
"""

from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple

from app.models.status import (
    FulfillmentStatus,
    OrderStatus,
    PaymentStatus,
    SubscriptionStatus,
    TransactionStatus,
)
from app.services.exceptions import TransitionReason, TransitionRejected


class OrderField(str, Enum):
    STATUS = "status"
    PAYMENT_STATUS = "payment_status"
    FULFILLMENT_STATUS = "fulfillment_status"


class OrderState(NamedTuple):
    status: OrderStatus
    payment_status: PaymentStatus
    fulfillment_status: FulfillmentStatus

    @classmethod
    def of(cls, order) -> "OrderState":
        return cls(
            status=OrderStatus(order.status),
            payment_status=PaymentStatus(order.payment_status),
            fulfillment_status=FulfillmentStatus(order.fulfillment_status),
        )

    def replace(self, field: OrderField, value) -> "OrderState":
        return self._replace(**{field.value: value})

    def as_dict(self) -> dict[str, str]:
        return {key: value.value for key, value in self._asdict().items()}


@dataclass(frozen=True)
class TransitionDecision:
    allowed: bool
    reason: TransitionReason | None = None
    message: str = ""
    noop: bool = False

    def raise_for_rejection(self) -> None:
        if not self.allowed:
            raise TransitionRejected(self.reason, self.message)


_ALLOW = TransitionDecision(allowed=True)
_NOOP = TransitionDecision(allowed=True, noop=True)


def _reject(reason: TransitionReason, message: str) -> TransitionDecision:
    return TransitionDecision(allowed=False, reason=reason, message=message)


TRANSACTION_FLOW: dict[TransactionStatus, frozenset[TransactionStatus]] = {
    TransactionStatus.INITIATED: frozenset(
        {
            TransactionStatus.PENDING,
            TransactionStatus.SUCCESS,
            TransactionStatus.FAILED,
            TransactionStatus.CANCELLED,
        }
    ),
    TransactionStatus.PENDING: frozenset(
        {TransactionStatus.SUCCESS, TransactionStatus.FAILED, TransactionStatus.CANCELLED}
    ),
}

TERMINAL_PAYMENT_STATUSES = frozenset({PaymentStatus.PAID, PaymentStatus.FAILED})

ORDER_STATUS_FLOW: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.CANCELLED: frozenset(),
}

# Reinstating a cancelled order after a late, manually verified payment.
OVERRIDE_ONLY_STATUS_MOVES = frozenset({(OrderStatus.CANCELLED, OrderStatus.CONFIRMED)})

PAID_ORDER_STATUSES = frozenset({OrderStatus.CONFIRMED, OrderStatus.COMPLETED})

TERMINAL_SUBSCRIPTION_STATUSES = frozenset({SubscriptionStatus.CONFIRMED, SubscriptionStatus.REJECTED})


def check_transaction_transition(
    current: TransactionStatus | str,
    proposed: TransactionStatus | str,
    *,
    override: bool = False,
) -> TransitionDecision:
    current = TransactionStatus(current)
    proposed = TransactionStatus(proposed)

    if current == proposed:
        return _NOOP

    if current.is_terminal:
        if not proposed.is_terminal:
            return _reject(
                TransitionReason.TERMINAL_REGRESSION,
                f"Transaction is {current.value} and can never return to {proposed.value}",
            )
        if override:
            return _ALLOW
        return _reject(
            TransitionReason.TERMINAL_REGRESSION,
            f"Transaction is already {current.value}; moving it to {proposed.value} requires an admin override",
        )

    if proposed in TRANSACTION_FLOW[current]:
        return _ALLOW
    return _reject(
        TransitionReason.INVALID_TRANSITION,
        f"Transaction cannot move from {current.value} to {proposed.value}",
    )


def _check_payment_status(state: OrderState, proposed: PaymentStatus, override: bool) -> TransitionDecision:
    current = state.payment_status
    if current not in TERMINAL_PAYMENT_STATUSES:
        return _ALLOW
    if proposed == PaymentStatus.PENDING:
        return _reject(
            TransitionReason.TERMINAL_REGRESSION,
            f"Order payment is {current.value} and can never return to pending",
        )
    if override:
        return _ALLOW
    return _reject(
        TransitionReason.TERMINAL_REGRESSION,
        f"Order payment is already {current.value}; moving it to {proposed.value} requires an admin override",
    )


def _check_status(state: OrderState, proposed: OrderStatus, override: bool) -> TransitionDecision:
    current = state.status

    if proposed == OrderStatus.CANCELLED:
        if state.fulfillment_status == FulfillmentStatus.FULFILLED:
            return _reject(
                TransitionReason.FULFILLED_NOT_CANCELLABLE,
                "Order has been fulfilled and cannot be cancelled without a reversal",
            )
        return _ALLOW

    move_allowed = proposed in ORDER_STATUS_FLOW[current] or (
        override and (current, proposed) in OVERRIDE_ONLY_STATUS_MOVES
    )
    if not move_allowed:
        return _reject(
            TransitionReason.INVALID_TRANSITION,
            f"Order cannot move from {current.value} to {proposed.value}",
        )

    if current not in PAID_ORDER_STATUSES and proposed in PAID_ORDER_STATUSES:
        if state.payment_status != PaymentStatus.PAID and not override:
            return _reject(
                TransitionReason.PAYMENT_NOT_CONFIRMED,
                f"Order cannot become {proposed.value} while payment is {state.payment_status.value}",
            )
    return _ALLOW


def _check_fulfillment(state: OrderState, proposed: FulfillmentStatus) -> TransitionDecision:
    current = state.fulfillment_status
    if current != FulfillmentStatus.PENDING:
        return _reject(
            TransitionReason.TERMINAL_REGRESSION,
            f"Fulfillment is already {current.value}",
        )
    if proposed == FulfillmentStatus.FULFILLED and state.status not in PAID_ORDER_STATUSES:
        return _reject(
            TransitionReason.FULFILLMENT_BEFORE_CONFIRMATION,
            f"Order is {state.status.value}; only confirmed or completed orders can be fulfilled",
        )
    return _ALLOW


def check_order_transition(
    state: OrderState,
    field: OrderField | str,
    proposed,
    *,
    override: bool = False,
) -> TransitionDecision:
    field = OrderField(field)
    if field == OrderField.STATUS:
        proposed = OrderStatus(proposed)
        if proposed == state.status:
            return _NOOP
        return _check_status(state, proposed, override)
    if field == OrderField.PAYMENT_STATUS:
        proposed = PaymentStatus(proposed)
        if proposed == state.payment_status:
            return _NOOP
        return _check_payment_status(state, proposed, override)

    proposed = FulfillmentStatus(proposed)
    if proposed == state.fulfillment_status:
        return _NOOP
    return _check_fulfillment(state, proposed)


def check_subscription_transition(
    current: SubscriptionStatus | str,
    proposed: SubscriptionStatus | str,
    *,
    override: bool = False,
    payment_verified: bool = False,
) -> TransitionDecision:
    current = SubscriptionStatus(current)
    proposed = SubscriptionStatus(proposed)

    if current == proposed:
        return _NOOP
    if current in TERMINAL_SUBSCRIPTION_STATUSES:
        return _reject(
            TransitionReason.TERMINAL_REGRESSION,
            f"Subscription is already {current.value}",
        )
    if proposed == SubscriptionStatus.CONFIRMED and not (payment_verified or override):
        return _reject(
            TransitionReason.PAYMENT_NOT_CONFIRMED,
            "Subscription payment has not been verified by the gateway",
        )
    return _ALLOW
