from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class FulfillmentStatus(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


class TransactionStatus(str, Enum):
    INITIATED = "initiated"
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_TRANSACTION_STATUSES


TERMINAL_TRANSACTION_STATUSES = frozenset(
    {TransactionStatus.SUCCESS, TransactionStatus.FAILED, TransactionStatus.CANCELLED}
)


class SubscriptionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class SubscriptionDuration(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class GatewayProvider(str, Enum):
    MONEROO = "moneroo"
    MONEYFUSION = "moneyfusion"


class ProcessRunType(str, Enum):
    RECONCILIATION = "reconciliation"
    AUTO_PROCESS = "auto_process"
    SUBSCRIPTION_RECONCILIATION = "subscription_reconciliation"
