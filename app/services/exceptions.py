from enum import Enum


class TransitionReason(str, Enum):
    PAYMENT_NOT_CONFIRMED = "PaymentNotConfirmed"
    TERMINAL_REGRESSION = "TerminalRegression"
    FULFILLMENT_BEFORE_CONFIRMATION = "FulfillmentBeforeConfirmation"
    FULFILLED_NOT_CANCELLABLE = "FulfilledNotCancellable"
    INVALID_TRANSITION = "InvalidTransition"


class PaymentWorkflowError(Exception):
    """Base class for errors surfaced to admins with their category intact."""

    kind = "PaymentWorkflowError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {"error": self.kind, "message": self.message}


class TransitionRejected(PaymentWorkflowError):
    kind = "TransitionRejected"

    def __init__(self, reason: TransitionReason, message: str):
        super().__init__(message)
        self.reason = reason

    def to_detail(self) -> dict:
        return {"error": self.kind, "reason": self.reason.value, "message": self.message}


class GatewayUnreachable(PaymentWorkflowError):
    kind = "GatewayUnreachable"


class GatewayReportedFailure(PaymentWorkflowError):
    kind = "GatewayReportedFailure"


class DataIntegrityGap(PaymentWorkflowError):
    kind = "DataIntegrityGap"


class NotFound(PaymentWorkflowError):
    kind = "NotFound"


class ReconciliationInProgress(PaymentWorkflowError):
    kind = "ReconciliationInProgress"
