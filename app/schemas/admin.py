from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


class ForceSuccessRequest(BaseModel):
    transaction_id: str = Field(min_length=1, max_length=255)
    notes: str | None = Field(default=None, max_length=2000)


class OverrideNotesRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


class OverrideResponse(BaseModel):
    action: str
    outcome: str
    target_id: str
    order_number: str | None = None
    before: dict[str, Any]
    after: dict[str, Any]
    audit_id: int


class ReconcileRequest(BaseModel):
    manual: bool = True
    admin: bool = True
    stale_after_minutes: int | None = Field(default=None, ge=0)
    limit: int | None = Field(default=None, ge=1, le=1000)


class AutoProcessRequest(BaseModel):
    manual: bool = True


class RunErrorResponse(BaseModel):
    order_id: int | None = None
    order_number: str | None = None
    error_kind: str
    message: str


class AutoProcessResponse(BaseModel):
    processed: int
    total: int
    errors: list[RunErrorResponse]
    execution_time: float
    log_id: int | None = None


class ReconcileResponse(BaseModel):
    processed: int
    total: int
    unresolved: int
    failed: int
    skipped: int
    errors: list[RunErrorResponse]
    execution_time: float
    log_id: int | None = None
    auto_process: AutoProcessResponse | None = None


class StuckOrderResponse(BaseModel):
    id: int
    order_number: str
    reference_code: str
    status: str
    payment_status: str
    fulfillment_status: str
    total_amount: Decimal
    currency: str
    created_at: datetime | None
    issue: str


class OrderStatsResponse(BaseModel):
    total_orders: int
    pending_payments: int
    paid_orders: int
    failed_payments: int
    stuck_orders: int
    awaiting_fulfillment: int
    total_revenue: Decimal


class PendingTransactionResponse(BaseModel):
    id: int
    provider: str
    transaction_id: str
    reference_code: str | None
    order_id: int | None
    amount: Decimal
    currency: str
    status: str
    created_at: datetime | None

    model_config = {"from_attributes": True}


class ProcessLogResponse(BaseModel):
    id: int
    run_type: str
    manual: bool
    processed_orders: int
    total_orders: int
    unresolved_orders: int
    execution_time: float | None
    errors: list[RunErrorResponse]
    created_at: datetime | None

    model_config = {"from_attributes": True}


class AdminActionResponse(BaseModel):
    id: int
    admin_id: int
    action: str
    target_type: str
    target_id: str
    outcome: str
    reason: str | None
    notes: str | None
    before_state: dict[str, Any] | None
    after_state: dict[str, Any] | None
    created_at: datetime | None

    model_config = {"from_attributes": True}
