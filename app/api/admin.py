import logging
from dataclasses import asdict
from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.config import settings
from app.dependencies import get_current_admin
from app.models import User, get_db
from app.schemas.admin import (
    AdminActionResponse,
    AutoProcessRequest,
    AutoProcessResponse,
    ForceSuccessRequest,
    OrderStatsResponse,
    OverrideNotesRequest,
    OverrideResponse,
    PendingTransactionResponse,
    ProcessLogResponse,
    ReconcileRequest,
    ReconcileResponse,
    StuckOrderResponse,
)
from app.services import monitoring, overrides
from app.services.clock import utcnow
from app.services.exceptions import (
    DataIntegrityGap,
    GatewayUnreachable,
    NotFound,
    PaymentWorkflowError,
    ReconciliationInProgress,
    TransitionRejected,
)
from app.services.fulfillment import AutoProcessResult, auto_process_orders
from app.services.payment_gateways import get_payment_verifiers
from app.services.reconciliation import ReconciliationResult, run_reconciliation_cycle
from app.services.subscriptions import reconcile_subscriptions

router = APIRouter()
logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[PaymentWorkflowError], int] = {
    TransitionRejected: status.HTTP_409_CONFLICT,
    ReconciliationInProgress: status.HTTP_409_CONFLICT,
    NotFound: status.HTTP_404_NOT_FOUND,
    DataIntegrityGap: 422,
    GatewayUnreachable: status.HTTP_502_BAD_GATEWAY,
}


def to_http_exception(exc: PaymentWorkflowError) -> HTTPException:
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
        status.HTTP_400_BAD_REQUEST,
    )
    return HTTPException(status_code=status_code, detail=exc.to_detail())


def _auto_process_response(result: AutoProcessResult) -> AutoProcessResponse:
    return AutoProcessResponse(
        processed=result.processed,
        total=result.total,
        errors=[asdict(entry) for entry in result.errors],
        execution_time=result.execution_time,
        log_id=result.log_id,
    )


def _reconcile_response(
    result: ReconciliationResult,
    processing: AutoProcessResult | None = None,
) -> ReconcileResponse:
    return ReconcileResponse(
        processed=result.processed,
        total=result.total,
        unresolved=result.unresolved,
        failed=result.failed,
        skipped=result.skipped,
        errors=result.errors_as_dicts(),
        execution_time=result.execution_time,
        log_id=result.log_id,
        auto_process=_auto_process_response(processing) if processing else None,
    )


def _override_response(result: overrides.OverrideResult) -> OverrideResponse:
    return OverrideResponse(**asdict(result))


@router.post(
    "/payments/force-success",
    response_model=OverrideResponse,
    summary="Force a gateway transaction to success",
)
def force_success(
    body: ForceSuccessRequest,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    """
    Mark the transaction successful and its order paid and confirmed.
    Used when the customer was charged but the gateway never reported back.
    """
    try:
        result = overrides.force_transaction_success(db, admin.id, body.transaction_id, body.notes)
    except PaymentWorkflowError as exc:
        raise to_http_exception(exc)

    if result.outcome == overrides.OUTCOME_APPLIED and settings.AUTO_PROCESS_AFTER_RECONCILE:
        try:
            auto_process_orders(db, manual=True)
        except Exception:
            logger.exception("Auto-process after forced success of %s failed", body.transaction_id)
    return _override_response(result)


@router.post(
    "/orders/{order_id}/confirm",
    response_model=OverrideResponse,
    summary="Confirm an order as paid",
)
def confirm_order(
    order_id: int,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
    body: OverrideNotesRequest | None = None,
):
    try:
        result = overrides.confirm_order(db, admin.id, order_id, body.notes if body else None)
    except PaymentWorkflowError as exc:
        raise to_http_exception(exc)
    return _override_response(result)


@router.post(
    "/subscriptions/{subscription_id}/approve",
    response_model=OverrideResponse,
    summary="Approve a vendor subscription",
)
def approve_subscription(
    subscription_id: int,
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
    body: OverrideNotesRequest | None = None,
):
    try:
        result = overrides.approve_subscription(db, admin.id, subscription_id, body.notes if body else None)
    except PaymentWorkflowError as exc:
        raise to_http_exception(exc)
    return _override_response(result)


@router.post(
    "/reconcile",
    response_model=ReconcileResponse,
    summary="Reconcile stale pending orders with the gateway",
)
async def reconcile(
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
    verifiers: Annotated[dict, Depends(get_payment_verifiers)],
    body: ReconcileRequest | None = None,
):
    """
    Verify every order still pending payment past the staleness threshold and
    apply what the gateway reports. Newly confirmed orders are auto-processed.
    """
    body = body or ReconcileRequest()
    stale_after = (
        timedelta(minutes=body.stale_after_minutes) if body.stale_after_minutes is not None else None
    )
    logger.info("Admin id=%s triggered reconciliation (manual=%s)", admin.id, body.manual)
    try:
        result, processing = await run_reconciliation_cycle(
            db,
            verifiers,
            manual=body.manual,
            stale_after=stale_after,
            limit=body.limit,
        )
    except PaymentWorkflowError as exc:
        raise to_http_exception(exc)
    return _reconcile_response(result, processing)


@router.post(
    "/auto-process",
    response_model=AutoProcessResponse,
    summary="Fulfil confirmed, paid orders",
)
def auto_process(
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
    body: AutoProcessRequest | None = None,
):
    body = body or AutoProcessRequest()
    logger.info("Admin id=%s triggered auto-process", admin.id)
    return _auto_process_response(auto_process_orders(db, manual=body.manual))


@router.post(
    "/subscriptions/reconcile",
    response_model=ReconcileResponse,
    summary="Verify pending vendor subscriptions with the gateway",
)
async def reconcile_pending_subscriptions(
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
    verifiers: Annotated[dict, Depends(get_payment_verifiers)],
):
    logger.info("Admin id=%s triggered subscription reconciliation", admin.id)
    result = await reconcile_subscriptions(db, verifiers, manual=True)
    return _reconcile_response(result)


@router.get(
    "/orders/stuck",
    response_model=list[StuckOrderResponse],
    summary="Orders still waiting on payment",
)
def stuck_orders(
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
    stale_after_minutes: Annotated[int | None, Query(ge=0)] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
):
    now = utcnow()
    minutes = settings.RECONCILE_STALE_AFTER_MINUTES if stale_after_minutes is None else stale_after_minutes
    orders = monitoring.list_stuck_orders(db, now, timedelta(minutes=minutes), limit)
    return [
        StuckOrderResponse(
            id=order.id,
            order_number=order.order_number,
            reference_code=order.reference_code,
            status=order.status,
            payment_status=order.payment_status,
            fulfillment_status=order.fulfillment_status,
            total_amount=order.total_amount,
            currency=order.currency,
            created_at=order.created_at,
            issue=monitoring.classify_order_issue(order, now).value,
        )
        for order in orders
    ]


@router.get(
    "/orders/attention",
    response_model=list[StuckOrderResponse],
    summary="Orders awaiting payment or fulfillment, classified",
)
def orders_needing_attention(
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
):
    return [
        StuckOrderResponse(
            id=order.id,
            order_number=order.order_number,
            reference_code=order.reference_code,
            status=order.status,
            payment_status=order.payment_status,
            fulfillment_status=order.fulfillment_status,
            total_amount=order.total_amount,
            currency=order.currency,
            created_at=order.created_at,
            issue=issue.value,
        )
        for order, issue in monitoring.list_orders_needing_attention(db, utcnow(), limit)
    ]


@router.get(
    "/orders/stats",
    response_model=OrderStatsResponse,
    summary="Order and payment counters",
)
def order_stats(
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
):
    stale_after = timedelta(minutes=settings.RECONCILE_STALE_AFTER_MINUTES)
    return OrderStatsResponse(**monitoring.order_statistics(db, utcnow(), stale_after))


@router.get(
    "/transactions/pending",
    response_model=list[PendingTransactionResponse],
    summary="Gateway transactions not yet settled",
)
def pending_transactions(
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
):
    return [
        PendingTransactionResponse.model_validate(transaction)
        for transaction in monitoring.list_pending_transactions(db, limit)
    ]


@router.get(
    "/process-logs",
    response_model=list[ProcessLogResponse],
    summary="Recent reconciliation and auto-process runs",
)
def process_logs(
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=200)] = 10,
    run_type: str | None = None,
):
    return [ProcessLogResponse.model_validate(log) for log in monitoring.list_process_logs(db, limit, run_type)]


@router.get(
    "/audit-log",
    response_model=list[AdminActionResponse],
    summary="Admin override history",
)
def audit_log(
    admin: Annotated[User, Depends(get_current_admin)],
    db: Annotated[Session, Depends(get_db)],
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
):
    return [AdminActionResponse.model_validate(entry) for entry in monitoring.list_admin_actions(db, limit)]
