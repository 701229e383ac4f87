import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.config import settings
from app.models import get_db
from app.models.status import GatewayProvider
from app.services.exceptions import NotFound
from app.services.payments import handle_gateway_notification, map_gateway_status
from app.webhooks.signatures import verify_hmac_signature

router = APIRouter()
logger = logging.getLogger(__name__)


def extract_moneroo_event(body: dict) -> tuple[str | None, str | None]:
    """Return ``(transaction_id, raw_status)`` from a Moneroo notification.

    Moneroo nests the payment under ``data``; older payloads put the fields at the top level.
    """
    data = body.get("data") if isinstance(body.get("data"), dict) else {}
    transaction_id = data.get("id") or body.get("id") or body.get("transaction_id")
    raw_status = data.get("status") or body.get("status")
    return (str(transaction_id) if transaction_id else None), raw_status


@router.post(
    "/moneroo",
    summary="Moneroo payment notification",
)
async def moneroo_webhook(
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Moneroo notification for a payment status change.
    Idempotent: repeated notifications for a settled payment change nothing.
    """
    raw_body = await request.body()
    verify_hmac_signature(
        settings.MONEROO_WEBHOOK_SECRET,
        raw_body,
        request.headers.get("x-moneroo-signature"),
        "Moneroo",
    )

    try:
        body = json.loads(raw_body)
    except ValueError as e:
        logger.error("Invalid JSON in Moneroo webhook: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")

    transaction_id, raw_status = extract_moneroo_event(body)
    if not transaction_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="transaction id required")

    try:
        return await run_in_threadpool(
            handle_gateway_notification,
            db,
            GatewayProvider.MONEROO,
            transaction_id,
            map_gateway_status(raw_status),
            body,
        )
    except NotFound as exc:
        logger.warning("Moneroo webhook for unknown transaction %s", transaction_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.to_detail())
