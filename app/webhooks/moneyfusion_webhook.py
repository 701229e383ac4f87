import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.config import settings
from app.models import get_db
from app.models.status import GatewayProvider, TransactionStatus
from app.services.exceptions import NotFound
from app.services.payments import handle_gateway_notification
from app.webhooks.signatures import verify_hmac_signature

router = APIRouter()
logger = logging.getLogger(__name__)

MONEYFUSION_EVENTS = {
    "payin.session.completed": TransactionStatus.SUCCESS,
    "payin.session.cancelled": TransactionStatus.CANCELLED,
    "payin.session.pending": TransactionStatus.PENDING,
}


@router.post(
    "/moneyfusion",
    summary="MoneyFusion payment notification",
)
async def moneyfusion_webhook(
    request: Request,
    db: Session = Depends(get_db),
):
    """MoneyFusion sends the payment token (``tokenPay``) and an ``event`` name."""
    raw_body = await request.body()
    verify_hmac_signature(
        settings.MONEYFUSION_WEBHOOK_SECRET,
        raw_body,
        request.headers.get("x-moneyfusion-signature"),
        "MoneyFusion",
    )

    try:
        body = json.loads(raw_body)
    except ValueError as e:
        logger.error("Invalid JSON in MoneyFusion webhook: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")

    token = body.get("tokenPay")
    if not token:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="tokenPay required")

    event = body.get("event")
    reported = MONEYFUSION_EVENTS.get(event)
    if reported is None:
        logger.info("Ignoring MoneyFusion event %s for %s", event, token)
        return {"received": True, "applied": False}

    try:
        return await run_in_threadpool(
            handle_gateway_notification, db, GatewayProvider.MONEYFUSION, str(token), reported, body
        )
    except NotFound as exc:
        logger.warning("MoneyFusion webhook for unknown token %s", token)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.to_detail())
