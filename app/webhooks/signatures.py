import hashlib
import hmac
import logging

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)


def verify_hmac_signature(secret: str, raw_body: bytes, signature: str | None, provider: str) -> None:
    """Validate an HMAC SHA-256 hex signature of the raw body when a secret is configured."""
    if not secret:
        logger.warning("%s webhook secret is not set, skipping webhook verification", provider)
        return

    if not signature:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing webhook signature")

    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(signature.strip().lower(), expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")
