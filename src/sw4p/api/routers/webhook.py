"""Obiex webhook endpoint.

Events are authenticated with an HMAC-SHA512 signature of the raw body in
the ``X-Obiex-Signature`` header. Deposit events are logged and
acknowledged; deposits are detected on-chain, not from webhooks.
"""

import hashlib
import hmac
import json
import logging
from typing import Optional

from fastapi import APIRouter, Header, Request

from sw4p.errors import UnauthorizedError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks")


def verify_webhook_signature(payload: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """Verify an HMAC-SHA512 hex signature of ``payload``."""
    if not signature or not secret:
        return False
    expected = hmac.new(secret.encode(), payload, hashlib.sha512).hexdigest()
    return hmac.compare_digest(expected, signature.strip().lower())


@router.post("/obiex")
async def obiex_webhook(
    request: Request,
    x_obiex_signature: Optional[str] = Header(None),
):
    """Receive an Obiex event notification."""
    settings = request.app.state.settings
    body = await request.body()

    if not x_obiex_signature:
        logger.warning("Missing X-Obiex-Signature header in webhook request")
        raise UnauthorizedError("Missing signature")

    if not verify_webhook_signature(body, x_obiex_signature, settings.obiex_signature_secret):
        logger.warning(f"Webhook signature verification failed (body length {len(body)})")
        raise UnauthorizedError("Invalid signature")

    try:
        event = json.loads(body)
    except ValueError:
        raise ValidationError("Webhook body is not valid JSON")
    if not isinstance(event, dict):
        raise ValidationError("Webhook body must be a JSON object")

    logger.info(f"Received Obiex webhook: type={event.get('type')}")

    if event.get("type") == "DEPOSIT":
        logger.info(
            f"Deposit webhook: {event.get('amount')} {event.get('currency')} to "
            f"{event.get('address')} (hash={event.get('hash')}, status={event.get('status')}, "
            f"reference={event.get('reference')})"
        )
        if event.get("status") == "CONFIRMED":
            logger.info(f"Deposit confirmed by Obiex: {event.get('hash')}")

    return {"received": True}
