# app/routers/webhook_router.py
import hashlib
import hmac
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from ..core.config import settings
from ..dependencies import get_reverse_otp_service
from ..exceptions import BadRequestError, NotFoundError, UnauthorizedError
from ..schemas import IncomingMessageWebhook
from ..application.services.reverse_otp_service import ReverseOTPService
from ..utils import InvalidPhoneError, normalize_phone, mask_phone

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/webhooks", tags=["Webhooks"])

SIGNATURE_HEADER = "X-Hub-Signature-256"


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    if not signature or not signature.startswith("sha256="):
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature[len("sha256="):])


def sender_to_phone(sender: str) -> str:
    """Turn a platform sender id (``whatsapp:+62...``, ``62...@s.whatsapp.net``) into E.164."""
    value = sender.strip()
    if value.lower().startswith("whatsapp:"):
        value = value[len("whatsapp:"):]
    value = value.split("@", 1)[0]
    if not value.startswith("+"):
        value = "+" + value
    return normalize_phone(value, settings.DEFAULT_PHONE_REGION)


@router.post("/whatsapp")
async def whatsapp_webhook(request: Request, service: ReverseOTPService = Depends(get_reverse_otp_service)):
    body = await request.body()

    if settings.WEBHOOK_SECRET:
        if not verify_signature(body, request.headers.get(SIGNATURE_HEADER, ""), settings.WEBHOOK_SECRET):
            logger.warning("Rejected webhook with missing or invalid signature")
            raise UnauthorizedError("invalid webhook signature")

    try:
        payload = IncomingMessageWebhook.model_validate_json(body)
    except ValidationError:
        raise BadRequestError("malformed webhook payload")

    try:
        phone = sender_to_phone(payload.sender)
    except InvalidPhoneError:
        logger.info("Ignoring webhook message from unparseable sender")
        return {"status": "ignored"}

    try:
        await run_in_threadpool(service.handle_incoming_message, phone, payload.message)
    except NotFoundError:
        logger.info(f"No reverse OTP session matched message from {mask_phone(phone)}")
        return {"status": "ignored"}

    return {"status": "received"}
