import hashlib
import hmac
import json
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from app.config import Settings
from app.dependencies import get_conversation_service, get_settings
from app.logging_config import get_logger
from app.schemas.webhook import WHATSAPP_OBJECT, WebhookAck, WebhookPayload
from app.services.conversation_service import ConversationService

logger = get_logger("webhook")

router = APIRouter()

SIGNATURE_HEADER = "X-Hub-Signature-256"


def verify_signature(app_secret: str, body: bytes, header_value: Optional[str]) -> bool:
    """Check Meta's `sha256=<hex>` HMAC of the raw request body."""
    if not header_value or not header_value.startswith("sha256="):
        return False
    expected = hmac.new(app_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, header_value.split("=", 1)[1])


@router.get("/webhook", response_class=PlainTextResponse)
async def verify_webhook(request: Request, settings: Settings = Depends(get_settings)):
    """Subscription handshake: echo hub.challenge when the verify token matches."""
    params = request.query_params
    mode = params.get("hub.mode")
    token = params.get("hub.verify_token")
    challenge = params.get("hub.challenge")

    if not mode or not token or challenge is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing verification parameters")

    if mode != "subscribe" or not settings.whatsapp_verify_token or token != settings.whatsapp_verify_token:
        logger.warning("Webhook verification rejected", extra={"context": {"mode": mode}})
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed")

    logger.info("Webhook verified")
    return PlainTextResponse(challenge)


@router.post("/webhook", response_model=WebhookAck)
async def receive_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    conversation: ConversationService = Depends(get_conversation_service),
):
    """Acknowledge at once; every text message runs as its own detached turn."""
    raw_body = await request.body()

    if settings.whatsapp_app_secret and not verify_signature(
        settings.whatsapp_app_secret, raw_body, request.headers.get(SIGNATURE_HEADER)
    ):
        logger.warning("Webhook signature mismatch")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature")

    try:
        data = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")

    if not isinstance(data, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")

    try:
        payload = WebhookPayload.model_validate(data)
    except ValidationError as exc:
        logger.warning("Webhook payload rejected", extra={"context": {"errors": exc.errors()[:3]}})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")

    if payload.object != WHATSAPP_OBJECT or not payload.entry:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unsupported webhook object")

    accepted = 0
    for message in payload.iter_text_messages():
        conversation.submit(message.sender, message.text, message_id=message.message_id)
        accepted += 1

    if accepted:
        logger.info(f"Webhook accepted {accepted} message(s)")
    return WebhookAck(status="received", accepted=accepted)
