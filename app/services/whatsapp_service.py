from typing import Optional

import httpx

from app.logging_config import get_logger
from app.services.result import Result

logger = get_logger("whatsapp_service")


def classify_status(status_code: int) -> str:
    """Map a Graph API HTTP status to a Result error code."""
    if status_code == 429:
        return "rate_limited"
    if status_code >= 500:
        return "server_error"
    if status_code in (401, 403):
        return "auth"
    return "bad_request"


class WhatsAppClient:
    """Sends text messages through the WhatsApp Cloud API."""

    BASE_URL = "https://graph.facebook.com/{version}/{phone_id}/messages"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token: Optional[str],
        phone_id: Optional[str],
        api_version: str = "v19.0",
        timeout_seconds: float = 20.0,
    ):
        self._http = http_client
        self.token = token
        self.phone_id = phone_id
        self.api_version = api_version
        self.timeout_seconds = timeout_seconds

    @property
    def url(self) -> str:
        return self.BASE_URL.format(version=self.api_version, phone_id=self.phone_id)

    async def send_text(self, recipient: str, text: str) -> Result[str]:
        """Send one text message. Returns the provider message id on success."""
        if not self.token or not self.phone_id:
            logger.error("WhatsApp credentials missing (WHATSAPP_TOKEN / WHATSAPP_PHONE_ID not set)")
            return Result.failure("whatsapp credentials missing", "not_configured")

        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": recipient,
            "type": "text",
            "text": {"preview_url": False, "body": text},
        }
        try:
            response = await self._http.post(
                self.url,
                headers={"Authorization": f"Bearer {self.token}"},
                json=payload,
                timeout=self.timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            logger.warning(f"WhatsApp send timed out: to={recipient}, error={exc!r}")
            return Result.failure(f"timeout: {exc!r}", "timeout")
        except httpx.TransportError as exc:
            logger.warning(f"WhatsApp send connection error: to={recipient}, error={exc!r}")
            return Result.failure(f"connection: {exc!r}", "connection")

        if response.status_code >= 400:
            code = classify_status(response.status_code)
            logger.error(
                "WhatsApp send rejected",
                extra={
                    "context": {
                        "to": recipient,
                        "status": response.status_code,
                        "error_code": code,
                        "body": response.text[:500],
                    }
                },
            )
            return Result.failure(f"graph api status {response.status_code}", code)

        message_id = None
        try:
            data = response.json()
            messages = data.get("messages") or []
            if messages:
                message_id = messages[0].get("id")
        except ValueError:
            logger.warning(f"WhatsApp send returned non-JSON body: status={response.status_code}")

        logger.info(f"WhatsApp message sent: to={recipient}, status={response.status_code}, id={message_id}")
        return Result.success(message_id)
