from app.schemas.profile import ProfileData
from app.schemas.webhook import InboundMessage, WebhookAck, WebhookPayload

__all__ = ["InboundMessage", "ProfileData", "WebhookAck", "WebhookPayload"]
