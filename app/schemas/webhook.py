from dataclasses import dataclass
from typing import Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field

WHATSAPP_OBJECT = "whatsapp_business_account"


class TextBody(BaseModel):
    body: str = ""


class WhatsAppMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    sender: Optional[str] = Field(default=None, alias="from")
    timestamp: Optional[str] = None
    type: Optional[str] = None
    text: Optional[TextBody] = None


class ChangeValue(BaseModel):
    model_config = ConfigDict(extra="ignore")

    messaging_product: Optional[str] = None
    messages: list[WhatsAppMessage] = Field(default_factory=list)


class Change(BaseModel):
    model_config = ConfigDict(extra="ignore")

    field: Optional[str] = None
    value: Optional[ChangeValue] = None


class Entry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    changes: list[Change] = Field(default_factory=list)


class WebhookPayload(BaseModel):
    """WhatsApp Cloud API notification. Status callbacks arrive with no messages."""

    model_config = ConfigDict(extra="ignore")

    object: Optional[str] = None
    entry: list[Entry] = Field(default_factory=list)

    def iter_text_messages(self) -> Iterator["InboundMessage"]:
        for entry in self.entry:
            for change in entry.changes:
                if change.value is None:
                    continue
                for message in change.value.messages:
                    if message.type != "text" or not message.sender or message.text is None:
                        continue
                    yield InboundMessage(
                        sender=message.sender,
                        text=message.text.body,
                        message_id=message.id,
                    )


@dataclass(frozen=True)
class InboundMessage:
    sender: str
    text: str
    message_id: Optional[str] = None


class WebhookAck(BaseModel):
    status: str = "received"
    accepted: int = 0
