from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from app.services.state_machine import SessionState, parse_state


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Completion(BaseModel):
    """A letter delivered before the user reset the funnel."""

    completed_at: Optional[datetime] = None
    document: str


class ConversationEntry(BaseModel):
    timestamp: datetime = Field(default_factory=utcnow)
    user_message: str
    bot_response: Optional[str] = None


class Session(BaseModel):
    """Per-sender funnel record, stored as JSON in the session store."""

    id: str
    state: SessionState = SessionState.WELCOME
    name: Optional[str] = None
    email: Optional[str] = None
    handle: Optional[str] = None
    permission_granted: Optional[bool] = None
    document: Optional[str] = None
    error: Optional[str] = None
    generation_id: Optional[str] = None
    generation_started_at: Optional[datetime] = None
    question_count: int = 0
    reset_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    history: List[Completion] = Field(default_factory=list)
    conversation_log: List[ConversationEntry] = Field(default_factory=list)

    @field_validator("state", mode="before")
    @classmethod
    def _known_state(cls, value: Any) -> SessionState:
        state = parse_state(value)
        if state is None:
            raise ValueError(f"unknown session state: {value!r}")
        return state

    @classmethod
    def salvage(cls, session_id: str, raw: Any) -> "Session":
        """Build a fresh WELCOME session keeping whatever identity data survived in a broken record."""
        session = cls(id=session_id)
        if not isinstance(raw, dict):
            return session
        for field in ("name", "email", "handle"):
            value = raw.get(field)
            if isinstance(value, str) and value.strip():
                setattr(session, field, value)
        for field in ("question_count", "reset_count"):
            value = raw.get(field)
            if isinstance(value, int) and value >= 0:
                setattr(session, field, value)
        history = raw.get("history")
        if isinstance(history, list):
            for item in history:
                try:
                    session.history.append(Completion.model_validate(item))
                except ValueError:
                    continue
        return session

    @property
    def first_name(self) -> str:
        return (self.name or "").split(" ")[0]
