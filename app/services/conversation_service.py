"""Conversation turns for the lead funnel.

One turn = read session -> decide -> deliver replies -> persist, all under the
sender's lock. Entering GENERATING spawns a detached generation unit that
re-acquires the lock only to deliver and store the finished letter.
"""

import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Optional

from app.logging_config import LoggerAdapter, get_logger
from app.models.session import Completion, ConversationEntry, Session, utcnow
from app.services import messages
from app.services.ai_service import AIService
from app.services.crm_service import KommoClient
from app.services.delivery_service import DeliveryService
from app.services.enrichment_service import EnrichmentService
from app.services.llm.base import LLMError
from app.services.locks import KeyedLock, LockUnavailableError
from app.services.session_store import CorruptedSessionError, SessionStore, SessionStoreError
from app.services.state_machine import SessionState, complete, fail, reset, start_generation, transition
from app.services.task_supervisor import TaskSupervisor
from app.services.validation import (
    declines_handle,
    is_affirmative,
    is_reset_command,
    is_skip,
    normalize_handle,
    validate_email,
    validate_name,
)

logger = get_logger("conversation")

DEFAULT_RESET_KEYWORDS = ("reset", "reiniciar")

# A GENERATING session older than this has no live generation unit behind it.
DEFAULT_GENERATION_DEADLINE_SECONDS = 600.0


@dataclass
class TurnOutcome:
    session: Session
    replies: list[str] = field(default_factory=list)
    start_generation: bool = False
    with_scraping: bool = False
    generation_handle: Optional[str] = None


Handler = Callable[[Session, str], Awaitable[TurnOutcome]]


class ConversationService:
    def __init__(
        self,
        store: SessionStore,
        delivery: DeliveryService,
        enrichment: EnrichmentService,
        ai_service: AIService,
        supervisor: TaskSupervisor,
        locks=None,
        crm: Optional[KommoClient] = None,
        *,
        reset_keywords: Iterable[str] = DEFAULT_RESET_KEYWORDS,
        session_ttl_seconds: Optional[int] = None,
        dedup_ttl_seconds: int = 86400,
        generation_deadline_seconds: float = DEFAULT_GENERATION_DEADLINE_SECONDS,
    ):
        self.store = store
        self.delivery = delivery
        self.enrichment = enrichment
        self.ai_service = ai_service
        self.supervisor = supervisor
        self.locks = locks or KeyedLock()
        self.crm = crm
        self.reset_keywords = tuple(reset_keywords)
        self.session_ttl_seconds = session_ttl_seconds
        self.dedup_ttl_seconds = dedup_ttl_seconds
        self.generation_deadline_seconds = generation_deadline_seconds
        self.reset_word = self.reset_keywords[0] if self.reset_keywords else messages.DEFAULT_RESET_WORD

        self._handlers: dict[SessionState, Handler] = {
            SessionState.WELCOME: self._handle_name,
            SessionState.AWAITING_NAME: self._handle_name,
            SessionState.AWAITING_EMAIL: self._handle_email,
            SessionState.AWAITING_INSTAGRAM: self._handle_handle,
            SessionState.ASK_PERMISSION: self._handle_permission,
            SessionState.GENERATING: self._handle_generating,
            SessionState.COMPLETED: self._handle_completed,
            SessionState.ERROR: self._handle_error,
        }

    @property
    def handled_states(self) -> set[SessionState]:
        return set(self._handlers)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def submit(self, sender_id: str, text: str, message_id: Optional[str] = None):
        """Hand an inbound message to a detached turn. Returns the task."""
        return self.supervisor.spawn(
            self.handle_message(sender_id, text, message_id=message_id),
            name=f"turn:{sender_id}",
            context={"sender": sender_id, "message_id": message_id},
        )

    async def handle_message(
        self, sender_id: str, text: str, message_id: Optional[str] = None
    ) -> Optional[TurnOutcome]:
        log = LoggerAdapter(logger, {"sender": sender_id, "message_id": message_id})

        if message_id and not await self.store.claim_message(message_id, self.dedup_ttl_seconds):
            log.info("Duplicate inbound message ignored")
            return None

        log.info(f"Processing message: {text[:50]!r}{'...' if len(text) > 50 else ''}")
        try:
            async with self.locks.hold(sender_id):
                return await self._run_turn(sender_id, text, log)
        except LockUnavailableError as exc:
            log.error("Turn lock unavailable", context={"error": str(exc)})
            await self.delivery.deliver(sender_id, messages.try_again(self.reset_word))
            return None

    async def _run_turn(self, sender_id: str, text: str, log: LoggerAdapter) -> Optional[TurnOutcome]:
        try:
            session = await self.store.get(sender_id)
        except SessionStoreError as exc:
            log.error("Turn aborted: session store unavailable", context={"error": str(exc)})
            await self.delivery.deliver(sender_id, messages.try_again(self.reset_word))
            return None
        except CorruptedSessionError as exc:
            log.warning("Corrupted session reset to WELCOME", context={"reason": exc.reason[:300]})
            outcome = self._recover_corrupted(sender_id, text, exc)
        else:
            if session is None:
                log.info("New session")
                session = Session(id=sender_id)
            from_state = session.state
            try:
                outcome = await self._decide(session, text)
            except Exception as exc:
                log.error("Turn failed", exc_info=True, context={"state": from_state.value, "error": str(exc)})
                await self.delivery.deliver(sender_id, messages.try_again(self.reset_word))
                return None
            if outcome.session.state != from_state:
                log.info(f"State {from_state.value} -> {outcome.session.state.value}")

        await self._apply(outcome, log)
        return outcome

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    async def _decide(self, session: Session, text: str) -> TurnOutcome:
        if is_reset_command(text, self.reset_keywords):
            return self._handle_reset(session)
        handler = self._handlers[session.state]
        return await handler(session, text)

    def _handle_reset(self, session: Session) -> TurnOutcome:
        if session.document:
            session.history.append(Completion(completed_at=session.completed_at, document=session.document))
        session.state = reset(session.state)
        session.document = None
        session.completed_at = None
        session.error = None
        session.permission_granted = None
        session.generation_id = None
        session.generation_started_at = None
        session.reset_count += 1
        return TurnOutcome(session=session, replies=[messages.RESET_CONFIRMATION])

    def _recover_corrupted(self, sender_id: str, text: str, exc: CorruptedSessionError) -> TurnOutcome:
        session = Session.salvage(sender_id, exc.raw)
        if is_reset_command(text, self.reset_keywords):
            return self._handle_reset(session)
        return TurnOutcome(session=session, replies=[messages.CORRUPTED_SESSION])

    async def _handle_name(self, session: Session, text: str) -> TurnOutcome:
        name = validate_name(text)
        if name is None:
            prompt = messages.WELCOME_TEXT if session.state == SessionState.WELCOME else messages.NAME_REPROMPT
            return TurnOutcome(session=session, replies=[prompt])

        session.name = name
        session.state = transition(session.state, SessionState.AWAITING_EMAIL)
        return TurnOutcome(session=session, replies=[messages.ask_email(session.first_name)])

    async def _handle_email(self, session: Session, text: str) -> TurnOutcome:
        if is_skip(text):
            session.state = transition(session.state, SessionState.AWAITING_INSTAGRAM)
            return TurnOutcome(session=session, replies=[messages.ask_handle()])

        email = validate_email(text)
        if email is None:
            return TurnOutcome(session=session, replies=[messages.EMAIL_REPROMPT])

        session.email = email
        session.state = transition(session.state, SessionState.AWAITING_INSTAGRAM)
        return TurnOutcome(session=session, replies=[messages.ask_handle()])

    async def _handle_handle(self, session: Session, text: str) -> TurnOutcome:
        if declines_handle(text):
            session.state = start_generation(session.state)
            return TurnOutcome(
                session=session,
                replies=[messages.GENERATING_WITHOUT_HANDLE],
                start_generation=True,
                with_scraping=False,
                generation_handle=None,
            )

        handle = normalize_handle(text)
        if handle is None:
            return TurnOutcome(session=session, replies=[messages.HANDLE_REPROMPT])

        session.handle = handle
        session.state = transition(session.state, SessionState.ASK_PERMISSION)
        return TurnOutcome(session=session, replies=[messages.ASK_PERMISSION])

    async def _handle_permission(self, session: Session, text: str) -> TurnOutcome:
        granted = is_affirmative(text)
        session.permission_granted = granted
        session.state = start_generation(session.state)
        return TurnOutcome(
            session=session,
            replies=[messages.GENERATING_WITH_DATA if granted else messages.GENERATING_WITHOUT_DATA],
            start_generation=True,
            with_scraping=granted,
            generation_handle=session.handle,
        )

    async def _handle_generating(self, session: Session, text: str) -> TurnOutcome:
        if not self._generation_overdue(session):
            return TurnOutcome(session=session, replies=[messages.still_generating(self.reset_word)])

        # No live generation unit will finish this session.
        logger.warning(
            "Generation overdue, session moved to ERROR",
            extra={
                "context": {
                    "sender": session.id,
                    "generation_id": session.generation_id,
                    "started_at": session.generation_started_at,
                }
            },
        )
        session.state = fail(session.state)
        session.error = "generation did not finish"
        session.generation_id = None
        session.generation_started_at = None
        return TurnOutcome(session=session, replies=[messages.generation_failed(self.reset_word)])

    def _generation_overdue(self, session: Session) -> bool:
        started_at = session.generation_started_at
        if started_at is None:
            return True
        return (utcnow() - started_at).total_seconds() >= self.generation_deadline_seconds

    async def _handle_completed(self, session: Session, text: str) -> TurnOutcome:
        try:
            answer = await self.ai_service.answer_followup(session, text)
        except LLMError as exc:
            logger.warning(
                "Follow-up answer failed, sending apology",
                extra={"context": {"sender": session.id, "error": str(exc)}},
            )
            answer = messages.followup_unavailable(session.first_name)

        session.conversation_log.append(ConversationEntry(user_message=text, bot_response=answer))
        session.question_count += 1
        return TurnOutcome(session=session, replies=[answer])

    async def _handle_error(self, session: Session, text: str) -> TurnOutcome:
        return TurnOutcome(session=session, replies=[messages.error_state_reply(self.reset_word)])

    # ------------------------------------------------------------------
    # Effects
    # ------------------------------------------------------------------

    async def _persist(self, session: Session, log) -> bool:
        session.updated_at = utcnow()
        result = await self.store.put(session, self.session_ttl_seconds)
        if not result.ok:
            log.error(
                "Session persist failed",
                context={"state": session.state.value, "error": result.error, "error_code": result.error_code},
            )
            return False
        return True

    async def _apply(self, outcome: TurnOutcome, log: LoggerAdapter) -> None:
        session = outcome.session
        if outcome.replies:
            report = await self.delivery.deliver_many(session.id, outcome.replies)
            if not report.ok:
                log.warning("Reply delivery incomplete", context={"failed": report.failed, "errors": report.errors})

        if outcome.start_generation:
            session.generation_id = uuid.uuid4().hex
            session.generation_started_at = utcnow()

        if not await self._persist(session, log):
            return

        if outcome.start_generation:
            self.supervisor.spawn(
                self.run_generation(
                    session.id,
                    session.generation_id,
                    name=session.name,
                    handle=outcome.generation_handle,
                    with_scraping=outcome.with_scraping,
                ),
                name=f"generation:{session.id}",
                context={"sender": session.id, "generation_id": session.generation_id},
            )

    async def run_generation(
        self,
        sender_id: str,
        generation_id: str,
        *,
        name: Optional[str],
        handle: Optional[str],
        with_scraping: bool,
    ) -> Optional[SessionState]:
        """Detached unit: enrich, then deliver and store the letter if the session still waits for it."""
        log = LoggerAdapter(logger, {"sender": sender_id, "generation_id": generation_id})
        log.info("Letter generation started", context={"with_scraping": with_scraping, "has_handle": bool(handle)})

        result = await self.enrichment.enrich(name, handle, with_scraping)

        async with self.locks.hold(sender_id):
            try:
                session = await self.store.get(sender_id)
            except (SessionStoreError, CorruptedSessionError) as exc:
                log.error("Generation result dropped: session unreadable", context={"error": str(exc)})
                return None

            if session is None or session.state != SessionState.GENERATING or session.generation_id != generation_id:
                log.info(
                    "Stale generation result discarded",
                    context={"state": session.state.value if session else None},
                )
                return None

            if not result.has_document:
                await self.delivery.deliver(sender_id, messages.generation_failed(self.reset_word))
                session.state = fail(session.state)
                session.error = result.error or "no document produced"
                session.generation_id = None
                session.generation_started_at = None
                await self._persist(session, log)
                log.warning("Letter generation failed", context={"error": session.error})
                return session.state

            report = await self.delivery.deliver_many(sender_id, [result.document, messages.FINAL_MESSAGE])
            if not report.ok:
                log.warning("Letter delivery incomplete", context={"failed": report.failed, "errors": report.errors})

            session.state = complete(session.state)
            session.document = result.document
            session.completed_at = utcnow()
            session.error = None
            session.generation_id = None
            session.generation_started_at = None
            persisted = await self._persist(session, log)
            log.info(
                "Letter delivered",
                context={"status": result.status.value, "chunks": report.total, "persisted": persisted},
            )

        if persisted and self.crm is not None and self.crm.enabled:
            self.supervisor.spawn(
                self._sync_lead(session),
                name=f"crm:{sender_id}",
                context={"sender": sender_id},
            )
        return session.state

    async def _sync_lead(self, session: Session) -> None:
        result = await self.crm.add_lead(session)
        if not result.ok:
            logger.warning(
                "Lead sync failed",
                extra={"context": {"sender": session.id, "error_code": result.error_code}},
            )
