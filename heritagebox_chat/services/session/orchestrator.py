"""Session orchestration: routing between the AI and human-agent paths.

SessionOrchestrator owns the session lifecycle and the one-way AI -> HUMAN
hand-off:

    (AI, ACTIVE) --request_handoff ok--> (HUMAN, ACTIVE)
    (*, *)       --end_session-------->  (*, ENDED)

A failed hand-off attempt rolls the tentative HUMAN mode back to AI; that
rollback is the only way a session is ever seen moving from HUMAN to AI.

Every message is written to the transcript store before the call that
produced it returns. Transcript writes are best-effort: a store failure
is logged and the conversation carries on. Writes for one session are
serialized through the registry's per-session lock; writes from different
actors (customer submit vs agent ingest) interleave in arrival order.

Validation and contract violations raise ChatError subclasses before any
side effect. Downstream provider failures never raise out of here; they
come back as TurnOutcome / HandoffOutcome values with an apology message
already appended to the session.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import structlog

from heritagebox_chat.core.exceptions import (
    HandoffNotAllowedError,
    MessageValidationError,
    MissingThreadError,
    SessionInactiveError,
    ThreadMismatchError,
)
from heritagebox_chat.models.relay import RelayEntry
from heritagebox_chat.models.session import (
    Message,
    Sender,
    Session,
    SessionMode,
    SessionStatus,
)
from heritagebox_chat.services.channel.slack import SlackChannelBridge
from heritagebox_chat.services.llm.responder import AIResponder
from heritagebox_chat.services.session.handoff import (
    APOLOGY_TEXT,
    HANDOFF_CONNECTED_TEXT,
    HANDOFF_FAILED_TEXT,
    WELCOME_TEXT,
    build_handoff_summary,
)
from heritagebox_chat.services.session.registry import SessionRegistry
from heritagebox_chat.services.transcript.base import TranscriptStore
from heritagebox_chat.services.transcript.formatting import format_line

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TurnOutcome:
    """Result of routing one customer message."""

    customer_message: Message
    replies: list[Message] = field(default_factory=list)
    delivered: bool = True
    error_code: str | None = None

    @property
    def degraded(self) -> bool:
        return not self.delivered


@dataclass(frozen=True)
class HandoffOutcome:
    """Result of a hand-off attempt. notice is already on the session."""

    ok: bool
    notice: Message
    thread_id: str | None = None
    error_code: str | None = None


def _error_code(error: BaseException) -> str:
    if isinstance(error, asyncio.TimeoutError):
        return "timeout"
    return getattr(error, "provider_code", None) or type(error).__name__


def _rollback_handoff(session: Session) -> None:
    session.mode = SessionMode.AI
    session.agent_thread_id = None


class SessionOrchestrator:
    """Decides which path handles each customer message."""

    def __init__(
        self,
        registry: SessionRegistry,
        transcript_store: TranscriptStore,
        responder: AIResponder,
        bridge: SlackChannelBridge,
        max_message_length: int = 1000,
        handoff_timeout_seconds: float = 10.0,
    ) -> None:
        self._registry = registry
        self._store = transcript_store
        self._responder = responder
        self._bridge = bridge
        self._max_message_length = max_message_length
        self._handoff_timeout_seconds = handoff_timeout_seconds
        self._handoffs_in_flight: set[str] = set()

    @property
    def max_message_length(self) -> int:
        return self._max_message_length

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    async def start_session(
        self,
        session_id: str | None = None,
        welcome_text: str | None = None,
    ) -> Session:
        """Create and register a session in (AI, ACTIVE) with a welcome message.

        The create-record call to the transcript store is best-effort.
        """
        session = Session(session_id=session_id) if session_id else Session()
        welcome = Message(content=welcome_text or WELCOME_TEXT, sender=Sender.AI)
        session.append(welcome)
        self._registry.add(session)

        try:
            await self._store.create(session.session_id, format_line(welcome))
        except Exception as e:
            logger.warning(
                "transcript_create_failed",
                session_id=session.session_id,
                error=str(e),
            )

        logger.info("session_started", session_id=session.session_id)
        return session

    def get_session(self, session_id: str) -> Session:
        return self._registry.get(session_id)

    async def end_session(self, session: Session) -> Session:
        """Mark the session ENDED. Idempotent."""
        if session.status == SessionStatus.ENDED:
            return session
        session.status = SessionStatus.ENDED
        async with self._registry.lock_for(session.session_id):
            try:
                await self._store.update_fields(session.session_id, status="Ended")
            except Exception as e:
                logger.warning(
                    "transcript_status_update_failed",
                    session_id=session.session_id,
                    error=str(e),
                )
        logger.info("session_ended", session_id=session.session_id, mode=session.mode.value)
        return session

    # -----------------------------------------------------------------------
    # Customer messages
    # -----------------------------------------------------------------------

    def validate_content(self, text: str | None) -> str:
        """Trimmed content, or MessageValidationError."""
        content = (text or "").strip()
        if not content:
            raise MessageValidationError("Message must not be empty")
        if len(content) > self._max_message_length:
            raise MessageValidationError(
                f"Message exceeds {self._max_message_length} characters"
            )
        return content

    async def submit_customer_message(self, session: Session, text: str) -> TurnOutcome:
        """Append, persist and route one customer message.

        Raises (before any side effect):
            SessionInactiveError: The session has ended.
            MessageValidationError: Empty or over-long content.
            MissingThreadError: HUMAN mode without an agent thread.
        """
        if not session.is_active:
            raise SessionInactiveError()
        content = self.validate_content(text)
        if session.mode == SessionMode.HUMAN and not session.agent_thread_id:
            raise MissingThreadError(
                "Session is in human mode but has no agent thread"
            )

        customer_message = session.append(Message(content=content, sender=Sender.CUSTOMER))
        await self._persist(session, customer_message)

        if session.mode == SessionMode.AI:
            return await self._route_to_ai(session, customer_message)
        return await self._route_to_agent(session, customer_message)

    async def _route_to_ai(self, session: Session, customer_message: Message) -> TurnOutcome:
        try:
            response = await self._responder.reply(list(session.messages))
        except Exception as e:
            logger.warning(
                "ai_reply_failed",
                session_id=session.session_id,
                error=str(e),
            )
            apology = await self._append_notice(session, APOLOGY_TEXT)
            return TurnOutcome(
                customer_message=customer_message,
                replies=[apology],
                delivered=False,
                error_code=_error_code(e),
            )

        ai_message = session.append(Message(content=response.text, sender=Sender.AI))
        await self._persist(session, ai_message)
        logger.info("customer_message_answered_by_ai", session_id=session.session_id)
        return TurnOutcome(customer_message=customer_message, replies=[ai_message])

    async def _route_to_agent(self, session: Session, customer_message: Message) -> TurnOutcome:
        thread_id = session.agent_thread_id
        if thread_id is None:
            # a hand-off was still opening its thread when this message landed
            raise MissingThreadError("Session is in human mode but has no agent thread")
        try:
            await self._bridge.post_customer_message(thread_id, customer_message.content)
        except Exception as e:
            logger.warning(
                "agent_channel_post_failed",
                session_id=session.session_id,
                thread_id=thread_id,
                error=str(e),
            )
            apology = await self._append_notice(session, APOLOGY_TEXT)
            return TurnOutcome(
                customer_message=customer_message,
                replies=[apology],
                delivered=False,
                error_code=_error_code(e),
            )

        logger.info(
            "customer_message_forwarded_to_agent",
            session_id=session.session_id,
            thread_id=thread_id,
        )
        return TurnOutcome(customer_message=customer_message)

    # -----------------------------------------------------------------------
    # Hand-off
    # -----------------------------------------------------------------------

    async def request_handoff(self, session: Session) -> HandoffOutcome:
        """Open an agent thread and switch the session to HUMAN.

        Raises (before any side effect):
            HandoffNotAllowedError: Not (AI, ACTIVE), or a hand-off for
                this session is already in flight.
        """
        sid = session.session_id
        if (
            not session.is_active
            or session.mode != SessionMode.AI
            or sid in self._handoffs_in_flight
        ):
            raise HandoffNotAllowedError(
                f"Hand-off requires an active AI-mode session (mode={session.mode.value}, "
                f"status={session.status.value})"
            )

        summary = build_handoff_summary(session.messages)
        self._handoffs_in_flight.add(sid)
        session.mode = SessionMode.HUMAN
        logger.info("handoff_started", session_id=sid)

        try:
            thread_id = await asyncio.wait_for(
                self._bridge.open_thread(summary, sid),
                timeout=self._handoff_timeout_seconds,
            )
        except Exception as e:
            _rollback_handoff(session)
            error_code = _error_code(e)
            logger.warning(
                "handoff_failed_rolled_back",
                session_id=sid,
                error_code=error_code,
                error=str(e),
            )
            notice = await self._append_notice(session, HANDOFF_FAILED_TEXT)
            return HandoffOutcome(ok=False, notice=notice, error_code=error_code)
        except BaseException:
            # cancelled (client gone, shutdown): undo and let it propagate
            _rollback_handoff(session)
            logger.warning("handoff_cancelled_rolled_back", session_id=sid)
            raise
        finally:
            self._handoffs_in_flight.discard(sid)

        session.agent_thread_id = thread_id
        logger.info("handoff_succeeded", session_id=sid, thread_id=thread_id)

        async with self._registry.lock_for(sid):
            try:
                await self._store.update_fields(sid, thread_id=thread_id)
            except Exception as e:
                logger.warning(
                    "transcript_thread_update_failed",
                    session_id=sid,
                    error=str(e),
                )
        notice = await self._append_notice(session, HANDOFF_CONNECTED_TEXT)
        return HandoffOutcome(ok=True, notice=notice, thread_id=thread_id)

    # -----------------------------------------------------------------------
    # Agent replies
    # -----------------------------------------------------------------------

    async def ingest_agent_reply(self, session: Session, entry: RelayEntry) -> Message:
        """Turn a relay entry into an AGENT message on the session.

        No de-duplication: callers must not hand the same entry id twice.

        Raises:
            SessionInactiveError: The session has ended.
            MessageValidationError: The entry is not agent-authored.
            ThreadMismatchError: The entry belongs to another thread.
        """
        if not session.is_active:
            raise SessionInactiveError()
        if not entry.is_from_agent:
            raise MessageValidationError("Only agent-authored relay entries can be ingested")
        if session.agent_thread_id != entry.thread_id:
            raise ThreadMismatchError(
                f"Relay entry {entry.id} is not from this session's thread"
            )

        message = session.append(
            Message(content=entry.content, sender=Sender.AGENT, relay_id=entry.id)
        )
        await self._persist(session, message)
        logger.info(
            "agent_reply_ingested",
            session_id=session.session_id,
            relay_id=entry.id,
        )
        return message

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    async def _append_notice(self, session: Session, text: str) -> Message:
        notice = session.append(Message(content=text, sender=Sender.AI))
        await self._persist(session, notice)
        return notice

    async def _persist(self, session: Session, message: Message) -> None:
        """Append the message's transcript line. Failures are logged, not raised."""
        async with self._registry.lock_for(session.session_id):
            try:
                await self._store.append_line(session.session_id, format_line(message))
            except Exception as e:
                logger.warning(
                    "transcript_append_failed",
                    session_id=session.session_id,
                    message_id=message.id,
                    error=str(e),
                )
