"""Chat session endpoints."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, TypeAdapter, ValidationError

from heritagebox_chat.api.deps import (
    get_orchestrator,
    get_relay_buffer,
    get_transcript_store,
)
from heritagebox_chat.core.exceptions import (
    RequestValidationFailed,
    SessionNotFoundError,
    ThreadMismatchError,
)
from heritagebox_chat.models.session import Session
from heritagebox_chat.schemas.session import (
    AgentRepliesRequest,
    AgentRepliesResponse,
    CreateSessionAction,
    HandoffResponse,
    MessageOut,
    SessionAction,
    SessionOut,
    SessionResponse,
    TranscriptLineOut,
    TranscriptResponse,
    TurnResponse,
)
from heritagebox_chat.services.relay.buffer import MessageRelayBuffer
from heritagebox_chat.services.session.orchestrator import SessionOrchestrator
from heritagebox_chat.services.transcript.base import TranscriptStore
from heritagebox_chat.services.transcript.formatting import parse_transcript

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/chat-session", tags=["session"])

_SESSION_ACTION: TypeAdapter[Any] = TypeAdapter(SessionAction)


def _session_response(session: Session) -> SessionResponse:
    return SessionResponse(
        session_id=session.session_id,
        session=SessionOut.model_validate(session),
    )


def _downstream_failure(body: BaseModel) -> JSONResponse:
    """Non-2xx envelope for a degraded outcome, apology message included."""
    return JSONResponse(
        status_code=502,
        content=body.model_dump(mode="json", by_alias=True),
    )


@router.api_route("", methods=["POST", "PUT"], response_model=None)
async def session_action(
    request: Request,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> Any:
    """Dispatch a tagged session action (create | addMessage)."""
    try:
        payload = await request.json()
    except ValueError as e:
        raise RequestValidationFailed("Request body is not JSON") from e
    try:
        action = _SESSION_ACTION.validate_python(payload)
    except ValidationError as e:
        raise RequestValidationFailed(
            f"Invalid session action: {e.errors()[0]['msg']}"
        ) from e

    if isinstance(action, CreateSessionAction):
        welcome = action.initial_message.content if action.initial_message else None
        session = await orchestrator.start_session(
            session_id=action.session_id, welcome_text=welcome
        )
        return _session_response(session)

    session = orchestrator.get_session(action.session_id)
    if action.thread_id and action.thread_id != session.agent_thread_id:
        raise ThreadMismatchError()

    outcome = await orchestrator.submit_customer_message(session, action.message.content)
    body = TurnResponse(
        success=outcome.delivered,
        message=MessageOut.model_validate(outcome.customer_message),
        replies=[MessageOut.model_validate(m) for m in outcome.replies],
        mode=session.mode,
        error_code=outcome.error_code,
    )
    if outcome.degraded:
        return _downstream_failure(body)
    return body


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionResponse:
    """Current in-memory state of a session."""
    return _session_response(orchestrator.get_session(session_id))


@router.post("/{session_id}/handoff", response_model=None)
async def request_handoff(
    session_id: str,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> Any:
    """Hand the session to a human agent."""
    session = orchestrator.get_session(session_id)
    outcome = await orchestrator.request_handoff(session)
    body = HandoffResponse(
        success=outcome.ok,
        mode=session.mode,
        thread_id=outcome.thread_id,
        notice=MessageOut.model_validate(outcome.notice),
        error_code=outcome.error_code,
    )
    if not outcome.ok:
        return _downstream_failure(body)
    return body


@router.post("/{session_id}/agent-replies", response_model=AgentRepliesResponse)
async def ingest_agent_replies(
    session_id: str,
    body: AgentRepliesRequest,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
    relay_buffer: MessageRelayBuffer = Depends(get_relay_buffer),
) -> AgentRepliesResponse:
    """Record relayed agent replies on the session, in relay order.

    Ids are looked up in the relay buffer under the session's own thread;
    ids no longer retained are reported back in missingIds.
    """
    session = orchestrator.get_session(session_id)
    if not session.agent_thread_id:
        raise ThreadMismatchError("Session has no agent thread")

    wanted = set(body.entry_ids)
    retained = relay_buffer.poll(session.agent_thread_id).entries
    messages = []
    for entry in retained:
        if entry.id in wanted and entry.is_from_agent:
            messages.append(await orchestrator.ingest_agent_reply(session, entry))
            wanted.discard(entry.id)

    missing = [i for i in body.entry_ids if i in wanted]
    if missing:
        logger.info(
            "agent_reply_ids_not_retained",
            session_id=session_id,
            missing=len(missing),
        )
    return AgentRepliesResponse(
        messages=[MessageOut.model_validate(m) for m in messages],
        missing_ids=missing,
    )


@router.post("/{session_id}/end", response_model=SessionResponse)
async def end_session(
    session_id: str,
    orchestrator: SessionOrchestrator = Depends(get_orchestrator),
) -> SessionResponse:
    """End a conversation session."""
    session = await orchestrator.end_session(orchestrator.get_session(session_id))
    return _session_response(session)


@router.get("/{session_id}/transcript", response_model=TranscriptResponse)
async def get_transcript(
    session_id: str,
    store: TranscriptStore = Depends(get_transcript_store),
) -> TranscriptResponse:
    """The persisted transcript, as stored and parsed back into lines."""
    record = await store.fetch(session_id)
    if record is None:
        raise SessionNotFoundError(f"No transcript for session {session_id}")
    return TranscriptResponse(
        session_id=session_id,
        status=record.status,
        thread_id=record.thread_id,
        transcript=record.transcript,
        lines=[
            TranscriptLineOut(timestamp=line.timestamp, sender=line.sender, content=line.content)
            for line in parse_transcript(record.transcript)
        ],
    )
