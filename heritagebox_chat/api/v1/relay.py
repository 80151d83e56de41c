"""Relay buffer endpoints: the widget polls here for agent replies."""

from fastapi import APIRouter, Depends, Query

from heritagebox_chat.api.deps import get_relay_buffer
from heritagebox_chat.models.relay import AgentReply
from heritagebox_chat.models.session import utcnow
from heritagebox_chat.schemas.relay import (
    PollResponse,
    RelayEntryOut,
    RelayIngestRequest,
    RelayIngestResponse,
)
from heritagebox_chat.services.relay.buffer import MessageRelayBuffer

router = APIRouter(prefix="/messages-poll", tags=["relay"])


@router.get("", response_model=PollResponse)
async def poll_messages(
    thread_id: str = Query(..., alias="threadId", min_length=1),
    last_message_id: str | None = Query(None, alias="lastMessageId"),
    limit: int | None = Query(None, ge=1),
    relay_buffer: MessageRelayBuffer = Depends(get_relay_buffer),
) -> PollResponse:
    """Entries for a thread stored after lastMessageId.

    Unknown or evicted cursors yield the full retained sequence, so the
    caller de-duplicates by id.
    """
    result = relay_buffer.poll(thread_id, last_seen_id=last_message_id, limit=limit)
    return PollResponse(
        messages=[RelayEntryOut.model_validate(e) for e in result.entries],
        has_more=result.has_more,
    )


@router.post("", response_model=RelayIngestResponse)
async def store_message(
    body: RelayIngestRequest,
    relay_buffer: MessageRelayBuffer = Depends(get_relay_buffer),
) -> RelayIngestResponse:
    """Store a non-agent message for a thread, outside the webhook path.

    Unauthenticated, so the entry is always isFromAgent=false and can never
    be pulled into a session through agent-replies.
    """
    entry = relay_buffer.store(
        body.thread_id,
        AgentReply(
            thread_id=body.thread_id,
            content=body.content,
            timestamp=utcnow().isoformat(),
            is_from_agent=False,
            session_id=body.session_id,
        ),
    )
    return RelayIngestResponse(message=RelayEntryOut.model_validate(entry))
