"""Slack Events API webhook."""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Header, Request

from heritagebox_chat.api.deps import get_bridge, get_relay_buffer
from heritagebox_chat.services.channel.slack import SlackChannelBridge
from heritagebox_chat.services.relay.buffer import MessageRelayBuffer

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/slack", tags=["slack"])


@router.post("/events")
async def slack_events(
    request: Request,
    x_slack_signature: str | None = Header(None),
    x_slack_request_timestamp: str | None = Header(None),
    bridge: SlackChannelBridge = Depends(get_bridge),
    relay_buffer: MessageRelayBuffer = Depends(get_relay_buffer),
) -> dict[str, Any]:
    """Receive an Events API delivery.

    The signature covers the exact raw body, so it is read before any
    parsing. Threaded agent replies land in the relay buffer; everything
    else is acknowledged and dropped.
    """
    raw_body = await request.body()
    event = bridge.handle_inbound_event(
        raw_body, x_slack_signature, x_slack_request_timestamp
    )
    if event.challenge is not None:
        return {"challenge": event.challenge}
    if event.reply is not None:
        entry = relay_buffer.store(event.reply.thread_id, event.reply)
        logger.info(
            "agent_reply_relayed",
            thread_id=entry.thread_id,
            entry_id=entry.id,
        )
    return {"ok": True}
