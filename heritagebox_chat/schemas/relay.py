"""Relay poll / ingest request and response schemas."""

from heritagebox_chat.schemas.base import CamelModel


class RelayEntryOut(CamelModel):
    """One relay entry as the widget sees it."""

    id: str
    thread_id: str
    content: str
    timestamp: str
    is_from_agent: bool
    user_id: str | None = None
    session_id: str | None = None


class PollResponse(CamelModel):
    """GET /v1/messages-poll response body."""

    success: bool = True
    messages: list[RelayEntryOut]
    has_more: bool = False


class RelayIngestRequest(CamelModel):
    """POST /v1/messages-poll request body.

    Entries stored here are never agent-authored; agent replies only enter
    the buffer through the signed Slack webhook.
    """

    thread_id: str
    content: str
    session_id: str | None = None


class RelayIngestResponse(CamelModel):
    success: bool = True
    message: RelayEntryOut
