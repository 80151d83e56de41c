"""Session request/response schemas.

The /chat-session body is a tagged union on "action"; each variant is
validated at the boundary before anything reaches the orchestrator.
"""

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import Field

from heritagebox_chat.models.session import SessionMode, SessionStatus, Sender
from heritagebox_chat.schemas.base import CamelModel


class MessageIn(CamelModel):
    """A message as posted by the widget. Only content is trusted."""

    content: str
    id: str | None = None
    sender: str | None = None
    timestamp: datetime | None = None


class CreateSessionAction(CamelModel):
    """action=create: open a session (client may supply its id)."""

    action: Literal["create"]
    session_id: str | None = None
    initial_message: MessageIn | None = None


class AddMessageAction(CamelModel):
    """action=addMessage: submit a customer message."""

    action: Literal["addMessage"]
    session_id: str
    message: MessageIn
    thread_id: str | None = None


SessionAction = Annotated[
    Union[CreateSessionAction, AddMessageAction],
    Field(discriminator="action"),
]


class MessageOut(CamelModel):
    id: str
    content: str
    sender: Sender
    timestamp: datetime
    relay_id: str | None = None


class SessionOut(CamelModel):
    session_id: str
    mode: SessionMode
    status: SessionStatus
    agent_thread_id: str | None = None
    messages: list[MessageOut]


class SessionResponse(CamelModel):
    """Response for create, get and end."""

    success: bool = True
    session_id: str
    session: SessionOut


class TurnResponse(CamelModel):
    """Response for addMessage. success=False when the path degraded."""

    success: bool = True
    message: MessageOut
    replies: list[MessageOut] = []
    mode: SessionMode
    error_code: str | None = None


class HandoffResponse(CamelModel):
    success: bool = True
    mode: SessionMode
    thread_id: str | None = None
    notice: MessageOut
    error_code: str | None = None


class AgentRepliesRequest(CamelModel):
    """Relay entry ids the widget received and wants recorded.

    Ids are resolved against the server's relay buffer; entry content is
    never taken from the client.
    """

    entry_ids: list[str] = Field(min_length=1)


class AgentRepliesResponse(CamelModel):
    success: bool = True
    messages: list[MessageOut]
    missing_ids: list[str] = []


class TranscriptLineOut(CamelModel):
    timestamp: datetime
    sender: Sender
    content: str


class TranscriptResponse(CamelModel):
    success: bool = True
    session_id: str
    status: str
    thread_id: str | None = None
    transcript: str
    lines: list[TranscriptLineOut]
