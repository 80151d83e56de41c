"""Conversation session and message models.

Sessions live in process memory (see services/session/registry.py).
The durable record of a conversation is the transcript in the store,
not these objects.
"""

from __future__ import annotations

import secrets
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class SessionMode(str, Enum):
    AI = "ai"
    HUMAN = "human"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"


class Sender(str, Enum):
    CUSTOMER = "customer"
    AI = "ai"
    AGENT = "agent"


def generate_session_id() -> str:
    """chat_<epoch ms>_<random>. Opaque, unique per conversation."""
    return f"chat_{int(time.time() * 1000)}_{secrets.token_hex(5)}"


def generate_message_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Message:
    """One turn in the conversation. Immutable once created."""

    content: str
    sender: Sender
    id: str = field(default_factory=generate_message_id)
    timestamp: datetime = field(default_factory=utcnow)
    relay_id: str | None = None


@dataclass
class Session:
    """One customer conversation.

    messages is append-only; use append() rather than mutating the list.
    """

    session_id: str = field(default_factory=generate_session_id)
    mode: SessionMode = SessionMode.AI
    status: SessionStatus = SessionStatus.ACTIVE
    messages: list[Message] = field(default_factory=list)
    agent_thread_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    last_activity_at: datetime = field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def append(self, message: Message) -> Message:
        self.messages.append(message)
        self.last_activity_at = utcnow()
        return message

    def customer_messages(self) -> list[Message]:
        return [m for m in self.messages if m.sender == Sender.CUSTOMER]
