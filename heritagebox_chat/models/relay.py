"""Relay buffer records."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AgentReply:
    """A threaded channel message awaiting relay, before an id is assigned."""

    thread_id: str
    content: str
    timestamp: str
    is_from_agent: bool = True
    user_id: str | None = None
    session_id: str | None = None


@dataclass(frozen=True)
class RelayEntry:
    """A stored, id-addressable relay record. Not durable."""

    id: str
    thread_id: str
    content: str
    timestamp: str
    is_from_agent: bool
    stored_at: float
    user_id: str | None = None
    session_id: str | None = None
