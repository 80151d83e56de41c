"""In-process relay buffer bridging webhook pushes to widget polls.

Entries are keyed by thread id and kept in arrival order. Arrival order
is the delivery contract: entries are never re-sorted by the provider
timestamp, so an out-of-order upstream delivery is relayed out of order.

Process-local and non-durable. Entries vanish on restart and are not
shared between server instances; the transcript store is the durable
record. A multi-instance deployment needs a shared store with the same
store/poll contract in place of this class.
"""

from __future__ import annotations

import itertools
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

import structlog

from heritagebox_chat.models.relay import AgentReply, RelayEntry

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PollResult:
    entries: list[RelayEntry]
    has_more: bool = False


class MessageRelayBuffer:
    """Thread-keyed, append-only (modulo retention) relay of channel messages.

    Retention options, both optional:
      max_entries: per thread, evict the oldest entries beyond this count.
      max_age_seconds: evict entries stored longer ago than this.

    All mutation and reads happen under one lock with no I/O inside it,
    so a poll observes a thread either before or after an append.
    """

    def __init__(
        self,
        max_entries: int | None = None,
        max_age_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if max_age_seconds is not None and max_age_seconds <= 0:
            raise ValueError("max_age_seconds must be positive")
        self._max_entries = max_entries
        self._max_age_seconds = max_age_seconds
        self._clock = clock
        self._threads: dict[str, deque[RelayEntry]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(entries) for entries in self._threads.values())

    def thread_count(self) -> int:
        with self._lock:
            return len(self._threads)

    def store(self, thread_id: str, reply: AgentReply) -> RelayEntry:
        """Append *reply* to *thread_id* and return the stored entry."""
        with self._lock:
            now = self._clock()
            entry = RelayEntry(
                id=f"msg_{next(self._ids)}",
                thread_id=thread_id,
                content=reply.content,
                timestamp=reply.timestamp,
                is_from_agent=reply.is_from_agent,
                stored_at=now,
                user_id=reply.user_id,
                session_id=reply.session_id,
            )
            entries = self._threads.setdefault(thread_id, deque())
            entries.append(entry)
            self._apply_retention(thread_id, entries, now)

        logger.debug(
            "relay_entry_stored",
            thread_id=thread_id,
            entry_id=entry.id,
            is_from_agent=entry.is_from_agent,
        )
        return entry

    def poll(
        self,
        thread_id: str,
        last_seen_id: str | None = None,
        limit: int | None = None,
    ) -> PollResult:
        """Entries for *thread_id* stored strictly after *last_seen_id*.

        An absent or unknown cursor (never issued, or already evicted)
        returns the full retained sequence; callers de-duplicate by id.
        Reads never consume entries.
        """
        with self._lock:
            entries = self._threads.get(thread_id)
            if not entries:
                return PollResult(entries=[])
            if self._max_age_seconds is not None:
                self._evict_aged(entries, self._clock())
            snapshot = list(entries)

        start = 0
        if last_seen_id:
            for index, entry in enumerate(snapshot):
                if entry.id == last_seen_id:
                    start = index + 1
                    break

        pending = snapshot[start:]
        if limit is not None and limit >= 0 and len(pending) > limit:
            return PollResult(entries=pending[:limit], has_more=True)
        return PollResult(entries=pending)

    def evict_expired(self) -> int:
        """Sweep every thread for aged-out entries. Returns the number evicted."""
        if self._max_age_seconds is None:
            return 0
        evicted = 0
        with self._lock:
            now = self._clock()
            for thread_id in list(self._threads):
                entries = self._threads[thread_id]
                evicted += self._evict_aged(entries, now)
                if not entries:
                    del self._threads[thread_id]
        if evicted:
            logger.info("relay_entries_evicted", count=evicted)
        return evicted

    # --- internal, caller holds the lock ---

    def _apply_retention(
        self, thread_id: str, entries: deque[RelayEntry], now: float
    ) -> None:
        if self._max_entries is not None:
            while len(entries) > self._max_entries:
                dropped = entries.popleft()
                logger.debug(
                    "relay_entry_dropped_over_capacity",
                    thread_id=thread_id,
                    entry_id=dropped.id,
                )
        if self._max_age_seconds is not None:
            self._evict_aged(entries, now)

    def _evict_aged(self, entries: deque[RelayEntry], now: float) -> int:
        if self._max_age_seconds is None:
            return 0
        evicted = 0
        while entries and now - entries[0].stored_at > self._max_age_seconds:
            entries.popleft()
            evicted += 1
        return evicted
