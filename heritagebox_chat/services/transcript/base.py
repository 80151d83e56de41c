"""Abstract transcript store interface.

The orchestrator only ever talks to this interface. The concrete store
is chosen once in state.py and injected.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class TranscriptRecord:
    """A session's persisted transcript row."""

    session_id: str
    transcript: str
    status: str = "Active"
    thread_id: str | None = None
    record_id: str | None = None


class TranscriptStore(ABC):
    """Per-session transcript persistence."""

    @abstractmethod
    async def create(self, session_id: str, first_line: str) -> TranscriptRecord:
        """Create the session's record holding *first_line*.

        Raises:
            TranscriptStoreError: If the provider rejects the call.
        """
        ...

    @abstractmethod
    async def append_line(self, session_id: str, line: str) -> None:
        """Append one formatted line to the session's transcript field.

        Creates the record if it does not exist yet.

        Raises:
            TranscriptStoreError: If the provider rejects the call.
        """
        ...

    @abstractmethod
    async def fetch(self, session_id: str) -> TranscriptRecord | None:
        """Return the record for *session_id*, or None if there is none."""
        ...

    @abstractmethod
    async def update_fields(
        self,
        session_id: str,
        status: str | None = None,
        thread_id: str | None = None,
    ) -> None:
        """Record session status and/or agent thread id on the record."""
        ...

    async def close(self) -> None:
        """Release any held connections."""
        return None
