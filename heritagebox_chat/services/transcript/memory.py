"""In-memory transcript store for development and tests."""

from __future__ import annotations

import structlog

from heritagebox_chat.services.transcript.base import TranscriptRecord, TranscriptStore
from heritagebox_chat.services.transcript.formatting import join_lines

logger = structlog.get_logger(__name__)


class InMemoryTranscriptStore(TranscriptStore):
    """Dict-backed store. Same contract as the Airtable store, no durability."""

    def __init__(self) -> None:
        self._records: dict[str, TranscriptRecord] = {}

    async def create(self, session_id: str, first_line: str) -> TranscriptRecord:
        record = TranscriptRecord(
            session_id=session_id,
            transcript=first_line,
            record_id=f"mem_{len(self._records) + 1}",
        )
        self._records[session_id] = record
        logger.debug("memory_transcript_created", session_id=session_id)
        return record

    async def append_line(self, session_id: str, line: str) -> None:
        record = self._records.get(session_id)
        if record is None:
            await self.create(session_id, line)
            return
        self._records[session_id] = TranscriptRecord(
            session_id=session_id,
            transcript=join_lines(record.transcript, line),
            status=record.status,
            thread_id=record.thread_id,
            record_id=record.record_id,
        )

    async def fetch(self, session_id: str) -> TranscriptRecord | None:
        return self._records.get(session_id)

    async def update_fields(
        self,
        session_id: str,
        status: str | None = None,
        thread_id: str | None = None,
    ) -> None:
        record = self._records.get(session_id)
        if record is None:
            return
        self._records[session_id] = TranscriptRecord(
            session_id=session_id,
            transcript=record.transcript,
            status=status or record.status,
            thread_id=thread_id or record.thread_id,
            record_id=record.record_id,
        )
