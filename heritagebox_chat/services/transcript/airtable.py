"""Airtable-backed transcript store.

One row per chat session in the configured table:

    Session ID | Transcript | Status | Slack Thread ID

append_line is a read-modify-write on the Transcript field (Airtable has
no server-side append). Callers serialize appends per session; see
SessionOrchestrator._persist.

All calls share one httpx.AsyncClient with a bounded timeout. Non-2xx
responses and transport failures are re-raised as TranscriptStoreError
carrying the Airtable error type.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx
import structlog

from heritagebox_chat.core.exceptions import TranscriptStoreError
from heritagebox_chat.services.transcript.base import TranscriptRecord, TranscriptStore
from heritagebox_chat.services.transcript.formatting import join_lines

logger = structlog.get_logger(__name__)

FIELD_SESSION_ID = "Session ID"
FIELD_TRANSCRIPT = "Transcript"
FIELD_STATUS = "Status"
FIELD_THREAD_ID = "Slack Thread ID"


def _formula_literal(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class AirtableTranscriptStore(TranscriptStore):
    """Transcript rows in an Airtable table, addressed by session id."""

    def __init__(
        self,
        api_key: str,
        base_id: str,
        table_id: str,
        api_url: str = "https://api.airtable.com/v0",
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._table_path = f"/{base_id}/{quote(table_id, safe='')}"
        self._client = client or httpx.AsyncClient(
            base_url=api_url,
            timeout=timeout_seconds,
        )
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        # session_id -> Airtable record id, saves a search per append
        self._record_ids: dict[str, str] = {}
        logger.info("airtable_store_initialized", base_id=base_id, table=table_id)

    async def close(self) -> None:
        await self._client.aclose()

    async def create(self, session_id: str, first_line: str) -> TranscriptRecord:
        data = await self._request(
            "POST",
            self._table_path,
            json={
                "records": [
                    {
                        "fields": {
                            FIELD_SESSION_ID: session_id,
                            FIELD_TRANSCRIPT: first_line,
                            FIELD_STATUS: "Active",
                        }
                    }
                ]
            },
        )
        raw = data["records"][0]
        record = self._to_record(raw)
        self._record_ids[session_id] = raw["id"]
        logger.info(
            "airtable_transcript_created",
            session_id=session_id,
            record_id=raw["id"],
        )
        return record

    async def append_line(self, session_id: str, line: str) -> None:
        record = await self.fetch(session_id)
        if record is None:
            await self.create(session_id, line)
            return
        await self._patch(
            record.record_id,
            {FIELD_TRANSCRIPT: join_lines(record.transcript, line)},
        )
        logger.debug("airtable_transcript_appended", session_id=session_id)

    async def fetch(self, session_id: str) -> TranscriptRecord | None:
        record_id = self._record_ids.get(session_id)
        if record_id is not None:
            raw = await self._request("GET", f"{self._table_path}/{record_id}")
            return self._to_record(raw)

        data = await self._request(
            "GET",
            self._table_path,
            params={
                "filterByFormula": f"{{{FIELD_SESSION_ID}}} = {_formula_literal(session_id)}",
                "maxRecords": "1",
            },
        )
        records = data.get("records") or []
        if not records:
            return None
        self._record_ids[session_id] = records[0]["id"]
        return self._to_record(records[0])

    async def update_fields(
        self,
        session_id: str,
        status: str | None = None,
        thread_id: str | None = None,
    ) -> None:
        fields: dict[str, Any] = {}
        if status is not None:
            fields[FIELD_STATUS] = status
        if thread_id is not None:
            fields[FIELD_THREAD_ID] = thread_id
        if not fields:
            return
        record = await self.fetch(session_id)
        if record is None:
            logger.warning("airtable_update_missing_record", session_id=session_id)
            return
        await self._patch(record.record_id, fields)

    # -----------------------------------------------------------------------

    async def _patch(self, record_id: str | None, fields: dict[str, Any]) -> None:
        await self._request(
            "PATCH",
            self._table_path,
            json={"records": [{"id": record_id, "fields": fields}]},
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(
                method, path, headers=self._headers, **kwargs
            )
        except httpx.HTTPError as e:
            logger.error("airtable_request_failed", method=method, error=str(e))
            raise TranscriptStoreError(
                f"Airtable request failed: {e}", provider_code="network_error"
            ) from e

        if response.status_code >= 400:
            provider_code = f"http_{response.status_code}"
            try:
                error = response.json().get("error")
                if isinstance(error, dict) and error.get("type"):
                    provider_code = error["type"]
                elif isinstance(error, str):
                    provider_code = error
            except ValueError:
                pass
            logger.error(
                "airtable_api_error",
                method=method,
                status_code=response.status_code,
                provider_code=provider_code,
            )
            raise TranscriptStoreError(
                f"Airtable API error: {response.status_code}",
                provider_code=provider_code,
            )
        return response.json()

    @staticmethod
    def _to_record(raw: dict[str, Any]) -> TranscriptRecord:
        fields = raw.get("fields") or {}
        return TranscriptRecord(
            session_id=fields.get(FIELD_SESSION_ID, ""),
            transcript=fields.get(FIELD_TRANSCRIPT, ""),
            status=fields.get(FIELD_STATUS, "Active"),
            thread_id=fields.get(FIELD_THREAD_ID),
            record_id=raw.get("id"),
        )
