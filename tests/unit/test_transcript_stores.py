"""Unit tests for transcript stores.

Tests:
  - InMemoryTranscriptStore create / append / update / fetch
  - append_line creates the record when missing
  - AirtableTranscriptStore request shapes (POST create, PATCH append)
  - Record lookup by filterByFormula, then by cached record id
  - Airtable error type and transport failures become TranscriptStoreError
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from heritagebox_chat.core.exceptions import TranscriptStoreError
from heritagebox_chat.services.transcript.airtable import AirtableTranscriptStore
from heritagebox_chat.services.transcript.memory import InMemoryTranscriptStore


class FakeAirtable:
    """Single-table Airtable stand-in for MockTransport."""

    def __init__(self) -> None:
        self.records: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.fail_status: int | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_status is not None:
            return httpx.Response(
                self.fail_status,
                json={"error": {"type": "INVALID_PERMISSIONS", "message": "denied"}},
            )
        path = request.url.path
        if request.method == "POST":
            fields = json.loads(request.content)["records"][0]["fields"]
            rec_id = f"rec{len(self.records) + 1}"
            self.records[rec_id] = {"id": rec_id, "fields": dict(fields)}
            return httpx.Response(200, json={"records": [self.records[rec_id]]})
        if request.method == "PATCH":
            for update in json.loads(request.content)["records"]:
                self.records[update["id"]]["fields"].update(update["fields"])
            return httpx.Response(200, json={"records": []})
        if request.method == "GET" and path.rsplit("/", 1)[-1].startswith("rec"):
            return httpx.Response(200, json=self.records[path.rsplit("/", 1)[-1]])
        formula = request.url.params.get("filterByFormula", "")
        matches = [r for r in self.records.values() if f'"{r["fields"]["Session ID"]}"' in formula]
        return httpx.Response(200, json={"records": matches[:1]})

    def store(self) -> AirtableTranscriptStore:
        return AirtableTranscriptStore(
            api_key="key-test",
            base_id="appBASE",
            table_id="Chat Sessions",
            client=httpx.AsyncClient(
                base_url="https://airtable.test/v0",
                transport=httpx.MockTransport(self.handler),
            ),
        )


class TestInMemoryStore:
    """Tests for InMemoryTranscriptStore."""

    @pytest.mark.asyncio
    async def test_create_append_fetch(self) -> None:
        store = InMemoryTranscriptStore()
        await store.create("s1", "first")
        await store.append_line("s1", "second")
        record = await store.fetch("s1")
        assert record is not None
        assert record.transcript == "first\nsecond"
        assert record.status == "Active"

    @pytest.mark.asyncio
    async def test_append_creates_missing_record(self) -> None:
        store = InMemoryTranscriptStore()
        await store.append_line("s1", "only")
        record = await store.fetch("s1")
        assert record is not None
        assert record.transcript == "only"

    @pytest.mark.asyncio
    async def test_update_fields(self) -> None:
        store = InMemoryTranscriptStore()
        await store.create("s1", "first")
        await store.update_fields("s1", thread_id="1700.1")
        await store.update_fields("s1", status="Ended")
        record = await store.fetch("s1")
        assert record.thread_id == "1700.1"
        assert record.status == "Ended"

    @pytest.mark.asyncio
    async def test_update_missing_record_is_noop(self) -> None:
        store = InMemoryTranscriptStore()
        await store.update_fields("nope", status="Ended")
        assert await store.fetch("nope") is None


class TestAirtableStore:
    """Tests for AirtableTranscriptStore over MockTransport."""

    @pytest.mark.asyncio
    async def test_create_posts_record(self) -> None:
        api = FakeAirtable()
        store = api.store()
        record = await store.create("s1", "[t] AI Assistant: hi")

        request = api.requests[0]
        assert request.method == "POST"
        assert request.url.raw_path == b"/v0/appBASE/Chat%20Sessions"
        assert request.headers["Authorization"] == "Bearer key-test"
        fields = json.loads(request.content)["records"][0]["fields"]
        assert fields == {
            "Session ID": "s1",
            "Transcript": "[t] AI Assistant: hi",
            "Status": "Active",
        }
        assert record.record_id == "rec1"

    @pytest.mark.asyncio
    async def test_append_is_read_modify_write(self) -> None:
        api = FakeAirtable()
        store = api.store()
        await store.create("s1", "one")
        await store.append_line("s1", "two")

        assert api.records["rec1"]["fields"]["Transcript"] == "one\ntwo"
        patch = api.requests[-1]
        assert patch.method == "PATCH"
        assert json.loads(patch.content)["records"][0]["id"] == "rec1"

    @pytest.mark.asyncio
    async def test_fetch_searches_by_formula_when_not_cached(self) -> None:
        api = FakeAirtable()
        await api.store().create("s1", "one")

        fresh = api.store()
        record = await fresh.fetch("s1")
        assert record is not None
        assert record.transcript == "one"
        search = api.requests[-1]
        assert search.url.params["filterByFormula"] == '{Session ID} = "s1"'
        assert search.url.params["maxRecords"] == "1"

        await fresh.fetch("s1")
        assert api.requests[-1].url.path.endswith("/rec1")

    @pytest.mark.asyncio
    async def test_fetch_missing_returns_none(self) -> None:
        assert await FakeAirtable().store().fetch("ghost") is None

    @pytest.mark.asyncio
    async def test_append_creates_missing_record(self) -> None:
        api = FakeAirtable()
        await api.store().append_line("s2", "line")
        assert api.records["rec1"]["fields"]["Transcript"] == "line"

    @pytest.mark.asyncio
    async def test_update_fields_sets_thread_and_status(self) -> None:
        api = FakeAirtable()
        store = api.store()
        await store.create("s1", "one")
        await store.update_fields("s1", status="Ended", thread_id="1700.2")
        fields = api.records["rec1"]["fields"]
        assert fields["Status"] == "Ended"
        assert fields["Slack Thread ID"] == "1700.2"

    @pytest.mark.asyncio
    async def test_api_error_carries_type(self) -> None:
        api = FakeAirtable()
        api.fail_status = 403
        with pytest.raises(TranscriptStoreError) as exc:
            await api.store().create("s1", "one")
        assert exc.value.provider_code == "INVALID_PERMISSIONS"
        assert exc.value.status_code == 502

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def boom(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        store = AirtableTranscriptStore(
            api_key="k",
            base_id="app",
            table_id="t",
            client=httpx.AsyncClient(
                base_url="https://airtable.test/v0",
                transport=httpx.MockTransport(boom),
            ),
        )
        with pytest.raises(TranscriptStoreError) as exc:
            await store.fetch("s1")
        assert exc.value.provider_code == "network_error"
