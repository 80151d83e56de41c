"""Shared pytest fixtures for the chat backend test suite.

Provides:
  - fake_llm: LLMProvider returning a configurable reply or raising
  - slack_api: In-process Slack Web API (httpx.MockTransport) recording posts
  - transcript_store: InMemoryTranscriptStore
  - make_state: Builds a ChatState wired to the fakes above

No test talks to a real provider: Slack goes through MockTransport, the
LLM is a fake LLMProvider, transcripts stay in memory.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import httpx
import pytest

from heritagebox_chat.core.exceptions import AIResponderError
from heritagebox_chat.services.channel.slack import SlackChannelBridge
from heritagebox_chat.services.llm.base import ChatTurn, LLMProvider, LLMResponse
from heritagebox_chat.services.llm.responder import AIResponder
from heritagebox_chat.services.relay.buffer import MessageRelayBuffer
from heritagebox_chat.services.session.orchestrator import SessionOrchestrator
from heritagebox_chat.services.session.registry import SessionRegistry
from heritagebox_chat.services.transcript.base import TranscriptStore
from heritagebox_chat.services.transcript.memory import InMemoryTranscriptStore
from heritagebox_chat.state import ChatState

SIGNING_SECRET = "test-signing-secret"
CHANNEL_ID = "C0AGENTS"
BOT_USER_ID = "UBOT"


class FakeLLMProvider(LLMProvider):
    """Returns reply_text, or raises error when set. Records every call."""

    def __init__(self, reply_text: str = "We scan photos from $0.49 each.") -> None:
        self.reply_text = reply_text
        self.error: Exception | None = None
        self.calls: list[list[ChatTurn]] = []

    async def generate(
        self,
        turns: list[ChatTurn],
        system_prompt: str,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> LLMResponse:
        self.calls.append(list(turns))
        if self.error is not None:
            raise self.error
        return LLMResponse(text=self.reply_text, input_tokens=10, output_tokens=8)


class FakeSlackAPI:
    """chat.postMessage stand-in.

    Each accepted post gets a fresh ts. Set error to have Slack answer
    ok=false with that code, status to answer with an HTTP error, or
    delay to stall before answering.
    """

    def __init__(self) -> None:
        self.posts: list[dict[str, Any]] = []
        self.error: str | None = None
        self.status: int = 200
        self.delay: float = 0.0
        self._next_ts = 1700000000

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.status >= 400:
            return httpx.Response(self.status, text="upstream unavailable")
        if self.error is not None:
            return httpx.Response(200, json={"ok": False, "error": self.error})
        payload = json.loads(request.content)
        self.posts.append(payload)
        self._next_ts += 1
        return httpx.Response(
            200,
            json={"ok": True, "channel": payload["channel"], "ts": f"{self._next_ts}.000100"},
        )

    def bridge(self, channel_id: str = CHANNEL_ID) -> SlackChannelBridge:
        client = httpx.AsyncClient(
            base_url="https://slack.test/api",
            transport=httpx.MockTransport(self.handler),
        )
        return SlackChannelBridge(
            bot_token="xoxb-test",
            channel_id=channel_id,
            signing_secret=SIGNING_SECRET,
            bot_user_id=BOT_USER_ID,
            client=client,
        )


@pytest.fixture
def fake_llm() -> FakeLLMProvider:
    return FakeLLMProvider()


@pytest.fixture
def failing_llm() -> FakeLLMProvider:
    llm = FakeLLMProvider()
    llm.error = AIResponderError("OpenAI generate timed out", provider_code="timeout")
    return llm


@pytest.fixture
def slack_api() -> FakeSlackAPI:
    return FakeSlackAPI()


@pytest.fixture
def transcript_store() -> InMemoryTranscriptStore:
    return InMemoryTranscriptStore()


@pytest.fixture
def make_state(
    fake_llm: FakeLLMProvider,
    slack_api: FakeSlackAPI,
    transcript_store: InMemoryTranscriptStore,
) -> Callable[..., ChatState]:
    """Factory for a ChatState over the fakes; keyword args override parts."""

    def _make(
        store: TranscriptStore | None = None,
        llm: LLMProvider | None = None,
        handoff_timeout_seconds: float = 1.0,
        relay_buffer: MessageRelayBuffer | None = None,
    ) -> ChatState:
        registry = SessionRegistry()
        store = store or transcript_store
        bridge = slack_api.bridge()
        orchestrator = SessionOrchestrator(
            registry=registry,
            transcript_store=store,
            responder=AIResponder(llm or fake_llm),
            bridge=bridge,
            handoff_timeout_seconds=handoff_timeout_seconds,
        )
        return ChatState(
            registry=registry,
            relay_buffer=relay_buffer or MessageRelayBuffer(),
            transcript_store=store,
            bridge=bridge,
            orchestrator=orchestrator,
        )

    return _make
