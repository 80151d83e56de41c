"""Process-wide state container.

Everything request handlers share lives on one ChatState, built once in
the FastAPI lifespan, stored on app.state.chat and reached through the
dependencies in api/deps.py. Single-process scope: nothing here is shared
between server instances.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from heritagebox_chat.core.config import Settings
from heritagebox_chat.services.channel.slack import SlackChannelBridge
from heritagebox_chat.services.llm.openai_chat import OpenAIProvider
from heritagebox_chat.services.llm.responder import AIResponder
from heritagebox_chat.services.relay.buffer import MessageRelayBuffer
from heritagebox_chat.services.session.orchestrator import SessionOrchestrator
from heritagebox_chat.services.session.registry import SessionRegistry
from heritagebox_chat.services.transcript.airtable import AirtableTranscriptStore
from heritagebox_chat.services.transcript.base import TranscriptStore
from heritagebox_chat.services.transcript.memory import InMemoryTranscriptStore

logger = structlog.get_logger(__name__)


@dataclass
class ChatState:
    registry: SessionRegistry
    relay_buffer: MessageRelayBuffer
    transcript_store: TranscriptStore
    bridge: SlackChannelBridge
    orchestrator: SessionOrchestrator

    async def aclose(self) -> None:
        await self.bridge.close()
        await self.transcript_store.close()


def build_transcript_store(settings: Settings) -> TranscriptStore:
    if settings.airtable_configured:
        return AirtableTranscriptStore(
            api_key=settings.airtable_api_key,
            base_id=settings.airtable_base_id,
            table_id=settings.airtable_table_id,
            api_url=settings.airtable_api_url,
            timeout_seconds=settings.provider_timeout_seconds,
        )
    logger.warning("airtable_not_configured_using_memory_store")
    return InMemoryTranscriptStore()


def build_state(settings: Settings) -> ChatState:
    """Wire the default provider-backed state from settings."""
    registry = SessionRegistry()
    relay_buffer = MessageRelayBuffer(
        max_entries=settings.relay_max_entries,
        max_age_seconds=settings.relay_max_age_seconds,
    )
    transcript_store = build_transcript_store(settings)
    bridge = SlackChannelBridge(
        bot_token=settings.slack_bot_token,
        channel_id=settings.slack_channel_id,
        signing_secret=settings.slack_signing_secret,
        bot_user_id=settings.slack_bot_user_id,
        api_url=settings.slack_api_url,
        timeout_seconds=settings.provider_timeout_seconds,
    )
    responder = AIResponder(
        OpenAIProvider(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            timeout_seconds=settings.provider_timeout_seconds,
        )
    )
    orchestrator = SessionOrchestrator(
        registry=registry,
        transcript_store=transcript_store,
        responder=responder,
        bridge=bridge,
        max_message_length=settings.max_message_length,
        handoff_timeout_seconds=settings.handoff_timeout_seconds,
    )
    return ChatState(
        registry=registry,
        relay_buffer=relay_buffer,
        transcript_store=transcript_store,
        bridge=bridge,
        orchestrator=orchestrator,
    )
