"""Shared FastAPI dependencies.

The ChatState container is created once during the FastAPI lifespan and
stored on app.state. Route handlers reach it through Depends(),
not by direct import.
"""

from fastapi import Depends, Request

from heritagebox_chat.services.channel.slack import SlackChannelBridge
from heritagebox_chat.services.relay.buffer import MessageRelayBuffer
from heritagebox_chat.services.session.orchestrator import SessionOrchestrator
from heritagebox_chat.services.transcript.base import TranscriptStore
from heritagebox_chat.state import ChatState


def get_state(request: Request) -> ChatState:
    """Return the process-wide ChatState from app state."""
    return request.app.state.chat


def get_orchestrator(state: ChatState = Depends(get_state)) -> SessionOrchestrator:
    return state.orchestrator


def get_relay_buffer(state: ChatState = Depends(get_state)) -> MessageRelayBuffer:
    return state.relay_buffer


def get_bridge(state: ChatState = Depends(get_state)) -> SlackChannelBridge:
    return state.bridge


def get_transcript_store(state: ChatState = Depends(get_state)) -> TranscriptStore:
    return state.transcript_store
