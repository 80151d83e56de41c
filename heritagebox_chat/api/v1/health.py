"""Liveness endpoint."""

from fastapi import APIRouter, Depends

from heritagebox_chat.api.deps import get_state
from heritagebox_chat.state import ChatState

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(state: ChatState = Depends(get_state)) -> dict:
    return {
        "success": True,
        "status": "ok",
        "sessions": len(state.registry),
        "relay_entries": len(state.relay_buffer),
        "relay_threads": state.relay_buffer.thread_count(),
    }
