"""Async client for the chat HTTP surface, as the embedded widget drives it.

Holds one conversation: opens it, sends customer messages, asks for a
human, and while the session is with an agent polls the relay buffer on
a fixed interval. Relay cursors only move forward; since an unknown or
evicted cursor makes the server resend everything it still retains,
entries are de-duplicated by id before being shown.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from heritagebox_chat.models.session import SessionMode
from heritagebox_chat.schemas.relay import PollResponse
from heritagebox_chat.schemas.session import (
    AgentRepliesResponse,
    HandoffResponse,
    MessageOut,
    SessionOut,
    SessionResponse,
    TurnResponse,
)

logger = structlog.get_logger(__name__)


class WidgetError(Exception):
    """An error envelope returned by the chat API."""

    def __init__(self, status_code: int, code: str, message: str) -> None:
        self.status_code = status_code
        self.code = code
        self.message = message
        super().__init__(f"{status_code} {code}: {message}")


class WidgetClient:
    def __init__(
        self,
        base_url: str = "",
        poll_interval_seconds: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=base_url, transport=transport, timeout=15.0
        )
        self.poll_interval_seconds = poll_interval_seconds
        self.session_id: str | None = None
        self.mode = SessionMode.AI
        self.thread_id: str | None = None
        self.last_seen_id: str | None = None
        self.messages: list[MessageOut] = []
        self._rendered_relay_ids: set[str] = set()
        self._closed = False

    async def __aenter__(self) -> "WidgetClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def polling_active(self) -> bool:
        return (
            not self._closed
            and self.mode == SessionMode.HUMAN
            and self.thread_id is not None
        )

    async def close(self) -> None:
        self._closed = True
        await self._client.aclose()

    # -----------------------------------------------------------------------
    # Conversation
    # -----------------------------------------------------------------------

    async def open(self, session_id: str | None = None) -> SessionOut:
        """Create the session and render its welcome message."""
        payload: dict[str, Any] = {"action": "create"}
        if session_id:
            payload["sessionId"] = session_id
        data = await self._request("PUT", "/v1/chat-session", json=payload)
        session = SessionResponse.model_validate(data).session
        self.session_id = session.session_id
        self.mode = session.mode
        self.thread_id = session.agent_thread_id
        self.messages.extend(session.messages)
        return session

    async def send(self, text: str) -> TurnResponse:
        """Submit a customer message.

        A degraded turn (AI or channel failure) comes back with
        success=False and the apology among the replies; it is rendered
        like any other turn.
        """
        self._require_session()
        payload: dict[str, Any] = {
            "action": "addMessage",
            "sessionId": self.session_id,
            "message": {"content": text, "sender": "customer"},
        }
        if self.thread_id:
            payload["threadId"] = self.thread_id
        data = await self._request(
            "POST", "/v1/chat-session", json=payload, allow_degraded=True
        )
        turn = TurnResponse.model_validate(data)
        self.mode = turn.mode
        self.messages.append(turn.message)
        self.messages.extend(turn.replies)
        return turn

    async def request_handoff(self) -> HandoffResponse:
        self._require_session()
        data = await self._request(
            "POST",
            f"/v1/chat-session/{self.session_id}/handoff",
            allow_degraded=True,
        )
        handoff = HandoffResponse.model_validate(data)
        self.mode = handoff.mode
        self.thread_id = handoff.thread_id
        self.messages.append(handoff.notice)
        logger.info(
            "widget_handoff_result",
            session_id=self.session_id,
            success=handoff.success,
            thread_id=handoff.thread_id,
        )
        return handoff

    async def end(self) -> SessionOut:
        self._require_session()
        data = await self._request("POST", f"/v1/chat-session/{self.session_id}/end")
        session = SessionResponse.model_validate(data).session
        self.mode = session.mode
        self._closed = True
        return session

    # -----------------------------------------------------------------------
    # Relay polling
    # -----------------------------------------------------------------------

    async def poll_once(self) -> list[MessageOut]:
        """One poll of the relay buffer. Returns newly rendered agent messages.

        The cursor and the rendered-id set only move once the page has been
        handed to agent-replies. If that call fails, the next poll asks for
        the same entries again.
        """
        if not self.polling_active:
            return []

        params = {"threadId": self.thread_id}
        if self.last_seen_id:
            params["lastMessageId"] = self.last_seen_id
        data = await self._request("GET", "/v1/messages-poll", params=params)
        page = PollResponse.model_validate(data)
        if not page.messages:
            return []

        fresh = [
            entry.id
            for entry in page.messages
            if entry.id not in self._rendered_relay_ids and entry.is_from_agent
        ]
        ingested: list[MessageOut] = []
        if fresh:
            data = await self._request(
                "POST",
                f"/v1/chat-session/{self.session_id}/agent-replies",
                json={"entryIds": fresh},
            )
            result = AgentRepliesResponse.model_validate(data)
            ingested = result.messages
            if result.missing_ids:
                logger.info(
                    "widget_relay_entries_expired",
                    session_id=self.session_id,
                    missing=len(result.missing_ids),
                )

        for entry in page.messages:
            self._rendered_relay_ids.add(entry.id)
        self.last_seen_id = page.messages[-1].id
        self.messages.extend(ingested)
        return ingested

    async def run_polling(self) -> None:
        """Poll at the fixed interval until the session leaves HUMAN or closes.

        A failed poll is logged and retried on the next tick.
        """
        while self.polling_active:
            try:
                await self.poll_once()
            except (httpx.HTTPError, WidgetError) as e:
                logger.warning(
                    "widget_poll_failed",
                    session_id=self.session_id,
                    error=str(e),
                )
            await asyncio.sleep(self.poll_interval_seconds)

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _require_session(self) -> None:
        if self.session_id is None:
            raise RuntimeError("open() must be called first")

    async def _request(
        self,
        method: str,
        url: str,
        allow_degraded: bool = False,
        **kwargs: Any,
    ) -> dict[str, Any]:
        response = await self._client.request(method, url, **kwargs)
        try:
            data = response.json()
        except ValueError:
            # e.g. an HTML error page from a proxy in front of the API
            raise WidgetError(
                response.status_code, "INVALID_RESPONSE", response.text[:200]
            ) from None
        if not isinstance(data, dict):
            raise WidgetError(
                response.status_code, "INVALID_RESPONSE", "Response body is not an object"
            )
        if response.is_success:
            return data
        # 502 with a full body is a degraded outcome, not an error envelope
        if allow_degraded and response.status_code == 502 and "error" not in data:
            return data
        error = data.get("error") or {}
        raise WidgetError(
            response.status_code,
            error.get("code", "UNKNOWN"),
            error.get("message", response.text),
        )
