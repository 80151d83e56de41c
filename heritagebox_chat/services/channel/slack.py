"""Slack agent channel bridge.

Outbound: chat.postMessage into one fixed channel. A hand-off opens a
thread with a top-level post; Slack addresses threads by the root
message's ts, so that ts is the session's thread id and every later
customer message is posted with thread_ts=<thread id>.

Inbound: Events API callbacks. Each request is authenticated with the
v0 signing scheme over the exact raw body plus a 5-minute replay window
before anything in it is trusted. Threaded human replies in the agent
channel become AgentReply drafts for the relay buffer.

Channel posts are not retried: chat.postMessage has no idempotency key
and a blind retry can double-post into the thread.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from heritagebox_chat.core.exceptions import (
    ChannelError,
    RequestValidationFailed,
    WebhookAuthError,
)
from heritagebox_chat.core.security import is_fresh_timestamp, verify_slack_signature
from heritagebox_chat.models.relay import AgentReply
from heritagebox_chat.schemas.slack import (
    KNOWN_ENVELOPE_TYPES,
    SLACK_ENVELOPE_ADAPTER,
    SlackMessageEvent,
    UrlVerification,
)

logger = structlog.get_logger(__name__)

BOT_USERNAME = "Heritagebox Chat Bot"
CUSTOMER_USERNAME = "Customer"


@dataclass(frozen=True)
class InboundEvent:
    """Outcome of a verified webhook delivery.

    challenge is set for a url_verification handshake; reply is set when
    the event is an agent message to relay. Both None means acknowledged
    and ignored.
    """

    challenge: str | None = None
    reply: AgentReply | None = None


def thread_opening_text(summary_text: str, session_id: str) -> str:
    return (
        ":new: *New Chat Session Started*\n"
        f"*Session ID:* {session_id}\n"
        f'*Customer Message:* "{summary_text}"\n'
        "*Status:* Customer requesting human assistance\n\n"
        "_Reply in this thread to chat with the customer. "
        "Messages will be sent back to the chat widget._"
    )


class SlackChannelBridge:
    """Posts hand-off traffic to Slack and filters its inbound events."""

    def __init__(
        self,
        bot_token: str,
        channel_id: str,
        signing_secret: str,
        bot_user_id: str = "",
        api_url: str = "https://slack.com/api",
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._bot_token = bot_token
        self._channel_id = channel_id
        self._signing_secret = signing_secret
        self._bot_user_id = bot_user_id
        self._client = client or httpx.AsyncClient(
            base_url=api_url,
            timeout=timeout_seconds,
        )
        if not signing_secret:
            logger.warning("slack_signing_secret_missing")
        logger.info("slack_bridge_initialized", channel_id=channel_id)

    @property
    def channel_id(self) -> str:
        return self._channel_id

    async def close(self) -> None:
        await self._client.aclose()

    # -----------------------------------------------------------------------
    # Outbound
    # -----------------------------------------------------------------------

    async def open_thread(self, summary_text: str, session_id: str) -> str:
        """Post the hand-off root message. Returns its ts, the thread id.

        Raises:
            ChannelError: carrying Slack's error code (e.g. channel_not_found,
                invalid_auth) or http_<status>.
        """
        result = await self._post_message(
            text=thread_opening_text(summary_text, session_id),
            username=BOT_USERNAME,
            icon_emoji=":robot_face:",
        )
        thread_id = result.get("ts")
        if not thread_id:
            raise ChannelError(
                "Slack response carried no ts", provider_code="missing_ts"
            )
        logger.info(
            "slack_thread_opened",
            session_id=session_id,
            thread_id=thread_id,
        )
        return thread_id

    async def post_customer_message(self, thread_id: str, text: str) -> None:
        """Post a customer message into an existing hand-off thread.

        Raises:
            ChannelError: As for open_thread.
        """
        await self._post_message(
            text=f"*Customer:* {text}",
            thread_ts=thread_id,
            username=CUSTOMER_USERNAME,
            icon_emoji=":bust_in_silhouette:",
        )
        logger.debug("slack_customer_message_posted", thread_id=thread_id)

    async def _post_message(
        self,
        text: str,
        username: str,
        icon_emoji: str,
        thread_ts: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "channel": self._channel_id,
            "text": text,
            "username": username,
            "icon_emoji": icon_emoji,
        }
        if thread_ts is not None:
            payload["thread_ts"] = thread_ts

        try:
            response = await self._client.post(
                "/chat.postMessage",
                json=payload,
                headers={
                    "Authorization": f"Bearer {self._bot_token}",
                    "Content-Type": "application/json; charset=utf-8",
                },
            )
        except httpx.HTTPError as e:
            logger.error("slack_post_transport_failed", error=str(e))
            raise ChannelError(
                f"Slack request failed: {e}", provider_code="network_error"
            ) from e

        if response.status_code >= 400:
            logger.error(
                "slack_post_http_error",
                status_code=response.status_code,
                body=response.text[:200],
            )
            raise ChannelError(
                f"Slack API error: {response.status_code}",
                provider_code=f"http_{response.status_code}",
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ChannelError(
                "Slack returned a non-JSON body", provider_code="invalid_response"
            ) from e

        if not data.get("ok"):
            error_code = data.get("error") or "unknown"
            logger.error("slack_post_rejected", provider_code=error_code)
            raise ChannelError(
                f"Slack rejected the post: {error_code}", provider_code=error_code
            )
        return data

    # -----------------------------------------------------------------------
    # Inbound
    # -----------------------------------------------------------------------

    def verify_request(
        self,
        raw_body: bytes,
        signature: str | None,
        timestamp: str | None,
        now: float | None = None,
    ) -> None:
        """Raise WebhookAuthError unless the request is authentic and fresh."""
        if timestamp and not is_fresh_timestamp(timestamp, now=now):
            logger.warning("slack_webhook_stale_timestamp", timestamp=timestamp)
            raise WebhookAuthError("Stale request timestamp")
        if not verify_slack_signature(
            self._signing_secret, raw_body, signature, timestamp, now=now
        ):
            logger.warning("slack_webhook_bad_signature")
            raise WebhookAuthError()

    def handle_inbound_event(
        self,
        raw_body: bytes,
        signature: str | None,
        timestamp: str | None,
        now: float | None = None,
    ) -> InboundEvent:
        """Verify and interpret one Events API delivery.

        Raises:
            WebhookAuthError: Signature mismatch or stale timestamp.
            RequestValidationFailed: Authentic but malformed body.
        """
        self.verify_request(raw_body, signature, timestamp, now=now)

        try:
            data = json.loads(raw_body)
        except ValueError as e:
            raise RequestValidationFailed("Webhook body is not JSON") from e
        if not isinstance(data, dict):
            raise RequestValidationFailed("Webhook body is not an object")

        envelope_type = data.get("type")
        if envelope_type not in KNOWN_ENVELOPE_TYPES:
            logger.debug("slack_envelope_ignored", envelope_type=envelope_type)
            return InboundEvent()

        try:
            envelope = SLACK_ENVELOPE_ADAPTER.validate_python(data)
        except ValidationError as e:
            raise RequestValidationFailed(f"Malformed Slack envelope: {e.error_count()} errors") from e

        if isinstance(envelope, UrlVerification):
            return InboundEvent(challenge=envelope.challenge)
        return InboundEvent(reply=self.reply_from_event(envelope.event))

    def reply_from_event(self, event: SlackMessageEvent) -> AgentReply | None:
        """Map a channel event to a relay draft, or None when it is not one."""
        if event.type != "message":
            return None
        if not event.thread_ts:
            # top-level chatter, not part of a hand-off
            return None
        if event.bot_id or event.subtype:
            # bot posts (ours included), edits, joins, deletions
            return None
        if self._bot_user_id and event.user == self._bot_user_id:
            return None
        if not event.user:
            return None
        if not self._channel_id or event.channel != self._channel_id:
            return None
        if not event.text or not event.text.strip():
            return None

        logger.info(
            "slack_agent_reply_received",
            thread_id=event.thread_ts,
            user_id=event.user,
        )
        return AgentReply(
            thread_id=event.thread_ts,
            content=event.text,
            timestamp=event.ts or "",
            is_from_agent=True,
            user_id=event.user,
        )
