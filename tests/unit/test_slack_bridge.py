"""Unit tests for SlackChannelBridge.

Tests:
  - open_thread posts the summary to the channel and returns the root ts
  - post_customer_message posts into the thread with thread_ts
  - Slack ok=false, HTTP errors and transport errors raise ChannelError
    carrying the provider's code
  - Inbound: bad signature / stale timestamp -> WebhookAuthError
  - Inbound: url_verification returns the challenge
  - Inbound: only threaded human messages in the agent channel are relayed
  - Inbound: unknown envelope types are ignored, malformed bodies rejected
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from heritagebox_chat.core.exceptions import (
    ChannelError,
    RequestValidationFailed,
    WebhookAuthError,
)
from heritagebox_chat.core.security import compute_slack_signature
from heritagebox_chat.schemas.slack import SlackMessageEvent
from heritagebox_chat.services.channel.slack import SlackChannelBridge

SECRET = "test-signing-secret"
CHANNEL = "C0AGENTS"
NOW = 1700000000.0
TS = "1700000000"


def _signed(payload: dict[str, Any], ts: str = TS) -> tuple[bytes, str]:
    raw = json.dumps(payload).encode("utf-8")
    return raw, compute_slack_signature(SECRET, ts, raw)


def _event(**overrides: Any) -> dict[str, Any]:
    event = {
        "type": "message",
        "channel": CHANNEL,
        "user": "U_AGENT",
        "text": "Hi, I can help with that order.",
        "ts": "1700000050.000200",
        "thread_ts": "1700000001.000100",
    }
    event.update(overrides)
    return {"type": "event_callback", "team_id": "T1", "event": event}


class TestOpenThread:
    """Outbound posts through chat.postMessage."""

    @pytest.mark.asyncio
    async def test_returns_root_ts(self, slack_api) -> None:
        bridge = slack_api.bridge()
        thread_id = await bridge.open_thread("I need a quote for 500 slides", "chat_1")

        assert thread_id == "1700000001.000100"
        post = slack_api.posts[0]
        assert post["channel"] == CHANNEL
        assert "thread_ts" not in post
        assert "chat_1" in post["text"]
        assert "I need a quote for 500 slides" in post["text"]

    @pytest.mark.asyncio
    async def test_customer_message_is_threaded(self, slack_api) -> None:
        bridge = slack_api.bridge()
        await bridge.post_customer_message("1700000001.000100", "Still there?")

        post = slack_api.posts[0]
        assert post["thread_ts"] == "1700000001.000100"
        assert post["text"] == "*Customer:* Still there?"

    @pytest.mark.asyncio
    async def test_slack_error_code_threaded_through(self, slack_api) -> None:
        slack_api.error = "channel_not_found"
        with pytest.raises(ChannelError) as exc:
            await slack_api.bridge().open_thread("help", "chat_1")
        assert exc.value.provider_code == "channel_not_found"

    @pytest.mark.asyncio
    async def test_http_error(self, slack_api) -> None:
        slack_api.status = 503
        with pytest.raises(ChannelError) as exc:
            await slack_api.bridge().post_customer_message("1.0", "hi")
        assert exc.value.provider_code == "http_503"

    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        def boom(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        bridge = SlackChannelBridge(
            bot_token="xoxb",
            channel_id=CHANNEL,
            signing_secret=SECRET,
            client=httpx.AsyncClient(
                base_url="https://slack.test/api",
                transport=httpx.MockTransport(boom),
            ),
        )
        with pytest.raises(ChannelError) as exc:
            await bridge.open_thread("help", "chat_1")
        assert exc.value.provider_code == "network_error"

    @pytest.mark.asyncio
    async def test_missing_ts(self) -> None:
        def no_ts(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"ok": True})

        bridge = SlackChannelBridge(
            bot_token="xoxb",
            channel_id=CHANNEL,
            signing_secret=SECRET,
            client=httpx.AsyncClient(
                base_url="https://slack.test/api",
                transport=httpx.MockTransport(no_ts),
            ),
        )
        with pytest.raises(ChannelError) as exc:
            await bridge.open_thread("help", "chat_1")
        assert exc.value.provider_code == "missing_ts"


class TestInboundVerification:
    """Signature and replay checks on webhook deliveries."""

    def test_bad_signature_rejected(self, slack_api) -> None:
        raw, _ = _signed(_event())
        with pytest.raises(WebhookAuthError):
            slack_api.bridge().handle_inbound_event(raw, "v0=deadbeef", TS, now=NOW)

    def test_missing_headers_rejected(self, slack_api) -> None:
        raw, sig = _signed(_event())
        with pytest.raises(WebhookAuthError):
            slack_api.bridge().handle_inbound_event(raw, None, TS, now=NOW)
        with pytest.raises(WebhookAuthError):
            slack_api.bridge().handle_inbound_event(raw, sig, None, now=NOW)

    def test_stale_timestamp_rejected(self, slack_api) -> None:
        old = str(int(NOW) - 600)
        raw, sig = _signed(_event(), ts=old)
        with pytest.raises(WebhookAuthError):
            slack_api.bridge().handle_inbound_event(raw, sig, old, now=NOW)

    def test_url_verification_challenge(self, slack_api) -> None:
        raw, sig = _signed({"type": "url_verification", "challenge": "abc123", "token": "t"})
        result = slack_api.bridge().handle_inbound_event(raw, sig, TS, now=NOW)
        assert result.challenge == "abc123"
        assert result.reply is None

    def test_unknown_envelope_ignored(self, slack_api) -> None:
        raw, sig = _signed({"type": "app_rate_limited"})
        result = slack_api.bridge().handle_inbound_event(raw, sig, TS, now=NOW)
        assert result.challenge is None
        assert result.reply is None

    def test_non_json_body_rejected(self, slack_api) -> None:
        raw = b"not json"
        sig = compute_slack_signature(SECRET, TS, raw)
        with pytest.raises(RequestValidationFailed):
            slack_api.bridge().handle_inbound_event(raw, sig, TS, now=NOW)

    def test_malformed_envelope_rejected(self, slack_api) -> None:
        raw, sig = _signed({"type": "url_verification"})
        with pytest.raises(RequestValidationFailed):
            slack_api.bridge().handle_inbound_event(raw, sig, TS, now=NOW)


class TestInboundFiltering:
    """Which channel events become relay drafts."""

    def test_threaded_agent_message_relayed(self, slack_api) -> None:
        raw, sig = _signed(_event())
        reply = slack_api.bridge().handle_inbound_event(raw, sig, TS, now=NOW).reply

        assert reply is not None
        assert reply.thread_id == "1700000001.000100"
        assert reply.content == "Hi, I can help with that order."
        assert reply.timestamp == "1700000050.000200"
        assert reply.is_from_agent is True
        assert reply.user_id == "U_AGENT"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"thread_ts": None},
            {"bot_id": "B123"},
            {"subtype": "message_changed"},
            {"user": "UBOT"},
            {"user": None},
            {"channel": "C_OTHER"},
            {"text": "   "},
            {"type": "reaction_added"},
        ],
    )
    def test_non_agent_events_ignored(self, slack_api, overrides) -> None:
        raw, sig = _signed(_event(**overrides))
        assert slack_api.bridge().handle_inbound_event(raw, sig, TS, now=NOW).reply is None

    def test_unconfigured_channel_relays_nothing(self, slack_api) -> None:
        bridge = slack_api.bridge(channel_id="")
        assert bridge.reply_from_event(SlackMessageEvent(**_event()["event"])) is None
