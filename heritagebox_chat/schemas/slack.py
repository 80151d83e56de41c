"""Slack Events API envelope schemas.

The envelope is a tagged union on "type". Only the two kinds the bridge
acts on are modelled; other envelope types are acknowledged and ignored.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class SlackMessageEvent(BaseModel):
    """Inner "event" object of an event_callback."""

    model_config = ConfigDict(extra="ignore")

    type: str = "message"
    channel: str | None = None
    user: str | None = None
    text: str | None = None
    ts: str | None = None
    thread_ts: str | None = None
    bot_id: str | None = None
    subtype: str | None = None


class UrlVerification(BaseModel):
    """Handshake sent once when the request URL is configured."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["url_verification"]
    challenge: str
    token: str | None = None


class EventCallback(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["event_callback"]
    event: SlackMessageEvent
    team_id: str | None = None
    api_app_id: str | None = None
    event_id: str | None = None
    event_time: int | None = None


SlackEnvelope = Annotated[
    Union[UrlVerification, EventCallback],
    Field(discriminator="type"),
]

SLACK_ENVELOPE_ADAPTER: TypeAdapter[SlackEnvelope] = TypeAdapter(SlackEnvelope)
KNOWN_ENVELOPE_TYPES = frozenset({"url_verification", "event_callback"})
