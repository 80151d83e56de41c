"""Transcript line format.

Each message is persisted as one entry:

    [2024-01-15T10:30:00.000Z] Customer: How much for photo scanning?

Entries are newline-joined in the transcript field, one physical line
each. Line breaks and backslashes in content are written as backslash
escapes (see escape_content), so content can never start an entry of
its own. Records written before escaping may still hold raw
multi-line content; parse_transcript folds any physical line that does
not open a new entry into the previous one.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone

from heritagebox_chat.models.session import Message, Sender

SENDER_LABELS: dict[Sender, str] = {
    Sender.CUSTOMER: "Customer",
    Sender.AI: "AI Assistant",
    Sender.AGENT: "Human Agent",
}
_LABEL_TO_SENDER = {label: sender for sender, label in SENDER_LABELS.items()}

_ENTRY_RE = re.compile(
    r"^\[(?P<ts>\d{4}-\d{2}-\d{2}T[^\]]+)\] "
    r"(?P<label>Customer|AI Assistant|Human Agent): "
    r"(?P<content>.*)$"
)
_ESCAPE_RE = re.compile(r"\\([\\nr])")
_UNESCAPES = {"\\": "\\", "n": "\n", "r": "\r"}


@dataclass(frozen=True)
class TranscriptLine:
    timestamp: datetime
    sender: Sender
    content: str


def format_timestamp(ts: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a Z suffix."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    iso = ts.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return iso.replace("+00:00", "Z")


def parse_timestamp(raw: str) -> datetime:
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    return datetime.fromisoformat(raw)


def escape_content(content: str) -> str:
    return (
        content.replace("\\", "\\\\")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )


def unescape_content(content: str) -> str:
    return _ESCAPE_RE.sub(lambda m: _UNESCAPES[m.group(1)], content)


def format_line(message: Message) -> str:
    return (
        f"[{format_timestamp(message.timestamp)}] "
        f"{SENDER_LABELS[message.sender]}: {escape_content(message.content)}"
    )


def join_lines(existing: str | None, line: str) -> str:
    """Append *line* to an accumulated transcript field."""
    if not existing:
        return line
    return f"{existing}\n{line}"


def parse_transcript(text: str | None) -> list[TranscriptLine]:
    """Split an accumulated transcript back into entries."""
    lines: list[TranscriptLine] = []
    if not text:
        return lines
    for physical in text.split("\n"):
        match = _ENTRY_RE.match(physical)
        if match:
            lines.append(
                TranscriptLine(
                    timestamp=parse_timestamp(match.group("ts")),
                    sender=_LABEL_TO_SENDER[match.group("label")],
                    content=unescape_content(match.group("content")),
                )
            )
        elif lines:
            last = lines[-1]
            lines[-1] = TranscriptLine(
                timestamp=last.timestamp,
                sender=last.sender,
                content=f"{last.content}\n{physical}",
            )
    return lines
