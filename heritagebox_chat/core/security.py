"""Slack request signing (v0) verification."""

import hashlib
import hmac
import time

SIGNATURE_VERSION = "v0"
REPLAY_WINDOW_SECONDS = 300


def compute_slack_signature(signing_secret: str, timestamp: str, body: bytes) -> str:
    """Return the v0 signature Slack would send for *body* at *timestamp*."""
    base = f"{SIGNATURE_VERSION}:{timestamp}:".encode("utf-8") + body
    digest = hmac.new(
        signing_secret.encode("utf-8"), base, hashlib.sha256
    ).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def is_fresh_timestamp(
    timestamp: str,
    now: float | None = None,
    window_seconds: int = REPLAY_WINDOW_SECONDS,
) -> bool:
    """True when *timestamp* (unix seconds) is within the replay window of now."""
    try:
        sent_at = int(timestamp)
    except (TypeError, ValueError):
        return False
    current = time.time() if now is None else now
    return abs(int(current) - sent_at) <= window_seconds


def verify_slack_signature(
    signing_secret: str,
    body: bytes,
    signature: str | None,
    timestamp: str | None,
    now: float | None = None,
) -> bool:
    """Verify a Slack request against the exact raw body.

    Fails closed: a missing secret, signature or timestamp, a stale
    timestamp, or a digest mismatch all return False.
    """
    if not signing_secret or not signature or not timestamp:
        return False
    if not is_fresh_timestamp(timestamp, now=now):
        return False
    expected = compute_slack_signature(signing_secret, timestamp, body)
    return hmac.compare_digest(expected, signature)
