"""Unit tests for Slack v0 request signing.

Tests:
  - Signature computed over v0:<ts>:<raw body> verifies
  - Any change to the body, timestamp or secret fails verification
  - Missing secret / signature / timestamp fails closed
  - Timestamps outside the 300 s window are rejected
"""

from __future__ import annotations

from heritagebox_chat.core.security import (
    compute_slack_signature,
    is_fresh_timestamp,
    verify_slack_signature,
)

SECRET = "8f742231b10e8888abcd99yyyzzz85a5"
NOW = 1531420618.0
TS = "1531420618"
BODY = b"token=xyzz0WbapA4vBCDEFasx0q6G&team_id=T1DC2JH3J&command=%2Fweather"


class TestComputeSignature:
    """Tests for compute_slack_signature."""

    def test_has_version_prefix(self) -> None:
        sig = compute_slack_signature(SECRET, TS, BODY)
        assert sig.startswith("v0=")
        assert len(sig) == len("v0=") + 64

    def test_deterministic(self) -> None:
        assert compute_slack_signature(SECRET, TS, BODY) == compute_slack_signature(
            SECRET, TS, BODY
        )


class TestVerifySignature:
    """Tests for verify_slack_signature."""

    def test_valid_signature_accepted(self) -> None:
        sig = compute_slack_signature(SECRET, TS, BODY)
        assert verify_slack_signature(SECRET, BODY, sig, TS, now=NOW) is True

    def test_tampered_body_rejected(self) -> None:
        sig = compute_slack_signature(SECRET, TS, BODY)
        assert verify_slack_signature(SECRET, BODY + b" ", sig, TS, now=NOW) is False

    def test_wrong_secret_rejected(self) -> None:
        sig = compute_slack_signature("other-secret", TS, BODY)
        assert verify_slack_signature(SECRET, BODY, sig, TS, now=NOW) is False

    def test_signature_bound_to_timestamp(self) -> None:
        sig = compute_slack_signature(SECRET, TS, BODY)
        later = str(int(TS) + 1)
        assert verify_slack_signature(SECRET, BODY, sig, later, now=NOW) is False

    def test_missing_parts_fail_closed(self) -> None:
        sig = compute_slack_signature(SECRET, TS, BODY)
        assert verify_slack_signature("", BODY, sig, TS, now=NOW) is False
        assert verify_slack_signature(SECRET, BODY, None, TS, now=NOW) is False
        assert verify_slack_signature(SECRET, BODY, sig, None, now=NOW) is False

    def test_stale_timestamp_rejected_even_if_signed(self) -> None:
        """A correctly signed but replayed request is still refused."""
        old = str(int(NOW) - 301)
        sig = compute_slack_signature(SECRET, old, BODY)
        assert verify_slack_signature(SECRET, BODY, sig, old, now=NOW) is False


class TestFreshTimestamp:
    """Tests for the 5-minute replay window."""

    def test_within_window(self) -> None:
        assert is_fresh_timestamp(str(int(NOW) - 300), now=NOW) is True
        assert is_fresh_timestamp(str(int(NOW) + 300), now=NOW) is True

    def test_outside_window(self) -> None:
        assert is_fresh_timestamp(str(int(NOW) - 301), now=NOW) is False
        assert is_fresh_timestamp(str(int(NOW) + 301), now=NOW) is False

    def test_non_numeric(self) -> None:
        assert is_fresh_timestamp("yesterday", now=NOW) is False
