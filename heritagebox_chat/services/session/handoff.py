"""Hand-off summary and customer-facing notices."""

from __future__ import annotations

from heritagebox_chat.models.session import Message, Sender

DEFAULT_HANDOFF_SUMMARY = "Customer requesting human assistance"

WELCOME_TEXT = (
    "Hi! I'm your Heritagebox AI assistant. I can help you with:\n\n"
    "📸 Photo digitization pricing\n"
    "🎬 Video transfer options\n"
    "📦 Project status updates\n"
    "⏱️ Turnaround times\n\n"
    "What would you like to know?"
)
APOLOGY_TEXT = (
    "Sorry, I'm having trouble responding right now. "
    "Please try again in a moment."
)
HANDOFF_CONNECTED_TEXT = (
    "Connected! Our team will respond shortly. "
    "Your conversation is now being handled by a live agent."
)
HANDOFF_FAILED_TEXT = (
    "Sorry, I couldn't connect you to an agent right now. "
    "Please try again or contact us directly."
)


def build_handoff_summary(messages: list[Message]) -> str:
    """Customer-authored contents in chronological order, blank-line separated."""
    parts = [m.content for m in messages if m.sender == Sender.CUSTOMER]
    return "\n\n".join(parts) if parts else DEFAULT_HANDOFF_SUMMARY
