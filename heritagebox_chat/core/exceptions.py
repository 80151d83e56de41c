"""Custom exception classes for structured error handling."""

from typing import Any


class ChatError(Exception):
    """Base exception for all chat service errors."""

    def __init__(self, code: str, message: str, status_code: int = 500) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": {"code": self.code, "message": self.message},
        }


# ---------------------------------------------------------------------------
# Validation / contract errors, raised before any side effect
# ---------------------------------------------------------------------------


class MessageValidationError(ChatError):
    def __init__(self, message: str = "Message content is invalid") -> None:
        super().__init__(code="INVALID_MESSAGE", message=message, status_code=400)


class SessionNotFoundError(ChatError):
    def __init__(self, message: str = "Session not found") -> None:
        super().__init__(code="SESSION_NOT_FOUND", message=message, status_code=404)


class SessionExistsError(ChatError):
    def __init__(self, message: str = "Session already exists") -> None:
        super().__init__(code="SESSION_EXISTS", message=message, status_code=409)


class SessionInactiveError(ChatError):
    def __init__(self, message: str = "Session has ended") -> None:
        super().__init__(code="SESSION_INACTIVE", message=message, status_code=409)


class HandoffNotAllowedError(ChatError):
    def __init__(self, message: str = "Hand-off is not allowed in the current state") -> None:
        super().__init__(code="HANDOFF_NOT_ALLOWED", message=message, status_code=409)


class MissingThreadError(ChatError):
    def __init__(self, message: str = "Session has no agent thread") -> None:
        super().__init__(code="MISSING_THREAD", message=message, status_code=409)


class ThreadMismatchError(ChatError):
    def __init__(self, message: str = "Thread id does not belong to this session") -> None:
        super().__init__(code="THREAD_MISMATCH", message=message, status_code=409)


class RequestValidationFailed(ChatError):
    def __init__(self, message: str = "Request body is invalid") -> None:
        super().__init__(code="INVALID_REQUEST", message=message, status_code=400)


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class WebhookAuthError(ChatError):
    def __init__(self, message: str = "Invalid webhook signature") -> None:
        super().__init__(code="UNAUTHORIZED", message=message, status_code=401)


# ---------------------------------------------------------------------------
# Downstream providers, caught at the orchestration boundary
# ---------------------------------------------------------------------------


class ProviderError(ChatError):
    """A call to an external provider failed.

    provider_code carries the provider's own error identifier
    (e.g. Slack's "channel_not_found") so callers can log or report it.
    """

    def __init__(
        self,
        message: str,
        provider_code: str = "unknown",
        code: str = "PROVIDER_ERROR",
    ) -> None:
        self.provider_code = provider_code
        super().__init__(code=code, message=message, status_code=502)


class ChannelError(ProviderError):
    def __init__(self, message: str = "Agent channel post failed", provider_code: str = "unknown") -> None:
        super().__init__(message, provider_code=provider_code, code="CHANNEL_ERROR")


class TranscriptStoreError(ProviderError):
    def __init__(self, message: str = "Transcript store call failed", provider_code: str = "unknown") -> None:
        super().__init__(message, provider_code=provider_code, code="TRANSCRIPT_STORE_ERROR")


class AIResponderError(ProviderError):
    def __init__(self, message: str = "AI completion failed", provider_code: str = "unknown") -> None:
        super().__init__(message, provider_code=provider_code, code="AI_RESPONDER_ERROR")
