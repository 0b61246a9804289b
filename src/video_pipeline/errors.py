"""Error taxonomy for the video pipeline and chat.

Every failure that crosses a component boundary is one of these classes.
Provider-specific errors are translated once, in the completion service, and
never leak past it.
"""


class VideoChatError(Exception):
    """Base class for all caller-visible failures.

    Attributes:
        code: Stable machine-readable error code.
        message: Human-readable message, surfaced verbatim to callers.
        retryable: Whether a caller may reasonably retry the same operation.
        status_code: HTTP status used when the error reaches the API layer.
    """

    code = "internal_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message()
        super().__init__(self.message)

    def default_message(self) -> str:
        return "An unexpected error occurred."


# Job pipeline


class InvalidSource(VideoChatError):
    code = "invalid_source"
    status_code = 400

    def default_message(self) -> str:
        return "Please provide a valid YouTube URL."


class ExtractionFailed(VideoChatError):
    code = "extraction_failed"
    status_code = 502

    def default_message(self) -> str:
        return "Failed to extract video information."


class SummarizationFailed(VideoChatError):
    code = "summarization_failed"
    status_code = 502

    def default_message(self) -> str:
        return "Failed to summarize video."


class TagGenerationFailed(VideoChatError):
    """Raised internally by tag generation; always absorbed, never surfaced."""

    code = "tag_generation_failed"

    def default_message(self) -> str:
        return "Failed to generate tags."


class JobNotFound(VideoChatError):
    code = "job_not_found"
    status_code = 404

    def default_message(self) -> str:
        return "Video not found."


# Completion service


class CompletionError(VideoChatError):
    code = "completion_failed"
    status_code = 502


class RateLimited(CompletionError):
    code = "rate_limited"
    status_code = 429
    retryable = True

    def default_message(self) -> str:
        return "Rate limit exceeded. Please try again later."


class Unauthorized(CompletionError):
    code = "unauthorized"
    status_code = 502

    def default_message(self) -> str:
        return "Invalid API key. Please check the completion service configuration."


class InsufficientQuota(CompletionError):
    code = "insufficient_quota"
    status_code = 402

    def default_message(self) -> str:
        return "Insufficient credits. Please check the completion service account balance."


class CompletionTimeout(CompletionError):
    code = "timeout"
    status_code = 504
    retryable = True

    def default_message(self) -> str:
        return "Request timeout. The AI service took too long to respond."


class CompletionFailed(CompletionError):
    code = "completion_failed"

    def default_message(self) -> str:
        return "AI service error."


# Chat


class JobNotReady(VideoChatError):
    code = "job_not_ready"
    status_code = 409

    def default_message(self) -> str:
        return "Video not found or not fully processed."


class JobContextUnavailable(VideoChatError):
    code = "job_context_unavailable"
    status_code = 409

    def default_message(self) -> str:
        return "Video context not available."


class SessionNotFound(VideoChatError):
    code = "session_not_found"
    status_code = 404

    def default_message(self) -> str:
        return "Chat session not found."


class SessionInactive(VideoChatError):
    code = "session_inactive"
    status_code = 409

    def default_message(self) -> str:
        return "Chat session is closed."


# History


class HistoryEntryNotFound(VideoChatError):
    code = "history_entry_not_found"
    status_code = 404

    def default_message(self) -> str:
        return "Video not found in history."
