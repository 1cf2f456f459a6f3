"""
Error hierarchy for danbot.

Adapters wrap library exceptions into these types so the dispatcher can tell
fatal failures from degraded ones without knowing which backend produced them.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Error categories, used as metric labels and in log records."""

    # Dispatch-fatal (1xxx)
    THREAD_CREATE_FAILED = "DSP_1001"
    IMAGE_SOURCE_NOT_FOUND = "DSP_1002"
    COMPLETION_EXHAUSTED = "DSP_1003"
    UPLOAD_FAILED = "DSP_1004"

    # External services (7xxx)
    CHAT_PLATFORM_ERROR = "EXT_7001"
    COMPLETION_BACKEND_ERROR = "EXT_7010"
    EMPTY_COMPLETION = "EXT_7011"
    CONTEXT_STORE_ERROR = "EXT_7020"
    ASSET_STORE_ERROR = "EXT_7030"

    # Internal (9xxx)
    CONFIGURATION_ERROR = "INT_9002"
    INTERNAL_UNEXPECTED = "INT_9999"


class DispatchError(Exception):
    """Base class for every error raised inside a dispatch."""

    code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED


# ============================================================================
# Collaborator failures
# ============================================================================


class ChatPlatformError(DispatchError):
    """The chat platform rejected or failed a request."""

    code = ErrorCode.CHAT_PLATFORM_ERROR


class CompletionBackendError(DispatchError):
    """The AI backend failed to produce a result."""

    code = ErrorCode.COMPLETION_BACKEND_ERROR


class EmptyCompletionError(CompletionBackendError):
    """The backend answered, but with no text. Retried like a transport error."""

    code = ErrorCode.EMPTY_COMPLETION


class ContextStoreError(DispatchError):
    """Reading or appending conversation turns failed."""

    code = ErrorCode.CONTEXT_STORE_ERROR


class AssetStoreError(DispatchError):
    """Fetching or storing an image failed."""

    code = ErrorCode.ASSET_STORE_ERROR


# ============================================================================
# Dispatch-fatal conditions
# ============================================================================


class ThreadCreationError(DispatchError):
    """A thread was requested but could not be created."""

    code = ErrorCode.THREAD_CREATE_FAILED


class ImageSourceNotFoundError(DispatchError):
    """An edit was requested but the conversation holds no stored image."""

    code = ErrorCode.IMAGE_SOURCE_NOT_FOUND

    def __init__(self, message: str = "no image found in thread context to edit") -> None:
        super().__init__(message)


class CompletionRetriesExhaustedError(DispatchError):
    """Every completion attempt failed or came back empty."""

    code = ErrorCode.COMPLETION_EXHAUSTED

    def __init__(self, attempts: int, last_error: BaseException | None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"failed to get response from completion backend after {attempts} attempts: {last_error}")


class UploadError(DispatchError):
    """The user-facing upload to the chat platform failed."""

    code = ErrorCode.UPLOAD_FAILED
