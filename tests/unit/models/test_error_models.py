"""Tests for the error hierarchy."""

from __future__ import annotations

from models.error_models import (
    AssetStoreError,
    ChatPlatformError,
    CompletionBackendError,
    CompletionRetriesExhaustedError,
    ContextStoreError,
    DispatchError,
    EmptyCompletionError,
    ErrorCode,
    ImageSourceNotFoundError,
    ThreadCreationError,
    UploadError,
)


class TestErrorCodes:
    """Every error type carries a distinct code."""

    def test_codes_are_unique(self) -> None:
        classes = [
            ChatPlatformError,
            CompletionBackendError,
            EmptyCompletionError,
            ContextStoreError,
            AssetStoreError,
            ThreadCreationError,
            ImageSourceNotFoundError,
            CompletionRetriesExhaustedError,
            UploadError,
        ]

        codes = [cls.code for cls in classes]

        assert len(set(codes)) == len(codes)
        assert all(issubclass(cls, DispatchError) for cls in classes)

    def test_code_values_are_strings(self) -> None:
        assert ThreadCreationError.code == "DSP_1001"
        assert ErrorCode.INTERNAL_UNEXPECTED.value == "INT_9999"


class TestErrorMessages:
    """Tests for errors with built-in messages."""

    def test_empty_completion_is_a_backend_error(self) -> None:
        assert isinstance(EmptyCompletionError("empty"), CompletionBackendError)

    def test_image_source_default_message(self) -> None:
        assert str(ImageSourceNotFoundError()) == "no image found in thread context to edit"

    def test_retries_exhausted_keeps_last_error(self) -> None:
        last = CompletionBackendError("rate limited")

        error = CompletionRetriesExhaustedError(5, last)

        assert error.attempts == 5
        assert error.last_error is last
        assert "after 5 attempts" in str(error)
        assert "rate limited" in str(error)
