"""Tests for error classification."""

from __future__ import annotations

import pytest

from tessera.errors import (
    ErrorCategory,
    MarkersNotFoundError,
    NodeTranslationMissingError,
    SimilarityCheckError,
    TranslationProviderError,
    classify_error,
)


class TestClassifyError:
    def test_structured_categories_win(self) -> None:
        assert classify_error(MarkersNotFoundError()) == "no_markers_found"
        assert classify_error(NodeTranslationMissingError(3)) == "translation_not_found"
        assert classify_error(SimilarityCheckError(0.99, 0.95)) == "similarity_check_failed"
        error = TranslationProviderError("something odd", category=ErrorCategory.RATE_LIMIT)
        assert classify_error(error) == "rate_limit"

    def test_cause_chain_is_followed(self) -> None:
        try:
            try:
                raise TranslationProviderError("inner", category=ErrorCategory.AUTH)
            except TranslationProviderError as inner:
                raise RuntimeError("wrapped") from inner
        except RuntimeError as outer:
            assert classify_error(outer) == "auth_error"

    def test_builtin_exception_types(self) -> None:
        assert classify_error(TimeoutError()) == "timeout"
        assert classify_error(ConnectionResetError()) == "network"

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("context deadline exceeded", "timeout"),
            ("Request timed out", "timeout"),
            ("HTTP 429 Too Many Requests", "rate_limit"),
            ("connection refused", "network"),
            ("operation was canceled", "canceled"),
            ("401 Unauthorized", "auth_error"),
            ("You exceeded your current quota", "quota_exceeded"),
            ("translation too similar to original", "similarity_check_failed"),
            ("no markers found in response", "no_markers_found"),
            ("Translation not found for node", "translation_not_found"),
            ("invalid response body", "invalid_response"),
            ("something else entirely", "unknown"),
        ],
    )
    def test_message_fallback(self, message: str, expected: str) -> None:
        assert classify_error(RuntimeError(message)) == expected

    def test_none_is_unknown(self) -> None:
        assert classify_error(None) == "unknown"

    def test_messages(self) -> None:
        assert str(MarkersNotFoundError()) == "no markers found in response"
        assert "node 7" in str(NodeTranslationMissingError(7))
        assert "0.97" in str(SimilarityCheckError(0.97, 0.95))
