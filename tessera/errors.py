"""Error definitions and classification helpers for the Tessera translator."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    """Stable taxonomy used when reporting node failures."""

    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    AUTH = "auth_error"
    QUOTA = "quota_exceeded"
    VALIDATION = "validation_error"
    SIMILARITY = "similarity_check_failed"
    NO_MARKERS = "no_markers_found"
    NOT_FOUND = "translation_not_found"
    INVALID_RESPONSE = "invalid_response"
    CANCELED = "canceled"
    CONFIG = "config_error"
    PROVIDER = "provider_error"
    UNKNOWN = "unknown"


class TesseraError(Exception):
    """Base exception for all custom errors."""

    category: ErrorCategory = ErrorCategory.UNKNOWN


class UnsupportedFileTypeError(TesseraError):
    """Raised when a given file extension is not supported."""

    category = ErrorCategory.VALIDATION


class OverwriteRefusedError(TesseraError):
    """Raised when attempting to overwrite an output without consent."""

    category = ErrorCategory.VALIDATION


class TranslationProviderConfigurationError(TesseraError):
    """Raised when the translation provider is misconfigured."""

    category = ErrorCategory.CONFIG


class TranslationProviderError(TesseraError):
    """Raised when a translation provider call fails."""

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.PROVIDER,
        retryable: bool = True,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.retryable = retryable


class TranslationCancelled(TesseraError):
    """Raised when a run is cancelled while a call is in flight."""

    category = ErrorCategory.CANCELED


class ProtocolError(TesseraError):
    """The response did not follow the node marker protocol."""

    category = ErrorCategory.INVALID_RESPONSE


class MarkersNotFoundError(ProtocolError):
    """The response carried no node markers at all."""

    category = ErrorCategory.NO_MARKERS

    def __init__(self, message: str = "no markers found in response") -> None:
        super().__init__(message)


class NodeTranslationMissingError(ProtocolError):
    """One node's markers were absent or mismatched in the response."""

    category = ErrorCategory.NOT_FOUND

    def __init__(self, node_id: int) -> None:
        super().__init__(f"translation not found in batch result for node {node_id}")
        self.node_id = node_id


class SimilarityCheckError(TesseraError):
    """The translation is too close to the source text."""

    category = ErrorCategory.SIMILARITY

    def __init__(self, similarity: float, threshold: float) -> None:
        super().__init__(
            f"translation too similar to original "
            f"(similarity {similarity:.2f} >= {threshold:.2f})"
        )
        self.similarity = similarity
        self.threshold = threshold


# Ordered: the first matching fragment wins.
_MESSAGE_PATTERNS: tuple[tuple[tuple[str, ...], ErrorCategory], ...] = (
    (("timeout", "timed out", "deadline exceeded"), ErrorCategory.TIMEOUT),
    (("rate limit", "rate_limit", "too many requests", "429"), ErrorCategory.RATE_LIMIT),
    (("canceled", "cancelled"), ErrorCategory.CANCELED),
    (("authentication", "unauthorized", "401", "invalid api key"), ErrorCategory.AUTH),
    (("quota", "insufficient_quota"), ErrorCategory.QUOTA),
    (("connection", "network"), ErrorCategory.NETWORK),
    (("too similar",), ErrorCategory.SIMILARITY),
    (("no markers",), ErrorCategory.NO_MARKERS),
    (("translation not found",), ErrorCategory.NOT_FOUND),
    (("invalid response",), ErrorCategory.INVALID_RESPONSE),
)


def _category_of(error: BaseException) -> Optional[ErrorCategory]:
    category = getattr(error, "category", None)
    if isinstance(category, ErrorCategory) and category is not ErrorCategory.UNKNOWN:
        return category
    return None


def classify_error(error: Optional[BaseException]) -> str:
    """Map an exception onto the reporting taxonomy.

    Structured categories win, then the chained causes, then string matching
    on the message as a last resort.
    """

    if error is None:
        return ErrorCategory.UNKNOWN.value

    seen: set[int] = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        category = _category_of(current)
        if category is not None:
            return category.value
        current = current.__cause__ or current.__context__

    if isinstance(error, TimeoutError):
        return ErrorCategory.TIMEOUT.value
    if isinstance(error, ConnectionError):
        return ErrorCategory.NETWORK.value

    message = str(error).lower()
    for fragments, category in _MESSAGE_PATTERNS:
        if any(fragment in message for fragment in fragments):
            return category.value
    return ErrorCategory.UNKNOWN.value
