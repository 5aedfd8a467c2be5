"""Detects translations that are really the source text handed back."""

from __future__ import annotations

import re
from difflib import SequenceMatcher
from typing import Optional

from .protection import PLACEHOLDER_PREFIX, PLACEHOLDER_SUFFIX

DEFAULT_SIMILARITY_THRESHOLD = 0.95
DEFAULT_MIN_LENGTH = 10

_PLACEHOLDER = re.compile(
    re.escape(PLACEHOLDER_PREFIX) + r"\d+" + re.escape(PLACEHOLDER_SUFFIX)
)
_NODE_MARKER = re.compile(r"@@NODE_(?:START|END)_\d+@@")
_WHITESPACE = re.compile(r"\s+")
_LETTER = re.compile(r"[^\W\d_]")


def normalize_for_compare(text: str) -> str:
    text = _NODE_MARKER.sub(" ", text)
    text = _PLACEHOLDER.sub(" ", text)
    return _WHITESPACE.sub(" ", text.lower()).strip()


def similarity_ratio(first: str, second: str) -> float:
    """Ratio in [0, 1] from :class:`difflib.SequenceMatcher`."""

    if not first and not second:
        return 1.0
    if not first or not second:
        return 0.0
    return SequenceMatcher(None, first, second).ratio()


def _same_language(source: Optional[str], target: Optional[str]) -> bool:
    if not source or not target:
        return False
    return source.strip().lower() == target.strip().lower()


class SimilarityChecker:
    """Flags translations whose normalised text is too close to the original."""

    def __init__(
        self,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        *,
        min_length: int = DEFAULT_MIN_LENGTH,
        source_language: Optional[str] = None,
        target_language: Optional[str] = None,
    ) -> None:
        self.threshold = threshold
        self.min_length = min_length
        self.enabled = not _same_language(source_language, target_language)

    def similarity(self, original: str, translated: str) -> float:
        return similarity_ratio(
            normalize_for_compare(original),
            normalize_for_compare(translated),
        )

    def is_too_similar(self, original: str, translated: str) -> bool:
        if not self.enabled:
            return False
        left = normalize_for_compare(original)
        right = normalize_for_compare(translated)
        if len(left) < self.min_length or len(right) < self.min_length:
            return False
        if not _LETTER.search(left):
            return False
        return similarity_ratio(left, right) >= self.threshold
