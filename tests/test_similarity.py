"""Tests for the untranslated-output check."""

from __future__ import annotations

from tessera.similarity import SimilarityChecker, normalize_for_compare, similarity_ratio


class TestSimilarityRatio:
    def test_empty_inputs(self) -> None:
        assert similarity_ratio("", "") == 1.0
        assert similarity_ratio("abc", "") == 0.0

    def test_identical_text(self) -> None:
        assert similarity_ratio("hello world", "hello world") == 1.0

    def test_normalisation_drops_tokens_and_case(self) -> None:
        text = "@@NODE_START_3@@ Hello   @@PRESERVE_0@@ World"

        assert normalize_for_compare(text) == "hello world"


class TestSimilarityChecker:
    def test_untranslated_text_is_flagged(self) -> None:
        checker = SimilarityChecker()
        original = "This sentence was never translated at all."

        assert checker.is_too_similar(original, original)
        assert checker.is_too_similar(original, original.upper())

    def test_real_translation_passes(self) -> None:
        checker = SimilarityChecker()

        assert not checker.is_too_similar(
            "This sentence was translated properly.",
            "Cette phrase a été correctement traduite.",
        )

    def test_short_texts_are_not_checked(self) -> None:
        checker = SimilarityChecker()

        assert not checker.is_too_similar("OK", "OK")
        assert not checker.is_too_similar("Version 2", "Version 2")

    def test_text_without_letters_is_not_checked(self) -> None:
        checker = SimilarityChecker()

        assert not checker.is_too_similar("12345 67890 1234", "12345 67890 1234")

    def test_same_language_disables_the_check(self) -> None:
        checker = SimilarityChecker(source_language="English", target_language=" english")
        original = "A long enough sentence to be compared."

        assert not checker.enabled
        assert not checker.is_too_similar(original, original)

    def test_threshold_is_inclusive(self) -> None:
        checker = SimilarityChecker(threshold=1.0)
        original = "A long enough sentence to be compared."

        assert checker.is_too_similar(original, original)
        assert not checker.is_too_similar(original, original + "!")
