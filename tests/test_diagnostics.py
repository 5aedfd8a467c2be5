"""Tests for batch diagnostics."""

from __future__ import annotations

from tessera.diagnostics import diagnose_batch
from tessera.protocol import encode_blocks

REQUEST = encode_blocks([(1, "Hello there, friend."), (2, "How are you today?")])


class TestDiagnoseBatch:
    def test_healthy_response_has_no_issues(self) -> None:
        response = encode_blocks([(1, "Bonjour, mon ami."), (2, "Comment allez-vous ?")])

        diagnostic = diagnose_batch(REQUEST, response)

        assert diagnostic.issues == []
        assert diagnostic.markers_preserved
        assert "No issues detected." in diagnostic.format()

    def test_response_with_marker_variants(self) -> None:
        response = "<NODE 1>Bonjour, mon ami.</NODE>\n[NODE 2] Comment allez-vous ?"

        diagnostic = diagnose_batch(REQUEST, response)

        assert diagnostic.response_start_markers == 0
        assert diagnostic.response_end_markers == 0
        assert diagnostic.request_start_markers == 2
        assert "<NODE" in diagnostic.variant_counts
        assert "[NODE" in diagnostic.variant_counts
        assert any("marker-like variants" in issue for issue in diagnostic.issues)

    def test_empty_response(self) -> None:
        diagnostic = diagnose_batch(REQUEST, "   ")

        assert diagnostic.empty_response
        assert diagnostic.issues == ["response is empty"]

    def test_json_response(self) -> None:
        diagnostic = diagnose_batch(REQUEST, '{"translations": ["Bonjour", "Comment allez-vous"]}')

        assert diagnostic.looks_like_json
        assert any("JSON" in issue for issue in diagnostic.issues)

    def test_count_mismatch_and_truncation(self) -> None:
        response = "@@NODE_START_1@@\nBonjour\n@@NODE_END_1@@"

        diagnostic = diagnose_batch(REQUEST, response)

        assert not diagnostic.markers_preserved
        assert any("count mismatch" in issue for issue in diagnostic.issues)
        assert any("less than half" in issue for issue in diagnostic.issues)

    def test_unbalanced_response(self) -> None:
        response = encode_blocks([(1, "Bonjour, mon ami."), (2, "Comment allez-vous ?")])
        response = response.replace("@@NODE_END_2@@", "")

        diagnostic = diagnose_batch(REQUEST, response)

        assert not diagnostic.response_balanced
        assert any("unbalanced" in issue for issue in diagnostic.issues)

    def test_format_lists_counts(self) -> None:
        report = diagnose_batch(REQUEST, "nothing useful").format()

        assert "Request markers:  2 start / 2 end" in report
        assert "Response markers: 0 start / 0 end" in report
        assert "response contains no node markers" in report
