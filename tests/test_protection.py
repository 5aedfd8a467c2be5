"""Tests for content protection."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from tessera.protection import ContentProtector, has_translatable_content


class TestProtect:
    @pytest.mark.parametrize(
        "span",
        [
            "`inline()`",
            "$x^2$",
            "$$\\sum_i x_i$$",
            "\\(a+b\\)",
            "\\[a+b\\]",
            "<!-- note -->",
            "{{ user.name }}",
            "<%= title %>",
            "<b>",
            "&nbsp;",
            "&#169;",
            "https://example.com/page?q=1",
            "www.example.org",
            "someone@example.com",
            "/usr/local/bin",
            "C:\\Users\\me\\file.txt",
            "./docs/readme.md",
            "[12]",
            "[Smith, 2020]",
            "\\cite{knuth}",
            "\\ref{fig:one}",
            "\\label{eq:two}",
        ],
    )
    def test_span_is_replaced_and_restored(self, span: str) -> None:
        protector = ContentProtector()
        text = f"See {span} here"

        protected = protector.protect(text)

        assert span not in protected
        assert "@@PRESERVE_0@@" in protected
        assert protector.restore_all(protected) == text

    def test_fenced_code_block_is_one_token(self) -> None:
        protector = ContentProtector()
        text = "Intro\n```python\nprint('hi')\n\nx = 1\n```\nOutro"

        protected = protector.protect(text)

        assert protected == "Intro\n@@PRESERVE_0@@\nOutro"
        assert protector.restore_all(protected) == text

    def test_unclosed_fence_is_left_alone(self) -> None:
        protector = ContentProtector()
        text = "```\nnever closed"

        assert protector.protect(text) == text

    def test_adjacent_inline_formulas(self) -> None:
        protector = ContentProtector()
        text = "values $a$$b$ and $c$"

        protected = protector.protect(text)

        assert "$" not in protected
        assert protector.restore_all(protected) == text

    def test_escaped_dollar_never_opens_math(self) -> None:
        protector = ContentProtector()
        text = "It costs \\$5 and \\$10 today"

        assert protector.protect(text) == text

    def test_multiline_aligned_equation(self) -> None:
        protector = ContentProtector()
        text = "Solve\n$$\n\\begin{aligned}\na &= b \\\\\nc &= d\n\\end{aligned}\n$$\ndone"

        protected = protector.protect(text)

        assert protected == "Solve\n@@PRESERVE_0@@\ndone"
        assert protector.restore_all(protected) == text

    def test_existing_token_numbers_are_skipped(self) -> None:
        protector = ContentProtector()
        text = "literal @@PRESERVE_0@@ and `code`"

        protected = protector.protect(text)

        assert "@@PRESERVE_1@@" in protected
        assert protector.restore_all(protected) == text

    def test_reserved_tokens_from_later_texts_are_not_issued(self) -> None:
        protector = ContentProtector()
        first = "See `code` in the first paragraph."
        second = "Write @@PRESERVE_0@@ literally."
        protector.reserve([first, second])

        protected_first = protector.protect(first)
        protected_second = protector.protect(second)

        assert "@@PRESERVE_0@@" not in protected_first
        assert protected_second == second
        assert protector.restore_all(protected_second) == second
        assert protector.restore_all(protected_first) == first


class TestRestore:
    def test_unknown_tokens_stay_literal(self) -> None:
        protector = ContentProtector()
        protector.protect("`a`")

        assert protector.restore_all("@@PRESERVE_7@@ text") == "@@PRESERVE_7@@ text"

    def test_duplicated_tokens_restore_everywhere(self) -> None:
        protector = ContentProtector()
        protected = protector.protect("call `f()`")

        assert protector.restore_all(protected + " " + protected) == "call `f()` call `f()`"

    def test_missing_tokens_are_reported(self) -> None:
        protector = ContentProtector()
        protector.protect("`a` and `b`")

        assert protector.missing_tokens("only @@PRESERVE_1@@") == ["@@PRESERVE_0@@"]

    def test_instructions_name_the_token_pattern(self) -> None:
        assert "@@PRESERVE_0@@" in ContentProtector().preserve_instructions()


class TestTranslatableContent:
    @pytest.mark.parametrize("text", ["", "   ", "`code()`", "https://example.com", "$x$ [1]", "12345"])
    def test_without_letters(self, text: str) -> None:
        assert not has_translatable_content(text)

    @pytest.mark.parametrize("text", ["Hello", "see `x` please", "Grüße", "日本語"])
    def test_with_letters(self, text: str) -> None:
        assert has_translatable_content(text)


class TestProtectionProperties:
    @given(st.text(max_size=200))
    def test_restore_inverts_protect(self, text: str) -> None:
        protector = ContentProtector()

        assert protector.restore_all(protector.protect(text)) == text

    @given(
        st.lists(
            st.sampled_from(
                ["word", " ", "\n", "$", "$$", "`", "\\", "[1]", "http://a.b", "{{", "}}", "<", ">", "@@", "PRESERVE_", "3"]
            ),
            max_size=40,
        ).map("".join)
    )
    def test_restore_inverts_protect_on_markup_soup(self, text: str) -> None:
        protector = ContentProtector()

        assert protector.restore_all(protector.protect(text)) == text
