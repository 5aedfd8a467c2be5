"""Reversible protection of spans that must not be translated."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

PLACEHOLDER_PREFIX = "@@PRESERVE_"
PLACEHOLDER_SUFFIX = "@@"

FENCE_OPENERS = ("```", "~~~")


@dataclass(frozen=True)
class ProtectionRule:
    """A named pattern whose matches are swapped for placeholders."""

    name: str
    pattern: re.Pattern[str]


def _rule(name: str, pattern: str, flags: int = 0) -> ProtectionRule:
    return ProtectionRule(name=name, pattern=re.compile(pattern, flags))


# Priority order: earlier rules consume text before later ones can match
# inside it. Fenced code blocks are handled by a line scan before these run.
DEFAULT_RULES: tuple[ProtectionRule, ...] = (
    _rule("html_comment", r"<!--[\s\S]*?-->"),
    _rule("math_block", r"\$\$[\s\S]+?\$\$"),
    _rule("math_bracket", r"\\\[[\s\S]+?\\\]"),
    _rule("math_paren", r"\\\([\s\S]+?\\\)"),
    _rule("math_inline", r"(?<!\\)\$(?=[^\s$])(?:\\.|[^$\\\n])+?(?<=\S)\$"),
    _rule("code_inline", r"`[^`\n]+`"),
    _rule("template_mustache", r"\{\{[\s\S]+?\}\}"),
    _rule("template_erb", r"<%[\s\S]+?%>"),
    _rule("html_tag", r"</?[A-Za-z!][^<>]*>"),
    _rule("html_entity", r"&[a-zA-Z]+;"),
    _rule("html_numeric_entity", r"&#(?:\d+|[xX][0-9a-fA-F]+);"),
    _rule("url", r"(?:https?|ftp|file)://[^\s)]+", re.IGNORECASE),
    _rule("url_www", r"www\.[^\s)]+", re.IGNORECASE),
    _rule("email", r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"),
    _rule("path_unix", r"(?<![^\s(])/(?:[^/\s]+/)*[^/\s)]+"),
    _rule("path_windows", r"[A-Za-z]:\\(?:[^\\/:*?\"<>|\s]+\\)*[^\\/:*?\"<>|\s]+"),
    _rule("path_relative", r"\.{1,2}/(?:[^/\s]+/)*[^/\s]+"),
    _rule("citation_numeric", r"\[\d+\]"),
    _rule("citation_author", r"\[[A-Za-z]+(?:\s+et\s+al\.)?,\s*\d{4}\]"),
    _rule("latex_cite", r"\\cite\{[^}]+\}"),
    _rule("latex_ref", r"\\ref\{[^}]+\}"),
    _rule("latex_label", r"\\label\{[^}]+\}"),
)

_LETTER = re.compile(r"[^\W\d_]")


class ContentProtector:
    """Swaps protected spans for ``@@PRESERVE_n@@`` tokens and back.

    One instance owns one placeholder table; use a fresh instance per batch
    so tokens never collide across batches, and :meth:`reserve` the whole
    batch first so a literal token in one text never names another's span.
    """

    def __init__(
        self,
        rules: Optional[Sequence[ProtectionRule]] = None,
        *,
        prefix: str = PLACEHOLDER_PREFIX,
        suffix: str = PLACEHOLDER_SUFFIX,
    ) -> None:
        self.rules = tuple(DEFAULT_RULES if rules is None else rules)
        self.prefix = prefix
        self.suffix = suffix
        self._counter = 0
        self._replacements: Dict[str, str] = {}
        self._token_pattern = re.compile(
            re.escape(prefix) + r"\d+" + re.escape(suffix)
        )
        self._reserved: set[str] = set()

    @property
    def placeholders(self) -> Dict[str, str]:
        return dict(self._replacements)

    def _next_token(self) -> str:
        while True:
            token = f"{self.prefix}{self._counter}{self.suffix}"
            self._counter += 1
            if token not in self._reserved:
                return token

    def reserve(self, texts: Iterable[str]) -> None:
        """Keep literal tokens found in ``texts`` from being issued.

        Call it with every text of a batch before protecting any of them.
        """

        for text in texts:
            self._reserved.update(self._token_pattern.findall(text))

    def protect_span(self, content: str) -> str:
        """Register ``content`` and return the token standing in for it."""

        token = self._next_token()
        self._replacements[token] = content
        return token

    def protect_pattern(self, text: str, pattern: re.Pattern[str]) -> str:
        return pattern.sub(lambda match: self.protect_span(match.group(0)), text)

    def protect_code_blocks(self, text: str) -> str:
        """Replace fenced code blocks, found by scanning fence lines."""

        lines = text.split("\n")
        result: List[str] = []
        block: List[str] = []
        fence: Optional[str] = None

        for line in lines:
            stripped = line.lstrip()
            if fence is None:
                opener = next((f for f in FENCE_OPENERS if stripped.startswith(f)), None)
                if opener is not None:
                    fence = opener
                    block = [line]
                else:
                    result.append(line)
                continue

            block.append(line)
            if stripped.startswith(fence) and not stripped[len(fence):].strip(fence[0]).strip():
                result.append(self.protect_span("\n".join(block)))
                block = []
                fence = None

        if fence is not None:
            # Unclosed fence: leave the lines as they were.
            result.extend(block)

        return "\n".join(result)

    def protect(self, text: str) -> str:
        if not text:
            return text
        self._reserved.update(self._token_pattern.findall(text))
        issued = set(self._replacements)

        protected = self.protect_code_blocks(text)
        for rule in self.rules:
            protected = self.protect_pattern(protected, rule.pattern)

        if self.restore_all(protected) != text:
            # Literal placeholder fragments next to a token made it ambiguous.
            for token in set(self._replacements) - issued:
                del self._replacements[token]
            return text
        return protected

    def restore_all(self, text: str) -> str:
        """Substitute every known token back in a single pass.

        A captured span may itself contain earlier tokens, so expansion is
        recursive. Unknown tokens are left untouched.
        """

        def expand(match: re.Match[str]) -> str:
            token = match.group(0)
            original = self._replacements.get(token)
            if original is None:
                return token
            return self._token_pattern.sub(expand, original)

        return self._token_pattern.sub(expand, text)

    def missing_tokens(self, text: str) -> List[str]:
        """Tokens issued by :meth:`protect` that do not occur in ``text``."""

        present = set(self._token_pattern.findall(text))
        nested = set()
        for original in self._replacements.values():
            nested.update(self._token_pattern.findall(original))
        return [
            token
            for token in self._replacements
            if token not in present and token not in nested
        ]

    def strip_protected(self, text: str) -> str:
        """Return ``text`` with every protected span removed."""

        return self._token_pattern.sub(" ", self.protect(text))

    def preserve_instructions(self) -> str:
        return preserve_instructions(self.prefix, self.suffix)


def has_translatable_content(text: str) -> bool:
    """True when letters remain once protected spans are taken out."""

    if not text or not text.strip():
        return False
    return bool(_LETTER.search(ContentProtector().strip_protected(text)))


def preserve_instructions(
    prefix: str = PLACEHOLDER_PREFIX,
    suffix: str = PLACEHOLDER_SUFFIX,
) -> str:
    pattern = re.escape(prefix) + r"\d+" + re.escape(suffix)
    return (
        "IMPORTANT: Preserve Markers\n"
        f"- Do not translate or modify any text that matches the pattern: {pattern}\n"
        "- These markers protect content that must not be translated "
        "(code blocks, formulas, links, references).\n"
        "- Keep every marker exactly as it is, in the same position in your output.\n"
        f"- Example: {prefix}0{suffix} must remain unchanged."
    )
