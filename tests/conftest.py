"""Shared fixtures and fake providers for the Tessera test suite."""

from __future__ import annotations

import codecs
import os
import re
import threading
from typing import Any, Callable, Collection, Dict, List, Optional

import pytest
from hypothesis import Phase, Verbosity, settings

from tessera.protocol import encode_blocks, scan_markers
from tessera.providers import TranslationProvider
from tessera.structures import Node

# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Fake translation
# =============================================================================

_TOKEN = re.compile(r"(@@PRESERVE_\d+@@)")


def fake_translate(text: str) -> str:
    """Deterministic stand-in for a translation: rot13 outside preserve tokens."""

    return "".join(
        part if _TOKEN.fullmatch(part) else codecs.encode(part, "rot13")
        for part in _TOKEN.split(text)
    )


def translate_request(
    request: str,
    *,
    drop: Collection[int] = (),
    echo: Collection[int] = (),
) -> str:
    """Answer a marker-encoded request block by block.

    Ids in ``drop`` are left out of the reply; ids in ``echo`` come back
    untranslated.
    """

    blocks = []
    for node_id, content in scan_markers(request).pairs.items():
        if node_id in drop:
            continue
        blocks.append((node_id, content if node_id in echo else fake_translate(content)))
    return encode_blocks(blocks)


Handler = Callable[[str, int], str]


class ScriptedProvider(TranslationProvider):
    """Provider whose replies come from ``handler(request, call_index)``."""

    name = "scripted"
    model = "test-model"

    def __init__(self, handler: Optional[Handler] = None) -> None:
        self.handler: Handler = handler or (lambda request, _index: translate_request(request))
        self.requests: List[str] = []
        self.metadata: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.requests)

    def translate(
        self,
        text: str,
        *,
        source_language: str | None,
        target_language: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        with self._lock:
            call_index = len(self.requests)
            self.requests.append(text)
            self.metadata.append(dict(metadata or {}))
        return self.handler(text, call_index)


def make_nodes(*texts: str) -> List[Node]:
    return [
        Node(node_id=index, original_text=text, path=f"doc:{index}")
        for index, text in enumerate(texts, start=1)
    ]


@pytest.fixture
def scripted_provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def sample_nodes() -> List[Node]:
    return make_nodes(
        "The quick brown fox jumps over the lazy dog.",
        "Translation engines group paragraphs into batches.",
        "Every batch travels in a single request to the model.",
        "Failed paragraphs are retried with their neighbours as context.",
        "The final report lists anything that could not be translated.",
    )
