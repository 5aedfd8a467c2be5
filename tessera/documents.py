"""Document extraction and reinsertion utilities."""

from __future__ import annotations

import pathlib
from abc import ABC, abstractmethod
from typing import Iterable, List, Tuple, Union

from .errors import UnsupportedFileTypeError
from .structures import Node

FENCES = ("```", "~~~")


def split_blocks(text: str) -> List[Tuple[bool, str, int]]:
    """Split text into alternating content and blank-line runs.

    Returns ``(is_content, text, first_line)`` tuples whose texts concatenate
    back to the input. A fenced code block stays inside one content run even
    when it contains blank lines.
    """

    pieces: List[Tuple[bool, str, int]] = []
    buffer: List[str] = []
    buffer_is_content = False
    start_line = 1
    fence: str | None = None

    for number, line in enumerate(text.splitlines(keepends=True), start=1):
        stripped = line.strip()
        if fence is not None:
            buffer.append(line)
            if stripped.startswith(fence) and not stripped.strip(fence[0]):
                fence = None
            continue

        is_content = bool(stripped)
        if buffer and buffer_is_content != is_content:
            pieces.append((buffer_is_content, "".join(buffer), start_line))
            buffer = []
        if not buffer:
            buffer_is_content = is_content
            start_line = number
        buffer.append(line)

        opener = next((f for f in FENCES if stripped.startswith(f)), None)
        if opener is not None:
            fence = opener

    if buffer:
        pieces.append((buffer_is_content, "".join(buffer), start_line))
    return pieces


class BaseDocumentHandler(ABC):
    """Common base class for document handlers."""

    def __init__(self, source_path: pathlib.Path):
        self.source_path = source_path
        self.nodes: List[Node] = []

    @abstractmethod
    def extract_nodes(self) -> List[Node]:
        """Extract translation-ready nodes."""

    @abstractmethod
    def render(self) -> str:
        """Return the document with translations applied."""

    def save(self, destination: pathlib.Path) -> None:
        destination.write_text(self.render(), encoding="utf-8")

    def register_nodes(self, nodes: Iterable[Node]) -> List[Node]:
        """Store and return the provided nodes."""

        self.nodes = list(nodes)
        return self.nodes


class TextDocument(BaseDocumentHandler):
    """Plain text or Markdown, one node per paragraph."""

    def __init__(self, source_path: pathlib.Path, text: str | None = None):
        super().__init__(source_path)
        self.text = (
            text if text is not None else source_path.read_text(encoding="utf-8")
        )
        self._pieces: List[Union[str, Node]] = []

    def extract_nodes(self) -> List[Node]:
        nodes: List[Node] = []
        self._pieces = []
        for is_content, chunk, line in split_blocks(self.text):
            if not is_content:
                self._pieces.append(chunk)
                continue
            body = chunk.rstrip("\r\n")
            node = Node(
                node_id=len(nodes) + 1,
                original_text=body,
                block_id=f"p{len(nodes) + 1}",
                path=f"{self.source_path.name}:{line}",
            )
            nodes.append(node)
            self._pieces.append(node)
            if len(body) < len(chunk):
                self._pieces.append(chunk[len(body):])
        return self.register_nodes(nodes)

    def render(self) -> str:
        return "".join(
            piece.output_text() if isinstance(piece, Node) else piece
            for piece in self._pieces
        )


def detect_handler(path: pathlib.Path) -> Tuple[str, BaseDocumentHandler]:
    """Select an appropriate handler for the provided file."""

    suffix = path.suffix.lower()
    if suffix in {".md", ".markdown"}:
        return "markdown", TextDocument(path)
    if suffix == ".txt":
        return "text", TextDocument(path)
    raise UnsupportedFileTypeError(
        "This file type isn't supported. Please use .txt, .md or .markdown."
    )
