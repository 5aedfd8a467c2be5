"""Node marker protocol used to multiplex several nodes into one request.

Each node travels as::

    @@NODE_START_<id>@@
    <text>
    @@NODE_END_<id>@@

with consecutive blocks separated by a blank line.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .structures import Group, Node

logger = logging.getLogger(__name__)

START_MARKER = "@@NODE_START_{node_id}@@"
END_MARKER = "@@NODE_END_{node_id}@@"
START_PREFIX = "@@NODE_START_"
END_PREFIX = "@@NODE_END_"
BLOCK_SEPARATOR = "\n\n"

MARKER_TOKEN = re.compile(r"@@NODE_(START|END)_(\d+)@@")


def start_marker(node_id: int) -> str:
    return START_MARKER.format(node_id=node_id)


def end_marker(node_id: int) -> str:
    return END_MARKER.format(node_id=node_id)


def wrap_node(node_id: int, text: str) -> str:
    return f"{start_marker(node_id)}\n{text}\n{end_marker(node_id)}"


def node_payload(node: Node) -> str:
    """Text a node contributes to a request.

    Context nodes travel with their existing translation so the model sees
    the surrounding document as it will read.
    """

    if node.is_context:
        return node.translated_text or node.original_text
    return node.original_text


def encode_blocks(blocks: Iterable[Tuple[int, str]]) -> str:
    return BLOCK_SEPARATOR.join(wrap_node(node_id, text) for node_id, text in blocks)


def encode_group(
    group: Group,
    transform: Optional[Callable[[str], str]] = None,
) -> str:
    """Serialise a group into one marker-delimited request text."""

    blocks = []
    for node in group.nodes:
        text = node_payload(node)
        if transform is not None:
            text = transform(text)
        blocks.append((node.node_id, text))
    return encode_blocks(blocks)


@dataclass
class MarkerScan:
    """Outcome of scanning a response for marker pairs."""

    pairs: Dict[int, str] = field(default_factory=dict)
    unmatched: List[int] = field(default_factory=list)
    duplicates: List[int] = field(default_factory=list)
    start_count: int = 0
    end_count: int = 0

    @property
    def has_markers(self) -> bool:
        return bool(self.start_count or self.end_count)


def scan_markers(text: str) -> MarkerScan:
    """Tokenise ``text`` into START/END markers and pair them up.

    An open START only closes on the very next END, and only if both carry
    the same id. A second START abandons the block that was open.
    """

    scan = MarkerScan()
    open_id: Optional[int] = None
    content_start = 0

    for match in MARKER_TOKEN.finditer(text):
        kind = match.group(1)
        node_id = int(match.group(2))

        if kind == "START":
            scan.start_count += 1
            if open_id is not None:
                scan.unmatched.append(open_id)
            open_id = node_id
            content_start = match.end()
            continue

        scan.end_count += 1
        if open_id is None:
            scan.unmatched.append(node_id)
            continue
        if open_id != node_id:
            scan.unmatched.append(open_id)
            open_id = None
            continue

        content = text[content_start:match.start()].strip()
        if node_id in scan.pairs:
            scan.duplicates.append(node_id)
        else:
            scan.pairs[node_id] = content
        open_id = None

    if open_id is not None:
        scan.unmatched.append(open_id)

    return scan


def decode_response(text: str) -> Dict[int, str]:
    """Map node ids to their translated text.

    Ids missing here are failures for the round; nothing is guessed.
    """

    scan = scan_markers(text)
    if scan.unmatched:
        logger.debug("Unmatched node markers in response: %s", scan.unmatched)
    if scan.duplicates:
        logger.debug("Duplicated node markers in response: %s", scan.duplicates)
    return scan.pairs


def marker_instructions() -> str:
    return (
        "CRITICAL: Node Boundary Markers\n"
        f"- The text contains node markers: {start_marker('N')} and {end_marker('N')} "
        "(where N is a number).\n"
        "- These markers separate independent text nodes.\n"
        "- You MUST preserve every marker exactly as it appears, each on its own line.\n"
        "- Do not translate, modify, merge or remove markers.\n"
        "- Translate the content between each matching start/end pair independently.\n"
        "- Example:\n"
        f"  {start_marker(1)}\n"
        "  [translated content]\n"
        f"  {end_marker(1)}"
    )
