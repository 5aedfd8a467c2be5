"""Core data structures for the Tessera batch translator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class NodeStatus(Enum):
    """Lifecycle of a node during a translation run."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class NodeRole(Enum):
    """Part a node plays inside a batch."""

    TRANSLATABLE = "translatable"
    CONTEXT = "context"


@dataclass
class Node:
    """Represents a single text element ready for translation.

    ``original_text`` is owned by the document layer and never rewritten by
    the engine. ``role`` is only switched to ``CONTEXT`` for the duration of
    a retry round.
    """

    node_id: int
    original_text: str
    translated_text: str = ""
    status: NodeStatus = NodeStatus.PENDING
    error: Optional[Exception] = None
    retry_count: int = 0
    role: NodeRole = NodeRole.TRANSLATABLE
    block_id: str = ""
    path: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.original_text)

    @property
    def is_context(self) -> bool:
        return self.role is NodeRole.CONTEXT

    @property
    def is_resolved(self) -> bool:
        """True once the node no longer needs a translation attempt."""

        return self.status in (NodeStatus.SUCCESS, NodeStatus.SKIPPED)

    def mark_success(self, translated_text: str) -> None:
        self.translated_text = translated_text
        self.status = NodeStatus.SUCCESS
        self.error = None

    def mark_failed(self, error: Exception) -> None:
        self.status = NodeStatus.FAILED
        self.error = error

    def mark_skipped(self) -> None:
        """Pass the original text through untouched."""

        self.translated_text = self.original_text
        self.status = NodeStatus.SKIPPED
        self.error = None

    def output_text(self) -> str:
        """Text to render: the translation when available, else the original."""

        if self.is_resolved and self.translated_text:
            return self.translated_text
        return self.original_text


@dataclass
class Group:
    """A batch of nodes constrained by a character budget."""

    group_id: int
    nodes: List[Node]
    size: int = 0

    @property
    def node_ids(self) -> List[int]:
        return [node.node_id for node in self.nodes]

    @property
    def translatable_nodes(self) -> List[Node]:
        return [node for node in self.nodes if not node.is_context]

    @property
    def needs_translation(self) -> bool:
        return any(not node.is_context for node in self.nodes)
