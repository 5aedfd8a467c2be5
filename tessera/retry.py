"""Multi-round retry of failed nodes with neighbouring context."""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence

from .dispatcher import ConcurrentDispatcher
from .errors import classify_error
from .grouping import NodeGrouper
from .protection import has_translatable_content
from .structures import Node, NodeRole, NodeStatus

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_CONTEXT_DISTANCE = 2


class RetryState(Enum):
    INITIAL = "initial"
    RETRYING = "retrying"
    DONE = "done"


@dataclass
class FailedNodeDetail:
    node_id: int
    original_text: str
    path: str
    error_type: str
    error_message: str
    retry_count: int

    @classmethod
    def from_node(cls, node: Node) -> "FailedNodeDetail":
        return cls(
            node_id=node.node_id,
            original_text=node.original_text,
            path=node.path,
            error_type=classify_error(node.error),
            error_message=str(node.error) if node.error is not None else "",
            retry_count=node.retry_count,
        )


@dataclass
class RoundResult:
    """Outcome of one dispatch round, counted over the nodes it retried."""

    round_number: int
    round_type: str
    total_nodes: int
    success_nodes: int
    failed_nodes: int
    duration: float
    failed_details: List[FailedNodeDetail] = field(default_factory=list)
    context_nodes: int = 0
    group_count: int = 0


@dataclass
class RetrySummary:
    total_nodes: int
    final_success: int
    final_failed: int
    final_skipped: int
    total_rounds: int
    rounds: List[RoundResult] = field(default_factory=list)
    final_failed_nodes: List[FailedNodeDetail] = field(default_factory=list)
    cancelled: bool = False

    @property
    def error_type_counts(self) -> Dict[str, int]:
        return dict(Counter(detail.error_type for detail in self.final_failed_nodes))


def build_retry_batch(
    nodes: Sequence[Node],
    failed_nodes: Sequence[Node],
    context_distance: int = DEFAULT_CONTEXT_DISTANCE,
) -> List[Node]:
    """Return failed nodes plus their translated neighbours, in document order.

    Up to ``context_distance`` nodes on each side of a failed node are added
    when they already succeeded; each is switched to the context role.
    """

    position = {node.node_id: index for index, node in enumerate(nodes)}
    included = {node.node_id for node in failed_nodes}

    for failed in failed_nodes:
        index = position.get(failed.node_id)
        if index is None:
            continue
        for offset in range(1, context_distance + 1):
            for neighbour_index in (index - offset, index + offset):
                if not 0 <= neighbour_index < len(nodes):
                    continue
                neighbour = nodes[neighbour_index]
                if neighbour.node_id in included or neighbour.status is not NodeStatus.SUCCESS:
                    continue
                neighbour.role = NodeRole.CONTEXT
                included.add(neighbour.node_id)

    return [node for node in nodes if node.node_id in included]


class RetryCoordinator:
    """Runs the initial round and up to ``max_retries`` retry rounds."""

    def __init__(
        self,
        grouper: NodeGrouper,
        dispatcher: ConcurrentDispatcher,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        context_distance: int = DEFAULT_CONTEXT_DISTANCE,
    ) -> None:
        self.grouper = grouper
        self.dispatcher = dispatcher
        self.max_retries = max(0, max_retries)
        self.context_distance = max(0, context_distance)
        self.state = RetryState.INITIAL
        self.round_number = 0

    def run(
        self,
        nodes: Sequence[Node],
        cancel_event: Optional[threading.Event] = None,
    ) -> RetrySummary:
        nodes = list(nodes)
        self.state = RetryState.INITIAL
        self.round_number = 0
        rounds: List[RoundResult] = []

        skipped = 0
        for node in nodes:
            if node.status is NodeStatus.PENDING and not has_translatable_content(
                node.original_text
            ):
                node.mark_skipped()
                skipped += 1
        if skipped:
            logger.debug("Skipped %d nodes without translatable content", skipped)

        pending = [node for node in nodes if not node.is_resolved]
        if pending:
            result = self._run_round("initial", pending, pending, cancel_event)
            if result is not None:
                rounds.append(result)

        for _ in range(self.max_retries):
            if _cancelled(cancel_event):
                break
            failed = [
                node
                for node in nodes
                if node.status in (NodeStatus.PENDING, NodeStatus.FAILED)
            ]
            if not failed:
                break

            self.state = RetryState.RETRYING
            batch = build_retry_batch(nodes, failed, self.context_distance)
            for node in failed:
                node.retry_count += 1
            try:
                result = self._run_round("retry", batch, failed, cancel_event)
            finally:
                for node in batch:
                    node.role = NodeRole.TRANSLATABLE
            if result is None:
                break
            rounds.append(result)

        self.state = RetryState.DONE
        summary = _summarise(nodes, rounds, cancelled=_cancelled(cancel_event))
        logger.info(
            "Translation finished after %d round(s): %d ok, %d failed, %d skipped",
            summary.total_rounds,
            summary.final_success,
            summary.final_failed,
            summary.final_skipped,
        )
        return summary

    def _run_round(
        self,
        round_type: str,
        batch: List[Node],
        targets: List[Node],
        cancel_event: Optional[threading.Event],
    ) -> Optional[RoundResult]:
        groups = self.grouper.group(batch)
        if not groups:
            return None

        self.round_number += 1
        context_nodes = len(batch) - len(targets)
        logger.info(
            "Round %d (%s): %d nodes, %d context, %d groups",
            self.round_number,
            round_type,
            len(targets),
            context_nodes,
            len(groups),
        )
        progress = self.dispatcher.progress
        if progress is not None:
            progress.start_round(self.round_number, len(groups))

        started = time.monotonic()
        group_errors = self.dispatcher.dispatch(groups, cancel_event)
        duration = time.monotonic() - started

        cancelled_groups = sum(1 for error in group_errors if error.cancelled)
        if cancelled_groups:
            logger.info("%d group(s) not sent after cancellation", cancelled_groups)

        failed = [node for node in targets if not node.is_resolved]
        return RoundResult(
            round_number=self.round_number,
            round_type=round_type,
            total_nodes=len(targets),
            success_nodes=len(targets) - len(failed),
            failed_nodes=len(failed),
            duration=duration,
            failed_details=[FailedNodeDetail.from_node(node) for node in failed],
            context_nodes=context_nodes,
            group_count=len(groups),
        )


def _cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def _summarise(nodes: List[Node], rounds: List[RoundResult], *, cancelled: bool) -> RetrySummary:
    failed = [node for node in nodes if not node.is_resolved]
    return RetrySummary(
        total_nodes=len(nodes),
        final_success=sum(1 for node in nodes if node.status is NodeStatus.SUCCESS),
        final_failed=len(failed),
        final_skipped=sum(1 for node in nodes if node.status is NodeStatus.SKIPPED),
        total_rounds=len(rounds),
        rounds=rounds,
        final_failed_nodes=[FailedNodeDetail.from_node(node) for node in failed],
        cancelled=cancelled,
    )
