"""Progress counters polled by observers instead of pushed through callbacks."""

from __future__ import annotations

import threading
from dataclasses import dataclass


@dataclass(frozen=True)
class ProgressSnapshot:
    round_number: int
    total_nodes: int
    groups_total: int
    groups_done: int
    nodes_succeeded: int
    nodes_failed: int
    chars_done: int

    @property
    def fraction(self) -> float:
        if not self.groups_total:
            return 0.0
        return self.groups_done / self.groups_total


class ProgressTracker:
    """Lock-guarded counters for the current round.

    Workers call :meth:`record_group`; anything that wants to display progress
    calls :meth:`snapshot` from its own thread.
    """

    def __init__(self, total_nodes: int = 0) -> None:
        self._lock = threading.Lock()
        self._total_nodes = total_nodes
        self._round_number = 0
        self._groups_total = 0
        self._groups_done = 0
        self._succeeded = 0
        self._failed = 0
        self._chars = 0

    def set_total_nodes(self, total_nodes: int) -> None:
        with self._lock:
            self._total_nodes = total_nodes

    def start_round(self, round_number: int, groups_total: int) -> None:
        with self._lock:
            self._round_number = round_number
            self._groups_total = groups_total
            self._groups_done = 0
            self._succeeded = 0
            self._failed = 0
            self._chars = 0

    def record_group(self, succeeded: int, failed: int, chars: int) -> None:
        with self._lock:
            self._groups_done += 1
            self._succeeded += succeeded
            self._failed += failed
            self._chars += chars

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(
                round_number=self._round_number,
                total_nodes=self._total_nodes,
                groups_total=self._groups_total,
                groups_done=self._groups_done,
                nodes_succeeded=self._succeeded,
                nodes_failed=self._failed,
                chars_done=self._chars,
            )
