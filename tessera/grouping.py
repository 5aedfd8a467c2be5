"""Node grouping utilities."""

from __future__ import annotations

from typing import List, Sequence

from .structures import Group, Node

DEFAULT_CHUNK_SIZE = 1000


def group_nodes(nodes: Sequence[Node], budget: int) -> List[Group]:
    """Greedily pack nodes, in order, into groups within a character budget.

    A node larger than the budget still gets a group of its own; nodes are
    never split.
    """

    if budget <= 0:
        budget = DEFAULT_CHUNK_SIZE

    groups: List[Group] = []
    members: List[Node] = []
    running_total = 0
    group_id = 1

    for node in nodes:
        size = node.size
        if running_total + size > budget and members:
            groups.append(Group(group_id=group_id, nodes=members, size=running_total))
            group_id += 1
            members = []
            running_total = 0

        members.append(node)
        running_total += size

    if members:
        groups.append(Group(group_id=group_id, nodes=members, size=running_total))

    return groups


class NodeGrouper:
    """Aggregates nodes into groups within a character budget."""

    def __init__(self, budget: int) -> None:
        self.budget = budget if budget > 0 else DEFAULT_CHUNK_SIZE

    def group(self, nodes: Sequence[Node]) -> List[Group]:
        return group_nodes(nodes, self.budget)
