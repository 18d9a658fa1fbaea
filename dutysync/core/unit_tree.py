"""
Organizational unit hierarchy: in-memory tree.

Levels, lowest first:
    work_section < section < company < unit (top)

A UnitTree is built from a flat list of UnitNode records (one per
unit_sections row) and answers the three questions the swap workflow asks:

    descendants_of(unit_id)          -> the unit plus every transitive child
    ancestor_chain(unit_id)          -> [unit, parent, …, root]
    nearest_common_ancestor(a, b)    -> closest node on both ancestor chains

The tree is immutable once built. Construction rejects dangling parent
references and cycles so that every query terminates.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from dutysync.core.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class HierarchyLevel(str, Enum):
    WORK_SECTION = "work_section"
    SECTION = "section"
    COMPANY = "company"
    UNIT = "unit"

    @property
    def rank(self) -> int:
        return LEVEL_RANK[self]


LEVEL_RANK = {
    HierarchyLevel.WORK_SECTION: 0,
    HierarchyLevel.SECTION: 1,
    HierarchyLevel.COMPANY: 2,
    HierarchyLevel.UNIT: 3,
}


@dataclass(frozen=True)
class UnitNode:
    id: int
    parent_id: int | None
    name: str
    hierarchy_level: HierarchyLevel


class UnitTree:
    """Forest of rooted unit trees keyed by unit id."""

    def __init__(self, nodes: Iterable[UnitNode]) -> None:
        self._nodes: dict[int, UnitNode] = {}
        for node in nodes:
            if node.id in self._nodes:
                raise ValidationError(f"Duplicate unit id {node.id}")
            self._nodes[node.id] = node

        self._children: dict[int, list[int]] = defaultdict(list)
        for node in self._nodes.values():
            if node.parent_id is None:
                continue
            if node.parent_id not in self._nodes:
                raise ValidationError(
                    f"Unit {node.id} references unknown parent {node.parent_id}",
                    details={"unit_id": node.id, "parent_id": node.parent_id},
                )
            self._children[node.parent_id].append(node.id)

        self._check_acyclic()
        self._descendant_cache: dict[int, frozenset[int]] = {}

    def _check_acyclic(self) -> None:
        # Every node must reach a root within len(nodes) hops.
        limit = len(self._nodes)
        for start in self._nodes:
            current = self._nodes[start]
            hops = 0
            while current.parent_id is not None:
                hops += 1
                if hops > limit:
                    raise ValidationError(
                        f"Unit hierarchy contains a cycle through unit {start}",
                        details={"unit_id": start},
                    )
                current = self._nodes[current.parent_id]

    # ── Lookups ──────────────────────────────────────────────────────────

    def __contains__(self, unit_id: object) -> bool:
        return unit_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, unit_id: int) -> UnitNode:
        node = self._nodes.get(unit_id)
        if node is None:
            raise NotFoundError("UnitSection", unit_id)
        return node

    def children_of(self, unit_id: int) -> list[UnitNode]:
        self.get(unit_id)
        return [self._nodes[cid] for cid in self._children.get(unit_id, [])]

    # ── Hierarchy queries ────────────────────────────────────────────────

    def descendants_of(self, unit_id: int) -> frozenset[int]:
        """Return ``unit_id`` plus all transitive children.

        Raises NotFoundError for an unknown unit.
        """
        cached = self._descendant_cache.get(unit_id)
        if cached is not None:
            return cached

        self.get(unit_id)
        result = {unit_id}
        stack = [unit_id]
        while stack:
            for child_id in self._children.get(stack.pop(), []):
                if child_id not in result:
                    result.add(child_id)
                    stack.append(child_id)

        frozen = frozenset(result)
        self._descendant_cache[unit_id] = frozen
        return frozen

    def ancestor_chain(self, unit_id: int) -> list[UnitNode]:
        """Return ``[node, parent, grandparent, …, root]``."""
        chain = [self.get(unit_id)]
        while chain[-1].parent_id is not None:
            chain.append(self._nodes[chain[-1].parent_id])
        return chain

    def nearest_common_ancestor(self, unit_a: int, unit_b: int) -> UnitNode | None:
        """Closest node present on both ancestor chains.

        Returns None when the two units sit in different trees of the forest.
        Raises NotFoundError if either unit is unknown; callers treat that as
        an unresolved approval level.
        """
        chain_a = self.ancestor_chain(unit_a)
        ids_b = {node.id for node in self.ancestor_chain(unit_b)}
        for node in chain_a:
            if node.id in ids_b:
                return node
        return None

    def nearest_at_level(self, unit_id: int, level: HierarchyLevel) -> UnitNode | None:
        """First node on the ancestor chain (self included) at exactly ``level``."""
        for node in self.ancestor_chain(unit_id):
            if node.hierarchy_level == level:
                return node
        return None

    def is_within(self, unit_id: int, scope_unit_id: int) -> bool:
        """True when ``unit_id`` sits inside ``scope_unit_id``'s subtree.

        Unknown units are never within any scope.
        """
        if unit_id not in self._nodes or scope_unit_id not in self._nodes:
            return False
        return unit_id in self.descendants_of(scope_unit_id)
