"""
Approval level resolution and approval chain construction.

The organizational distance between the two people in a swap decides how
far up the chain of command the request has to travel:

    same work section             -> work_section
    same section, different WS    -> section
    anything else                 -> company   (conservative default)

Each side of the swap then gets its own escalation chain: one pending step
per level from work_section up to and including the required level, each
scoped to the nearest unit at that level above that side's person. When
the person has no unit at some level (attached directly to a section or a
company), that step falls to the nearest enclosing unit above the level,
whose managers of the step's role stand in for the missing one.
"""

from __future__ import annotations

import uuid

from dutysync.core.exceptions import NotFoundError, StateError
from dutysync.core.swap_aggregate import ApprovalStep, ApproverType, StepStatus
from dutysync.core.unit_tree import HierarchyLevel, UnitTree

# Levels an approval chain can reach, lowest first.
APPROVAL_LEVELS = (
    HierarchyLevel.WORK_SECTION,
    HierarchyLevel.SECTION,
    HierarchyLevel.COMPANY,
)

APPROVER_DISPLAY_NAMES = {
    HierarchyLevel.WORK_SECTION: "Work Section Manager",
    HierarchyLevel.SECTION: "Section Manager",
    HierarchyLevel.COMPANY: "Company Manager",
}


def required_level(tree: UnitTree, unit_a: int, unit_b: int) -> HierarchyLevel:
    """Minimum level whose manager must approve a swap between two units.

    Symmetric in its arguments. Raises NotFoundError when either unit is
    not part of the tree.
    """
    if unit_a == unit_b:
        tree.get(unit_a)
        return HierarchyLevel.WORK_SECTION

    ancestor = tree.nearest_common_ancestor(unit_a, unit_b)
    if ancestor is None:
        return HierarchyLevel.COMPANY
    if ancestor.hierarchy_level == HierarchyLevel.WORK_SECTION:
        return HierarchyLevel.WORK_SECTION
    if ancestor.hierarchy_level == HierarchyLevel.SECTION:
        return HierarchyLevel.SECTION
    return HierarchyLevel.COMPANY


def approver_name(level: HierarchyLevel) -> str:
    return APPROVER_DISPLAY_NAMES[level]


def _step_scope(tree: UnitTree, personnel_unit_id: int, level: HierarchyLevel):
    scope = tree.nearest_at_level(personnel_unit_id, level)
    if scope is not None:
        return scope
    for node in tree.ancestor_chain(personnel_unit_id):
        if node.hierarchy_level.rank > level.rank:
            return node
    return None


def build_chain(tree: UnitTree, level: HierarchyLevel, personnel_unit_id: int) -> list[ApprovalStep]:
    """Pending steps from work_section up to ``level`` for one side of a swap.

    A level with no matching unit above the person is scoped to the nearest
    enclosing higher unit; only when there is none is the scope null.
    """
    if level not in APPROVAL_LEVELS:
        raise StateError(f"Approval level {level!r} cannot head an approval chain")
    if personnel_unit_id not in tree:
        raise NotFoundError("UnitSection", personnel_unit_id)

    steps: list[ApprovalStep] = []
    for order, step_level in enumerate(APPROVAL_LEVELS, start=1):
        scope = _step_scope(tree, personnel_unit_id, step_level)
        steps.append(ApprovalStep(
            id=str(uuid.uuid4()),
            approval_order=order,
            approver_type=ApproverType.for_level(step_level),
            scope_unit_id=scope.id if scope else None,
            status=StepStatus.PENDING,
        ))
        if step_level == level:
            break
    return steps
