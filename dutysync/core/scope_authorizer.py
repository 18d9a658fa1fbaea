"""
Role-and-scope authorization for swap approvals and recommendations.

Roles form a closed set (RoleName). Which manager role may act on which
approval step is fixed by the capability table

    (role, hierarchy level) -> approver type

and a role's authority extends over its scope unit and every unit below
it. A null scope means org-wide authority.

Evaluation is deny-by-default:
    1. the role must hold the capability for the step's approver type
    2. a step with no scope unit is open to any holder of that role
    3. an org-wide role may act on any step of its type
    4. otherwise the step's scope unit must lie in the role's subtree
    5. a step scoped above its own level (the person has no unit at that
       level) is open to holders of the role inside the step's unit
Nobody may act on a swap in which they are one of the two parties.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from dutysync.core.exceptions import ValidationError
from dutysync.core.swap_aggregate import ApprovalStep, ApproverType, StepStatus, SwapPair, SwapSide
from dutysync.core.unit_tree import HierarchyLevel, UnitTree

logger = logging.getLogger(__name__)


class RoleName(str, Enum):
    WORK_SECTION_MANAGER = "Work Section Manager"
    SECTION_MANAGER = "Section Manager"
    COMPANY_MANAGER = "Company Manager"
    UNIT_MANAGER = "Unit Manager"
    UNIT_ADMIN = "Unit Admin"
    APP_ADMIN = "App Admin"
    STANDARD_USER = "Standard User"


MANAGER_ROLES = frozenset({
    RoleName.WORK_SECTION_MANAGER,
    RoleName.SECTION_MANAGER,
    RoleName.COMPANY_MANAGER,
    RoleName.UNIT_MANAGER,
})

CAPABILITIES: dict[tuple[RoleName, HierarchyLevel], ApproverType] = {
    (RoleName.WORK_SECTION_MANAGER, HierarchyLevel.WORK_SECTION): ApproverType.WORK_SECTION_MANAGER,
    (RoleName.SECTION_MANAGER, HierarchyLevel.SECTION): ApproverType.SECTION_MANAGER,
    (RoleName.COMPANY_MANAGER, HierarchyLevel.COMPANY): ApproverType.COMPANY_MANAGER,
}

# Inverse view: the single role that may act on each approver type.
APPROVER_ROLE: dict[ApproverType, RoleName] = {
    approver_type: role for (role, _level), approver_type in CAPABILITIES.items()
}

APPROVER_LEVEL: dict[ApproverType, HierarchyLevel] = {
    approver_type: level for (_role, level), approver_type in CAPABILITIES.items()
}


@dataclass(frozen=True)
class RoleAssignment:
    role: RoleName
    scope_unit_id: int | None = None

    @classmethod
    def parse(cls, role_name: str, scope_unit_id: int | None = None) -> "RoleAssignment":
        try:
            role = RoleName(role_name)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown role '{role_name}'",
                details={"role_name": role_name},
            ) from exc
        return cls(role=role, scope_unit_id=scope_unit_id)

    def to_dict(self) -> dict:
        return {"role_name": self.role.value, "scope_unit_id": self.scope_unit_id}


class ScopeAuthorizer:
    """Answers "may this role act here?" against one UnitTree snapshot."""

    def __init__(self, tree: UnitTree) -> None:
        self.tree = tree

    # ── Single-role checks ───────────────────────────────────────────────

    def covers(self, role: RoleAssignment, unit_id: int | None) -> bool:
        if unit_id is None or role.scope_unit_id is None:
            return True
        return self.tree.is_within(unit_id, role.scope_unit_id)

    def can_act(self, role: RoleAssignment, step: ApprovalStep) -> bool:
        if APPROVER_ROLE.get(step.approver_type) != role.role:
            return False
        if step.scope_unit_id is None:
            return True
        if role.scope_unit_id is None:
            return True
        if step.scope_unit_id in self._descendants(role.scope_unit_id):
            return True
        return self._stands_in(step) and role.scope_unit_id in self._descendants(step.scope_unit_id)

    def can_recommend(self, role: RoleAssignment, pair: SwapPair) -> bool:
        """Manager with visibility into the swap's units who is not in its chain.

        Visibility means the role's scope covers the scope unit of at least
        one step on either side. Holding the matching role for any pending
        step disqualifies the role: that manager approves, not recommends.
        """
        if role.role not in MANAGER_ROLES:
            return False
        visible = False
        for side in pair.sides:
            for step in side.approvals:
                if step.status == StepStatus.PENDING and self.can_act(role, step):
                    return False
                if step.scope_unit_id is None:
                    visible = visible or role.scope_unit_id is None
                elif self.covers(role, step.scope_unit_id):
                    visible = True
        return visible

    def can_file_for(self, role: RoleAssignment, unit_id: int) -> bool:
        """Managers may request a swap for people inside their scope; App Admins for anyone."""
        if role.role == RoleName.APP_ADMIN:
            return True
        return role.role in MANAGER_ROLES and self.covers(role, unit_id)

    def _stands_in(self, step: ApprovalStep) -> bool:
        if step.scope_unit_id not in self.tree:
            return False
        unit = self.tree.get(step.scope_unit_id)
        return unit.hierarchy_level.rank > APPROVER_LEVEL[step.approver_type].rank

    def _descendants(self, unit_id: int) -> frozenset[int]:
        if unit_id not in self.tree:
            return frozenset()
        return self.tree.descendants_of(unit_id)

    # ── Acting-user checks (all roles + identity) ────────────────────────

    @staticmethod
    def is_party(pair: SwapPair, acting_personnel_id: int | None) -> bool:
        return acting_personnel_id is not None and acting_personnel_id in pair.personnel_ids

    def can_act_on(
        self,
        roles: Iterable[RoleAssignment],
        pair: SwapPair,
        step: ApprovalStep,
        acting_personnel_id: int | None,
    ) -> bool:
        if self.is_party(pair, acting_personnel_id):
            return False
        return any(self.can_act(role, step) for role in roles)

    def eligible_steps(
        self,
        roles: Iterable[RoleAssignment],
        pair: SwapPair,
        acting_personnel_id: int | None,
    ) -> list[tuple[SwapSide, ApprovalStep]]:
        """Pending steps, in chain order per side, the user is authorized on."""
        roles = list(roles)
        return [
            (side, step)
            for side, step in pair.pending_steps()
            if self.can_act_on(roles, pair, step, acting_personnel_id)
        ]

    def can_recommend_any(
        self,
        roles: Iterable[RoleAssignment],
        pair: SwapPair,
        acting_personnel_id: int | None,
    ) -> bool:
        roles = list(roles)
        if self.is_party(pair, acting_personnel_id):
            return False
        if self.eligible_steps(roles, pair, acting_personnel_id):
            return False
        return any(self.can_recommend(role, pair) for role in roles)
