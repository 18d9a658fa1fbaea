"""
Duty swap aggregate: SwapPair with two SwapSides and their approval chains.

Stored status machine (SWAP_TRANSITIONS):
    pending -> approved | rejected | cancelled
    approved, rejected, cancelled -> (terminal)

Derived workflow state (``SwapPair.workflow_state``):
    pending           stored pending, not both sides accepted
    pending_approval  stored pending, both sides accepted, >=1 step pending
    approved | rejected | cancelled

Invariants enforced on construction and on every mutation:
    - the two sides name different people and different duty slots
    - each side's chain is a non-empty prefix of
      work_section_manager -> section_manager -> company_manager
      ending at the pair's required level
    - terminal pairs accept no further mutation
    - a pair is approved iff both sides accepted and every step approved

Each side keeps a ``next_pending_index`` so the actionable step is read in
O(1); only that step may be approved.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from dutysync.core.exceptions import NotFoundError, StateError, ValidationError
from dutysync.core.unit_tree import HierarchyLevel


class SwapStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class WorkflowState(str, Enum):
    PENDING = "pending"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class StepStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApproverType(str, Enum):
    WORK_SECTION_MANAGER = "work_section_manager"
    SECTION_MANAGER = "section_manager"
    COMPANY_MANAGER = "company_manager"

    @classmethod
    def for_level(cls, level: HierarchyLevel) -> "ApproverType":
        return cls(f"{HierarchyLevel(level).value}_manager")


class RecommendationKind(str, Enum):
    RECOMMEND = "recommend"
    NOT_RECOMMEND = "not_recommend"


APPROVER_ORDER = (
    ApproverType.WORK_SECTION_MANAGER,
    ApproverType.SECTION_MANAGER,
    ApproverType.COMPANY_MANAGER,
)

SWAP_TRANSITIONS = {
    SwapStatus.PENDING: [SwapStatus.APPROVED, SwapStatus.REJECTED, SwapStatus.CANCELLED],
    SwapStatus.APPROVED: [],
    SwapStatus.REJECTED: [],
    SwapStatus.CANCELLED: [],
}

TERMINAL_STATUSES = frozenset({SwapStatus.APPROVED, SwapStatus.REJECTED, SwapStatus.CANCELLED})


def validate_swap_transition(old_status, new_status) -> bool:
    """Return True if a SwapPair status transition is valid."""
    return SwapStatus(new_status) in SWAP_TRANSITIONS.get(SwapStatus(old_status), [])


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# ═════════════════════════════════════════════════════════════════════════════
# Value objects
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class ApprovalStep:
    id: str
    approval_order: int
    approver_type: ApproverType
    scope_unit_id: int | None
    status: StepStatus = StepStatus.PENDING
    approved_by: int | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "approval_order": self.approval_order,
            "approver_type": self.approver_type.value,
            "scope_unit_id": self.scope_unit_id,
            "status": self.status.value,
            "approved_by": self.approved_by,
            "approved_at": _iso(self.approved_at),
            "rejection_reason": self.rejection_reason,
        }


@dataclass
class Recommendation:
    id: str
    swap_pair_id: str
    manager_id: int
    recommendation: RecommendationKind
    comment: str | None
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "swap_pair_id": self.swap_pair_id,
            "manager_id": self.manager_id,
            "recommendation": self.recommendation.value,
            "comment": self.comment,
            "created_at": _iso(self.created_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# SwapSide
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class SwapSide:
    personnel_id: int
    duty_slot_id: int
    approvals: list[ApprovalStep]
    partner_accepted: bool = False
    partner_accepted_at: datetime | None = None
    partner_accepted_by: int | None = None
    rejection_reason: str | None = None
    next_pending_index: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        if not self.approvals:
            raise StateError(f"Approval chain for personnel {self.personnel_id} is empty")
        types = tuple(step.approver_type for step in self.approvals)
        if types != APPROVER_ORDER[:len(types)]:
            raise StateError(
                f"Approval chain for personnel {self.personnel_id} is out of order: "
                f"{[t.value for t in types]}"
            )
        self._reindex()

    def _reindex(self) -> None:
        index = 0
        while index < len(self.approvals) and self.approvals[index].status == StepStatus.APPROVED:
            index += 1
        self.next_pending_index = index

    @property
    def current_step(self) -> ApprovalStep | None:
        """The step actionable next on this side, or None when fully approved."""
        if self.next_pending_index >= len(self.approvals):
            return None
        return self.approvals[self.next_pending_index]

    @property
    def fully_approved(self) -> bool:
        return self.next_pending_index >= len(self.approvals)

    def step_by_id(self, step_id: str) -> ApprovalStep | None:
        for step in self.approvals:
            if step.id == step_id:
                return step
        return None

    def mark_accepted(self, user_id: int, at: datetime) -> bool:
        """Record partner acceptance. Returns False when already accepted."""
        if self.partner_accepted:
            return False
        self.partner_accepted = True
        self.partner_accepted_at = at
        self.partner_accepted_by = user_id
        return True

    def mark_step_approved(self, step: ApprovalStep, user_id: int, at: datetime) -> None:
        if step is not self.current_step:
            raise StateError(f"Approval step {step.id} is not the next step on this side")
        step.status = StepStatus.APPROVED
        step.approved_by = user_id
        step.approved_at = at
        self.next_pending_index += 1

    def to_dict(self) -> dict:
        current = self.current_step
        return {
            "personnel_id": self.personnel_id,
            "duty_slot_id": self.duty_slot_id,
            "partner_accepted": self.partner_accepted,
            "partner_accepted_at": _iso(self.partner_accepted_at),
            "partner_accepted_by": self.partner_accepted_by,
            "rejection_reason": self.rejection_reason,
            "current_step_id": current.id if current else None,
            "approvals": [step.to_dict() for step in self.approvals],
        }


# ═════════════════════════════════════════════════════════════════════════════
# SwapPair (aggregate root)
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class SwapPair:
    id: str
    requester_id: int
    reason: str
    required_level: HierarchyLevel
    side_a: SwapSide
    side_b: SwapSide
    created_at: datetime
    status: SwapStatus = SwapStatus.PENDING
    updated_at: datetime | None = None
    resolved_at: datetime | None = None
    version: int = 0

    def __post_init__(self) -> None:
        if self.side_a.personnel_id == self.side_b.personnel_id:
            raise ValidationError("A swap needs two different people")
        if self.side_a.duty_slot_id == self.side_b.duty_slot_id:
            raise ValidationError("A swap needs two different duty slots")
        expected_top = ApproverType.for_level(self.required_level)
        for side in self.sides:
            if side.approvals[-1].approver_type != expected_top:
                raise StateError(
                    f"Approval chain for personnel {side.personnel_id} does not end at "
                    f"{expected_top.value}"
                )

    # ── Derived state ────────────────────────────────────────────────────

    @property
    def sides(self) -> tuple[SwapSide, SwapSide]:
        return (self.side_a, self.side_b)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def both_accepted(self) -> bool:
        return self.side_a.partner_accepted and self.side_b.partner_accepted

    @property
    def fully_approved(self) -> bool:
        return self.side_a.fully_approved and self.side_b.fully_approved

    @property
    def workflow_state(self) -> WorkflowState:
        if self.status != SwapStatus.PENDING:
            return WorkflowState(self.status.value)
        if self.both_accepted:
            return WorkflowState.PENDING_APPROVAL
        return WorkflowState.PENDING

    @property
    def personnel_ids(self) -> frozenset[int]:
        return frozenset({self.side_a.personnel_id, self.side_b.personnel_id})

    def side_of(self, personnel_id: int | None) -> SwapSide | None:
        for side in self.sides:
            if personnel_id is not None and side.personnel_id == personnel_id:
                return side
        return None

    def find_step(self, step_id: str) -> tuple[SwapSide, ApprovalStep]:
        for side in self.sides:
            step = side.step_by_id(step_id)
            if step is not None:
                return side, step
        raise NotFoundError("ApprovalStep", step_id)

    def pending_steps(self) -> list[tuple[SwapSide, ApprovalStep]]:
        return [
            (side, step)
            for side in self.sides
            for step in side.approvals
            if step.status == StepStatus.PENDING
        ]

    def actionable_steps(self) -> list[tuple[SwapSide, ApprovalStep]]:
        """The current step of each side, when approvals are open."""
        if self.is_terminal or not self.both_accepted:
            return []
        return [(side, side.current_step) for side in self.sides if side.current_step is not None]

    # ── Mutations ────────────────────────────────────────────────────────

    def _ensure_open(self) -> None:
        if self.is_terminal:
            raise StateError(f"Swap {self.id} is already {self.status.value}")

    def _transition(self, new_status: SwapStatus, at: datetime) -> None:
        if not validate_swap_transition(self.status, new_status):
            raise StateError(f"Invalid transition: {self.status.value} → {new_status.value}")
        self.status = new_status
        self.resolved_at = at
        self.updated_at = at

    def accept(self, personnel_id: int, user_id: int, at: datetime) -> bool:
        """Partner acceptance for the side ``personnel_id`` occupies.

        Idempotent: returns False (and writes nothing) if already accepted.
        """
        self._ensure_open()
        side = self.side_of(personnel_id)
        if side is None:
            raise StateError(f"Personnel {personnel_id} is not a party to swap {self.id}")
        changed = side.mark_accepted(user_id, at)
        if changed:
            self.updated_at = at
        return changed

    def check_step_actionable(self, step_id: str) -> tuple[SwapSide, ApprovalStep]:
        """Resolve a step and verify it can be approved right now.

        Raises StateError when the pair is terminal, acceptance is incomplete,
        the step has already been decided, or an earlier step on the same
        side is still pending.
        """
        self._ensure_open()
        side, step = self.find_step(step_id)
        if not self.both_accepted:
            raise StateError("Both parties must accept the swap before manager approval")
        if step.status != StepStatus.PENDING:
            raise StateError(f"Approval step {step_id} is already {step.status.value}")
        if side.current_step is not step:
            raise StateError(
                f"Approval step {step_id} is waiting on step "
                f"{side.current_step.approval_order if side.current_step else '?'} of this side"
            )
        return side, step

    def approve_step(self, step_id: str, user_id: int, at: datetime) -> bool:
        """Approve one step and recompute completion.

        Returns True when this approval completed the pair (status approved).
        """
        side, step = self.check_step_actionable(step_id)
        side.mark_step_approved(step, user_id, at)
        self.updated_at = at
        if self.both_accepted and self.fully_approved:
            self._transition(SwapStatus.APPROVED, at)
            return True
        return False

    def reject(
        self,
        reason: str,
        at: datetime,
        *,
        side: SwapSide,
        user_id: int,
        step: ApprovalStep | None = None,
    ) -> None:
        """Permanently reject the pair, recording ``reason`` on ``side``.

        When a manager rejects, ``step`` is the step they were authorized on;
        it is marked rejected. Every other pending step is left as-is and is
        no longer actionable.
        """
        self._ensure_open()
        if step is not None:
            if step.status != StepStatus.PENDING:
                raise StateError(f"Approval step {step.id} is already {step.status.value}")
            step.status = StepStatus.REJECTED
            step.approved_by = user_id
            step.approved_at = at
            step.rejection_reason = reason
        side.rejection_reason = reason
        self._transition(SwapStatus.REJECTED, at)

    def cancel(self, at: datetime) -> None:
        self._ensure_open()
        if self.workflow_state != WorkflowState.PENDING:
            raise StateError("Only swaps awaiting partner acceptance can be cancelled")
        self._transition(SwapStatus.CANCELLED, at)

    def snapshot(self) -> "SwapPair":
        """Independent deep copy, used by stores that hand out detached aggregates."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "requester_id": self.requester_id,
            "reason": self.reason,
            "status": self.status.value,
            "workflow_state": self.workflow_state.value,
            "required_level": self.required_level.value,
            "side_a": self.side_a.to_dict(),
            "side_b": self.side_b.to_dict(),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "resolved_at": _iso(self.resolved_at),
            "version": self.version,
        }
