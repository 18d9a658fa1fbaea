"""
Duty Swap Workflow Engine.

Orchestrates the life of a two-sided duty swap:

    create_swap       -> pending            (both sides unaccepted)
    accept_swap       -> pending_approval   (once both sides accepted)
    approve_step      -> approved           (last step on both sides)
    reject_swap       -> rejected           (any authorized approver / unaccepted party)
    cancel_swap       -> cancelled          (requester, before mutual acceptance)
    delete_swap       -> hard delete        (requester, before mutual acceptance)
    add_recommendation   advisory, never changes status

Design decisions:
    - Public methods never raise domain errors. Each returns an
      OperationResult; a failed operation rolls back the unit of work so no
      partial state is written.
    - Every read-modify-write of a pair runs under a per-pair lock and saves
      with an optimistic version check, retried on conflict. The roster
      exchange runs between the winning save and the commit, so it fires
      exactly once per pair.
    - Collaborators arrive through SwapContext; there is no module-level
      state apart from the process-wide lock registry.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Callable

from dutysync.core.approval_level import approver_name, build_chain, required_level
from dutysync.core.exceptions import (
    DOMAIN_ERRORS,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
)
from dutysync.core.scope_authorizer import RoleAssignment, RoleName, ScopeAuthorizer
from dutysync.core.swap_aggregate import (
    Recommendation,
    RecommendationKind,
    SwapPair,
    SwapSide,
    SwapStatus,
    WorkflowState,
)
from dutysync.services.collaborators import SwapContext
from dutysync.services.swap_locks import SwapLockRegistry, default_lock_registry
from dutysync.utils.errors import code_for

logger = logging.getLogger(__name__)

SWAPPABLE_SLOT_STATUS = "scheduled"



@dataclass
class OperationResult:
    success: bool
    error: str | None = None
    code: str | None = None
    swap_completed: bool | None = None
    data: dict | list | None = None

    @classmethod
    def ok(cls, data=None, swap_completed: bool | None = None) -> "OperationResult":
        return cls(success=True, data=data, swap_completed=swap_completed)

    @classmethod
    def failure(cls, exc: Exception) -> "OperationResult":
        return cls(success=False, error=str(exc), code=code_for(exc))

    def to_dict(self) -> dict:
        body: dict = {"success": self.success}
        if self.error is not None:
            body["error"] = self.error
            body["code"] = self.code
        if self.swap_completed is not None:
            body["swap_completed"] = self.swap_completed
        if self.data is not None:
            body["data"] = self.data
        return body


@dataclass
class _Outcome:
    changed: bool = True
    completed: bool = False
    data: dict | None = None


class SwapWorkflowEngine:
    def __init__(
        self,
        context: SwapContext,
        *,
        locks: SwapLockRegistry | None = None,
        max_conflict_retries: int = 3,
    ) -> None:
        self.ctx = context
        self.locks = locks if locks is not None else default_lock_registry
        self.max_conflict_retries = max_conflict_retries

    # ═════════════════════════════════════════════════════════════════════
    # Public surface: structured results, never domain exceptions
    # ═════════════════════════════════════════════════════════════════════

    def create_swap(
        self,
        personnel_a_id: int,
        slot_a_id: int,
        personnel_b_id: int,
        slot_b_id: int,
        requester_id: int,
        reason: str,
    ) -> OperationResult:
        return self._run(
            "create_swap", self._create_swap,
            personnel_a_id, slot_a_id, personnel_b_id, slot_b_id, requester_id, reason,
        )

    def accept_swap(self, swap_pair_id: str, acting_user_id: int) -> OperationResult:
        return self._run("accept_swap", self._accept_swap, swap_pair_id, acting_user_id)

    def approve_step(self, approval_step_id: str, acting_user_id: int) -> OperationResult:
        return self._run("approve_step", self._approve_step, approval_step_id, acting_user_id)

    def reject_swap(self, swap_pair_id: str, acting_user_id: int, reason: str) -> OperationResult:
        return self._run("reject_swap", self._reject_swap, swap_pair_id, acting_user_id, reason)

    def cancel_swap(self, swap_pair_id: str, acting_user_id: int) -> OperationResult:
        return self._run("cancel_swap", self._cancel_swap, swap_pair_id, acting_user_id)

    def delete_swap(self, swap_pair_id: str, acting_user_id: int) -> OperationResult:
        return self._run("delete_swap", self._delete_swap, swap_pair_id, acting_user_id)

    def add_recommendation(
        self,
        swap_pair_id: str,
        manager_id: int,
        recommendation: str,
        comment: str | None = None,
    ) -> OperationResult:
        return self._run(
            "add_recommendation", self._add_recommendation,
            swap_pair_id, manager_id, recommendation, comment,
        )

    def get_swap(self, swap_pair_id: str, acting_user_id: int) -> OperationResult:
        return self._run("get_swap", self._get_swap, swap_pair_id, acting_user_id)

    def list_swaps(self, acting_user_id: int, status: str | None = None) -> OperationResult:
        return self._run("list_swaps", self._list_swaps, acting_user_id, status)

    def pending_approvals_for(self, acting_user_id: int) -> OperationResult:
        return self._run("pending_approvals_for", self._pending_approvals_for, acting_user_id)

    def preview_approval_level(self, personnel_a_id: int, personnel_b_id: int) -> OperationResult:
        return self._run(
            "preview_approval_level", self._preview_approval_level, personnel_a_id, personnel_b_id,
        )

    # ═════════════════════════════════════════════════════════════════════
    # Plumbing
    # ═════════════════════════════════════════════════════════════════════

    def _run(self, operation: str, fn: Callable, *args) -> OperationResult:
        try:
            return fn(*args)
        except DOMAIN_ERRORS as exc:
            self.ctx.swaps.rollback()
            level = logging.WARNING if isinstance(exc, AuthorizationError) else logging.INFO
            logger.log(
                level, "%s failed: %s", operation, exc,
                extra={"event_type": f"swap.{operation}.failed"},
            )
            return OperationResult.failure(exc)
        except Exception:
            self.ctx.swaps.rollback()
            logger.exception("Unexpected error during %s", operation)
            raise

    def _load(self, swap_pair_id: str) -> SwapPair:
        pair = self.ctx.swaps.get(swap_pair_id)
        if pair is None:
            raise NotFoundError("SwapPair", swap_pair_id)
        return pair

    def _mutate(
        self,
        swap_pair_id: str,
        mutation: Callable[[SwapPair], _Outcome],
        after_save: Callable[[SwapPair, _Outcome], None] | None = None,
    ) -> tuple[SwapPair, _Outcome]:
        """Locked load → mutate → compare-and-set save → commit, with retry."""
        attempt = 0
        while True:
            with self.locks.hold(swap_pair_id):
                pair = self._load(swap_pair_id)
                expected_version = pair.version
                outcome = mutation(pair)
                if not outcome.changed:
                    return pair, outcome
                try:
                    self.ctx.swaps.save(pair, expected_version)
                    if after_save is not None:
                        after_save(pair, outcome)
                    self.ctx.swaps.commit()
                    return pair, outcome
                except ConflictError:
                    self.ctx.swaps.rollback()
                    attempt += 1
                    if attempt > self.max_conflict_retries:
                        raise
                    logger.warning(
                        "Version conflict on swap %s, retry %d/%d",
                        swap_pair_id, attempt, self.max_conflict_retries,
                        extra={"swap_pair_id": swap_pair_id, "event_type": "swap.conflict"},
                    )

    def _acting_identity(self, user_id: int) -> tuple[list[RoleAssignment], int | None]:
        return self.ctx.roles.roles_for_user(user_id), self.ctx.directory.personnel_id_for_user(user_id)

    def _authorizer(self) -> ScopeAuthorizer:
        return ScopeAuthorizer(self.ctx.directory.unit_tree())

    def _require_requester(self, requester_id: int, *people) -> None:
        """A party to the swap, or a manager whose scope covers one of the two people."""
        roles, personnel_id = self._acting_identity(requester_id)
        if personnel_id is not None and personnel_id in {person.id for person in people}:
            return
        authorizer = self._authorizer()
        if any(authorizer.can_file_for(role, person.unit_id) for role in roles for person in people):
            return
        raise AuthorizationError(
            f"User {requester_id} may only request swaps for themselves or for personnel in their scope"
        )

    @staticmethod
    def _clean_reason(reason: str | None, field_name: str = "reason") -> str:
        cleaned = (reason or "").strip()
        if not cleaned:
            raise ValidationError(f"A {field_name} is required", details={field_name: "required"})
        return cleaned

    # ═════════════════════════════════════════════════════════════════════
    # Mutations
    # ═════════════════════════════════════════════════════════════════════

    def _create_swap(self, personnel_a_id, slot_a_id, personnel_b_id, slot_b_id, requester_id, reason):
        reason = self._clean_reason(reason)
        if personnel_a_id == personnel_b_id:
            raise ValidationError("Cannot swap a duty with yourself",
                                  details={"personnel_b_id": "same as personnel_a_id"})
        if slot_a_id == slot_b_id:
            raise ValidationError("The two duty slots must be different",
                                  details={"slot_b_id": "same as slot_a_id"})

        directory, roster = self.ctx.directory, self.ctx.roster
        if not directory.user_exists(requester_id):
            raise NotFoundError("User", requester_id)
        person_a = directory.personnel_by_id(personnel_a_id)
        if person_a is None:
            raise NotFoundError("Personnel", personnel_a_id)
        person_b = directory.personnel_by_id(personnel_b_id)
        if person_b is None:
            raise NotFoundError("Personnel", personnel_b_id)
        self._require_requester(requester_id, person_a, person_b)

        # Hold both slot keys (sorted) so two requests cannot claim the same slot.
        slot_keys = sorted({f"slot:{slot_a_id}", f"slot:{slot_b_id}"})
        with self.locks.hold(slot_keys[0]), self.locks.hold(slot_keys[1]):
            slot_a = roster.duty_slot_by_id(slot_a_id)
            if slot_a is None:
                raise NotFoundError("DutySlot", slot_a_id)
            slot_b = roster.duty_slot_by_id(slot_b_id)
            if slot_b is None:
                raise NotFoundError("DutySlot", slot_b_id)

            for slot, person in ((slot_a, person_a), (slot_b, person_b)):
                if slot.personnel_id != person.id:
                    raise ValidationError(
                        f"Duty slot {slot.id} is not assigned to personnel {person.id}",
                        details={"slot_id": slot.id, "personnel_id": person.id},
                    )
                if slot.status != SWAPPABLE_SLOT_STATUS:
                    raise ValidationError(
                        f"Duty slot {slot.id} is {slot.status} and cannot be swapped",
                        details={"slot_id": slot.id, "status": slot.status},
                    )
                open_pair = self.ctx.swaps.open_pair_for_slot(slot.id)
                if open_pair is not None:
                    raise ValidationError(
                        f"Duty slot {slot.id} already belongs to open swap {open_pair}",
                        details={"slot_id": slot.id, "swap_pair_id": open_pair},
                    )

            checker = self.ctx.qualifications
            if not checker.meets_all_duty_requirements(person_a.id, slot_b.duty_type_id):
                raise ValidationError(
                    f"Personnel {person_a.id} is not qualified for duty type {slot_b.duty_type_id}",
                    details={"personnel_id": person_a.id, "duty_type_id": slot_b.duty_type_id},
                )
            if not checker.meets_all_duty_requirements(person_b.id, slot_a.duty_type_id):
                raise ValidationError(
                    f"Personnel {person_b.id} is not qualified for duty type {slot_a.duty_type_id}",
                    details={"personnel_id": person_b.id, "duty_type_id": slot_a.duty_type_id},
                )

            tree = directory.unit_tree()
            try:
                level = required_level(tree, person_a.unit_id, person_b.unit_id)
            except NotFoundError as exc:
                raise ValidationError(
                    f"Cannot resolve the required approval level: {exc}",
                    details={"unit_a": person_a.unit_id, "unit_b": person_b.unit_id},
                ) from exc

            now = self.ctx.clock()
            pair = SwapPair(
                id=str(uuid.uuid4()),
                requester_id=requester_id,
                reason=reason,
                required_level=level,
                side_a=SwapSide(person_a.id, slot_a.id, build_chain(tree, level, person_a.unit_id)),
                side_b=SwapSide(person_b.id, slot_b.id, build_chain(tree, level, person_b.unit_id)),
                created_at=now,
                updated_at=now,
            )
            self.ctx.swaps.add(pair)
            self.ctx.swaps.commit()

        logger.info(
            "Swap %s created: personnel %s <-> %s, level=%s",
            pair.id, person_a.id, person_b.id, level.value,
            extra={"swap_pair_id": pair.id, "user_id": requester_id, "event_type": "swap.created"},
        )
        return OperationResult.ok(data=pair.to_dict())

    def _accept_swap(self, swap_pair_id: str, acting_user_id: int):
        personnel_id = self.ctx.directory.personnel_id_for_user(acting_user_id)

        def mutation(pair: SwapPair) -> _Outcome:
            if pair.is_terminal:
                raise StateError(f"Swap {pair.id} is already {pair.status.value}")
            if personnel_id is None or pair.side_of(personnel_id) is None:
                raise AuthorizationError("Only the two people in a swap can accept it")
            changed = pair.accept(personnel_id, acting_user_id, self.ctx.clock())
            return _Outcome(changed=changed)

        pair, outcome = self._mutate(swap_pair_id, mutation)
        if outcome.changed:
            logger.info(
                "Swap %s accepted by personnel %s (state=%s)",
                pair.id, personnel_id, pair.workflow_state.value,
                extra={"swap_pair_id": pair.id, "user_id": acting_user_id, "event_type": "swap.accepted"},
            )
        return OperationResult.ok(data=pair.to_dict())

    def _approve_step(self, approval_step_id: str, acting_user_id: int):
        swap_pair_id = self.ctx.swaps.pair_id_for_step(approval_step_id)
        if swap_pair_id is None:
            raise NotFoundError("ApprovalStep", approval_step_id)
        roles, personnel_id = self._acting_identity(acting_user_id)
        authorizer = self._authorizer()

        def mutation(pair: SwapPair) -> _Outcome:
            _side, step = pair.check_step_actionable(approval_step_id)
            if authorizer.is_party(pair, personnel_id):
                raise AuthorizationError("Self-approval is not permitted")
            if not authorizer.can_act_on(roles, pair, step, personnel_id):
                raise AuthorizationError(
                    f"User {acting_user_id} is not authorized to act on "
                    f"{step.approver_type.value} step {step.id}"
                )
            completed = pair.approve_step(approval_step_id, acting_user_id, self.ctx.clock())
            return _Outcome(completed=completed)

        def after_save(pair: SwapPair, outcome: _Outcome) -> None:
            if outcome.completed:
                self._exchange_slots(pair)

        pair, outcome = self._mutate(swap_pair_id, mutation, after_save)
        logger.info(
            "Swap %s step %s approved by user %s",
            pair.id, approval_step_id, acting_user_id,
            extra={"swap_pair_id": pair.id, "user_id": acting_user_id, "event_type": "swap.step_approved"},
        )
        if outcome.completed:
            logger.info(
                "Swap %s completed: slots %s and %s exchanged",
                pair.id, pair.side_a.duty_slot_id, pair.side_b.duty_slot_id,
                extra={"swap_pair_id": pair.id, "event_type": "swap.completed"},
            )
        return OperationResult.ok(data=pair.to_dict(), swap_completed=outcome.completed)

    def _exchange_slots(self, pair: SwapPair) -> None:
        roster = self.ctx.roster
        for side in pair.sides:
            slot = roster.duty_slot_by_id(side.duty_slot_id)
            if slot is None or slot.personnel_id != side.personnel_id:
                raise StateError(
                    f"Duty slot {side.duty_slot_id} is no longer assigned to personnel "
                    f"{side.personnel_id}; the swap cannot be applied"
                )
        roster.exchange_slot_assignments(
            pair.side_a.duty_slot_id,
            pair.side_b.duty_slot_id,
            swap_pair_id=pair.id,
            at=pair.resolved_at or self.ctx.clock(),
        )

    def _reject_swap(self, swap_pair_id: str, acting_user_id: int, reason: str):
        reason = self._clean_reason(reason)
        roles, personnel_id = self._acting_identity(acting_user_id)
        authorizer = self._authorizer()

        def mutation(pair: SwapPair) -> _Outcome:
            if pair.is_terminal:
                raise StateError(f"Swap {pair.id} is already {pair.status.value}")
            now = self.ctx.clock()
            eligible = authorizer.eligible_steps(roles, pair, personnel_id)
            if eligible:
                actionable = [(side, step) for side, step in eligible if side.current_step is step]
                side, step = (actionable or eligible)[0]
                pair.reject(reason, now, side=side, step=step, user_id=acting_user_id)
                return _Outcome()
            own_side = pair.side_of(personnel_id)
            if own_side is not None and not own_side.partner_accepted:
                pair.reject(reason, now, side=own_side, user_id=acting_user_id)
                return _Outcome()
            raise AuthorizationError(
                f"User {acting_user_id} may not reject swap {pair.id}: not an approver on any "
                "pending step and not a party awaiting acceptance"
            )

        pair, _ = self._mutate(swap_pair_id, mutation)
        logger.info(
            "Swap %s rejected by user %s",
            pair.id, acting_user_id,
            extra={"swap_pair_id": pair.id, "user_id": acting_user_id, "event_type": "swap.rejected"},
        )
        return OperationResult.ok(data=pair.to_dict())

    def _cancel_swap(self, swap_pair_id: str, acting_user_id: int):
        def mutation(pair: SwapPair) -> _Outcome:
            if pair.requester_id != acting_user_id:
                raise AuthorizationError("Only the requester can cancel a swap request")
            pair.cancel(self.ctx.clock())
            return _Outcome()

        pair, _ = self._mutate(swap_pair_id, mutation)
        logger.info(
            "Swap %s cancelled by requester", pair.id,
            extra={"swap_pair_id": pair.id, "user_id": acting_user_id, "event_type": "swap.cancelled"},
        )
        return OperationResult.ok(data=pair.to_dict())

    def _delete_swap(self, swap_pair_id: str, acting_user_id: int):
        with self.locks.hold(swap_pair_id):
            pair = self._load(swap_pair_id)
            if pair.requester_id != acting_user_id:
                raise AuthorizationError("Only the requester can delete a swap request")
            if pair.workflow_state != WorkflowState.PENDING:
                raise StateError(
                    f"Swap {pair.id} is {pair.workflow_state.value}; only pending requests can be deleted"
                )
            self.ctx.swaps.delete(pair.id)
            self.ctx.swaps.commit()
        logger.info(
            "Swap %s deleted by requester", swap_pair_id,
            extra={"swap_pair_id": swap_pair_id, "user_id": acting_user_id, "event_type": "swap.deleted"},
        )
        return OperationResult.ok(data={"id": swap_pair_id, "deleted": True})

    def _add_recommendation(self, swap_pair_id, manager_id, recommendation, comment):
        try:
            kind = RecommendationKind(recommendation)
        except ValueError as exc:
            raise ValidationError(
                f"recommendation must be one of {[k.value for k in RecommendationKind]}",
                details={"recommendation": recommendation},
            ) from exc
        roles, personnel_id = self._acting_identity(manager_id)
        authorizer = self._authorizer()

        with self.locks.hold(swap_pair_id):
            pair = self._load(swap_pair_id)
            if pair.is_terminal:
                raise StateError(f"Swap {pair.id} is already {pair.status.value}")
            if not authorizer.can_recommend_any(roles, pair, personnel_id):
                raise AuthorizationError(
                    f"User {manager_id} may not recommend on swap {pair.id}: recommendations come "
                    "from managers with visibility who are not in the approval chain"
                )
            existing = self.ctx.swaps.recommendations_for(pair.id)
            if any(rec.manager_id == manager_id for rec in existing):
                raise ValidationError(
                    f"User {manager_id} has already recommended on swap {pair.id}",
                    details={"manager_id": manager_id},
                )
            rec = Recommendation(
                id=str(uuid.uuid4()),
                swap_pair_id=pair.id,
                manager_id=manager_id,
                recommendation=kind,
                comment=(comment or "").strip() or None,
                created_at=self.ctx.clock(),
            )
            self.ctx.swaps.add_recommendation(rec)
            self.ctx.swaps.commit()

        logger.info(
            "Swap %s: %s from user %s", pair.id, kind.value, manager_id,
            extra={"swap_pair_id": pair.id, "user_id": manager_id, "event_type": "swap.recommended"},
        )
        return OperationResult.ok(data=rec.to_dict())

    # ═════════════════════════════════════════════════════════════════════
    # Reads
    # ═════════════════════════════════════════════════════════════════════

    def _visible(
        self,
        pair: SwapPair,
        user_id: int,
        roles: list[RoleAssignment],
        personnel_id: int | None,
        authorizer: ScopeAuthorizer,
    ) -> bool:
        if pair.requester_id == user_id or authorizer.is_party(pair, personnel_id):
            return True
        if any(role.role == RoleName.APP_ADMIN for role in roles):
            return True
        if any(authorizer.can_act(role, step) for side in pair.sides for step in side.approvals for role in roles):
            return True
        return any(authorizer.can_recommend(role, pair) for role in roles)

    def _view(self, pair: SwapPair, user_id: int, roles, personnel_id, authorizer) -> dict:
        data = pair.to_dict()
        data["approver_name"] = approver_name(pair.required_level)
        data["recommendations"] = [r.to_dict() for r in self.ctx.swaps.recommendations_for(pair.id)]
        data["actionable_step_ids"] = [
            step.id for _side, step in pair.actionable_steps()
            if authorizer.can_act_on(roles, pair, step, personnel_id)
        ]
        data["can_recommend"] = (
            not pair.is_terminal and authorizer.can_recommend_any(roles, pair, personnel_id)
        )
        return data

    def _get_swap(self, swap_pair_id: str, acting_user_id: int):
        pair = self._load(swap_pair_id)
        roles, personnel_id = self._acting_identity(acting_user_id)
        authorizer = self._authorizer()
        if not self._visible(pair, acting_user_id, roles, personnel_id, authorizer):
            # Same answer as a missing pair: do not confirm it exists.
            raise NotFoundError("SwapPair", swap_pair_id)
        return OperationResult.ok(data=self._view(pair, acting_user_id, roles, personnel_id, authorizer))

    def _list_swaps(self, acting_user_id: int, status: str | None):
        try:
            wanted = SwapStatus(status) if status else None
        except ValueError as exc:
            raise ValidationError(
                f"status must be one of {[s.value for s in SwapStatus]}",
                details={"status": status},
            ) from exc
        roles, personnel_id = self._acting_identity(acting_user_id)
        authorizer = self._authorizer()
        pairs = [
            pair for pair in self.ctx.swaps.list_pairs(wanted)
            if self._visible(pair, acting_user_id, roles, personnel_id, authorizer)
        ]
        pairs.sort(key=lambda p: p.created_at, reverse=True)
        return OperationResult.ok(
            data=[self._view(p, acting_user_id, roles, personnel_id, authorizer) for p in pairs]
        )

    def _pending_approvals_for(self, acting_user_id: int):
        roles, personnel_id = self._acting_identity(acting_user_id)
        authorizer = self._authorizer()
        items = []
        for pair in self.ctx.swaps.list_pairs(SwapStatus.PENDING):
            for side, step in pair.actionable_steps():
                if authorizer.can_act_on(roles, pair, step, personnel_id):
                    items.append({
                        "swap_pair_id": pair.id,
                        "personnel_id": side.personnel_id,
                        "duty_slot_id": side.duty_slot_id,
                        "required_level": pair.required_level.value,
                        "step": step.to_dict(),
                    })
        return OperationResult.ok(data=items)

    def _preview_approval_level(self, personnel_a_id: int, personnel_b_id: int):
        if personnel_a_id == personnel_b_id:
            raise ValidationError("Cannot swap a duty with yourself")
        person_a = self.ctx.directory.personnel_by_id(personnel_a_id)
        if person_a is None:
            raise NotFoundError("Personnel", personnel_a_id)
        person_b = self.ctx.directory.personnel_by_id(personnel_b_id)
        if person_b is None:
            raise NotFoundError("Personnel", personnel_b_id)
        level = required_level(self.ctx.directory.unit_tree(), person_a.unit_id, person_b.unit_id)
        return OperationResult.ok(data={
            "required_level": level.value,
            "approver_name": approver_name(level),
            "steps_per_side": level.rank + 1,
        })
