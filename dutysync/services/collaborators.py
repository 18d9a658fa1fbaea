"""
Collaborator contracts consumed by the swap workflow engine.

The engine never touches storage directly. Every call receives a
SwapContext bundling the five collaborators below; the Flask app wires the
SQLAlchemy implementations (``sql_collaborators``), unit tests wire
in-memory fakes.

    Directory            personnel, users and the unit hierarchy   (read)
    Roster               duty slots; slot exchange on completion   (read/write)
    QualificationChecker duty-type requirements                    (read)
    RoleDirectory        (role, scope unit) pairs per user         (read)
    SwapRepository       swap aggregates and recommendations       (read/write)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Protocol

from dutysync.core.scope_authorizer import RoleAssignment
from dutysync.core.swap_aggregate import Recommendation, SwapPair, SwapStatus
from dutysync.core.unit_tree import UnitTree


@dataclass(frozen=True)
class PersonnelRecord:
    id: int
    unit_id: int
    display_name: str = ""


@dataclass(frozen=True)
class DutySlotRecord:
    id: int
    duty_type_id: int
    personnel_id: int | None
    date_assigned: date | None = None
    status: str = "scheduled"


class Directory(Protocol):
    def personnel_by_id(self, personnel_id: int) -> PersonnelRecord | None: ...

    def personnel_id_for_user(self, user_id: int) -> int | None: ...

    def user_exists(self, user_id: int) -> bool: ...

    def unit_tree(self) -> UnitTree: ...

    def descendant_unit_ids(self, unit_id: int) -> frozenset[int]: ...


class Roster(Protocol):
    def duty_slot_by_id(self, slot_id: int) -> DutySlotRecord | None: ...

    def exchange_slot_assignments(
        self, slot_id_a: int, slot_id_b: int, *, swap_pair_id: str, at: datetime,
    ) -> None: ...


class QualificationChecker(Protocol):
    def meets_all_duty_requirements(self, personnel_id: int, duty_type_id: int) -> bool: ...


class RoleDirectory(Protocol):
    def roles_for_user(self, user_id: int) -> list[RoleAssignment]: ...


class SwapRepository(Protocol):
    def get(self, swap_pair_id: str) -> SwapPair | None: ...

    def pair_id_for_step(self, step_id: str) -> str | None: ...

    def open_pair_for_slot(self, slot_id: int) -> str | None: ...

    def list_pairs(self, status: SwapStatus | None = None) -> list[SwapPair]: ...

    def add(self, pair: SwapPair) -> None: ...

    def save(self, pair: SwapPair, expected_version: int) -> None: ...

    def delete(self, swap_pair_id: str) -> None: ...

    def add_recommendation(self, recommendation: Recommendation) -> None: ...

    def recommendations_for(self, swap_pair_id: str) -> list[Recommendation]: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SwapContext:
    """Everything one engine call may read or write."""

    directory: Directory
    roster: Roster
    qualifications: QualificationChecker
    roles: RoleDirectory
    swaps: SwapRepository
    clock: Callable[[], datetime] = field(default=utcnow)
