"""Approval level resolution and per-side chain construction."""

import itertools

import pytest

from dutysync.core.approval_level import approver_name, build_chain, required_level
from dutysync.core.exceptions import NotFoundError, StateError
from dutysync.core.swap_aggregate import APPROVER_ORDER, ApproverType, StepStatus
from dutysync.core.unit_tree import HierarchyLevel, UnitNode, UnitTree

from fakes import UNITS, unit_nodes

W, S, C = HierarchyLevel.WORK_SECTION, HierarchyLevel.SECTION, HierarchyLevel.COMPANY


@pytest.fixture()
def tree():
    return UnitTree(unit_nodes())


@pytest.mark.parametrize("a, b, expected", [
    ("ws1a", "ws1a", W),          # same unit
    ("ws1a", "ws1b", S),          # same section, different work sections
    ("ws1a", "ws2a", C),          # same company, different sections
    ("ws1a", "ws_b1", C),         # different companies
    ("sec1", "ws1a", S),          # person attached directly to the section
])
def test_required_level(tree, a, b, expected):
    assert required_level(tree, UNITS[a], UNITS[b]) == expected


def test_required_level_is_symmetric_for_every_pair(tree):
    for a, b in itertools.combinations(UNITS.values(), 2):
        assert required_level(tree, a, b) == required_level(tree, b, a)


def test_same_unit_always_resolves_to_work_section(tree):
    for unit_id in UNITS.values():
        assert required_level(tree, unit_id, unit_id) == W


def test_unknown_unit_is_not_found(tree):
    with pytest.raises(NotFoundError):
        required_level(tree, UNITS["ws1a"], 9999)
    with pytest.raises(NotFoundError):
        required_level(tree, 9999, 9999)


def test_chain_for_company_level_escalates_through_every_level(tree):
    chain = build_chain(tree, C, UNITS["ws2a"])

    assert [s.approver_type for s in chain] == list(APPROVER_ORDER)
    assert [s.approval_order for s in chain] == [1, 2, 3]
    assert [s.scope_unit_id for s in chain] == [UNITS["ws2a"], UNITS["sec2"], UNITS["alpha"]]
    assert all(s.status == StepStatus.PENDING for s in chain)
    assert len({s.id for s in chain}) == 3


@pytest.mark.parametrize("level, length", [(W, 1), (S, 2), (C, 3)])
def test_chain_is_truncated_at_required_level_and_never_empty(tree, level, length):
    chain = build_chain(tree, level, UNITS["ws1a"])
    assert len(chain) == length
    assert chain[-1].approver_type == ApproverType.for_level(level)


def test_missing_level_falls_to_the_enclosing_unit(tree):
    chain = build_chain(tree, S, UNITS["sec1"])
    assert chain[0].approver_type == ApproverType.WORK_SECTION_MANAGER
    assert [s.scope_unit_id for s in chain] == [UNITS["sec1"], UNITS["sec1"]]

    chain = build_chain(tree, C, UNITS["alpha"])
    assert [s.scope_unit_id for s in chain] == [UNITS["alpha"]] * 3


def test_missing_level_with_no_enclosing_unit_is_unscoped():
    tree = UnitTree([*unit_nodes(), UnitNode(900, None, "Detached WS", W)])
    chain = build_chain(tree, S, 900)
    assert [s.scope_unit_id for s in chain] == [900, None]


def test_unit_level_cannot_head_a_chain(tree):
    with pytest.raises(StateError):
        build_chain(tree, HierarchyLevel.UNIT, UNITS["ws1a"])


def test_chain_for_unknown_unit_is_not_found(tree):
    with pytest.raises(NotFoundError):
        build_chain(tree, W, 9999)


def test_approver_name():
    assert approver_name(W) == "Work Section Manager"
    assert approver_name(C) == "Company Manager"
