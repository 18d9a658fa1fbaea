"""Unit hierarchy: descendants, ancestor chains, nearest common ancestor."""

import pytest

from dutysync.core.exceptions import NotFoundError, ValidationError
from dutysync.core.unit_tree import HierarchyLevel, UnitNode, UnitTree

from fakes import UNITS, unit_nodes


@pytest.fixture()
def tree():
    return UnitTree(unit_nodes())


def test_descendants_include_self_and_all_transitive_children(tree):
    assert tree.descendants_of(UNITS["alpha"]) == {
        UNITS["alpha"], UNITS["sec1"], UNITS["sec2"],
        UNITS["ws1a"], UNITS["ws1b"], UNITS["ws2a"],
    }
    assert tree.descendants_of(UNITS["ws1a"]) == {UNITS["ws1a"]}


def test_descendants_of_root_cover_whole_tree(tree):
    assert tree.descendants_of(UNITS["battalion"]) == set(UNITS.values())


def test_ancestor_chain_runs_from_node_to_root(tree):
    chain = [n.id for n in tree.ancestor_chain(UNITS["ws2a"])]
    assert chain == [UNITS["ws2a"], UNITS["sec2"], UNITS["alpha"], UNITS["battalion"]]


@pytest.mark.parametrize("a, b, expected", [
    ("ws1a", "ws1a", "ws1a"),
    ("ws1a", "ws1b", "sec1"),
    ("ws1a", "ws2a", "alpha"),
    ("ws1a", "ws_b1", "battalion"),
    ("sec1", "ws1b", "sec1"),
])
def test_nearest_common_ancestor(tree, a, b, expected):
    assert tree.nearest_common_ancestor(UNITS[a], UNITS[b]).id == UNITS[expected]
    assert tree.nearest_common_ancestor(UNITS[b], UNITS[a]).id == UNITS[expected]


def test_nearest_common_ancestor_is_none_across_separate_trees():
    forest = UnitTree(unit_nodes() + [
        UnitNode(500, None, "Detached Unit", HierarchyLevel.UNIT),
        UnitNode(501, 500, "Detached WS", HierarchyLevel.WORK_SECTION),
    ])
    assert forest.nearest_common_ancestor(UNITS["ws1a"], 501) is None


def test_unknown_unit_raises_not_found(tree):
    with pytest.raises(NotFoundError):
        tree.nearest_common_ancestor(UNITS["ws1a"], 9999)
    with pytest.raises(NotFoundError):
        tree.descendants_of(9999)


def test_nearest_at_level_walks_up_the_chain(tree):
    assert tree.nearest_at_level(UNITS["ws1b"], HierarchyLevel.SECTION).id == UNITS["sec1"]
    assert tree.nearest_at_level(UNITS["ws1b"], HierarchyLevel.COMPANY).id == UNITS["alpha"]
    # A section has no work section above it.
    assert tree.nearest_at_level(UNITS["sec1"], HierarchyLevel.WORK_SECTION) is None


def test_is_within_is_false_for_unknown_units(tree):
    assert tree.is_within(UNITS["ws1a"], UNITS["sec1"])
    assert not tree.is_within(UNITS["ws2a"], UNITS["sec1"])
    assert not tree.is_within(9999, UNITS["sec1"])
    assert not tree.is_within(UNITS["ws1a"], 9999)


def test_children_of(tree):
    assert {n.id for n in tree.children_of(UNITS["sec1"])} == {UNITS["ws1a"], UNITS["ws1b"]}


def test_rejects_dangling_parent():
    with pytest.raises(ValidationError):
        UnitTree([UnitNode(1, 42, "Orphan", HierarchyLevel.SECTION)])


def test_rejects_cycles():
    with pytest.raises(ValidationError):
        UnitTree([
            UnitNode(1, 2, "A", HierarchyLevel.SECTION),
            UnitNode(2, 1, "B", HierarchyLevel.COMPANY),
        ])


def test_rejects_duplicate_ids():
    with pytest.raises(ValidationError):
        UnitTree([
            UnitNode(1, None, "A", HierarchyLevel.UNIT),
            UnitNode(1, None, "B", HierarchyLevel.UNIT),
        ])
