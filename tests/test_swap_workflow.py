"""
Tests: duty swap workflow engine over in-memory collaborators.

Covers creation checks, partner acceptance, ordered scope-aware approval,
completion with the roster exchange, rejection, cancel/delete, manager
recommendations, read models and optimistic-conflict retries.

The organization is the one drawn in tests/fakes.py: alice and bob share
WS 1A, carol is in WS 1B (same section), dave in WS 2A (same company,
other section), erin in Bravo Company and lacks the Weapons qualification.
"""

import pytest

from dutysync.utils.errors import E

from fakes import GUARD, PERSONNEL, SLOTS, UNITS, USERS, accept_both, build_engine, create


@pytest.fixture()
def env():
    return build_engine()


@pytest.fixture()
def engine(env):
    return env[0]


def _steps(data, side):
    return data[f"side_{side}"]["approvals"]


# ── Helpers ──────────────────────────────────────────────────────────────────


def _approve(engine, step_id, who):
    return engine.approve_step(step_id, USERS[who])


def _pair(engine, pair_id, who="app_admin"):
    res = engine.get_swap(pair_id, USERS[who])
    assert res.success, res.error
    return res.data


# ── Create ───────────────────────────────────────────────────────────────────


def test_create_swap_starts_pending_with_chains(engine):
    res = create(engine, "alice", "bob")

    assert res.success
    data = res.data
    assert data["status"] == "pending"
    assert data["workflow_state"] == "pending"
    assert data["required_level"] == "work_section"
    assert data["requester_id"] == USERS["alice"]
    for side in ("a", "b"):
        steps = _steps(data, side)
        assert [s["approver_type"] for s in steps] == ["work_section_manager"]
        assert steps[0]["status"] == "pending"
        assert data[f"side_{side}"]["partner_accepted"] is False


def test_create_swap_across_sections_builds_company_chain(engine):
    res = create(engine, "alice", "dave")

    assert res.data["required_level"] == "company"
    assert [s["approver_type"] for s in _steps(res.data, "a")] == [
        "work_section_manager", "section_manager", "company_manager",
    ]
    assert len(_steps(res.data, "b")) == 3


def test_requester_need_not_be_a_party(engine):
    res = create(engine, "alice", "bob", requester="wsm_1a")
    assert res.success
    assert res.data["requester_id"] == USERS["wsm_1a"]


def test_outsider_cannot_request_a_swap_between_others(env):
    engine, _world, repo = env
    res = create(engine, "alice", "bob", requester="erin")

    assert not res.success
    assert res.code == E.FORBIDDEN
    assert repo.pairs == {}
    # neither slot is held by an open request
    assert create(engine, "alice", "bob").success


@pytest.mark.parametrize("requester", ["carol", "wsm_1a", "wsm_1b", "sm_1", "cm_alpha", "unit_mgr", "app_admin"])
def test_party_or_manager_in_scope_may_request(engine, requester):
    assert create(engine, "alice", "carol", requester=requester).success


@pytest.mark.parametrize("requester", ["bob", "wsm_2a", "sm_2", "sm_bravo", "cm_bravo"])
def test_requester_outside_the_swap_and_its_scope_is_forbidden(engine, requester):
    assert create(engine, "alice", "carol", requester=requester).code == E.FORBIDDEN


@pytest.mark.parametrize("reason", ["", "   "])
def test_create_requires_reason(engine, reason):
    res = engine.create_swap(PERSONNEL["alice"], SLOTS["alice"], PERSONNEL["bob"], SLOTS["bob"],
                             requester_id=USERS["alice"], reason=reason)
    assert not res.success
    assert res.code == E.VALIDATION_INVALID


def test_create_rejects_same_person(engine):
    res = engine.create_swap(PERSONNEL["alice"], SLOTS["alice"], PERSONNEL["alice"], SLOTS["bob"],
                             requester_id=USERS["alice"], reason="x")
    assert res.code == E.VALIDATION_INVALID


def test_create_rejects_slot_not_held_by_person(engine):
    res = engine.create_swap(PERSONNEL["alice"], SLOTS["bob"], PERSONNEL["bob"], SLOTS["alice"],
                             requester_id=USERS["alice"], reason="x")
    assert res.code == E.VALIDATION_INVALID
    assert "not assigned" in res.error


def test_create_rejects_unqualified_partner(env):
    engine, _world, repo = env
    res = create(engine, "alice", "erin")

    assert res.code == E.VALIDATION_INVALID
    assert "not qualified" in res.error
    assert repo.pairs == {}


def test_create_rejects_slot_already_in_open_swap(engine):
    assert create(engine, "alice", "bob").success
    res = create(engine, "alice", "carol")
    assert res.code == E.VALIDATION_INVALID
    assert "open swap" in res.error


def test_create_rejects_slot_that_is_not_scheduled(env):
    engine, world, _repo = env
    world.add_slot(SLOTS["bob"], 1, PERSONNEL["bob"], status="completed")
    res = create(engine, "alice", "bob")
    assert res.code == E.VALIDATION_INVALID


def test_create_unknown_requester_or_personnel_is_not_found(engine):
    assert create(engine, "alice", "bob", requester="nobody").code == E.NOT_FOUND
    res = engine.create_swap(PERSONNEL["alice"], SLOTS["alice"], 777, SLOTS["bob"],
                             requester_id=USERS["alice"], reason="x")
    assert res.code == E.NOT_FOUND
    res = engine.create_swap(PERSONNEL["alice"], 9999, PERSONNEL["bob"], SLOTS["bob"],
                             requester_id=USERS["alice"], reason="x")
    assert res.code == E.NOT_FOUND


# ── Accept ───────────────────────────────────────────────────────────────────


def test_accept_by_both_parties_opens_approvals(engine):
    pair_id = create(engine).data["id"]

    first = engine.accept_swap(pair_id, USERS["alice"])
    assert first.success
    assert first.data["workflow_state"] == "pending"
    second = engine.accept_swap(pair_id, USERS["bob"])
    assert second.data["workflow_state"] == "pending_approval"
    assert second.data["side_b"]["partner_accepted_by"] == USERS["bob"]


def test_accept_is_idempotent(env):
    engine, _world, repo = env
    pair_id = create(engine).data["id"]
    first = engine.accept_swap(pair_id, USERS["alice"])
    commits = repo.commits

    again = engine.accept_swap(pair_id, USERS["alice"])

    assert again.success
    assert again.data == first.data
    assert repo.commits == commits


def test_accept_by_outsider_is_forbidden(engine):
    pair_id = create(engine).data["id"]
    assert engine.accept_swap(pair_id, USERS["carol"]).code == E.FORBIDDEN
    assert engine.accept_swap(pair_id, USERS["wsm_1a"]).code == E.FORBIDDEN
    assert engine.accept_swap("missing", USERS["alice"]).code == E.NOT_FOUND


# ── Approve ──────────────────────────────────────────────────────────────────


def test_same_work_section_swap_completes_and_exchanges_slots(env):
    engine, world, _repo = env
    res = create(engine, "alice", "bob")
    pair_id = accept_both(engine, res, "alice", "bob")
    step_a = _steps(res.data, "a")[0]["id"]
    step_b = _steps(res.data, "b")[0]["id"]

    first = _approve(engine, step_a, "wsm_1a")
    assert first.success and first.swap_completed is False
    assert world.exchanges == []

    last = _approve(engine, step_b, "wsm_1a")
    assert last.success and last.swap_completed is True
    assert last.data["status"] == "approved"
    assert last.data["resolved_at"] is not None
    assert world.slots[SLOTS["alice"]].personnel_id == PERSONNEL["bob"]
    assert world.slots[SLOTS["bob"]].personnel_id == PERSONNEL["alice"]
    assert world.exchanges == [(pair_id, SLOTS["alice"], SLOTS["bob"])]


def test_section_swap_needs_four_ordered_approvals(env):
    engine, world, _repo = env
    res = create(engine, "alice", "carol")
    pair_id = accept_both(engine, res, "alice", "carol")
    assert res.data["required_level"] == "section"
    ws_a, sm_a = [s["id"] for s in _steps(res.data, "a")]
    ws_b, sm_b = [s["id"] for s in _steps(res.data, "b")]

    # Section step is not actionable while the work section step is pending.
    assert _approve(engine, sm_a, "sm_1").code == E.CONFLICT_STATE

    for step_id, who in ((ws_a, "wsm_1a"), (ws_b, "wsm_1b"), (sm_a, "sm_1")):
        out = _approve(engine, step_id, who)
        assert out.success and out.swap_completed is False
        assert out.data["workflow_state"] == "pending_approval"

    final = _approve(engine, sm_b, "sm_1")
    assert final.swap_completed is True
    assert _pair(engine, pair_id)["status"] == "approved"
    assert len(world.exchanges) == 1


def test_person_attached_to_a_section_is_approved_from_inside_it(env):
    engine, world, _repo = env
    world.add_person(6, UNITS["sec1"], user_id=16, quals=["Weapons"])
    world.add_slot(1006, GUARD, 6)
    res = engine.create_swap(6, 1006, PERSONNEL["alice"], SLOTS["alice"], requester_id=16, reason="exam")
    assert res.success, res.error
    assert [s["scope_unit_id"] for s in _steps(res.data, "a")] == [UNITS["sec1"], UNITS["sec1"]]
    pair_id = res.data["id"]
    assert engine.accept_swap(pair_id, 16).success
    assert engine.accept_swap(pair_id, USERS["alice"]).success
    ws_step = _steps(res.data, "a")[0]["id"]

    assert _approve(engine, ws_step, "wsm_2a").code == E.FORBIDDEN
    assert _approve(engine, ws_step, "wsm_b1").code == E.FORBIDDEN
    assert _approve(engine, ws_step, "wsm_1b").success


def test_manager_outside_scope_is_forbidden_without_side_effects(env):
    engine, _world, repo = env
    res = create(engine, "alice", "carol")
    pair_id = accept_both(engine, res, "alice", "carol")
    before = repo.pairs[pair_id].version

    out = _approve(engine, _steps(res.data, "a")[0]["id"], "wsm_1b")

    assert not out.success
    assert out.code == E.FORBIDDEN
    assert repo.pairs[pair_id].version == before
    assert _pair(engine, pair_id)["side_a"]["approvals"][0]["status"] == "pending"


def test_higher_manager_cannot_take_a_lower_step(engine):
    res = create(engine, "alice", "carol")
    accept_both(engine, res, "alice", "carol")
    step = _steps(res.data, "a")[0]["id"]
    for who in ("sm_1", "cm_alpha", "unit_mgr", "app_admin"):
        assert _approve(engine, step, who).code == E.FORBIDDEN


def test_party_cannot_approve_own_swap(env):
    engine, world, _repo = env
    world.add_role(USERS["alice"], "Work Section Manager", world.personnel[PERSONNEL["alice"]].unit_id)
    res = create(engine, "alice", "bob")
    accept_both(engine, res)

    out = _approve(engine, _steps(res.data, "b")[0]["id"], "alice")
    assert out.code == E.FORBIDDEN
    assert "Self-approval" in out.error


def test_approval_before_mutual_acceptance_is_a_state_error(engine):
    res = create(engine)
    engine.accept_swap(res.data["id"], USERS["alice"])
    out = _approve(engine, _steps(res.data, "a")[0]["id"], "wsm_1a")
    assert out.code == E.CONFLICT_STATE


def test_approving_same_step_twice_is_a_state_error(engine):
    res = create(engine, "alice", "carol")
    accept_both(engine, res, "alice", "carol")
    step = _steps(res.data, "a")[0]["id"]
    assert _approve(engine, step, "wsm_1a").success
    assert _approve(engine, step, "wsm_1a").code == E.CONFLICT_STATE


def test_unknown_step_is_not_found(engine):
    assert _approve(engine, "no-such-step", "wsm_1a").code == E.NOT_FOUND


def test_completion_fails_closed_when_slot_changed_hands(env):
    engine, world, _repo = env
    res = create(engine)
    pair_id = accept_both(engine, res)
    assert _approve(engine, _steps(res.data, "a")[0]["id"], "wsm_1a").success
    world.add_slot(SLOTS["bob"], 1, PERSONNEL["dave"])

    out = _approve(engine, _steps(res.data, "b")[0]["id"], "wsm_1a")

    assert out.code == E.CONFLICT_STATE
    data = _pair(engine, pair_id)
    assert data["status"] == "pending"
    assert data["side_b"]["approvals"][0]["status"] == "pending"
    assert world.exchanges == []


def test_roster_failure_rolls_back_final_approval(env):
    engine, world, repo = env
    res = create(engine)
    pair_id = accept_both(engine, res)
    assert _approve(engine, _steps(res.data, "a")[0]["id"], "wsm_1a").success
    world.fail_exchange = True

    with pytest.raises(RuntimeError):
        _approve(engine, _steps(res.data, "b")[0]["id"], "wsm_1a")

    stored = repo.pairs[pair_id]
    assert stored.status.value == "pending"
    assert stored.side_b.approvals[0].status.value == "pending"
    assert world.slots[SLOTS["alice"]].personnel_id == PERSONNEL["alice"]


def test_version_conflict_is_retried(env):
    engine, _world, repo = env
    res = create(engine, "alice", "carol")
    accept_both(engine, res, "alice", "carol")
    rollbacks = repo.rollbacks
    repo.conflicts_to_inject = 2

    out = _approve(engine, _steps(res.data, "a")[0]["id"], "wsm_1a")

    assert out.success
    assert repo.rollbacks == rollbacks + 2
    assert out.data["side_a"]["approvals"][0]["status"] == "approved"


def test_version_conflict_gives_up_after_retries():
    engine, _world, repo = build_engine(max_conflict_retries=0)
    res = create(engine, "alice", "carol")
    pair_id = accept_both(engine, res, "alice", "carol")
    repo.conflicts_to_inject = 1

    out = _approve(engine, _steps(res.data, "a")[0]["id"], "wsm_1a")

    assert not out.success
    assert out.code == E.CONFLICT_STATE
    assert repo.pairs[pair_id].side_a.approvals[0].status.value == "pending"


# ── Reject ───────────────────────────────────────────────────────────────────


def test_manager_rejection_is_terminal(engine):
    res = create(engine, "alice", "carol")
    pair_id = accept_both(engine, res, "alice", "carol")

    out = engine.reject_swap(pair_id, USERS["wsm_1b"], "  short-staffed  ")

    assert out.success
    assert out.data["status"] == "rejected"
    side_b = out.data["side_b"]
    assert side_b["rejection_reason"] == "short-staffed"
    assert side_b["approvals"][0]["status"] == "rejected"
    assert side_b["approvals"][0]["approved_by"] == USERS["wsm_1b"]

    assert _approve(engine, _steps(res.data, "a")[0]["id"], "wsm_1a").code == E.CONFLICT_STATE
    assert engine.accept_swap(pair_id, USERS["alice"]).code == E.CONFLICT_STATE
    assert engine.reject_swap(pair_id, USERS["wsm_1a"], "again").code == E.CONFLICT_STATE


def test_unaccepted_party_may_decline(engine):
    res = create(engine, "alice", "bob")
    pair_id = res.data["id"]
    engine.accept_swap(pair_id, USERS["alice"])

    assert engine.reject_swap(pair_id, USERS["alice"], "changed my mind").code == E.FORBIDDEN
    out = engine.reject_swap(pair_id, USERS["bob"], "busy that day")
    assert out.success
    assert out.data["side_b"]["rejection_reason"] == "busy that day"
    assert out.data["side_b"]["approvals"][0]["status"] == "pending"


def test_reject_requires_reason_and_authority(engine):
    res = create(engine, "alice", "carol")
    pair_id = accept_both(engine, res, "alice", "carol")
    assert engine.reject_swap(pair_id, USERS["wsm_1a"], " ").code == E.VALIDATION_INVALID
    assert engine.reject_swap(pair_id, USERS["wsm_2a"], "no").code == E.FORBIDDEN
    assert engine.reject_swap(pair_id, USERS["app_admin"], "no").code == E.FORBIDDEN
    assert engine.reject_swap("missing", USERS["wsm_1a"], "no").code == E.NOT_FOUND


# ── Cancel / delete ──────────────────────────────────────────────────────────


def test_requester_cancels_before_acceptance(engine):
    pair_id = create(engine).data["id"]
    assert engine.cancel_swap(pair_id, USERS["bob"]).code == E.FORBIDDEN

    out = engine.cancel_swap(pair_id, USERS["alice"])
    assert out.data["status"] == "cancelled"
    # Slots are free again once the pair is closed.
    assert create(engine, "alice", "bob").success


def test_cancel_after_mutual_acceptance_is_refused(engine):
    pair_id = accept_both(engine, create(engine))
    assert engine.cancel_swap(pair_id, USERS["alice"]).code == E.CONFLICT_STATE


def test_requester_deletes_pending_swap(env):
    engine, _world, repo = env
    pair_id = create(engine).data["id"]
    engine.accept_swap(pair_id, USERS["bob"])

    assert engine.delete_swap(pair_id, USERS["bob"]).code == E.FORBIDDEN
    out = engine.delete_swap(pair_id, USERS["alice"])
    assert out.success
    assert out.data == {"id": pair_id, "deleted": True}
    assert pair_id not in repo.pairs
    assert engine.delete_swap(pair_id, USERS["alice"]).code == E.NOT_FOUND


def test_delete_refused_once_approvals_open(engine):
    pair_id = accept_both(engine, create(engine))
    assert engine.delete_swap(pair_id, USERS["alice"]).code == E.CONFLICT_STATE


# ── Recommendations ──────────────────────────────────────────────────────────


def test_manager_outside_chain_can_recommend_once(engine):
    res = create(engine, "alice", "carol")
    pair_id = accept_both(engine, res, "alice", "carol")

    out = engine.add_recommendation(pair_id, USERS["cm_alpha"], "recommend", "  solid plan ")
    assert out.success
    assert out.data["recommendation"] == "recommend"
    assert out.data["comment"] == "solid plan"

    dup = engine.add_recommendation(pair_id, USERS["cm_alpha"], "not_recommend")
    assert dup.code == E.VALIDATION_INVALID

    view = _pair(engine, pair_id)
    assert [r["manager_id"] for r in view["recommendations"]] == [USERS["cm_alpha"]]
    assert view["status"] == "pending"


def test_recommendation_rules(engine):
    res = create(engine, "alice", "carol")
    pair_id = accept_both(engine, res, "alice", "carol")

    # In the approval chain: approves, does not recommend.
    assert engine.add_recommendation(pair_id, USERS["sm_1"], "recommend").code == E.FORBIDDEN
    # No visibility into the swap's units.
    assert engine.add_recommendation(pair_id, USERS["cm_bravo"], "recommend").code == E.FORBIDDEN
    # Not a manager role.
    assert engine.add_recommendation(pair_id, USERS["app_admin"], "recommend").code == E.FORBIDDEN
    assert engine.add_recommendation(pair_id, USERS["unit_mgr"], "maybe").code == E.VALIDATION_INVALID
    assert engine.add_recommendation(pair_id, USERS["unit_mgr"], "not_recommend").success


def test_recommendation_on_closed_swap_is_refused(engine):
    pair_id = create(engine, "alice", "carol").data["id"]
    engine.cancel_swap(pair_id, USERS["alice"])
    assert engine.add_recommendation(pair_id, USERS["cm_alpha"], "recommend").code == E.CONFLICT_STATE


# ── Reads ────────────────────────────────────────────────────────────────────


def test_get_swap_visibility(engine):
    pair_id = create(engine, "alice", "carol").data["id"]

    for who in ("alice", "carol", "wsm_1a", "wsm_1b", "sm_1", "cm_alpha", "unit_mgr", "app_admin"):
        assert engine.get_swap(pair_id, USERS[who]).success, who
    for who in ("bob", "wsm_2a", "cm_bravo", "nobody"):
        assert engine.get_swap(pair_id, USERS[who]).code == E.NOT_FOUND, who


def test_view_lists_steps_the_caller_can_act_on(engine):
    res = create(engine, "alice", "carol")
    pair_id = accept_both(engine, res, "alice", "carol")

    view = _pair(engine, pair_id, "wsm_1a")
    assert view["actionable_step_ids"] == [_steps(res.data, "a")[0]["id"]]
    assert view["approver_name"] == "Section Manager"
    assert view["can_recommend"] is False
    assert _pair(engine, pair_id, "cm_alpha")["can_recommend"] is True
    assert _pair(engine, pair_id, "sm_1")["actionable_step_ids"] == []


def test_list_swaps_filters_by_visibility_and_status(engine):
    ab = create(engine, "alice", "bob").data["id"]
    cd = create(engine, "carol", "dave").data["id"]
    engine.cancel_swap(cd, USERS["carol"])

    mine = engine.list_swaps(USERS["bob"])
    assert [p["id"] for p in mine.data] == [ab]

    everything = engine.list_swaps(USERS["app_admin"])
    assert {p["id"] for p in everything.data} == {ab, cd}
    cancelled = engine.list_swaps(USERS["app_admin"], "cancelled")
    assert [p["id"] for p in cancelled.data] == [cd]
    assert engine.list_swaps(USERS["app_admin"], "bogus").code == E.VALIDATION_INVALID


def test_pending_approvals_follow_the_current_step(engine):
    res = create(engine, "alice", "carol")
    pair_id = accept_both(engine, res, "alice", "carol")

    assert engine.pending_approvals_for(USERS["sm_1"]).data == []
    items = engine.pending_approvals_for(USERS["wsm_1a"]).data
    assert len(items) == 1
    assert items[0]["swap_pair_id"] == pair_id
    assert items[0]["personnel_id"] == PERSONNEL["alice"]

    _approve(engine, items[0]["step"]["id"], "wsm_1a")
    sm_items = engine.pending_approvals_for(USERS["sm_1"]).data
    assert [i["step"]["approver_type"] for i in sm_items] == ["section_manager"]


def test_pending_approvals_empty_before_acceptance(engine):
    create(engine, "alice", "bob")
    assert engine.pending_approvals_for(USERS["wsm_1a"]).data == []


@pytest.mark.parametrize("a, b, level, approver, steps", [
    ("alice", "bob", "work_section", "Work Section Manager", 1),
    ("alice", "carol", "section", "Section Manager", 2),
    ("alice", "dave", "company", "Company Manager", 3),
    ("carol", "erin", "company", "Company Manager", 3),
])
def test_preview_approval_level(engine, a, b, level, approver, steps):
    out = engine.preview_approval_level(PERSONNEL[a], PERSONNEL[b])
    assert out.data == {"required_level": level, "approver_name": approver, "steps_per_side": steps}


def test_preview_approval_level_errors(engine):
    assert engine.preview_approval_level(1, 1).code == E.VALIDATION_INVALID
    assert engine.preview_approval_level(1, 404).code == E.NOT_FOUND


def test_operation_result_to_dict():
    engine, _world, _repo = build_engine()
    body = engine.accept_swap("missing", USERS["alice"]).to_dict()
    assert body == {"success": False, "error": "SwapPair id=missing not found", "code": E.NOT_FOUND}
