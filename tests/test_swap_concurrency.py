"""Concurrent writers on one swap pair: the roster exchange happens exactly once."""

import threading

from dutysync.services.swap_locks import SwapLockRegistry
from dutysync.utils.errors import E

from fakes import PERSONNEL, SLOTS, USERS, accept_both, build_engine, create


def _run_together(*calls):
    """Start every call at the same barrier and collect results in call order."""
    barrier = threading.Barrier(len(calls))
    results = [None] * len(calls)

    def worker(index, fn):
        barrier.wait()
        results[index] = fn()

    threads = [threading.Thread(target=worker, args=(i, fn)) for i, fn in enumerate(calls)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return results


def _section_pair_awaiting_last_two_steps(engine):
    res = create(engine, "alice", "carol")
    pair_id = accept_both(engine, res, "alice", "carol")
    ws_a, sm_a = [s["id"] for s in res.data["side_a"]["approvals"]]
    ws_b, sm_b = [s["id"] for s in res.data["side_b"]["approvals"]]
    assert engine.approve_step(ws_a, USERS["wsm_1a"]).success
    assert engine.approve_step(ws_b, USERS["wsm_1b"]).success
    return pair_id, sm_a, sm_b


def test_parallel_final_approvals_complete_once():
    locks = SwapLockRegistry()
    engine, world, repo = build_engine(locks=locks)
    pair_id, sm_a, sm_b = _section_pair_awaiting_last_two_steps(engine)

    results = _run_together(
        lambda: engine.approve_step(sm_a, USERS["sm_1"]),
        lambda: engine.approve_step(sm_b, USERS["sm_1"]),
    )

    assert all(r.success for r in results)
    assert sorted(r.swap_completed for r in results) == [False, True]
    assert world.exchanges == [(pair_id, SLOTS["alice"], SLOTS["carol"])]
    assert repo.pairs[pair_id].status.value == "approved"
    assert len(locks) == 0


def test_same_step_approved_by_many_threads_wins_once():
    engine, world, _repo = build_engine()
    res = create(engine, "alice", "bob")
    accept_both(engine, res)
    step_a = res.data["side_a"]["approvals"][0]["id"]
    step_b = res.data["side_b"]["approvals"][0]["id"]
    assert engine.approve_step(step_a, USERS["wsm_1a"]).success

    results = _run_together(*[
        (lambda: engine.approve_step(step_b, USERS["wsm_1a"])) for _ in range(8)
    ])

    assert sum(1 for r in results if r.success) == 1
    assert {r.code for r in results if not r.success} == {E.CONFLICT_STATE}
    assert len(world.exchanges) == 1
    assert world.slots[SLOTS["alice"]].personnel_id == PERSONNEL["bob"]


def test_competing_requests_cannot_claim_the_same_slot():
    engine, _world, repo = build_engine()

    results = _run_together(
        lambda: create(engine, "alice", "bob"),
        lambda: create(engine, "alice", "carol"),
    )

    assert sorted(r.success for r in results) == [False, True]
    loser = next(r for r in results if not r.success)
    assert loser.code == E.VALIDATION_INVALID
    assert len(repo.pairs) == 1
