"""
Property-based tests using Hypothesis.

Random operation sequences are driven against a leave request and the
following must hold after every step:

- version never decreases and grows by at most 1 per operation
- a rejected operation changes nothing (version, state, history)
- history is gap-free, its earlier prefix never changes, and the hash
  chain verifies
- affordances are a pure function of (resource, capabilities), and every
  advertised transition action is accepted when followed
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from hypermedia_kernel.domain.affordances import AffordanceMethod
from hypermedia_kernel.domain.clock import DeterministicClock
from hypermedia_kernel.exceptions import (
    IllegalTransitionError,
    InvalidFieldsError,
    VersionConflictError,
)
from hypermedia_kernel.services.resource_store import ResourceStore
from hypermedia_kernel.storage.memory import InMemoryStorage

LEAVE = {"employee": "ada", "from": "2026-03-02", "to": "2026-03-06"}
STATES = ["draft", "submitted", "approved", "rejected", "closed"]
CAPABILITIES = ["leave:edit", "leave:review", "unrelated"]

CALLER_ERRORS = (InvalidFieldsError, IllegalTransitionError, VersionConflictError)

operations = st.one_of(
    st.tuples(st.just("reason"), st.text(max_size=20)),
    st.tuples(st.just("state"), st.sampled_from(STATES)),
    st.tuples(st.just("review"), st.sampled_from(["approved", "rejected"])),
    st.tuples(st.just("stale"), st.text(min_size=1, max_size=5)),
)


def _new_store(registry):
    return ResourceStore(registry, InMemoryStorage(), DeterministicClock())


def _apply(store, resource_id, op):
    kind, value = op
    version = store.get(resource_id).version
    if kind == "reason":
        store.apply_patch(resource_id, version, {"reason": value})
    elif kind == "state":
        store.apply_patch(resource_id, version, {"status": value})
    elif kind == "review":
        store.add_subresource(
            resource_id, "approvals", {"reviewer": "bob", "decision": value}, actor="bob"
        )
    else:
        store.apply_patch(resource_id, version + 1, {"reason": value})


class TestOperationSequences:
    @given(ops=st.lists(operations, max_size=25))
    @settings(max_examples=60, deadline=None)
    def test_versions_and_history(self, registry, ops):
        store = _new_store(registry)
        leave = store.create("leave-request", LEAVE)

        for op in ops:
            before = store.get(leave.id)
            history_before = list(store.list_history(leave.id))
            try:
                _apply(store, leave.id, op)
            except CALLER_ERRORS:
                after = store.get(leave.id)
                assert after == before
                assert list(store.list_history(leave.id)) == history_before
                continue

            after = store.get(leave.id)
            history_after = list(store.list_history(leave.id))
            assert after.version in (before.version, before.version + 1)
            assert history_after[: len(history_before)] == history_before
            assert [e.seq for e in history_after] == list(range(1, len(history_after) + 1))
            if after.state != before.state:
                assert after.version == before.version + 1

        assert store.verify_history(leave.id) == len(store.list_history(leave.id))

    @given(ops=st.lists(operations, max_size=15))
    @settings(max_examples=40, deadline=None)
    def test_locked_state_is_final(self, registry, ops):
        store = _new_store(registry)
        leave = store.create("leave-request", LEAVE)
        store.apply_patch(leave.id, 1, {"status": "submitted"})
        store.add_subresource(leave.id, "approvals", {"reviewer": "bob", "decision": "approved"})
        closed = store.apply_patch(leave.id, 3, {"status": "closed"})

        for op in ops:
            try:
                _apply(store, leave.id, op)
            except CALLER_ERRORS:
                pass

        assert store.get(leave.id) == closed


class TestAffordanceProperties:
    @given(
        ops=st.lists(operations, max_size=10),
        caps=st.frozensets(st.sampled_from(CAPABILITIES)),
    )
    @settings(max_examples=60, deadline=None)
    def test_deterministic_and_followable(self, registry, ops, caps):
        store = _new_store(registry)
        leave = store.create("leave-request", LEAVE)
        for op in ops:
            try:
                _apply(store, leave.id, op)
            except CALLER_ERRORS:
                pass

        affordances = store.resolve_affordances(leave.id, caps)
        assert store.resolve_affordances(leave.id, set(caps)) == affordances

        current = store.get(leave.id)
        assert affordances.version == current.version
        assert affordances.state == current.state
        assert [link.rel for link in affordances.links][:2] == ["self", "history"]

        for action in affordances.actions:
            if action.method is AffordanceMethod.PARTIAL_UPDATE and action.to_state:
                probe = _new_store(registry)
                clone = probe.create("leave-request", LEAVE)
                _replay_to(probe, clone.id, current.state)
                moved = probe.apply_patch(
                    clone.id, probe.get(clone.id).version, {"status": action.to_state}
                )
                assert moved.state == action.to_state

    @given(caps=st.frozensets(st.sampled_from(CAPABILITIES)))
    @settings(max_examples=20, deadline=None)
    def test_capabilities_only_narrow(self, registry, caps):
        store = _new_store(registry)
        leave = store.create("leave-request", LEAVE)
        store.apply_patch(leave.id, 1, {"status": "submitted"})

        full = store.resolve_affordances(leave.id, CAPABILITIES).action_names
        narrowed = store.resolve_affordances(leave.id, caps).action_names
        assert set(narrowed) <= set(full)
        assert list(narrowed) == [name for name in full if name in narrowed]


def _replay_to(store, resource_id, state):
    """Drive a fresh leave request into ``state`` along declared edges."""
    paths = {
        "draft": [],
        "submitted": [("state", "submitted")],
        "approved": [("state", "submitted"), ("review", "approved")],
        "rejected": [("state", "submitted"), ("review", "rejected")],
        "closed": [("state", "submitted"), ("review", "approved"), ("state", "closed")],
    }
    for op in paths[state]:
        _apply(store, resource_id, op)
