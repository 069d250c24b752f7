"""
Tests for affordance resolution (``hypermedia_kernel.domain.affordances``).

Invariants tested:
- Only edges leaving the current state, with passing guards and held
  capabilities, become actions.
- Frozen and read-only fields never appear in the edit action.
- Results depend only on (resource, type, capabilities); ordering follows
  declaration order.
"""

from datetime import datetime, timezone
from uuid import UUID

import pytest

from hypermedia_kernel.domain.affordances import AffordanceMethod, AffordanceResolver
from hypermedia_kernel.domain.resource import Resource

NOW = datetime(2025, 11, 1, 9, 0, tzinfo=timezone.utc)
RESOURCE_ID = UUID("00000000-0000-4000-8000-000000000001")

LEAVE_EDIT = {"leave:edit"}
LEAVE_ALL = {"leave:edit", "leave:review"}


def _resource(type_name: str, state: str, **fields) -> Resource:
    return Resource(
        id=RESOURCE_ID,
        type_name=type_name,
        state=state,
        fields={**fields, "status": state},
        version=1,
        created_at=NOW,
        updated_at=NOW,
    )


def _leave(state: str, **overrides) -> Resource:
    fields = {"employee": "alice", "from": "2025-11-12", "to": "2025-11-15"}
    fields.update(overrides)
    return _resource("leave-request", state, **fields)


@pytest.fixture
def resolver(registry) -> AffordanceResolver:
    return AffordanceResolver(registry)


# =========================================================================
# Leave request
# =========================================================================


class TestLeaveRequestAffordances:
    def test_draft(self, resolver):
        result = resolver.resolve(_leave("draft"), LEAVE_EDIT)
        assert result.action_names == ("edit", "submit")
        assert result.state == "draft"
        assert result.version == 1

    def test_edit_excludes_read_only_and_state_field(self, resolver):
        edit = resolver.resolve(_leave("draft"), LEAVE_EDIT).get("edit")
        assert edit.method == AffordanceMethod.PARTIAL_UPDATE
        assert edit.field_names == ("from", "to", "reason")

    def test_edit_requires_capability(self, resolver):
        assert resolver.resolve(_leave("draft")).action_names == ("submit",)

    def test_submit_action_presets_state(self, resolver):
        submit = resolver.resolve(_leave("draft"), LEAVE_EDIT).get("submit")
        assert submit.method == AffordanceMethod.PARTIAL_UPDATE
        assert submit.to_state == "submitted"
        assert submit.fields[0].name == "status"
        assert submit.fields[0].preset == "submitted"
        assert submit.target.path == f"/leave-request/{RESOURCE_ID}"

    def test_guard_hides_submit(self, resolver):
        backwards = _leave("draft", **{"from": "2025-11-15", "to": "2025-11-12"})
        assert resolver.resolve(backwards, LEAVE_EDIT).action_names == ("edit",)

    def test_submitted_offers_decisions(self, resolver):
        result = resolver.resolve(_leave("submitted"), LEAVE_ALL)
        assert result.action_names == ("withdraw", "approve", "reject")

        approve = result.get("approve")
        assert approve.method == AffordanceMethod.CREATE
        assert approve.to_state == "approved"
        assert approve.target.collection == "approvals"
        assert approve.target.path == f"/leave-request/{RESOURCE_ID}/approvals"
        assert approve.field_names == ("reviewer", "decision", "comment")
        assert [f.required for f in approve.fields] == [True, True, False]

    def test_submitted_without_review_capability(self, resolver):
        result = resolver.resolve(_leave("submitted"), LEAVE_EDIT)
        assert result.action_names == ("withdraw",)
        assert "add-approvals" not in result

    def test_frozen_fields_remove_edit(self, resolver):
        assert "edit" not in resolver.resolve(_leave("approved"), LEAVE_ALL)

    def test_closed_has_no_actions(self, resolver):
        assert resolver.resolve(_leave("closed"), LEAVE_ALL).actions == ()

    def test_links(self, resolver):
        result = resolver.resolve(_leave("closed"))
        assert [link.rel for link in result.links] == ["self", "history", "approvals"]
        assert result.link("history").target.path == f"/leave-request/{RESOURCE_ID}/history"
        assert result.link("missing") is None


# =========================================================================
# Other shipped types
# =========================================================================


class TestDocumentAffordances:
    def _document(self, state, **fields):
        return _resource("document", state, title="Plan", author="ann", **fields)

    def test_generic_collection_action(self, resolver):
        result = resolver.resolve(self._document("draft"), {"document:edit"})
        assert result.action_names == ("edit", "add-comments")
        add = result.get("add-comments")
        assert add.method == AffordanceMethod.CREATE
        assert add.to_state is None

    def test_guard_on_body(self, resolver):
        result = resolver.resolve(self._document("draft", body="text"), {"document:edit"})
        assert result.action_names == ("edit", "request-review", "add-comments")

    def test_in_review(self, resolver):
        result = resolver.resolve(self._document("in-review", body="text"), {"document:review"})
        assert result.action_names == ("publish", "request-changes", "add-comments")

    def test_transition_capability(self, resolver):
        published = self._document("published", body="text")
        assert resolver.resolve(published).action_names == ("add-comments",)
        assert resolver.resolve(published, {"document:archive"}).action_names == (
            "archive",
            "add-comments",
        )


class TestRenderJobAffordances:
    def test_worker_guard_uses_current_fields(self, resolver):
        running = _resource("render-job", "running", template="t", progress=50)
        assert resolver.resolve(running, {"render:work"}).action_names == ("edit", "fail")

        finished = _resource("render-job", "running", template="t", output_url="s3://out")
        assert resolver.resolve(finished, {"render:work"}).action_names == (
            "edit",
            "succeed",
            "fail",
        )


# =========================================================================
# Determinism
# =========================================================================


class TestDeterminism:
    def test_equal_inputs_equal_outputs(self, resolver):
        first = resolver.resolve(_leave("submitted"), LEAVE_ALL)
        second = resolver.resolve(_leave("submitted"), list(reversed(sorted(LEAVE_ALL))))
        assert first == second

    def test_resolve_does_not_mutate(self, resolver):
        resource = _leave("draft")
        before = dict(resource.fields)
        resolver.resolve(resource, LEAVE_ALL)
        assert resource.fields == before
