"""Tests for build-time configuration validation (``hypermedia_config.validator``)."""

from __future__ import annotations

from dataclasses import replace

from hypermedia_config import DEFAULT_CONFIG_DIR
from hypermedia_config.loader import load_configuration_set
from hypermedia_config.schema import (
    CollectionDef,
    FieldDef,
    GuardDef,
    ResourceConfigurationSet,
    ResourceTypeDef,
    TransitionDef,
    TriggerDef,
)
from hypermedia_config.validator import validate_configuration, validate_resource_type


def _ticket(**overrides) -> ResourceTypeDef:
    base = ResourceTypeDef(
        name="ticket",
        states=("open", "closed"),
        initial_state="open",
        locked_states=("closed",),
        fields=(FieldDef(name="title", field_type="string", required=True),),
        collections=(CollectionDef(name="votes", item_fields=(FieldDef(name="up", field_type="boolean"),)),),
        transitions=(TransitionDef(name="close", from_state="open", to_state="closed"),),
    )
    return replace(base, **overrides)


class TestShippedSets:
    def test_valid_without_warnings(self):
        result = validate_configuration(load_configuration_set(DEFAULT_CONFIG_DIR))
        assert result.is_valid, result.errors
        assert result.warnings == []


class TestErrors:
    def test_clean_definition(self):
        assert validate_resource_type(_ticket()).errors == []

    def test_duplicate_type_names(self):
        config = ResourceConfigurationSet(definitions=(_ticket(), _ticket()), checksum="x")
        result = validate_configuration(config)
        assert result.errors == ["Duplicate resource type: ticket appears 2 times"]

    def test_unknown_initial_and_locked_states(self):
        result = validate_resource_type(_ticket(initial_state="new", locked_states=("gone",)))
        assert any("initial state 'new'" in e for e in result.errors)
        assert any("locked state 'gone'" in e for e in result.errors)

    def test_unknown_field_type(self):
        result = validate_resource_type(
            _ticket(fields=(FieldDef(name="title", field_type="text"),))
        )
        assert len(result.errors) == 1
        assert "unknown type 'text'" in result.errors[0]

    def test_state_field_declared(self):
        result = validate_resource_type(_ticket(fields=(FieldDef(name="status"),)))
        assert any("is the state field" in e for e in result.errors)

    def test_frozen_in_unknown_state(self):
        result = validate_resource_type(
            _ticket(fields=(FieldDef(name="title", frozen_in=("archived",)),))
        )
        assert any("frozen in unknown state 'archived'" in e for e in result.errors)

    def test_transition_states(self):
        result = validate_resource_type(
            _ticket(transitions=(TransitionDef(name="reopen", from_state="done", to_state="new"),))
        )
        assert any("unknown source state 'done'" in e for e in result.errors)
        assert any("unknown target state 'new'" in e for e in result.errors)

    def test_unsafe_guard(self):
        guard = GuardDef(name="evil", expression="__import__('os').system('true')")
        result = validate_resource_type(
            _ticket(
                transitions=(
                    TransitionDef(name="close", from_state="open", to_state="closed", guard=guard),
                )
            )
        )
        assert not result.is_valid
        assert all("guard:" in e for e in result.errors)

    def test_trigger_on_undeclared_collection(self):
        trigger = TriggerDef(collection="comments", condition="payload.up")
        result = validate_resource_type(
            _ticket(
                transitions=(
                    TransitionDef(name="close", from_state="open", to_state="closed", trigger=trigger),
                )
            )
        )
        assert any("undeclared collection 'comments'" in e for e in result.errors)

    def test_collection_open_in_unknown_state(self):
        result = validate_resource_type(
            _ticket(collections=(CollectionDef(name="votes", open_states=("voting",)),))
        )
        assert any("opens in unknown state 'voting'" in e for e in result.errors)

    def test_errors_accumulate(self):
        result = validate_resource_type(
            _ticket(
                initial_state="new",
                fields=(FieldDef(name="title", field_type="text"),),
            )
        )
        assert len(result.errors) == 2


class TestWarnings:
    def test_unlocked_terminal_state(self):
        result = validate_resource_type(_ticket(locked_states=()))
        assert result.is_valid
        assert any("terminal state 'closed' is not locked" in w for w in result.warnings)

    def test_shadowed_trigger(self):
        trigger = TriggerDef(collection="votes", condition="payload.up")
        result = validate_resource_type(
            _ticket(
                states=("open", "closed", "archived"),
                locked_states=("closed", "archived"),
                transitions=(
                    TransitionDef(name="close", from_state="open", to_state="closed", trigger=trigger),
                    TransitionDef(name="archive", from_state="open", to_state="archived", trigger=trigger),
                ),
            )
        )
        assert result.is_valid
        assert any("'archive': same trigger as 'close'" in w for w in result.warnings)
