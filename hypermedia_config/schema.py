"""
Resource type configuration schema.

Defines the human-authored, reviewable source artifact for resource
types.  YAML files are parsed into these types by the loader, checked by
the validator and compiled into kernel ``ResourceType`` objects by the
compiler.

Key distinction:
  ResourceTypeDef  = source artifact (human-authored, versioned)
  ResourceType     = runtime artifact (kernel, validated, frozen)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Fields
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldDef:
    """One field of a resource or collection item schema."""

    name: str
    field_type: str = "any"
    required: bool = False
    nullable: bool = True
    description: str = ""
    min_value: Any = None
    max_value: Any = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    allowed_values: tuple[str, ...] | None = None
    frozen_in: tuple[str, ...] = ()
    read_only: bool = False


# ---------------------------------------------------------------------------
# Collections and transitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CollectionDef:
    """A named sub-resource collection."""

    name: str
    item_fields: tuple[FieldDef, ...] = ()
    allow_extra: bool = False
    required_capability: str | None = None
    open_states: tuple[str, ...] | None = None
    description: str = ""


@dataclass(frozen=True)
class GuardDef:
    """A guard condition using the restricted expression language."""

    name: str
    expression: str
    description: str = ""


@dataclass(frozen=True)
class TriggerDef:
    """Implicit trigger: fires when an item matching ``condition`` is appended."""

    collection: str
    condition: str


@dataclass(frozen=True)
class TransitionDef:
    """
    A declared edge.  With ``trigger`` set the edge is implicit and can
    only be taken by appending to the trigger's collection.
    """

    name: str
    from_state: str
    to_state: str
    guard: GuardDef | None = None
    trigger: TriggerDef | None = None
    required_capability: str | None = None
    description: str = ""


# ---------------------------------------------------------------------------
# Resource type
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResourceTypeDef:
    """Complete definition of one resource type, as authored."""

    name: str
    states: tuple[str, ...]
    initial_state: str
    transitions: tuple[TransitionDef, ...] = ()
    fields: tuple[FieldDef, ...] = ()
    allow_extra_fields: bool = False
    collections: tuple[CollectionDef, ...] = ()
    state_field: str = "status"
    locked_states: tuple[str, ...] = ()
    edit_capability: str | None = None
    description: str = ""
    source: Path | None = None


@dataclass(frozen=True)
class ResourceConfigurationSet:
    """Every resource type definition found in one configuration directory."""

    definitions: tuple[ResourceTypeDef, ...]
    checksum: str
    source_dir: Path | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def type_names(self) -> tuple[str, ...]:
        return tuple(d.name for d in self.definitions)
