"""
Configuration Loader (``hypermedia_config.loader``).

Responsibility
--------------
Loads resource type YAML files and parses them into the frozen
``hypermedia_config.schema`` dataclasses.  Build/test tooling: runtime
callers go through ``hypermedia_config.load_registry()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required keys have no silent defaults.
* Files are read in sorted name order, so a directory always yields the
  same ``ResourceConfigurationSet`` and checksum.

Failure modes
-------------
* Missing directory  -> ``FileNotFoundError``.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from hypermedia_config.schema import (
    CollectionDef,
    FieldDef,
    GuardDef,
    ResourceConfigurationSet,
    ResourceTypeDef,
    TransitionDef,
    TriggerDef,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def _tuple_or_none(value: Any) -> tuple[str, ...] | None:
    if value is None:
        return None
    return tuple(str(v) for v in value)


def parse_field(data: dict[str, Any]) -> FieldDef:
    """Parse a ``FieldDef`` from a dict."""
    return FieldDef(
        name=str(data["name"]),
        field_type=str(data.get("type", "any")),
        required=bool(data.get("required", False)),
        nullable=bool(data.get("nullable", True)),
        description=data.get("description", ""),
        min_value=data.get("min_value"),
        max_value=data.get("max_value"),
        min_length=data.get("min_length"),
        max_length=data.get("max_length"),
        pattern=data.get("pattern"),
        allowed_values=_tuple_or_none(data.get("allowed_values")),
        frozen_in=tuple(data.get("frozen_in", ())),
        read_only=bool(data.get("read_only", False)),
    )


def parse_collection(data: dict[str, Any]) -> CollectionDef:
    """Parse a ``CollectionDef`` from a dict."""
    return CollectionDef(
        name=str(data["name"]),
        item_fields=tuple(parse_field(f) for f in data.get("item_fields", ())),
        allow_extra=bool(data.get("allow_extra", False)),
        required_capability=data.get("required_capability"),
        open_states=_tuple_or_none(data.get("open_states")),
        description=data.get("description", ""),
    )


def parse_transition(data: dict[str, Any]) -> TransitionDef:
    """
    Parse a ``TransitionDef`` from a dict.

    ``guard`` may be a bare expression string or a mapping with ``name``,
    ``expression`` and ``description``.
    """
    name = str(data["name"])

    guard = None
    guard_data = data.get("guard")
    if isinstance(guard_data, str):
        guard = GuardDef(name=f"{name}-guard", expression=guard_data)
    elif guard_data is not None:
        guard = GuardDef(
            name=guard_data.get("name", f"{name}-guard"),
            expression=guard_data["expression"],
            description=guard_data.get("description", ""),
        )

    trigger = None
    trigger_data = data.get("trigger")
    if trigger_data is not None:
        trigger = TriggerDef(
            collection=str(trigger_data["collection"]),
            condition=str(trigger_data["condition"]),
        )

    return TransitionDef(
        name=name,
        from_state=str(data["from"]),
        to_state=str(data["to"]),
        guard=guard,
        trigger=trigger,
        required_capability=data.get("required_capability"),
        description=data.get("description", ""),
    )


def parse_resource_type(data: dict[str, Any], source: Path | None = None) -> ResourceTypeDef:
    """
    Parse a ``ResourceTypeDef`` from a dict.

    Raises:
        KeyError: if ``resource_type``, ``states`` or ``initial_state`` is missing.
    """
    return ResourceTypeDef(
        name=str(data["resource_type"]),
        states=tuple(str(s) for s in data["states"]),
        initial_state=str(data["initial_state"]),
        transitions=tuple(parse_transition(t) for t in data.get("transitions", ())),
        fields=tuple(parse_field(f) for f in data.get("fields", ())),
        allow_extra_fields=bool(data.get("allow_extra_fields", False)),
        collections=tuple(parse_collection(c) for c in data.get("collections", ())),
        state_field=str(data.get("state_field", "status")),
        locked_states=tuple(data.get("locked_states", ())),
        edit_capability=data.get("edit_capability"),
        description=data.get("description", ""),
        source=source,
    )


def load_resource_type_file(path: Path) -> tuple[ResourceTypeDef, dict[str, Any]]:
    """Load one YAML file; returns the parsed definition and its raw dict."""
    raw = load_yaml_file(path)
    return parse_resource_type(raw, source=path), raw


def load_configuration_set(config_dir: Path) -> ResourceConfigurationSet:
    """
    Load every ``*.yaml`` / ``*.yml`` file in ``config_dir``.

    Raises:
        FileNotFoundError: if ``config_dir`` is not a directory.
    """
    if not config_dir.is_dir():
        raise FileNotFoundError(f"Configuration directory not found: {config_dir}")

    paths = sorted(
        p for p in config_dir.iterdir() if p.is_file() and p.suffix in (".yaml", ".yml")
    )
    definitions: list[ResourceTypeDef] = []
    raw_by_file: dict[str, dict[str, Any]] = {}
    for path in paths:
        definition, raw = load_resource_type_file(path)
        definitions.append(definition)
        raw_by_file[path.name] = raw

    return ResourceConfigurationSet(
        definitions=tuple(definitions),
        checksum=compute_checksum(raw_by_file),
        source_dir=config_dir,
        metadata={"files": [p.name for p in paths]},
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
