"""
Canonical JSON and SHA-256 helpers behind the history chain.

Two processes (or two storage backends) given the same resource history
must compute the same hashes, so everything hashed goes through
``canonicalize_json`` first: sorted keys, no whitespace, and a fixed text
form for the non-JSON types that appear in resource fields.
"""

import hashlib
import json
from collections.abc import Callable
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

GENESIS_MARKER = "GENESIS"

# datetime is a subclass of date, so one entry covers both.
_ENCODERS: tuple[tuple[type | tuple[type, ...], Callable[[Any], Any]], ...] = (
    (date, lambda value: value.isoformat()),
    (UUID, str),
    ((set, frozenset), lambda value: sorted(value, key=str)),
    (bytes, lambda value: value.hex()),
)


def _encode(obj: Any, *, normalize_decimals: bool) -> Any:
    if isinstance(obj, Decimal):
        # 1.50 and 1.5 hash alike; stored values keep what the caller wrote
        return str(obj.normalize() if normalize_decimals else obj)
    for types, encoder in _ENCODERS:
        if isinstance(obj, types):
            return encoder(obj)
    raise TypeError(f"Cannot encode {type(obj).__name__} as JSON")


def _for_hashing(obj: Any) -> Any:
    return _encode(obj, normalize_decimals=True)


def _for_storage(obj: Any) -> Any:
    return _encode(obj, normalize_decimals=False)


def _digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def canonicalize_json(data: Any) -> str:
    """Deterministic JSON text for ``data``; raises ``TypeError`` on unknown types."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_for_hashing)


def to_json_compatible(data: Any) -> Any:
    """
    Deep copy of ``data`` reduced to plain JSON types.

    Both backends store fields in this shape, so a resource read back from
    SQL compares equal to the one the in-memory backend returns.
    """
    return json.loads(json.dumps(data, default=_for_storage))


def hash_payload(payload: dict) -> str:
    return _digest(canonicalize_json(payload))


def hash_history_event(
    resource_id: str,
    seq: int,
    kind: str,
    version: int,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Chain hash of one history event.

    Links to the previous event through ``prev_hash``; the first event of a
    resource links to ``GENESIS_MARKER`` instead.
    """
    link = prev_hash if prev_hash is not None else GENESIS_MARKER
    return _digest(f"{resource_id}|{seq}|{kind}|{version}|{payload_hash}|{link}")
