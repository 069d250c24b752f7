"""Utility modules for the hypermedia kernel."""

from hypermedia_kernel.utils.hashing import (
    canonicalize_json,
    hash_history_event,
    hash_payload,
    to_json_compatible,
)

__all__ = [
    "canonicalize_json",
    "hash_history_event",
    "hash_payload",
    "to_json_compatible",
]
