"""
Hypermedia Kernel

A resource state-machine core for hypermedia APIs:
- Versioned resources with optimistic concurrency
- Declared explicit and implicit (sub-resource triggered) transitions
- Affordances computed from current state and caller capabilities
- Hash-chained, append-only history per resource
"""

__version__ = "0.1.0"
