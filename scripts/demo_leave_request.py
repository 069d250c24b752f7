#!/usr/bin/env python3
"""
Leave request walkthrough: drive one resource through its lifecycle and
show what a client sees at every step.

Creates a leave request, submits it, posts a reviewer decision (which
fires the implicit approve transition), closes it, then prints the
history chain and verifies it.

Usage:
    python3 scripts/demo_leave_request.py                     # in-memory storage
    python3 scripts/demo_leave_request.py --database-url sqlite:///demo.db
    python3 scripts/demo_leave_request.py --json              # affordances/history as JSON
    python3 scripts/demo_leave_request.py --verbose           # kernel logs on stderr
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

W = 80

AUTHOR_CAPS = {"leave:edit"}
REVIEWER_CAPS = {"leave:edit", "leave:review"}


# =============================================================================
# Formatting
# =============================================================================

def hline(char: str = "=") -> str:
    return char * W


def banner(title: str) -> None:
    print()
    print(hline())
    print(f"  {title}")
    print(hline())


def section(title: str) -> None:
    print()
    print(f"--- {title} ---")
    print()


def field(name: str, value, indent: int = 4) -> None:
    print(f"{' ' * indent}{name}: {value}")


def short_id(uid) -> str:
    return str(uid)[:8] + "..."


def as_json(obj) -> str:
    return json.dumps(asdict(obj), indent=2, default=str)


# =============================================================================
# Output
# =============================================================================

def show_resource(resource) -> None:
    field("id", short_id(resource.id))
    field("state", resource.state)
    field("version", resource.version)
    for name, value in sorted(resource.fields.items()):
        field(name, value, indent=6)


def show_affordances(affordances, caps, output_json: bool) -> None:
    section(f"Affordances for {sorted(caps) or 'anonymous'}")
    if output_json:
        print(as_json(affordances))
        return
    if not affordances.actions:
        print("    (no actions)")
    for action in affordances.actions:
        target = f" -> {action.to_state}" if action.to_state else ""
        print(f"    {action.name:<16} {action.method.value:<15} {action.target.path}{target}")
    for link in affordances.links:
        print(f"    link {link.rel:<11} {link.target.path}")


def show_history(events, output_json: bool) -> None:
    section(f"History ({len(events)} events)")
    if output_json:
        print(json.dumps([asdict(e) for e in events], indent=2, default=str))
        return
    for event in events:
        move = f" {event.from_state} -> {event.to_state}" if event.to_state else ""
        print(
            f"    #{event.seq:<3} v{event.version:<3} {event.kind.value:<18} "
            f"{event.actor:<8}{move}  {event.hash[:12]}"
        )


# =============================================================================
# Storage
# =============================================================================

def build_storage(database_url: str | None):
    from hypermedia_kernel.storage.memory import InMemoryStorage

    if database_url is None:
        return InMemoryStorage()

    from hypermedia_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
    from hypermedia_kernel.storage.sql import SqlAlchemyStorage

    init_engine_from_url(database_url)
    create_tables()
    return SqlAlchemyStorage(get_session_factory())


# =============================================================================
# Main
# =============================================================================

def main() -> int:
    parser = argparse.ArgumentParser(
        description="Walk a leave request through its lifecycle.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--database-url", type=str, default=None,
        help="SQLAlchemy database URL (default: in-memory storage)",
    )
    parser.add_argument(
        "--json", action="store_true",
        help="Print affordances and history as JSON",
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Emit structured kernel logs on stderr",
    )
    args = parser.parse_args()

    from hypermedia_config import load_registry
    from hypermedia_kernel.exceptions import HypermediaKernelError
    from hypermedia_kernel.logging_config import configure_logging
    from hypermedia_kernel.services.resource_store import ResourceStore

    if args.verbose:
        configure_logging(level=logging.DEBUG, stream=sys.stderr)
    else:
        logging.disable(logging.CRITICAL)

    try:
        store = ResourceStore(load_registry(), build_storage(args.database_url))

        banner("LEAVE REQUEST WALKTHROUGH")

        section("1. Create (draft)")
        leave = store.create(
            "leave-request",
            {"employee": "alice", "from": "2025-11-12", "to": "2025-11-15", "reason": "family"},
            actor="alice",
        )
        show_resource(leave)
        show_affordances(store.resolve_affordances(leave.id, AUTHOR_CAPS), AUTHOR_CAPS, args.json)

        section("2. Submit")
        leave = store.apply_patch(leave.id, leave.version, {"status": "submitted"}, actor="alice")
        show_resource(leave)
        show_affordances(
            store.resolve_affordances(leave.id, REVIEWER_CAPS), REVIEWER_CAPS, args.json
        )

        section("3. Reviewer approves (implicit transition)")
        result = store.add_subresource(
            leave.id, "approvals", {"reviewer": "bob", "decision": "approved"}, actor="bob"
        )
        field("subresource", short_id(result.subresource.id))
        field("transition", result.triggered_transition or "-")
        leave = result.parent
        show_resource(leave)

        section("4. Close")
        leave = store.apply_patch(leave.id, leave.version, {"status": "closed"}, actor="alice")
        show_resource(leave)
        show_affordances(
            store.resolve_affordances(leave.id, REVIEWER_CAPS), REVIEWER_CAPS, args.json
        )

        show_history(list(store.list_history(leave.id)), args.json)

        banner("INTEGRITY")
        print()
        field("Events verified", store.verify_history(leave.id))
        print()
    except HypermediaKernelError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
