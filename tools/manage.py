#!/usr/bin/env python3
"""
qaforum Management CLI

Commands for operating the forum curation core:
- init-schema: Create tables in the configured PostgreSQL database
- seed-demo: Load the demo course forum into an empty store
- curate: Print a student's curated answers for a question
- set-trust: Trust a reviewer (or change the weight)
- assign-roles: Replace a user's roles
- pending-requests: List Pending reviewer requests
- health-check: Check store connectivity and configuration

With no database configured every command runs against a fresh
in-memory store; pass --demo to load the demo forum first.

Usage:
    python -m tools.manage <command> [options]

Examples:
    python -m tools.manage init-schema
    python -m tools.manage curate --demo --student studentX --question Q1
    python -m tools.manage assign-roles --user s1 --roles student reviewer --acting admin1
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


def _open_forum(args, init_schema: bool = False):
    from qaforum.core import Forum
    from qaforum.db.factory import create_store
    from qaforum.db.seed import seed_demo_data

    store = create_store(init_schema=init_schema)
    if getattr(args, "demo", False) and not seed_demo_data(store):
        print("[WARN] --demo skipped: the store already has users", file=sys.stderr)
    return Forum(store)


def cmd_init_schema(args):
    """Create tables in PostgreSQL."""
    from qaforum.db import InMemoryForumStore
    from qaforum.db.factory import create_store

    store = create_store(init_schema=True)
    if isinstance(store, InMemoryForumStore):
        print("[WARN] No database configured - nothing to initialize")
        return 1
    print("[OK] Schema initialized")
    return 0


def cmd_seed_demo(args):
    """Load demo data into an empty store."""
    from qaforum.db.factory import create_store
    from qaforum.db.seed import seed_demo_data

    store = create_store()
    if seed_demo_data(store):
        print("[OK] Demo forum seeded")
    else:
        print("[SKIP] Store already has users")
    return 0


def cmd_curate(args):
    """Print curated answers for one student and question."""
    forum = _open_forum(args)
    result = forum.curate(args.student, args.question)

    print(f"Curated answers for {result.student_id} on {result.question_id}")
    print(f"  Outcome: {result.outcome.value}")
    print(f"  Trusted reviewers: {result.trusted_reviewer_count}")
    for position, entry in enumerate(result.entries, start=1):
        accepted = " [accepted]" if entry.answer.accepted else ""
        print(f"  {position}. {entry.answer.answer_id}  score={entry.score:g}{accepted}")
    return 0


def cmd_set_trust(args):
    """Trust a reviewer."""
    forum = _open_forum(args)
    entry = forum.set_trust(args.student, args.reviewer, args.weight)
    print(f"[OK] {entry.student_id} trusts {entry.reviewer_id} with weight {entry.weight:g}")
    return 0


def cmd_assign_roles(args):
    """Replace a user's roles."""
    forum = _open_forum(args)
    role_set = forum.assign_roles(args.user, args.roles, args.acting)
    roles = ", ".join(r.value for r in role_set.roles) or "(none)"
    print(f"[OK] {role_set.user_id}: {roles}")
    return 0


def cmd_pending_requests(args):
    """List Pending reviewer requests, oldest first."""
    forum = _open_forum(args)
    pending = forum.list_pending_requests()
    if not pending:
        print("No pending reviewer requests")
        return 0
    for request in pending:
        print(f"  {request.requested_at.isoformat()}  {request.student_id}  {request.request_id}")
    return 0


def cmd_health_check(args):
    """Run health checks against the configured store."""
    from qaforum.db.config import DatabaseConfig, StoreDriver, get_store_driver
    from qaforum.db.factory import create_store
    from qaforum.observability import check_health

    driver = get_store_driver()

    print("=== qaforum Health Check ===\n")

    print("Database:")
    if driver != StoreDriver.MEMORY:
        config = DatabaseConfig.from_env()
        print(f"  Type: PostgreSQL ({driver.value})")
        print(f"  Host: {config.host}:{config.port}")
    else:
        print("  Type: In-Memory")

    store = create_store()
    health = check_health(store=store)
    store_check = health.checks.get("store", {})
    if health.healthy:
        print("  Status: [OK] Connected")
        for key in ("users", "answers", "reviews", "pending_requests"):
            if key in store_check:
                print(f"  {key}: {store_check[key]}")
    else:
        print(f"  Status: [FAIL] {store_check.get('error')}")
        return 1

    print("\n=== Health Check Complete ===")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="qaforum Management CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # init-schema
    subparsers.add_parser(
        "init-schema",
        help="Create tables in the configured PostgreSQL database"
    )

    # seed-demo
    subparsers.add_parser(
        "seed-demo",
        help="Load the demo course forum into an empty store"
    )

    # curate
    p_curate = subparsers.add_parser(
        "curate",
        help="Print a student's curated answers for a question"
    )
    p_curate.add_argument("--student", required=True, help="Student id")
    p_curate.add_argument("--question", required=True, help="Question id")
    p_curate.add_argument("--demo", action="store_true", help="Seed demo data first")

    # set-trust
    p_trust = subparsers.add_parser(
        "set-trust",
        help="Trust a reviewer or change the weight"
    )
    p_trust.add_argument("--student", required=True, help="Student id")
    p_trust.add_argument("--reviewer", required=True, help="Reviewer id")
    p_trust.add_argument("--weight", type=float, default=1.0, help="Trust weight (default: 1.0)")
    p_trust.add_argument("--demo", action="store_true", help="Seed demo data first")

    # assign-roles
    p_roles = subparsers.add_parser(
        "assign-roles",
        help="Replace a user's roles (first role becomes primary)"
    )
    p_roles.add_argument("--user", required=True, help="User whose roles change")
    p_roles.add_argument("--roles", nargs="*", default=[], help="New role labels in order")
    p_roles.add_argument("--acting", required=True, help="Admin performing the change")
    p_roles.add_argument("--demo", action="store_true", help="Seed demo data first")

    # pending-requests
    p_pending = subparsers.add_parser(
        "pending-requests",
        help="List Pending reviewer requests"
    )
    p_pending.add_argument("--demo", action="store_true", help="Seed demo data first")

    # health-check
    subparsers.add_parser(
        "health-check",
        help="Check store connectivity"
    )

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "init-schema": cmd_init_schema,
        "seed-demo": cmd_seed_demo,
        "curate": cmd_curate,
        "set-trust": cmd_set_trust,
        "assign-roles": cmd_assign_roles,
        "pending-requests": cmd_pending_requests,
        "health-check": cmd_health_check,
    }

    from qaforum.core import ForumError

    try:
        return commands[args.command](args) or 0
    except ForumError as e:
        print(f"[FAIL] {type(e).__name__}: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
