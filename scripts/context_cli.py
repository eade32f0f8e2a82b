#!/usr/bin/env python3
"""CLI for the session health engine.

Usage:
    python scripts/context_cli.py create "Build a REST API with FastAPI"
    python scripts/context_cli.py track-message <session-id> assistant "Added the router"
    python scripts/context_cli.py status <session-id>
    python scripts/context_cli.py tick --all

Every command prints JSON to stdout. Errors print {"error": ...} and exit 1.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path for session_health imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from session_health.analysis.drift_detector import LLMDriftAnalyzer
from session_health.compactor import CompactOptions
from session_health.config import ContextConfig
from session_health.controller import ContextController
from session_health.errors import ContextManagerError
from session_health.llm_client import LLMClient
from session_health.session_schema import Session


def session_summary(session: Session) -> dict:
    """Compact listing view of a session."""
    return {
        "id": session.id,
        "createdAt": session.created_at.isoformat(),
        "updatedAt": session.updated_at.isoformat(),
        "phase": session.metadata.phase,
        "healthScore": session.metadata.health_score,
        "messageCount": session.metrics.message_count,
        "events": len(session.events),
        "snapshots": len(session.snapshots),
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Track, score and compact agent sessions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--sessions-dir", help="Directory holding session records")
    parser.add_argument("--config", type=Path, help="Config file (default: ~/.claude/context-manager-config.json)")
    parser.add_argument("--deep-drift", action="store_true", help="Use an Anthropic model for deep drift analysis")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log controller decisions")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create", help="Create a session")
    p.add_argument("prompt", help="Initial prompt")
    p.add_argument("--id", dest="session_id", help="Session id (default: random)")

    p = sub.add_parser("status", help="Show session health")
    p.add_argument("session_id")

    p = sub.add_parser("track-message", help="Record a message")
    p.add_argument("session_id")
    p.add_argument("role", choices=["user", "assistant", "system"])
    p.add_argument("content")

    p = sub.add_parser("compact", help="Compact the event log")
    p.add_argument("session_id")
    p.add_argument("--keep-last", type=int, help="Events to keep by position")
    p.add_argument("--threshold", type=int, help="Compact only above this many events")
    p.add_argument("--drop-errors", action="store_true", help="Do not preserve error events")
    p.add_argument("--drop-snapshots", action="store_true", help="Do not preserve snapshot events")
    p.add_argument("--dry-run", action="store_true", help="Report without changing the session")

    p = sub.add_parser("snapshot", help="Create a snapshot")
    p.add_argument("session_id")
    p.add_argument("--description", "-m")

    p = sub.add_parser("snapshots", help="List snapshots")
    p.add_argument("session_id")

    p = sub.add_parser("restore", help="Restore a snapshot")
    p.add_argument("session_id")
    p.add_argument("commit_hash")

    sub.add_parser("list", help="List sessions")
    sub.add_parser("stats", help="Aggregate statistics")

    p = sub.add_parser("tick", help="Run the remediation loop once")
    p.add_argument("session_id", nargs="?")
    p.add_argument("--all", action="store_true", help="Tick every active session")

    p = sub.add_parser("end", help="End a session")
    p.add_argument("session_id")

    return parser


def build_controller(args: argparse.Namespace) -> ContextController:
    config = ContextConfig.load(args.config)
    if args.sessions_dir:
        config.storage.sessions_dir = args.sessions_dir

    deep_analyzer = LLMDriftAnalyzer(LLMClient()) if args.deep_drift else None
    return ContextController(config=config, deep_analyzer=deep_analyzer)


def run_command(controller: ContextController, args: argparse.Namespace) -> object:
    """Dispatch a parsed command and return its JSON-serializable result."""
    command = args.command

    if command == "create":
        session = controller.create_session(args.prompt, args.session_id)
        return session_summary(session)

    if command == "status":
        return controller.get_status(args.session_id).to_dict()

    if command == "track-message":
        event = controller.track_message(args.session_id, args.role, args.content)
        return event.model_dump(mode="json", by_alias=True)

    if command == "compact":
        options = CompactOptions(
            keep_last_n=args.keep_last,
            threshold=args.threshold,
            preserve_errors=not args.drop_errors,
            preserve_snapshots=not args.drop_snapshots,
            dry_run=args.dry_run,
        )
        return controller.compact(args.session_id, options).to_dict()

    if command == "snapshot":
        ref = controller.create_snapshot(args.session_id, args.description)
        return ref.model_dump(mode="json", by_alias=True)

    if command == "snapshots":
        return [ref.model_dump(mode="json", by_alias=True) for ref in controller.get_snapshots(args.session_id)]

    if command == "restore":
        controller.restore_snapshot(args.session_id, args.commit_hash)
        return controller.get_session(args.session_id).metadata.model_dump(mode="json", by_alias=True)

    if command == "list":
        return [session_summary(s) for s in controller.list_sessions()]

    if command == "stats":
        return controller.get_stats()

    if command == "tick":
        if args.all:
            return [result.to_dict() for result in controller.tick_all()]
        if not args.session_id:
            raise ValueError("tick needs a session id or --all")
        return controller.tick(args.session_id).to_dict()

    if command == "end":
        return session_summary(controller.end_session(args.session_id))

    raise ValueError(f"Unknown command: {command}")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        controller = build_controller(args)
        result = run_command(controller, args)
    except (ContextManagerError, ValueError) as e:
        print(json.dumps({"error": str(e), "type": type(e).__name__}))
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
