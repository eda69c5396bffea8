"""CLI interface for the approval engine.

Usage:
    python -m spendly init-db
    python -m spendly submit ENTITY_ID approve --as PRINCIPAL
    python -m spendly verify-audit ENTITY_ID
"""

import argparse
import sys
from typing import List, Optional

from .common.logger import configure_logging
from .core.approval.orchestrator import ApprovalOrchestrator
from .core.config import get_settings
from .core.errors import ApprovalError
from .db.session import build_engine, init_db


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="spendly", description="Spendly approval engine")
    parser.add_argument("--database-url", help="Override DATABASE_URL")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create database tables")

    submit = commands.add_parser("submit", help="Submit an approval action")
    submit.add_argument("entity_id")
    submit.add_argument("action", choices=["submit", "approve", "reject"])
    submit.add_argument("--as", dest="principal", required=True, help="Acting principal ID")
    submit.add_argument("--reason", help="Rejection reason")

    verify = commands.add_parser("verify-audit", help="Verify an entity's audit trail")
    verify.add_argument("entity_id")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    args = build_parser().parse_args(argv)

    settings = get_settings()
    if args.database_url:
        settings = settings.model_copy(update={"database_url": args.database_url})

    logger = configure_logging(settings)

    if args.command == "init-db":
        init_db(build_engine(settings.database_url))
        print("Tables created")
        return 0

    orchestrator = ApprovalOrchestrator.from_settings(settings)

    if args.command == "submit":
        metadata = {"reason": args.reason} if args.reason else None
        try:
            outcome = orchestrator.submit_decision(
                args.entity_id, args.action, args.principal, metadata
            )
        except ApprovalError as e:
            logger.error(str(e))
            print(f"Error: {e}", file=sys.stderr)
            return 2
        print(f"Entity: {outcome.entity.id}")
        print(f"Status: {outcome.decision.resulting_status.value}")
        if outcome.decision.reason:
            print(f"Reason: {outcome.decision.reason}")
        return 0

    report = orchestrator.verify(args.entity_id)
    print(f"Entity: {report.entity_id}")
    print(f"Entries: {report.entry_count}")
    print(f"Final status: {report.final_status or 'n/a'}")
    for problem in report.problems:
        print(f"Problem: {problem}")
    return 0 if report.valid else 1


if __name__ == "__main__":
    sys.exit(main())
