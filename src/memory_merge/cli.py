"""
memory-merge command line tool.

Usage:
    # Run the HTTP API
    memory-merge serve --host 0.0.0.0 --port 8000

    # Find vectors without documents and documents without vectors
    memory-merge reconcile <account-id>
    memory-merge reconcile <account-id> --repair

    # Re-embed rows from an older synonym table or embedding model
    memory-merge migrate <account-id>

    # Count hits per similarity cutoff for one query
    memory-merge threshold-sweep <account-id> "where is the spare key"

Settings are read from MEMORY_MERGE_* environment variables or a .env file.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from memory_merge.config import Settings, configure_logging, get_settings
from memory_merge.errors import MemoryMergeError
from memory_merge.factory import Components, build_components, close_components

logger = logging.getLogger(__name__)


async def _with_components(settings: Settings, action):
    components = build_components(settings)
    initialize = getattr(components.vector_store, "initialize", None)
    try:
        if initialize is not None:
            await initialize()
        return await action(components)
    finally:
        await close_components(components)


async def _reconcile(components: Components, account_id: str, repair: bool) -> int:
    report = await components.maintenance.reconcile(account_id)
    print(f"Account {account_id}: {len(report.orphaned)} orphaned, {len(report.missing)} missing")
    for vector_id in report.orphaned:
        print(f"  orphaned vector  {vector_id}")
    for document_id in report.missing:
        print(f"  missing vector   {document_id}")

    if repair and not report.consistent:
        result = await components.maintenance.repair(account_id, report)
        print(
            f"Repaired: deleted {len(result.deleted)}, embedded {len(result.embedded)}, "
            f"failed {len(result.failed)}"
        )
        return 1 if result.failed else 0
    return 0 if report.consistent else 1


async def _migrate(components: Components, account_id: str) -> int:
    migrated = await components.maintenance.migrate_enrichment(account_id)
    print(f"Migrated {migrated} vectors for account {account_id}")
    return 0


async def _sweep(
    components: Components, account_id: str, query: str, cutoffs: Optional[List[float]]
) -> int:
    counts = await components.search_service.sweep_thresholds(account_id, query, cutoffs)
    print(f"{'cutoff':>8}  results")
    for cutoff, count in counts:
        print(f"{cutoff:>8.2f}  {count}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="memory-merge",
        description="Hybrid semantic retrieval for shared knowledge spaces",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--log-level", default=None, help="Override MEMORY_MERGE_LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    reconcile = subparsers.add_parser("reconcile", help="Compare the document and vector stores")
    reconcile.add_argument("account_id")
    reconcile.add_argument(
        "--repair", action="store_true", help="Delete orphaned vectors and embed missing documents"
    )

    migrate = subparsers.add_parser("migrate", help="Re-embed stale vectors")
    migrate.add_argument("account_id")

    sweep = subparsers.add_parser("threshold-sweep", help="Count results per similarity cutoff")
    sweep.add_argument("account_id")
    sweep.add_argument("query")
    sweep.add_argument(
        "--cutoffs",
        type=float,
        nargs="+",
        default=None,
        help="Cutoffs to try (default: search threshold plus the fallback ladder)",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(args.log_level or settings.log_level)

    if args.command == "serve":
        import uvicorn

        from memory_merge.web import create_app

        uvicorn.run(create_app(settings), host=args.host, port=args.port)
        return 0

    if args.command == "reconcile":
        action = lambda components: _reconcile(components, args.account_id, args.repair)  # noqa: E731
    elif args.command == "migrate":
        action = lambda components: _migrate(components, args.account_id)  # noqa: E731
    else:
        action = lambda components: _sweep(  # noqa: E731
            components, args.account_id, args.query, args.cutoffs
        )

    try:
        return asyncio.run(_with_components(settings, action))
    except MemoryMergeError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error ({e.code}): {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
