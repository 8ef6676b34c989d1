# enrichment/cli.py
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from typing import Any

from .config import load_settings
from .exceptions import StoreError
from .models import STATUSES, OpportunitySelector
from .queueing.orchestrator import EnrichmentPipeline
from .store import SqliteOpportunityStore


def _setup_logging(verbose: bool) -> None:
    root = logging.getLogger()
    if root.handlers:
        return
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(message)s",
    )


def _emit(payload: dict[str, Any]) -> int:
    print(json.dumps(payload, indent=2, sort_keys=True))
    return 0


def _pipeline(args: argparse.Namespace) -> EnrichmentPipeline:
    cfg = load_settings()
    if args.db:
        cfg = replace(cfg, batch=replace(cfg.batch, db_path=args.db))
    return EnrichmentPipeline(cfg)


# ---------------- commands ----------------


def _cmd_run_batch(args: argparse.Namespace) -> int:
    selector = OpportunitySelector(
        status=None if args.status == "any" else args.status,
        limit=args.limit,
        ids=tuple(args.ids or ()),
        premium_only=args.premium_only,
        missing_contacts=args.missing_contacts,
    )

    async def run() -> dict[str, int]:
        async with _pipeline(args) as pipeline:
            summary = await pipeline.run_batch(selector, args.concurrency)
        return summary.to_dict()

    return _emit(asyncio.run(run()))


def _cmd_extract(args: argparse.Namespace) -> int:
    async def run() -> dict[str, Any]:
        async with _pipeline(args) as pipeline:
            result = await pipeline.extract_contacts(args.opportunity_id, force=args.force)
        return {
            "opportunityId": args.opportunity_id,
            "changed": result.changed,
            "skipped": result.skipped,
            "stages": result.stages,
            "contactInfo": result.record.to_dict(),
        }

    return _emit(asyncio.run(run()))


def _cmd_validate(args: argparse.Namespace) -> int:
    async def run() -> dict[str, Any]:
        async with _pipeline(args) as pipeline:
            outcome = await pipeline.validate_domain(args.domain)
        return {
            "domain": outcome.domain,
            "status": outcome.status,
            "validationData": outcome.to_validation_data(),
        }

    return _emit(asyncio.run(run()))


def _cmd_init_db(args: argparse.Namespace) -> int:
    cfg = load_settings()
    store = SqliteOpportunityStore(args.db or cfg.batch.db_path)
    store.init_schema()
    added = [store.add_opportunity(url) for url in args.urls or ()]
    return _emit({"db": store.db_path, "added": added})


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="enrichment",
        description="Opportunity enrichment: domain validation and contact extraction.",
    )
    parser.add_argument(
        "--db",
        help="SQLite database path (default: DATABASE_URL/DATABASE_PATH/dev.db).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    batch = subparsers.add_parser("run-batch", help="Validate and extract contacts for a batch.")
    batch.add_argument(
        "--status",
        default="discovered",
        choices=[*STATUSES, "any"],
        help="Status filter for selection (default: discovered).",
    )
    batch.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Maximum opportunities to pull (default: 20).",
    )
    batch.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Worker count (default: BATCH_CONCURRENCY).",
    )
    batch.add_argument("--id", dest="ids", type=int, action="append", help="Only these ids.")
    batch.add_argument("--premium-only", action="store_true", help="Only premium opportunities.")
    batch.add_argument(
        "--missing-contacts",
        action="store_true",
        help="Only opportunities without emails or a contact form.",
    )
    batch.set_defaults(func=_cmd_run_batch)

    extract = subparsers.add_parser("extract", help="Re-run contact extraction for one id.")
    extract.add_argument("opportunity_id", type=int)
    extract.add_argument("--force", action="store_true", help="Run even if contacts exist.")
    extract.set_defaults(func=_cmd_extract)

    validate = subparsers.add_parser("validate", help="Run the tiered validator against a domain.")
    validate.add_argument("domain")
    validate.set_defaults(func=_cmd_validate)

    init_db = subparsers.add_parser("init-db", help="Create the opportunities table.")
    init_db.add_argument("urls", nargs="*", help="Optional URLs to enroll as discovered.")
    init_db.set_defaults(func=_cmd_init_db)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    func = getattr(args, "func", None)
    if func is None:
        parser.error("no command specified")
        return 1

    try:
        return int(func(args))
    except StoreError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
