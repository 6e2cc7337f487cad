"""Entry point for the discovery pipeline.

Usage:
    opportunity-scout                           # one discovery cycle
    opportunity-scout discover --source github  # run a single adapter
    opportunity-scout discover --dry-run        # list adapters without fetching
    opportunity-scout watch --interval 30       # cycle every 30 minutes
    opportunity-scout import posting.json       # manual ingestion
    opportunity-scout import alert.json --email # email ingestion
    opportunity-scout list --min-score 70       # show stored opportunities
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
from pathlib import Path

from opportunity_scout.config import PipelineConfig, load_config
from opportunity_scout.discovery import DiscoveryPipeline
from opportunity_scout.errors import DuplicateFingerprintError, StoreUnavailableError
from opportunity_scout.ingest import import_email, import_posting
from opportunity_scout.llm_scorer import build_scorer
from opportunity_scout.storage import OpportunityStore

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the pipeline."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _common_arguments(suppress: bool = False) -> argparse.ArgumentParser:
    """Flags shared by the top-level parser and every subcommand."""
    default_none = argparse.SUPPRESS if suppress else None
    default_false = argparse.SUPPRESS if suppress else False

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=str,
        default=default_none,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    common.add_argument(
        "--data-dir",
        type=str,
        default=default_none,
        help="Override data directory for the store and logs (default: from config)",
    )
    common.add_argument(
        "--verbose", "-v",
        action="store_true",
        default=default_false,
        help="Enable debug-level logging",
    )
    return common


def build_parser() -> argparse.ArgumentParser:
    # Subcommands accept the common flags too, but must not reset values
    # given before the subcommand name.
    common = _common_arguments()
    sub_common = _common_arguments(suppress=True)

    parser = argparse.ArgumentParser(
        prog="opportunity-scout",
        description="Opportunity Scout — discover, dedup and score job postings "
        "from Web3 job boards and GitHub hiring issues.",
        parents=[common],
    )
    sub = parser.add_subparsers(dest="command")

    discover = sub.add_parser("discover", parents=[sub_common], help="Run one discovery cycle")
    discover.add_argument(
        "--source",
        type=str,
        default=None,
        help="Run only a specific source by name (e.g., 'github', 'web3.careers')",
    )
    discover.add_argument(
        "--dry-run",
        action="store_true",
        help="Load config and list sources without fetching anything",
    )

    watch = sub.add_parser("watch", parents=[sub_common], help="Run discovery periodically")
    watch.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Minutes between cycles (default: discovery_interval_minutes from config)",
    )

    imp = sub.add_parser("import", parents=[sub_common], help="Import postings from a JSON file")
    imp.add_argument("path", type=Path, help="JSON object or list of objects")
    imp.add_argument(
        "--email",
        action="store_true",
        help="Treat entries as job alert emails (subject, body, from, url)",
    )

    lst = sub.add_parser("list", parents=[sub_common], help="List stored opportunities")
    lst.add_argument("--min-score", type=int, default=None)
    lst.add_argument("--category", type=str, default=None)
    lst.add_argument("--limit", type=int, default=50)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    command = args.command or "discover"

    config = load_config(args.config)
    if args.data_dir:
        config.data_dir = args.data_dir
    setup_logging("DEBUG" if args.verbose else config.log_level)
    logger.info("Loaded config with %d sources", len(config.sources))

    try:
        if command == "discover":
            return cmd_discover(config, getattr(args, "source", None), getattr(args, "dry_run", False))
        if command == "watch":
            return cmd_watch(config, args.interval)
        if command == "import":
            return cmd_import(config, args.path, args.email)
        if command == "list":
            return cmd_list(config, args.min_score, args.category, args.limit)
    except StoreUnavailableError as exc:
        logger.error("Store unavailable: %s", exc)
        return 2

    logger.error("Unknown command %r", command)
    return 1


# ── Commands ────────────────────────────────────────────────────────────────


def cmd_discover(config: PipelineConfig, source: str | None = None, dry_run: bool = False) -> int:
    # Filter to a single source if requested
    if source:
        config.sources = [s for s in config.sources if s.name.lower() == source.lower()]
        if not config.sources:
            logger.error("No source found matching '%s'", source)
            return 1
        logger.info("Filtered to source: %s", source)

    # Dry run: list what would run
    if dry_run:
        logger.info("=== Dry Run ===")
        for src in config.sources:
            logger.info(
                "  [%s] %s (type=%s)",
                "ON" if src.enabled else "OFF",
                src.name,
                src.source_type,
            )
        logger.info("Dry run complete — nothing fetched.")
        return 0

    pipeline = DiscoveryPipeline(config)
    persisted = pipeline.run()
    print(f"{len(persisted)} new opportunities saved")
    return 0


def cmd_watch(config: PipelineConfig, interval: int | None = None) -> int:
    minutes = interval or config.discovery_interval_minutes
    stop = threading.Event()

    def _handle_signal(signum, _frame):
        logger.info("Signal %d received, stopping after the current cycle", signum)
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    run_periodically(DiscoveryPipeline(config), minutes * 60, stop)
    return 0


def run_periodically(pipeline: DiscoveryPipeline, interval_seconds: float, stop: threading.Event) -> int:
    """Run a cycle now and then every `interval_seconds` until `stop` is set.

    Returns the number of cycles started. A failed cycle is logged and the
    loop keeps going.
    """
    logger.info("Scheduling discovery every %.0f seconds", interval_seconds)
    cycles = 0
    while not stop.is_set():
        cycles += 1
        logger.info("Starting scheduled discovery (cycle %d)", cycles)
        try:
            persisted = pipeline.run(cancel_event=stop)
            logger.info("Discovery completed: %d new opportunities", len(persisted))
        except Exception as exc:
            logger.error("Discovery failed: %s", exc)
        if stop.wait(interval_seconds):
            break
    return cycles


def cmd_import(config: PipelineConfig, path: Path, email: bool = False) -> int:
    with open(path, "r") as f:
        payload = json.load(f)
    entries = payload if isinstance(payload, list) else [payload]

    store = OpportunityStore(config.data_dir)
    scorer = build_scorer(config)
    imported = 0

    for entry in entries:
        try:
            if email:
                row = import_email(
                    store, scorer,
                    subject=entry.get("subject", ""),
                    body=entry.get("body", ""),
                    sender=entry.get("from"),
                    url=entry.get("url"),
                )
            else:
                row = import_posting(
                    store, scorer,
                    title=entry.get("title", ""),
                    description=entry.get("description", ""),
                    url=entry.get("url", ""),
                    source=entry.get("source"),
                    source_type=entry.get("sourceType", "manual"),
                    tags=entry.get("tags"),
                )
        except DuplicateFingerprintError as exc:
            logger.warning("Skipping %r: %s", entry.get("title") or entry.get("subject"), exc)
            continue
        except ValueError as exc:
            logger.error("Invalid entry %r: %s", entry, exc)
            continue

        imported += 1
        print(f"[{row['score']:3d}] {row['category']:<8} {row['title']} — {row['match_reason']}")

    print(f"{imported} of {len(entries)} imported")
    return 0 if imported or not entries else 1


def cmd_list(config: PipelineConfig, min_score: int | None, category: str | None, limit: int) -> int:
    store = OpportunityStore(config.data_dir)
    rows = store.list_opportunities(min_score=min_score, category=category)
    for row in rows[:limit]:
        print(f"[{row['score']:3d}] {row['category']:<8} {row['title']}\n      {row['url']}")
    print(f"{len(rows)} opportunities")
    return 0


if __name__ == "__main__":
    sys.exit(main())
