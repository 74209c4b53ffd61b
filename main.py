"""CLI entry point for the podcast matchmaker."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import httpx
import yaml

from podmatch.analysis.analyzer import LLMFeatureAnalyzer
from podmatch.analysis.llm import available_providers, get_provider
from podmatch.catalog.base import CatalogProvider, UnavailableCatalog
from podmatch.catalog.listennotes import ListenNotesCatalog
from podmatch.core.config import Settings
from podmatch.core.db import init_db
from podmatch.core.errors import MatchingError
from podmatch.core.schemas import CandidateRecord, CreatorRecord, MatchFilters, PreferenceVector
from podmatch.core.stores import SqliteCandidateStore, SqliteStatusStore
from podmatch.pipeline.batch import BatchRunner
from podmatch.pipeline.orchestrator import TieredMatcher
from podmatch.pipeline.status import StatusTracker

logger = logging.getLogger(__name__)


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Podcast matchmaker - match creators with shows",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- rank subcommand ---
    rank_parser = subparsers.add_parser(
        "rank",
        help="Rank shows against a preference file (local first, catalog fallback)",
    )
    rank_parser.add_argument(
        "--preferences",
        required=True,
        help="Path to preferences YAML (topics, preferred_length, style_preferences)",
    )
    rank_parser.add_argument(
        "--max-results",
        type=int,
        default=None,
        help="Maximum number of matches to return",
    )
    _add_common(rank_parser)

    # --- batch subcommand ---
    batch_parser = subparsers.add_parser(
        "batch",
        help="Score every stored show against a creator",
    )
    batch_parser.add_argument("--creator", required=True, help="Creator id")
    batch_parser.add_argument(
        "--topic",
        action="append",
        default=[],
        help="Only consider shows in this category (repeatable)",
    )
    batch_parser.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Stop dispatching new candidates after this many seconds",
    )
    _add_common(batch_parser)

    # --- status subcommand ---
    status_parser = subparsers.add_parser(
        "status",
        help="Show batch progress for a creator",
    )
    status_parser.add_argument("--creator", required=True, help="Creator id")
    _add_common(status_parser)

    # --- import subcommand ---
    import_parser = subparsers.add_parser(
        "import",
        help="Load show and creator records from YAML/JSON files",
    )
    import_parser.add_argument("--shows", help="File with a list of show records")
    import_parser.add_argument("--creators", help="File with a list of creator records")
    _add_common(import_parser)

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_settings(path: str) -> Settings:
    """Load settings, falling back to defaults when the file does not exist."""
    if not Path(path).exists():
        logger.info("No config at %s, using defaults", path)
        return Settings()
    return Settings.from_yaml(path)


def _load_list(path: str) -> list[dict[str, Any]]:
    raw = yaml.safe_load(Path(path).read_text()) or []
    if not isinstance(raw, list):
        msg = f"Expected a list of records in {path}"
        raise ValueError(msg)
    return raw


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def build_catalog(settings: Settings, client: httpx.AsyncClient) -> CatalogProvider:
    """Build the configured catalog, or a stand-in that always fails over to local results."""
    try:
        return ListenNotesCatalog.from_config(settings.catalog, client)
    except ValueError as e:
        logger.warning("Catalog search disabled: %s", e)
        return UnavailableCatalog(settings.catalog.provider, str(e))


async def cmd_rank(args: argparse.Namespace, settings: Settings) -> None:
    """Handle rank subcommand."""
    raw = yaml.safe_load(Path(args.preferences).read_text()) or {}
    prefs = PreferenceVector.model_validate(raw)
    filters = MatchFilters(max_results=args.max_results)

    conn = init_db(settings.database.path)
    try:
        store = SqliteCandidateStore(conn)
        provider = get_provider(settings.analyzer.provider)
        analyzer = LLMFeatureAnalyzer(store, provider, settings.analyzer.model)

        async with httpx.AsyncClient() as client:
            catalog = build_catalog(settings, client)
            matcher = TieredMatcher(store, catalog, analyzer, settings)
            matches = await matcher.find_matches(prefs, filters)

        stats = matcher.last_stats
        if stats is not None and stats.degraded_error:
            print(f"Warning: catalog unavailable ({stats.degraded_error})", file=sys.stderr)
        _print_json([m.model_dump(mode="json") for m in matches])
    finally:
        conn.close()


async def cmd_batch(args: argparse.Namespace, settings: Settings) -> None:
    """Handle batch subcommand."""
    conn = init_db(settings.database.path)
    try:
        store = SqliteCandidateStore(conn)
        tracker = StatusTracker(SqliteStatusStore(conn))
        runner = BatchRunner(tracker, settings.batch, store=store)

        if await store.get_creator_features(args.creator) is None:
            print(f"Analyzing creator '{args.creator}' with {settings.analyzer.provider}...")
            provider = get_provider(settings.analyzer.provider)
            analyzer = LLMFeatureAnalyzer(store, provider, settings.analyzer.model)
            await store.put_creator_features(await analyzer.analyze_creator(args.creator))

        result = await runner.find_matches_for_creator(
            args.creator,
            MatchFilters(topics=args.topic),
            deadline_seconds=args.deadline,
        )
        _print_json(result.model_dump(mode="json"))
    finally:
        conn.close()


async def cmd_status(args: argparse.Namespace, settings: Settings) -> None:
    """Handle status subcommand."""
    conn = init_db(settings.database.path)
    try:
        tracker = StatusTracker(SqliteStatusStore(conn))
        status = await tracker.get(args.creator)
    finally:
        conn.close()

    if status is None:
        print(f"No batch has run for '{args.creator}'", file=sys.stderr)
        sys.exit(1)
    _print_json(status.model_dump(mode="json"))


async def cmd_import(args: argparse.Namespace, settings: Settings) -> None:
    """Handle import subcommand."""
    if not args.shows and not args.creators:
        msg = "Nothing to import: pass --shows and/or --creators"
        raise ValueError(msg)

    conn = init_db(settings.database.path)
    try:
        store = SqliteCandidateStore(conn)
        if args.shows:
            shows = [CandidateRecord.model_validate(r) for r in _load_list(args.shows)]
            await store.upsert_records(shows)
            print(f"Imported {len(shows)} shows from {args.shows}")
        if args.creators:
            creators = [CreatorRecord.model_validate(r) for r in _load_list(args.creators)]
            await store.upsert_creator_records(creators)
            print(f"Imported {len(creators)} creators from {args.creators}")
    finally:
        conn.close()


_COMMANDS = {
    "rank": cmd_rank,
    "batch": cmd_batch,
    "status": cmd_status,
    "import": cmd_import,
}


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = load_settings(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    if settings.analyzer.provider not in available_providers():
        print(f"Error: unknown analyzer provider '{settings.analyzer.provider}'", file=sys.stderr)
        sys.exit(1)

    try:
        asyncio.run(_COMMANDS[args.command](args, settings))
    except (FileNotFoundError, ImportError, ValueError, MatchingError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
